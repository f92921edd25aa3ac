"""
Bearer JWT verification (HS256, shared secret) and the cron trigger secret.

Routes depend on `current_user_id`, which is the token's `sub` claim.
The cleanup trigger depends on `cron_secret_dependency`.
"""

import hmac

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings

_security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    secret = settings.AUTH_JWT_SECRET
    if not secret:
        raise _unauthorized("Authentication is not configured")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=settings.AUTH_JWT_AUDIENCE,
            options={"verify_exp": True, "require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise _unauthorized(f"Invalid authentication token: {e}") from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    return verify_jwt(credentials.credentials)


def current_user_id(claims: dict = Depends(auth_dependency)) -> str:
    return str(claims["sub"])


def cron_secret_dependency(x_cron_secret: str | None = Header(default=None)) -> None:
    """Require X-Cron-Secret when CRON_SECRET is configured."""
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")
