"""
Google OAuth 2.0 client for Gmail cleanup access.

Builds consent URLs, exchanges authorization codes, refreshes and revokes
tokens. A failed refresh is reported to the caller, which skips the account
for this run; the next scheduled run tries again.
"""

import re
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

GMAIL_CLEANUP_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",  # list Spam/Trash, read headers
    "https://www.googleapis.com/auth/gmail.modify",
    "https://mail.google.com/",  # permanent delete
]

REQUEST_TIMEOUT = 10
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class GoogleOAuthError(Exception):
    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str = ""
    expires_in: int = 0
    expires_at: datetime

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "TokenResponse":
        """
        Parse a token endpoint body.

        Raises:
            GoogleOAuthError: If the body carries no access token
        """
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise GoogleOAuthError("Token response has no access_token", error_code="invalid_response")

        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0

        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope") or "",
            expires_in=expires_in,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        )


class GoogleOAuthService:
    """
    Token endpoint operations.

    Client credentials come from settings and are checked on first use, so
    the module imports cleanly without Google configured.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    @property
    def client_id(self) -> str | None:
        return settings.GOOGLE_CLIENT_ID

    @property
    def client_secret(self) -> str | None:
        return settings.GOOGLE_CLIENT_SECRET

    def _require_credentials(self) -> None:
        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", self.client_id),
                ("GOOGLE_CLIENT_SECRET", self.client_secret),
            )
            if not value
        ]
        if missing:
            raise GoogleOAuthError(f"{', '.join(missing)} not configured")

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    def is_allowed_redirect_uri(self, redirect_uri: str) -> bool:
        if redirect_uri == settings.gmail_redirect_uri():
            return True
        return any(re.match(pattern, redirect_uri) for pattern in settings.OAUTH_REDIRECT_ALLOWLIST)

    def generate_oauth_url(self, state: str, redirect_uri: str | None = None) -> str:
        """
        Consent URL requesting offline access to the cleanup scopes.

        Args:
            state: Opaque value echoed back on the callback
            redirect_uri: Callback URL; must match the allowlist

        Raises:
            GoogleOAuthError: If credentials are missing or the redirect URI is rejected
        """
        self._require_credentials()
        target = redirect_uri or settings.gmail_redirect_uri()
        if not self.is_allowed_redirect_uri(target):
            logger.warning("Rejected OAuth redirect URI", redirect_uri=target)
            raise GoogleOAuthError("Invalid redirect URI", error_code="invalid_redirect_uri")

        query = urlencode(
            {
                "client_id": self.client_id,
                "redirect_uri": target,
                "scope": " ".join(GMAIL_CLEANUP_SCOPES),
                "response_type": "code",
                "state": state,
                # offline + consent makes Google issue a refresh token every time
                "access_type": "offline",
                "prompt": "consent",
            }
        )
        return f"{GOOGLE_OAUTH_BASE_URL}?{query}"

    async def exchange_code_for_tokens(
        self, authorization_code: str, redirect_uri: str | None = None
    ) -> TokenResponse:
        self._require_credentials()
        logger.info("Exchanging authorization code for Gmail tokens")
        return await self._token_grant(
            "code_exchange",
            grant_type="authorization_code",
            code=authorization_code,
            redirect_uri=redirect_uri or settings.gmail_redirect_uri(),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Trade a refresh token for a new access token.

        Google usually omits refresh_token on refresh; the existing one is
        carried over in that case.

        Raises:
            GoogleOAuthError: If Google rejects the grant or is unreachable
        """
        self._require_credentials()
        token = await self._token_grant(
            "token_refresh", grant_type="refresh_token", refresh_token=refresh_token
        )
        if not token.refresh_token:
            token.refresh_token = refresh_token
        return token

    async def revoke_token(self, token: str) -> bool:
        """Best effort; False on any failure."""
        try:
            response = await self._http().post(
                GOOGLE_REVOKE_URL, data={"token": token}, headers=FORM_HEADERS
            )
        except httpx.HTTPError as e:
            logger.warning("Network error during token revocation", error=str(e))
            return False

        if response.status_code != 200:
            logger.warning("Token revocation failed", status_code=response.status_code)
            return False

        logger.info("Gmail token revoked")
        return True

    async def _token_grant(self, operation: str, **form: str) -> TokenResponse:
        form = {"client_id": self.client_id, "client_secret": self.client_secret, **form}
        try:
            response = await self._http().post(GOOGLE_TOKEN_URL, data=form, headers=FORM_HEADERS)
        except httpx.HTTPError as e:
            logger.error(
                "Token endpoint unreachable",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Network error during {operation}: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success:
            error_code = body.get("error", "unknown_error")
            description = body.get("error_description", "Unknown error")
            logger.error(
                "Token endpoint rejected grant",
                operation=operation,
                status_code=response.status_code,
                error_code=error_code,
                error_description=description,
            )
            raise GoogleOAuthError(
                f"{operation} failed: {description}", error_code=error_code, response_data=body
            )

        token = TokenResponse.from_payload(body)
        logger.info(
            "Token grant succeeded",
            operation=operation,
            expires_in=token.expires_in,
            has_refresh_token=bool(token.refresh_token),
        )
        return token


google_oauth_service = GoogleOAuthService()
