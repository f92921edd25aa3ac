"""
Gmail account connection routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.verify import current_user_id
from app.features.cleanup.services import CredentialVaultError, credential_vault
from app.infrastructure.observability.logging import get_logger
from app.models.api.cleanup_request import GmailConnectRequest
from app.models.api.cleanup_response import GmailAuthURLResponse, MailboxAccountResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/gmail", tags=["gmail"])


def _to_http_error(e: CredentialVaultError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/auth-url", response_model=GmailAuthURLResponse)
async def get_auth_url(
    redirect_uri: str | None = Query(default=None),
    user_id: str = Depends(current_user_id),
):
    """
    Generate the Google consent URL for connecting a Gmail account.

    Raises:
        400: Redirect URI not allowed or OAuth not configured
    """
    try:
        auth_url, state = credential_vault.build_authorization_url(redirect_uri)
    except CredentialVaultError as e:
        logger.warning("Gmail auth URL rejected", user_id=user_id, error_code=e.error_code)
        raise _to_http_error(e) from None

    logger.info("Gmail OAuth URL generated", user_id=user_id, state_preview=state[:8] + "...")
    return GmailAuthURLResponse(auth_url=auth_url, state=state)


@router.post("/connect", response_model=MailboxAccountResponse)
async def connect_gmail(request: GmailConnectRequest, user_id: str = Depends(current_user_id)):
    """
    Exchange an authorization code and store the Gmail account.

    Raises:
        400: Code exchange or profile lookup failed
    """
    try:
        account = await credential_vault.connect_account(user_id, request.code, request.redirect_uri)
    except CredentialVaultError as e:
        logger.warning("Gmail connect failed", user_id=user_id, error_code=e.error_code)
        raise _to_http_error(e) from None

    return MailboxAccountResponse(id=account.id, email=account.email, is_primary=account.is_primary)


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_gmail(account_id: str, user_id: str = Depends(current_user_id)):
    try:
        await credential_vault.disconnect_account(user_id, account_id)
    except CredentialVaultError as e:
        raise _to_http_error(e) from None
