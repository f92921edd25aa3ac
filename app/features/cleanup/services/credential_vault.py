"""
Credential vault for connected Gmail accounts.

Resolves usable access tokens (refreshing them close to expiry), and owns
the connect/disconnect lifecycle. Tokens are encrypted at rest and never
logged. Any credential problem during a run (disconnected account, failed
refresh, undecryptable token) resolves to None so the caller can skip the
account instead of failing the whole run.
"""

import secrets
from datetime import timedelta

from app.db.helpers import DatabaseError
from app.features.cleanup.domain import MailboxAccount
from app.features.cleanup.repository import MailboxAccountRepository
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import (
    GoogleGmailError,
    GoogleGmailService,
    google_gmail_service,
)
from app.services.google_oauth_service import (
    GoogleOAuthError,
    GoogleOAuthService,
    google_oauth_service,
)
from app.services.infrastructure.encryption_service import (
    EncryptionError,
    decrypt_token,
    encrypt_oauth_tokens,
    encrypt_token,
)

logger = get_logger(__name__)

# Refresh when the access token expires within this window
REFRESH_MARGIN = timedelta(minutes=5)


class CredentialVaultError(Exception):
    """Raised by connect/disconnect operations."""

    def __init__(self, message: str, error_code: str = "credential_error", status_code: int = 400):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code


class CredentialVault:
    """Access token resolution and account lifecycle for one or more users."""

    def __init__(
        self,
        accounts: type[MailboxAccountRepository] = MailboxAccountRepository,
        oauth: GoogleOAuthService | None = None,
        gmail: GoogleGmailService | None = None,
    ):
        self.accounts = accounts
        self.oauth = oauth or google_oauth_service
        self.gmail = gmail or google_gmail_service

    # ------------------------------------------------------------------
    # Token resolution
    # ------------------------------------------------------------------

    async def get_valid_access_token(
        self, user_id: str, account_id: str | None = None
    ) -> tuple[str, MailboxAccount] | None:
        """
        Return a usable access token for one account of the user.

        Looks up the named account, else the primary account, else any
        connected account. Refreshes first when the token is near expiry.

        Returns:
            (plaintext token, account) or None when no usable token exists
        """
        account: MailboxAccount | None = None
        if account_id:
            account = await self.accounts.get_account(user_id, account_id)
        if account is None:
            account = await self.accounts.get_primary_account(user_id)
        if account is None or not account.is_connected:
            account = await self.accounts.get_any_connected_account(user_id)

        if account is None or not account.is_connected:
            logger.info("No connected mailbox account", user_id=user_id)
            return None

        return await self._resolve(account)

    async def get_all_valid_access_tokens(self, user_id: str) -> list[tuple[str, MailboxAccount]]:
        """Usable tokens for every connected account; unusable accounts are omitted."""
        resolved: list[tuple[str, MailboxAccount]] = []

        for account in await self.accounts.list_connected_accounts(user_id):
            result = await self._resolve(account)
            if result is not None:
                resolved.append(result)

        logger.debug("Resolved account tokens", user_id=user_id, usable=len(resolved))
        return resolved

    async def _resolve(self, account: MailboxAccount) -> tuple[str, MailboxAccount] | None:
        if account.needs_refresh(REFRESH_MARGIN):
            token = await self.refresh(account)
            return (token, account) if token else None

        try:
            return decrypt_token(account.access_token_enc), account
        except EncryptionError as e:
            logger.warning(
                "Stored access token could not be decrypted",
                account_id=account.id,
                error=str(e),
            )
            return None

    async def refresh(self, account: MailboxAccount) -> str | None:
        """
        Exchange the stored refresh token for a new access token.

        The new token and expiry are encrypted and persisted, and the
        account object is updated in place.

        Returns:
            The new plaintext access token, or None on any failure
        """
        if not account.refresh_token_enc:
            logger.warning("Account has no refresh token", account_id=account.id)
            return None

        try:
            refresh_token = decrypt_token(account.refresh_token_enc)
        except EncryptionError as e:
            logger.warning(
                "Stored refresh token could not be decrypted", account_id=account.id, error=str(e)
            )
            return None

        try:
            token_response = await self.oauth.refresh_access_token(refresh_token)
        except GoogleOAuthError as e:
            logger.warning(
                "Access token refresh failed",
                account_id=account.id,
                error_code=e.error_code,
                error=str(e),
            )
            return None

        rotated = token_response.refresh_token != refresh_token
        try:
            access_enc = encrypt_token(token_response.access_token)
            refresh_enc = encrypt_token(token_response.refresh_token) if rotated else None
            await self.accounts.update_access_token(
                account.id, access_enc, token_response.expires_at, refresh_enc
            )
        except (EncryptionError, DatabaseError) as e:
            logger.error(
                "Failed to persist refreshed token",
                account_id=account.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        account.access_token_enc = access_enc
        account.token_expires_at = token_response.expires_at
        if refresh_enc:
            account.refresh_token_enc = refresh_enc

        logger.info(
            "Access token refreshed",
            account_id=account.id,
            expires_in=token_response.expires_in,
            refresh_token_rotated=rotated,
        )
        return token_response.access_token

    # ------------------------------------------------------------------
    # Account lifecycle
    # ------------------------------------------------------------------

    def build_authorization_url(self, redirect_uri: str | None = None) -> tuple[str, str]:
        """
        Build the Google consent URL.

        Returns:
            (url, state) - the caller keeps the state to check the callback

        Raises:
            CredentialVaultError: If OAuth is not configured or the redirect URI is not allowed
        """
        state = secrets.token_urlsafe(32)
        try:
            url = self.oauth.generate_oauth_url(state, redirect_uri)
        except GoogleOAuthError as e:
            raise CredentialVaultError(str(e), error_code=e.error_code or "oauth_error") from e
        return url, state

    async def connect_account(
        self, user_id: str, code: str, redirect_uri: str | None = None
    ) -> MailboxAccount:
        """
        Exchange an authorization code and store the account's tokens.

        The account becomes primary when the user has no primary yet.

        Raises:
            CredentialVaultError: If the exchange or the profile lookup fails
        """
        if redirect_uri and not self.oauth.is_allowed_redirect_uri(redirect_uri):
            raise CredentialVaultError("Invalid redirect URI", error_code="invalid_redirect_uri")

        try:
            token_response = await self.oauth.exchange_code_for_tokens(code, redirect_uri)
        except GoogleOAuthError as e:
            raise CredentialVaultError(
                "Authorization code exchange failed", error_code=e.error_code or "exchange_failed"
            ) from e

        try:
            profile = await self.gmail.get_profile(token_response.access_token)
        except GoogleGmailError as e:
            raise CredentialVaultError(
                "Could not read Gmail profile", error_code="profile_failed"
            ) from e

        email = profile.get("emailAddress")
        if not isinstance(email, str) or not email:
            raise CredentialVaultError("Gmail profile has no address", error_code="profile_failed")

        access_enc, refresh_enc = encrypt_oauth_tokens(
            token_response.access_token, token_response.refresh_token
        )
        has_primary = await self.accounts.get_primary_account(user_id) is not None

        account = await self.accounts.upsert_account(
            user_id=user_id,
            email=email,
            access_token_enc=access_enc,
            refresh_token_enc=refresh_enc,
            token_expires_at=token_response.expires_at,
            make_primary=not has_primary,
        )

        logger.info(
            "Mailbox account connected",
            user_id=user_id,
            account_id=account.id,
            is_primary=account.is_primary,
            has_refresh_token=bool(token_response.refresh_token),
        )
        return account

    async def disconnect_account(self, user_id: str, account_id: str) -> None:
        """
        Revoke (best effort) and delete an account, promoting another to primary if needed.

        Raises:
            CredentialVaultError: If the account does not exist
        """
        account = await self.accounts.get_account(user_id, account_id)
        if account is None:
            raise CredentialVaultError(
                "Account not found", error_code="account_not_found", status_code=404
            )

        token_enc = account.refresh_token_enc or account.access_token_enc
        if token_enc:
            try:
                await self.oauth.revoke_token(decrypt_token(token_enc))
            except EncryptionError:
                logger.info("Skipping revoke for undecryptable token", account_id=account_id)

        await self.accounts.delete_account(user_id, account_id)

        promoted = None
        if account.is_primary:
            promoted = await self.accounts.promote_primary(user_id)

        logger.info(
            "Mailbox account disconnected",
            user_id=user_id,
            account_id=account_id,
            promoted_account_id=promoted,
        )


credential_vault = CredentialVault()
