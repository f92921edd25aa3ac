"""
Persistence for connected mailbox accounts.

Token columns are stored and returned as ciphertext; decryption belongs to
the credential vault.
"""

from datetime import datetime

from app.db.helpers import (
    DatabaseError,
    as_uuid,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_val,
    with_db_retry,
)
from app.features.cleanup.domain import MailboxAccount
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class AccountRepositoryError(DatabaseError):
    """More specific exception for mailbox account persistence failures."""


class MailboxAccountRepository:
    """Queries against mailbox_accounts."""

    SELECT_COLUMNS = """
        id, user_id, email, access_token_enc, refresh_token_enc,
        token_expires_at, is_primary
    """

    @classmethod
    def _row_to_account(cls, row: dict | None) -> MailboxAccount | None:
        if not row:
            return None

        return MailboxAccount(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            email=row["email"],
            access_token_enc=row.get("access_token_enc"),
            refresh_token_enc=row.get("refresh_token_enc"),
            token_expires_at=row.get("token_expires_at"),
            is_primary=bool(row.get("is_primary")),
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_account(cls, user_id: str, account_id: str) -> MailboxAccount | None:
        account_uuid = as_uuid(account_id)
        if account_uuid is None:
            return None

        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM mailbox_accounts
            WHERE user_id = %s AND id = %s
        """
        return cls._row_to_account(await fetch_one(query, (user_id, account_uuid)))

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_primary_account(cls, user_id: str) -> MailboxAccount | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM mailbox_accounts
            WHERE user_id = %s AND is_primary = true
            LIMIT 1
        """
        return cls._row_to_account(await fetch_one(query, (user_id,)))

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_connected_accounts(cls, user_id: str) -> list[MailboxAccount]:
        """Connected accounts, primary first."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM mailbox_accounts
            WHERE user_id = %s AND access_token_enc IS NOT NULL
            ORDER BY is_primary DESC, created_at ASC
        """
        rows = await fetch_all(query, (user_id,))
        return [cls._row_to_account(row) for row in rows]

    @classmethod
    async def get_any_connected_account(cls, user_id: str) -> MailboxAccount | None:
        accounts = await cls.list_connected_accounts(user_id)
        return accounts[0] if accounts else None

    @classmethod
    async def update_access_token(
        cls,
        account_id: str,
        access_token_enc: str,
        token_expires_at: datetime,
        refresh_token_enc: str | None = None,
    ) -> None:
        """Persist a refreshed access token (and a rotated refresh token if Google sent one)."""
        query = """
            UPDATE mailbox_accounts
            SET access_token_enc = %s,
                token_expires_at = %s,
                refresh_token_enc = COALESCE(%s, refresh_token_enc),
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (access_token_enc, token_expires_at, refresh_token_enc, account_id))
        logger.debug("Access token updated", account_id=account_id)

    @classmethod
    async def upsert_account(
        cls,
        user_id: str,
        email: str,
        access_token_enc: str,
        refresh_token_enc: str | None,
        token_expires_at: datetime,
        make_primary: bool,
    ) -> MailboxAccount:
        """Insert or reconnect the (user, email) account; keeps the old refresh token if none given."""
        query = f"""
            INSERT INTO mailbox_accounts (
                user_id, email, access_token_enc, refresh_token_enc,
                token_expires_at, is_primary
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, email)
            DO UPDATE SET
                access_token_enc = EXCLUDED.access_token_enc,
                refresh_token_enc = COALESCE(EXCLUDED.refresh_token_enc, mailbox_accounts.refresh_token_enc),
                token_expires_at = EXCLUDED.token_expires_at,
                is_primary = mailbox_accounts.is_primary OR EXCLUDED.is_primary,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(
            query,
            (user_id, email.lower(), access_token_enc, refresh_token_enc, token_expires_at, make_primary),
        )
        if not row:
            raise AccountRepositoryError("Failed to store mailbox account", operation="upsert_account")

        logger.info("Mailbox account stored", user_id=user_id, is_primary=bool(row.get("is_primary")))
        return cls._row_to_account(row)

    @classmethod
    async def delete_account(cls, user_id: str, account_id: str) -> MailboxAccount | None:
        account_uuid = as_uuid(account_id)
        if account_uuid is None:
            return None

        query = f"""
            DELETE FROM mailbox_accounts
            WHERE user_id = %s AND id = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        return cls._row_to_account(await fetch_one(query, (user_id, account_uuid)))

    @classmethod
    async def promote_primary(cls, user_id: str) -> str | None:
        """Make the oldest connected account primary; returns its id."""
        query = """
            UPDATE mailbox_accounts
            SET is_primary = true, updated_at = NOW()
            WHERE id = (
                SELECT id FROM mailbox_accounts
                WHERE user_id = %s AND access_token_enc IS NOT NULL
                ORDER BY created_at ASC
                LIMIT 1
            )
            RETURNING id
        """
        account_id = await fetch_val(query, (user_id,))
        return str(account_id) if account_id else None
