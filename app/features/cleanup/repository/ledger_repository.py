"""
Persistence for the cleanup audit log and per-run summaries.
"""

from psycopg.types.json import Jsonb

from app.db.helpers import (
    DatabaseError,
    as_uuid,
    execute_query,
    fetch_all,
    fetch_one,
    with_db_retry,
)
from app.features.cleanup.domain import CleanupHistoryEntry, CleanupRunSummary, TopSender
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class LedgerRepositoryError(DatabaseError):
    """More specific exception for ledger persistence failures."""


class CleanupLedgerRepository:
    """Queries against cleanup_history and cleanup_runs."""

    HISTORY_COLUMNS = """
        id, user_id, account_id, email_id, sender, sender_email, subject,
        spam_confidence, ai_reasoning, unsubscribe_method, unsubscribe_status,
        deleted, error_reason, unsubscribe_link, processed_at
    """

    RUN_COLUMNS = """
        id, user_id, run_at, emails_scanned, emails_deleted,
        emails_unsubscribed, top_senders, is_dismissed
    """

    @classmethod
    def _row_to_history(cls, row: dict) -> CleanupHistoryEntry:
        return CleanupHistoryEntry(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            account_id=str(row["account_id"]) if row.get("account_id") else None,
            email_id=row["email_id"],
            sender=row.get("sender"),
            sender_email=row.get("sender_email"),
            subject=row.get("subject"),
            spam_confidence=row.get("spam_confidence"),
            ai_reasoning=row.get("ai_reasoning"),
            unsubscribe_method=row["unsubscribe_method"],
            unsubscribe_status=row["unsubscribe_status"],
            deleted=bool(row.get("deleted")),
            error_reason=row.get("error_reason"),
            unsubscribe_link=row.get("unsubscribe_link"),
            processed_at=row.get("processed_at"),
        )

    @classmethod
    def _row_to_run(cls, row: dict | None) -> CleanupRunSummary | None:
        if not row:
            return None

        top_senders = [
            TopSender(
                email=item.get("email", ""),
                name=item.get("name", ""),
                count=int(item.get("count", 0)),
            )
            for item in (row.get("top_senders") or [])
            if isinstance(item, dict)
        ]

        return CleanupRunSummary(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            run_at=row.get("run_at"),
            emails_scanned=row.get("emails_scanned") or 0,
            emails_deleted=row.get("emails_deleted") or 0,
            emails_unsubscribed=row.get("emails_unsubscribed") or 0,
            top_senders=top_senders,
            is_dismissed=bool(row.get("is_dismissed")),
        )

    @classmethod
    async def insert_history(cls, entry: CleanupHistoryEntry) -> None:
        query = """
            INSERT INTO cleanup_history (
                user_id, account_id, email_id, sender, sender_email, subject,
                spam_confidence, ai_reasoning, unsubscribe_method,
                unsubscribe_status, deleted, error_reason, unsubscribe_link
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        await execute_query(
            query,
            (
                entry.user_id,
                entry.account_id,
                entry.email_id,
                entry.sender,
                entry.sender_email,
                entry.subject,
                entry.spam_confidence,
                entry.ai_reasoning,
                entry.unsubscribe_method,
                entry.unsubscribe_status,
                entry.deleted,
                entry.error_reason,
                entry.unsubscribe_link,
            ),
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def find_deleted_message_ids(cls, user_id: str, message_ids: list[str]) -> set[str]:
        if not message_ids:
            return set()

        query = """
            SELECT DISTINCT email_id
            FROM cleanup_history
            WHERE user_id = %s AND deleted = true AND email_id = ANY(%s)
        """
        rows = await fetch_all(query, (user_id, list(message_ids)))
        return {row["email_id"] for row in rows}

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_history(cls, user_id: str, limit: int) -> list[CleanupHistoryEntry]:
        query = f"""
            SELECT {cls.HISTORY_COLUMNS}
            FROM cleanup_history
            WHERE user_id = %s
            ORDER BY processed_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (user_id, limit))
        return [cls._row_to_history(row) for row in rows]

    @classmethod
    async def insert_run(cls, summary: CleanupRunSummary) -> CleanupRunSummary:
        query = f"""
            INSERT INTO cleanup_runs (
                user_id, emails_scanned, emails_deleted, emails_unsubscribed, top_senders
            ) VALUES (%s, %s, %s, %s, %s)
            RETURNING {cls.RUN_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                summary.user_id,
                summary.emails_scanned,
                summary.emails_deleted,
                summary.emails_unsubscribed,
                Jsonb([sender.to_dict() for sender in summary.top_senders]),
            ),
        )
        if not row:
            raise LedgerRepositoryError("Failed to store run summary", operation="insert_run")
        return cls._row_to_run(row)

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def latest_undismissed_run(cls, user_id: str) -> CleanupRunSummary | None:
        query = f"""
            SELECT {cls.RUN_COLUMNS}
            FROM cleanup_runs
            WHERE user_id = %s AND is_dismissed = false
            ORDER BY run_at DESC
            LIMIT 1
        """
        return cls._row_to_run(await fetch_one(query, (user_id,)))

    @classmethod
    async def dismiss_run(cls, user_id: str, run_id: str) -> bool:
        run_uuid = as_uuid(run_id)
        if run_uuid is None:
            return False

        query = """
            UPDATE cleanup_runs
            SET is_dismissed = true
            WHERE user_id = %s AND id = %s
        """
        return await execute_query(query, (user_id, run_uuid)) > 0
