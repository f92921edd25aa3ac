"""
Persistence for learned per-sender spam feedback.
"""

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one, with_db_retry
from app.features.cleanup.domain import SenderFeedback
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FeedbackRepositoryError(DatabaseError):
    """More specific exception for sender feedback persistence failures."""


class SenderFeedbackRepository:
    """Queries against sender_feedback. Sender addresses are stored lower-cased."""

    SELECT_COLUMNS = """
        id, user_id, sender_email, sender_name, marked_as_spam,
        feedback_count, created_at, updated_at
    """

    @classmethod
    def _row_to_feedback(cls, row: dict | None) -> SenderFeedback | None:
        if not row:
            return None

        return SenderFeedback(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            sender_email=row["sender_email"],
            sender_name=row.get("sender_name"),
            marked_as_spam=bool(row.get("marked_as_spam")),
            feedback_count=row.get("feedback_count") or 0,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def load_preferences(cls, user_id: str) -> dict[str, bool]:
        query = """
            SELECT sender_email, marked_as_spam
            FROM sender_feedback
            WHERE user_id = %s
        """
        rows = await fetch_all(query, (user_id,))
        return {row["sender_email"].lower(): bool(row["marked_as_spam"]) for row in rows}

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_for_user(cls, user_id: str) -> list[SenderFeedback]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM sender_feedback
            WHERE user_id = %s
            ORDER BY updated_at DESC
        """
        rows = await fetch_all(query, (user_id,))
        return [cls._row_to_feedback(row) for row in rows]

    @classmethod
    async def upsert(
        cls, user_id: str, sender_email: str, sender_name: str | None, marked_as_spam: bool
    ) -> SenderFeedback:
        query = f"""
            INSERT INTO sender_feedback (
                user_id, sender_email, sender_name, marked_as_spam, feedback_count
            ) VALUES (%s, %s, %s, %s, 1)
            ON CONFLICT (user_id, sender_email)
            DO UPDATE SET
                marked_as_spam = EXCLUDED.marked_as_spam,
                sender_name = COALESCE(EXCLUDED.sender_name, sender_feedback.sender_name),
                feedback_count = sender_feedback.feedback_count + 1,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (user_id, sender_email, sender_name, marked_as_spam))
        if not row:
            raise FeedbackRepositoryError("Failed to store sender feedback", operation="upsert")
        return cls._row_to_feedback(row)

    @classmethod
    async def delete(cls, user_id: str, sender_email: str) -> bool:
        query = "DELETE FROM sender_feedback WHERE user_id = %s AND sender_email = %s"
        return await execute_query(query, (user_id, sender_email)) > 0
