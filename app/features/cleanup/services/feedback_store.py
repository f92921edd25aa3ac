"""
Per-sender spam feedback learned from explicit user corrections.
"""

from app.features.cleanup.domain import MessageSummary, SenderFeedback
from app.features.cleanup.repository import SenderFeedbackRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def normalize_sender(sender_email: str) -> str:
    return (sender_email or "").strip().lower()


class FeedbackStore:
    def __init__(self, repository: type[SenderFeedbackRepository] = SenderFeedbackRepository):
        self.repository = repository

    async def get(self, user_id: str) -> dict[str, bool]:
        """Map of lower-cased sender address -> marked as spam."""
        return await self.repository.load_preferences(user_id)

    async def upsert(
        self, user_id: str, sender_email: str, sender_name: str | None, is_spam: bool
    ) -> SenderFeedback:
        sender = normalize_sender(sender_email)
        if not sender:
            raise ValueError("sender_email is required")

        feedback = await self.repository.upsert(user_id, sender, sender_name, is_spam)
        logger.info(
            "Sender feedback recorded",
            user_id=user_id,
            marked_as_spam=is_spam,
            feedback_count=feedback.feedback_count,
        )
        return feedback

    async def list(self, user_id: str) -> list[SenderFeedback]:
        return await self.repository.list_for_user(user_id)

    async def remove(self, user_id: str, sender_email: str) -> bool:
        return await self.repository.delete(user_id, normalize_sender(sender_email))


def apply_feedback(
    messages: list[MessageSummary], preferences: dict[str, bool]
) -> tuple[list[MessageSummary], list[MessageSummary]]:
    """
    Split messages by sender feedback.

    Messages from senders marked not-spam get `marked_safe = True` and stay
    in the list so interactive views can show them.

    Returns:
        (known_spam, unknown) - known_spam skips the classifier, unknown
        includes safe-marked messages
    """
    known_spam: list[MessageSummary] = []
    unknown: list[MessageSummary] = []

    for message in messages:
        preference = preferences.get(message.sender_key)
        if preference is True:
            known_spam.append(message)
            continue
        if preference is False:
            message.marked_safe = True
        unknown.append(message)

    return known_spam, unknown


feedback_store = FeedbackStore()
