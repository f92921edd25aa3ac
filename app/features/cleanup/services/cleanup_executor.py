"""
Cleanup executor: delete (and unsubscribe-then-delete) against Gmail.

Deletes are idempotent: a 404 means the message is already gone and is
reported as `not_found`, which callers count as deleted. The executor does
no classification of its own; `select_for_auto_delete` is the only gate for
scheduled deletes.
"""

from app.features.cleanup.domain import (
    ClassificationResult,
    DeleteOutcome,
    MessageSummary,
    UnsubscribeOutcome,
)
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import (
    GoogleGmailError,
    GoogleGmailService,
    google_gmail_service,
)

logger = get_logger(__name__)

AUTO_DELETE_TIER = "definitely_spam"


def select_for_auto_delete(
    messages: list[MessageSummary],
    classifications: dict[str, ClassificationResult],
    auto_approve: bool,
    already_deleted: set[str] | None = None,
) -> list[MessageSummary]:
    """
    Messages a scheduled run may delete without asking.

    Only the highest-confidence tier, only with auto-approve on, never
    for senders the user marked safe, never for messages already deleted.
    """
    if not auto_approve:
        return []

    already_deleted = already_deleted or set()
    selected = []
    for message in messages:
        if message.marked_safe or message.id in already_deleted:
            continue
        classification = classifications.get(message.id)
        if classification and classification.spam_confidence == AUTO_DELETE_TIER:
            selected.append(message)
    return selected


class CleanupExecutor:
    def __init__(self, gmail: GoogleGmailService | None = None):
        self.gmail = gmail or google_gmail_service

    async def delete(self, access_token: str, message_id: str) -> DeleteOutcome:
        """
        Permanently delete one message. Never raises for provider errors.
        """
        try:
            await self.gmail.delete_message(access_token, message_id)
        except GoogleGmailError as e:
            if e.is_not_found:
                logger.info("Message already gone", message_id=message_id)
                return DeleteOutcome(message_id=message_id, success=False, not_found=True, status_code=404)

            logger.warning(
                "Message delete failed",
                message_id=message_id,
                status_code=e.status_code,
                reason=e.reason,
            )
            return DeleteOutcome(
                message_id=message_id,
                success=False,
                error_reason=e.reason or str(e),
                status_code=e.status_code,
            )

        logger.debug("Message deleted", message_id=message_id)
        return DeleteOutcome(message_id=message_id, success=True)

    async def unsubscribe_and_delete(
        self, access_token: str, message: MessageSummary
    ) -> UnsubscribeOutcome:
        """
        Record the unsubscribe action, then delete.

        With a List-Unsubscribe header the unsubscribe counts as attempted.
        A body-only web link is returned for the client to open; the delete
        runs regardless of what happens to the link.
        """
        if message.has_list_unsubscribe:
            method = "auto_header"
            web_link = None
        else:
            method = "delete_only"
            web_link = message.unsubscribe_link

        delete_outcome = await self.delete(access_token, message.id)

        return UnsubscribeOutcome(
            message_id=message.id,
            method=method,
            unsubscribe_attempted=message.has_list_unsubscribe,
            delete=delete_outcome,
            web_link=web_link,
        )


cleanup_executor = CleanupExecutor()
