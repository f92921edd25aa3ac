"""
Mailbox synchronisation: page through Spam/Trash ids, then fetch details in
bounded batches.

Partial results are acceptable here. A failed page stops pagination and
returns what was collected; a failed detail fetch drops that message only.
"""

import asyncio

from app.features.cleanup.domain import MessageSummary
from app.features.cleanup.services.message_parser import parse_message_summary
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import (
    LABEL_SPAM,
    LABEL_TRASH,
    MAX_PAGE_SIZE,
    GoogleGmailError,
    GoogleGmailService,
    google_gmail_service,
)

logger = get_logger(__name__)

# Sync configuration
MAX_MESSAGES_PER_LABEL = 500
DETAIL_BATCH_SIZE = 50


class MailboxSync:
    """Reads message ids and summaries from one mailbox account."""

    def __init__(self, gmail: GoogleGmailService | None = None):
        self.gmail = gmail or google_gmail_service

    async def list_all_message_ids(
        self, access_token: str, label: str, cap: int = MAX_MESSAGES_PER_LABEL
    ) -> list[str]:
        """
        Collect message ids for a label, following nextPageToken.

        Args:
            access_token: Valid Gmail access token
            label: Gmail label id (SPAM or TRASH)
            cap: Stop once this many ids were collected

        Returns:
            Ids in provider order; a prefix of the full list when a page fails
        """
        ids: list[str] = []
        page_token: str | None = None
        pages = 0

        while len(ids) < cap:
            try:
                page = await self.gmail.list_messages_page(
                    access_token, label, page_token=page_token, max_results=MAX_PAGE_SIZE
                )
            except GoogleGmailError as e:
                logger.warning(
                    "Message list page failed, stopping pagination",
                    label=label,
                    pages_fetched=pages,
                    ids_collected=len(ids),
                    status_code=e.status_code,
                    error=str(e),
                )
                break

            pages += 1
            ids.extend(page.message_ids)

            if not page.next_page_token:
                break
            page_token = page.next_page_token

        if len(ids) > cap:
            ids = ids[:cap]

        logger.debug("Listed label messages", label=label, pages=pages, count=len(ids))
        return ids

    async def _fetch_one(
        self, access_token: str, message_id: str, account_id: str
    ) -> MessageSummary | None:
        try:
            data = await self.gmail.get_message(access_token, message_id)
        except GoogleGmailError as e:
            logger.warning(
                "Message detail fetch failed",
                message_id=message_id,
                status_code=e.status_code,
                error=str(e),
            )
            return None

        summary = parse_message_summary(data, account_id)
        if summary is None:
            logger.warning("Message detail payload unusable", message_id=message_id)
        return summary

    async def fetch_details(
        self,
        access_token: str,
        message_ids: list[str],
        account_id: str,
        batch_size: int = DETAIL_BATCH_SIZE,
    ) -> list[MessageSummary]:
        """
        Fetch summaries for ids, `batch_size` concurrent requests at a time.

        Each batch is awaited fully before the next one starts. Failed
        fetches are filtered out.
        """
        summaries: list[MessageSummary] = []

        for start in range(0, len(message_ids), batch_size):
            batch = message_ids[start : start + batch_size]
            results = await asyncio.gather(
                *(self._fetch_one(access_token, message_id, account_id) for message_id in batch)
            )
            summaries.extend(summary for summary in results if summary is not None)

        if len(summaries) < len(message_ids):
            logger.info(
                "Some message details were skipped",
                requested=len(message_ids),
                fetched=len(summaries),
            )
        return summaries

    async def sync_account(self, access_token: str, account_id: str) -> list[MessageSummary]:
        """Summaries for every message in Spam and Trash, deduplicated by id."""
        spam_ids, trash_ids = await asyncio.gather(
            self.list_all_message_ids(access_token, LABEL_SPAM),
            self.list_all_message_ids(access_token, LABEL_TRASH),
        )

        unique_ids = list(dict.fromkeys([*spam_ids, *trash_ids]))

        logger.info(
            "Mailbox scan listed messages",
            account_id=account_id,
            spam_count=len(spam_ids),
            trash_count=len(trash_ids),
            unique_count=len(unique_ids),
        )

        return await self.fetch_details(access_token, unique_ids, account_id)


mailbox_sync = MailboxSync()
