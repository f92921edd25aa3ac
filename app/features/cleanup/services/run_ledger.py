"""
Run ledger: per-message audit rows and one summary row per run.
"""

from collections import Counter

from app.features.cleanup.domain import (
    CleanupHistoryEntry,
    CleanupRunSummary,
    MessageSummary,
    TopSender,
)
from app.features.cleanup.repository import CleanupLedgerRepository
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TOP_SENDERS_LIMIT = 5
HISTORY_PAGE_SIZE = 200


def compute_top_senders(
    deleted: list[MessageSummary], limit: int = TOP_SENDERS_LIMIT
) -> list[TopSender]:
    """Deleted-message counts per lower-cased sender address, highest first."""
    counts: Counter[str] = Counter()
    names: dict[str, str] = {}

    for message in deleted:
        key = message.sender_key
        if not key:
            continue
        counts[key] += 1
        names.setdefault(key, message.sender or key)

    # most_common keeps first-seen order for ties
    return [
        TopSender(email=email, name=names[email], count=count)
        for email, count in counts.most_common(limit)
    ]


class RunLedger:
    def __init__(self, repository: type[CleanupLedgerRepository] = CleanupLedgerRepository):
        self.repository = repository

    async def record_history(self, entry: CleanupHistoryEntry) -> None:
        await self.repository.insert_history(entry)

    async def record_run_summary(
        self,
        user_id: str,
        scanned: int,
        deleted: int,
        unsubscribed: int,
        top_senders: list[TopSender],
    ) -> CleanupRunSummary:
        summary = await self.repository.insert_run(
            CleanupRunSummary(
                user_id=user_id,
                emails_scanned=scanned,
                emails_deleted=deleted,
                emails_unsubscribed=unsubscribed,
                top_senders=top_senders,
            )
        )
        logger.info(
            "Run summary recorded",
            user_id=user_id,
            run_id=summary.id,
            scanned=scanned,
            deleted=deleted,
            unsubscribed=unsubscribed,
        )
        return summary

    async def deleted_message_ids(self, user_id: str, message_ids: list[str]) -> set[str]:
        return await self.repository.find_deleted_message_ids(user_id, message_ids)

    async def list_history(
        self, user_id: str, limit: int = HISTORY_PAGE_SIZE
    ) -> list[CleanupHistoryEntry]:
        return await self.repository.list_history(user_id, min(limit, HISTORY_PAGE_SIZE))

    async def latest_run(self, user_id: str) -> CleanupRunSummary | None:
        return await self.repository.latest_undismissed_run(user_id)

    async def dismiss_run(self, user_id: str, run_id: str) -> bool:
        return await self.repository.dismiss_run(user_id, run_id)


run_ledger = RunLedger()
