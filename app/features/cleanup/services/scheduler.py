"""
Scheduled cleanup: pick due schedules, run the pipeline for every connected
account, write the ledger, and advance the schedule.

One invocation processes schedules sequentially and, within a schedule,
accounts sequentially. Nothing that goes wrong for one message, account or
schedule stops its siblings. A schedule is always advanced after its run
attempt, whatever the outcome; missed work is picked up on the next run.

Concurrent invocations are not guarded against each other; the trigger
(HTTP cron call or worker process) must be single-flight.
"""

import calendar
from datetime import UTC, datetime, timedelta
from typing import Any

from app.features.cleanup.domain import (
    FREQUENCIES,
    CleanupHistoryEntry,
    MailboxAccount,
    MessageSummary,
    ScheduleConfig,
)
from app.features.cleanup.repository import ScheduleRepository
from app.features.cleanup.services.cleanup_executor import (
    CleanupExecutor,
    cleanup_executor,
    select_for_auto_delete,
)
from app.features.cleanup.services.credential_vault import CredentialVault, credential_vault
from app.features.cleanup.services.feedback_store import (
    FeedbackStore,
    apply_feedback,
    feedback_store,
)
from app.features.cleanup.services.mailbox_sync import MailboxSync, mailbox_sync
from app.features.cleanup.services.run_ledger import RunLedger, compute_top_senders, run_ledger
from app.features.cleanup.services.spam_classifier import SpamClassifier, spam_classifier
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SCHEDULED_METHOD = "scheduled_auto"


def add_months(moment: datetime, months: int) -> datetime:
    """Same day `months` later, clamped to the last day of a shorter month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def compute_next_run(frequency: str, now: datetime) -> datetime:
    """
    Next run time for a schedule advanced at `now`.

    Raises:
        ValueError: If the frequency is unknown
    """
    if frequency == "daily":
        return now + timedelta(days=1)
    if frequency == "weekly":
        return now + timedelta(days=7)
    if frequency == "monthly":
        return add_months(now, 1)
    raise ValueError(f"Unknown schedule frequency '{frequency}'")


class RunTotals:
    """Counters for one user's run."""

    def __init__(self):
        self.scanned = 0
        self.analyzed = 0
        self.deleted = 0
        self.unsubscribed = 0
        self.failed_accounts = 0
        self.needs_reconnect = False
        self.classification_stopped: str | None = None
        self.deleted_messages: list[MessageSummary] = []

    def to_result(self, user_id: str) -> dict[str, Any]:
        result: dict[str, Any] = {
            "user_id": user_id,
            "scanned": self.scanned,
            "analyzed": self.analyzed,
            "deleted": self.deleted,
            "unsubscribed": self.unsubscribed,
            "success": True,
        }
        if self.failed_accounts:
            result["failed_accounts"] = self.failed_accounts
        if self.needs_reconnect:
            result["needs_reconnect"] = True
        if self.classification_stopped:
            result["classification_stopped"] = self.classification_stopped
        return result


class CleanupScheduler:
    """Runs the scheduled cleanup pipeline for every due schedule."""

    def __init__(
        self,
        schedules: type[ScheduleRepository] = ScheduleRepository,
        vault: CredentialVault | None = None,
        sync: MailboxSync | None = None,
        feedback: FeedbackStore | None = None,
        classifier: SpamClassifier | None = None,
        executor: CleanupExecutor | None = None,
        ledger: RunLedger | None = None,
    ):
        self.schedules = schedules
        self.vault = vault or credential_vault
        self.sync = sync or mailbox_sync
        self.feedback = feedback or feedback_store
        self.classifier = classifier or spam_classifier
        self.executor = executor or cleanup_executor
        self.ledger = ledger or run_ledger

    async def run_once(self, now: datetime | None = None) -> dict[str, Any]:
        """
        Process every schedule due at `now`.

        Returns:
            {"processed": n, "results": [...]} with one result per schedule
        """
        now = now or datetime.now(UTC)
        due = await self.schedules.list_due(now)
        logger.info("Scheduled cleanup started", due_schedules=len(due))

        results = []
        # a 429 or 402 from the model holds for every later schedule in this run
        stopped: str | None = None
        for schedule in due:
            result = await self.run_schedule(schedule, now, classification_stopped=stopped)
            stopped = result.get("classification_stopped") or stopped
            results.append(result)

        succeeded = sum(1 for result in results if result.get("success"))
        logger.info(
            "Scheduled cleanup completed",
            processed=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )
        return {"processed": len(results), "results": results}

    async def run_schedule(
        self,
        schedule: ScheduleConfig,
        now: datetime,
        classification_stopped: str | None = None,
    ) -> dict[str, Any]:
        """
        Run one user's pipeline, write the run summary, advance the schedule.

        `classification_stopped` carries a rate or quota stop from earlier in
        the same run; the model is not called again once it is set.
        """
        user_id = schedule.user_id
        totals = RunTotals()
        totals.classification_stopped = classification_stopped
        error: Exception | None = None

        try:
            await self._run_user_pipeline(schedule, totals)
        except Exception as e:
            error = e
            logger.error(
                "Scheduled cleanup failed for user",
                user_id=user_id,
                schedule_id=schedule.id,
                error=str(e),
                error_type=type(e).__name__,
            )

        try:
            await self.ledger.record_run_summary(
                user_id,
                scanned=totals.scanned,
                deleted=totals.deleted,
                unsubscribed=totals.unsubscribed,
                top_senders=compute_top_senders(totals.deleted_messages),
            )
        except Exception as e:
            logger.error(
                "Failed to record run summary",
                user_id=user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            error = error or e

        try:
            await self.schedules.advance(
                schedule.id,
                last_run_at=now,
                next_run_at=compute_next_run(schedule.frequency, now),
            )
        except Exception as e:
            logger.error(
                "Failed to advance schedule",
                user_id=user_id,
                schedule_id=schedule.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            error = error or e

        if error is not None:
            failed: dict[str, Any] = {
                "user_id": user_id,
                "success": False,
                "error": str(error) or type(error).__name__,
            }
            if totals.classification_stopped:
                failed["classification_stopped"] = totals.classification_stopped
            return failed
        return totals.to_result(user_id)

    async def _run_user_pipeline(self, schedule: ScheduleConfig, totals: RunTotals) -> None:
        user_id = schedule.user_id
        preferences = await self.feedback.get(user_id)
        accounts = await self.vault.get_all_valid_access_tokens(user_id)

        if not accounts:
            logger.info("No usable mailbox account, nothing to clean", user_id=user_id)
            return

        for access_token, account in accounts:
            try:
                await self._process_account(
                    schedule, access_token, account, preferences, totals
                )
            except Exception as e:
                totals.failed_accounts += 1
                logger.error(
                    "Account cleanup failed",
                    user_id=user_id,
                    account_id=account.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def _process_account(
        self,
        schedule: ScheduleConfig,
        access_token: str,
        account: MailboxAccount,
        preferences: dict[str, bool],
        totals: RunTotals,
    ) -> None:
        user_id = schedule.user_id
        messages = await self.sync.sync_account(access_token, account.id)
        totals.scanned += len(messages)

        if not messages:
            return

        known_spam, unknown = apply_feedback(messages, preferences)
        to_classify = [message for message in unknown if not message.marked_safe]

        if totals.classification_stopped and to_classify:
            logger.info(
                "Model calls stopped earlier in this run, skipping classification",
                user_id=user_id,
                account_id=account.id,
                reason=totals.classification_stopped,
                skipped=len(to_classify),
            )
        batch = await self.classifier.classify(
            to_classify, known_spam=known_spam, stopped_reason=totals.classification_stopped
        )
        totals.analyzed += len(batch.results)
        if batch.stopped_reason:
            totals.classification_stopped = batch.stopped_reason

        classifications = batch.by_id()
        already_deleted = await self.ledger.deleted_message_ids(
            user_id, [message.id for message in messages]
        )
        selected = select_for_auto_delete(
            messages, classifications, schedule.auto_approve, already_deleted
        )

        logger.info(
            "Account classified",
            user_id=user_id,
            account_id=account.id,
            scanned=len(messages),
            feedback_spam=len(known_spam),
            safe_senders=len(unknown) - len(to_classify),
            selected_for_delete=len(selected),
            already_deleted=len(already_deleted),
            auto_approve=schedule.auto_approve,
        )

        for message in selected:
            outcome = await self.executor.unsubscribe_and_delete(access_token, message)
            delete = outcome.delete

            if delete.effectively_deleted:
                totals.deleted += 1
                totals.deleted_messages.append(message)
            elif delete.needs_reconnect:
                totals.needs_reconnect = True
            if outcome.unsubscribe_attempted:
                totals.unsubscribed += 1

            classification = classifications.get(message.id)
            entry = CleanupHistoryEntry(
                user_id=user_id,
                account_id=account.id,
                email_id=message.id,
                sender=message.sender,
                sender_email=message.sender_email,
                subject=message.subject,
                spam_confidence=classification.spam_confidence if classification else None,
                ai_reasoning=classification.reasoning if classification else None,
                unsubscribe_method=SCHEDULED_METHOD,
                unsubscribe_status="success" if delete.effectively_deleted else "failed",
                deleted=delete.effectively_deleted,
                error_reason=delete.error_reason,
                unsubscribe_link=outcome.web_link,
            )
            if outcome.web_link:
                logger.info(
                    "Web unsubscribe link recorded for the user",
                    user_id=user_id,
                    message_id=message.id,
                    sender_email=message.sender_email,
                )
            try:
                await self.ledger.record_history(entry)
            except Exception as e:
                logger.error(
                    "Failed to record cleanup history",
                    user_id=user_id,
                    message_id=message.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    # ------------------------------------------------------------------
    # Schedule settings
    # ------------------------------------------------------------------

    async def get_schedule(self, user_id: str) -> ScheduleConfig | None:
        return await self.schedules.get_for_user(user_id)

    async def save_schedule(
        self,
        user_id: str,
        frequency: str,
        auto_approve: bool,
        is_active: bool,
        now: datetime | None = None,
    ) -> ScheduleConfig:
        """
        Create or update the user's schedule.

        Raises:
            ValueError: If the frequency is unknown
        """
        if frequency not in FREQUENCIES:
            raise ValueError(f"Unknown schedule frequency '{frequency}'")

        now = now or datetime.now(UTC)
        next_run_at = compute_next_run(frequency, now) if is_active else None

        schedule = await self.schedules.upsert_for_user(
            user_id, frequency, auto_approve, is_active, next_run_at
        )
        logger.info(
            "Schedule saved",
            user_id=user_id,
            frequency=frequency,
            auto_approve=auto_approve,
            is_active=is_active,
        )
        return schedule


cleanup_scheduler = CleanupScheduler()
