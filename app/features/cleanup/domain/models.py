"""
Domain models for the scheduled cleanup feature.

Persisted rows (accounts, schedules, feedback, history, runs) and the
transient shapes that flow through one run (message summaries,
classifications, delete outcomes). Kept free of I/O so repositories,
services, and routers can all share them.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Literal

SpamConfidence = Literal["definitely_spam", "likely_spam", "might_be_important"]
SourceLabel = Literal["spam", "trash"]
Frequency = Literal["daily", "weekly", "monthly"]
UnsubscribeMethod = Literal["auto_header", "delete_only", "scheduled_auto"]
UnsubscribeStatus = Literal["success", "failed"]

SPAM_CONFIDENCE_TIERS: tuple[str, ...] = ("definitely_spam", "likely_spam", "might_be_important")
FREQUENCIES: tuple[str, ...] = ("daily", "weekly", "monthly")


@dataclass(slots=True)
class MailboxAccount:
    """Represents a mailbox_accounts row. Token columns hold ciphertext."""

    id: str
    user_id: str
    email: str
    access_token_enc: str | None
    refresh_token_enc: str | None
    token_expires_at: datetime | None
    is_primary: bool = False

    @property
    def is_connected(self) -> bool:
        return bool(self.access_token_enc)

    def needs_refresh(self, margin: timedelta, now: datetime | None = None) -> bool:
        """True when the access token expires within `margin` (or expiry is unknown)."""
        if not self.token_expires_at:
            return True
        now = now or datetime.now(UTC)
        return self.token_expires_at - now < margin


@dataclass(slots=True)
class ScheduleConfig:
    """Represents a schedule_config row (one per user)."""

    id: str
    user_id: str
    frequency: Frequency
    auto_approve: bool
    is_active: bool
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.is_active and self.next_run_at is not None and self.next_run_at <= now


@dataclass(slots=True)
class MessageSummary:
    """Metadata for one message found in a Spam/Trash label. Never persisted."""

    id: str
    sender: str
    sender_email: str
    subject: str
    snippet: str
    has_list_unsubscribe: bool
    source_label: SourceLabel
    account_id: str
    unsubscribe_link: str | None = None
    date: str | None = None
    # Set when the user has told us this sender is not spam
    marked_safe: bool = False

    @property
    def sender_key(self) -> str:
        return self.sender_email.strip().lower()


@dataclass(slots=True)
class ClassificationResult:
    message_id: str
    spam_confidence: SpamConfidence
    reasoning: str


@dataclass(slots=True)
class SenderFeedback:
    """Represents a sender_feedback row."""

    user_id: str
    sender_email: str
    sender_name: str | None
    marked_as_spam: bool
    feedback_count: int = 1
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class DeleteOutcome:
    """
    Result of one provider delete call.

    `not_found` means the message was already gone; callers treat that as
    deleted. `error_reason` carries the provider reason (for example
    `insufficientPermissions`) when the delete really failed.
    """

    message_id: str
    success: bool
    not_found: bool = False
    error_reason: str | None = None
    status_code: int | None = None

    @property
    def effectively_deleted(self) -> bool:
        return self.success or self.not_found

    @property
    def needs_reconnect(self) -> bool:
        return self.status_code in (401, 403)


@dataclass(slots=True)
class UnsubscribeOutcome:
    """Result of the unsubscribe-then-delete action for one message."""

    message_id: str
    method: UnsubscribeMethod
    unsubscribe_attempted: bool
    delete: DeleteOutcome
    web_link: str | None = None


@dataclass(slots=True)
class CleanupHistoryEntry:
    """Represents a cleanup_history row (append-only audit log)."""

    user_id: str
    email_id: str
    sender: str | None
    sender_email: str | None
    subject: str | None
    spam_confidence: SpamConfidence | None
    ai_reasoning: str | None
    unsubscribe_method: UnsubscribeMethod
    unsubscribe_status: UnsubscribeStatus
    deleted: bool
    account_id: str | None = None
    error_reason: str | None = None
    unsubscribe_link: str | None = None
    id: str | None = None
    processed_at: datetime | None = None


@dataclass(slots=True)
class TopSender:
    email: str
    name: str
    count: int

    def to_dict(self) -> dict:
        return {"email": self.email, "name": self.name, "count": self.count}


@dataclass(slots=True)
class CleanupRunSummary:
    """Represents a cleanup_runs row."""

    user_id: str
    emails_scanned: int
    emails_deleted: int
    emails_unsubscribed: int
    top_senders: list[TopSender] = field(default_factory=list)
    is_dismissed: bool = False
    id: str | None = None
    run_at: datetime | None = None
