"""
Domain subpackage for the scheduled cleanup feature.
"""

from .models import (
    FREQUENCIES,
    SPAM_CONFIDENCE_TIERS,
    CleanupHistoryEntry,
    CleanupRunSummary,
    ClassificationResult,
    DeleteOutcome,
    MailboxAccount,
    MessageSummary,
    ScheduleConfig,
    SenderFeedback,
    TopSender,
    UnsubscribeOutcome,
)

__all__ = [
    "FREQUENCIES",
    "SPAM_CONFIDENCE_TIERS",
    "CleanupHistoryEntry",
    "CleanupRunSummary",
    "ClassificationResult",
    "DeleteOutcome",
    "MailboxAccount",
    "MessageSummary",
    "ScheduleConfig",
    "SenderFeedback",
    "TopSender",
    "UnsubscribeOutcome",
]
