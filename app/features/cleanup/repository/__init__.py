"""
Repository subpackage for the scheduled cleanup feature.
"""

from .account_repository import MailboxAccountRepository
from .feedback_repository import SenderFeedbackRepository
from .ledger_repository import CleanupLedgerRepository
from .schedule_repository import ScheduleRepository

__all__ = [
    "CleanupLedgerRepository",
    "MailboxAccountRepository",
    "ScheduleRepository",
    "SenderFeedbackRepository",
]
