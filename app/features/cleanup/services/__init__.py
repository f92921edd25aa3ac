"""
Service layer for the scheduled cleanup feature.
"""

from .cleanup_executor import CleanupExecutor, cleanup_executor, select_for_auto_delete
from .credential_vault import CredentialVault, CredentialVaultError, credential_vault
from .feedback_store import FeedbackStore, apply_feedback, feedback_store
from .mailbox_sync import MailboxSync, mailbox_sync
from .run_ledger import RunLedger, compute_top_senders, run_ledger
from .scheduler import CleanupScheduler, cleanup_scheduler, compute_next_run
from .spam_classifier import (
    ClassificationBatch,
    ClassifierError,
    ClassifierQuotaExhaustedError,
    ClassifierRateLimitedError,
    SpamClassifier,
    spam_classifier,
)

__all__ = [
    "CleanupExecutor",
    "cleanup_executor",
    "select_for_auto_delete",
    "CredentialVault",
    "CredentialVaultError",
    "credential_vault",
    "FeedbackStore",
    "apply_feedback",
    "feedback_store",
    "MailboxSync",
    "mailbox_sync",
    "RunLedger",
    "compute_top_senders",
    "run_ledger",
    "CleanupScheduler",
    "cleanup_scheduler",
    "compute_next_run",
    "ClassificationBatch",
    "ClassifierError",
    "ClassifierQuotaExhaustedError",
    "ClassifierRateLimitedError",
    "SpamClassifier",
    "spam_classifier",
]
