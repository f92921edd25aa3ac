# app/models/api/cleanup_response.py
"""
Cleanup API response models.
Built from the cleanup domain dataclasses by the routers.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class GmailAuthURLResponse(BaseModel):
    auth_url: str = Field(..., description="Google OAuth authorization URL")
    state: str = Field(..., description="OAuth state parameter")


class MailboxAccountResponse(BaseModel):
    id: str
    email: str
    is_primary: bool


class ScheduleResponse(BaseModel):
    frequency: str
    auto_approve: bool
    is_active: bool
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None


class SenderFeedbackResponse(BaseModel):
    sender_email: str
    sender_name: str | None = None
    marked_as_spam: bool
    feedback_count: int
    updated_at: datetime | None = None


class CleanupHistoryResponse(BaseModel):
    id: str | None = None
    email_id: str
    sender: str | None = None
    sender_email: str | None = None
    subject: str | None = None
    spam_confidence: str | None = None
    ai_reasoning: str | None = None
    unsubscribe_method: str
    unsubscribe_status: str
    deleted: bool
    error_reason: str | None = None
    unsubscribe_link: str | None = Field(
        default=None, description="Web unsubscribe page for the user to open; set when no header link existed"
    )
    processed_at: datetime | None = None


class TopSenderResponse(BaseModel):
    email: str
    name: str
    count: int


class CleanupRunResponse(BaseModel):
    id: str
    run_at: datetime | None = None
    emails_scanned: int
    emails_deleted: int
    emails_unsubscribed: int
    top_senders: list[TopSenderResponse] = Field(default_factory=list)
    is_dismissed: bool = False


class ScheduledCleanupResponse(BaseModel):
    """Body returned to the external cron trigger."""

    processed: int = Field(..., description="Number of due schedules processed")
    results: list[dict[str, Any]] = Field(default_factory=list)
