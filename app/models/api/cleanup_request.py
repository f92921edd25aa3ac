# app/models/api/cleanup_request.py
from typing import Literal

from pydantic import BaseModel, Field


class GmailConnectRequest(BaseModel):
    """Authorization code returned to the Gmail OAuth callback page."""

    code: str = Field(..., min_length=1, description="Authorization code from OAuth flow")
    redirect_uri: str | None = Field(None, description="Redirect URI used for the consent screen")


class ScheduleUpdateRequest(BaseModel):
    """Request body for saving the scheduled cleanup settings."""

    frequency: Literal["daily", "weekly", "monthly"]
    auto_approve: bool = Field(default=False, description="Delete definite spam without review")
    is_active: bool = Field(default=True)


class SenderFeedbackRequest(BaseModel):
    """Mark a sender as spam or not spam."""

    sender_email: str = Field(..., min_length=3, max_length=320)
    sender_name: str | None = Field(None, max_length=200)
    marked_as_spam: bool
