"""
Cleanup settings and results routes.

Schedule settings, sender feedback, history and run summaries for the
authenticated user. The engine itself runs from the cron trigger in
`cron.py`.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.verify import current_user_id
from app.features.cleanup.services import cleanup_scheduler, feedback_store, run_ledger
from app.features.cleanup.services.run_ledger import HISTORY_PAGE_SIZE
from app.infrastructure.observability.logging import get_logger
from app.models.api.cleanup_request import ScheduleUpdateRequest, SenderFeedbackRequest
from app.models.api.cleanup_response import (
    CleanupHistoryResponse,
    CleanupRunResponse,
    ScheduleResponse,
    SenderFeedbackResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/cleanup", tags=["cleanup"])


@router.get("/schedule", response_model=ScheduleResponse | None)
async def get_schedule(user_id: str = Depends(current_user_id)):
    schedule = await cleanup_scheduler.get_schedule(user_id)
    if schedule is None:
        return None
    return ScheduleResponse.model_validate(schedule, from_attributes=True)


@router.put("/schedule", response_model=ScheduleResponse)
async def update_schedule(
    request: ScheduleUpdateRequest, user_id: str = Depends(current_user_id)
):
    """
    Create or update the user's cleanup schedule.

    Enabling the schedule sets the next run one interval from now;
    disabling it clears the next run.
    """
    schedule = await cleanup_scheduler.save_schedule(
        user_id,
        frequency=request.frequency,
        auto_approve=request.auto_approve,
        is_active=request.is_active,
    )
    return ScheduleResponse.model_validate(schedule, from_attributes=True)


@router.get("/senders", response_model=list[SenderFeedbackResponse])
async def list_sender_feedback(user_id: str = Depends(current_user_id)):
    feedback = await feedback_store.list(user_id)
    return [SenderFeedbackResponse.model_validate(item, from_attributes=True) for item in feedback]


@router.put("/senders", response_model=SenderFeedbackResponse)
async def record_sender_feedback(
    request: SenderFeedbackRequest, user_id: str = Depends(current_user_id)
):
    """Mark a sender as spam or not spam (toggling sends the negated flag)."""
    try:
        feedback = await feedback_store.upsert(
            user_id, request.sender_email, request.sender_name, request.marked_as_spam
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None
    return SenderFeedbackResponse.model_validate(feedback, from_attributes=True)


@router.delete("/senders/{sender_email}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_sender_feedback(sender_email: str, user_id: str = Depends(current_user_id)):
    removed = await feedback_store.remove(user_id, sender_email)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sender not found")


@router.get("/history", response_model=list[CleanupHistoryResponse])
async def list_cleanup_history(
    limit: int = Query(default=HISTORY_PAGE_SIZE, ge=1, le=HISTORY_PAGE_SIZE),
    user_id: str = Depends(current_user_id),
):
    entries = await run_ledger.list_history(user_id, limit)
    return [CleanupHistoryResponse.model_validate(entry, from_attributes=True) for entry in entries]


@router.get("/runs/latest", response_model=CleanupRunResponse | None)
async def get_latest_run(user_id: str = Depends(current_user_id)):
    """Newest run summary the user has not dismissed yet."""
    run = await run_ledger.latest_run(user_id)
    if run is None:
        return None
    return CleanupRunResponse.model_validate(run, from_attributes=True)


@router.post("/runs/{run_id}/dismiss", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_run(run_id: str, user_id: str = Depends(current_user_id)):
    dismissed = await run_ledger.dismiss_run(user_id, run_id)
    if not dismissed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    logger.info("Run summary dismissed", user_id=user_id, run_id=run_id)
