"""
External cron trigger for the scheduled cleanup engine.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import cron_secret_dependency
from app.features.cleanup.services import cleanup_scheduler
from app.infrastructure.observability.logging import get_logger
from app.models.api.cleanup_response import ScheduledCleanupResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.post(
    "/scheduled-cleanup",
    response_model=ScheduledCleanupResponse,
    dependencies=[Depends(cron_secret_dependency)],
)
async def trigger_scheduled_cleanup():
    """
    Run every due cleanup schedule once.

    Per-user failures are reported in `results`; only a failure to load the
    due schedules fails the request.
    """
    try:
        return await cleanup_scheduler.run_once()
    except Exception as e:
        logger.error(
            "Scheduled cleanup trigger failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Scheduled cleanup failed",
        ) from None
