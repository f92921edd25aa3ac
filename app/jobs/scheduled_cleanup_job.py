"""
Scheduled cleanup job for process-level cron triggers.

Opens the database pool, runs every due schedule once, closes everything.
"""

from app.db.pool import db_pool
from app.features.cleanup.services import cleanup_scheduler
from app.infrastructure.observability.logging import get_logger
from app.services.google_gmail_service import google_gmail_service
from app.services.google_oauth_service import google_oauth_service
from app.services.infrastructure.encryption_service import load_cipher

logger = get_logger(__name__)


async def run_scheduled_cleanup() -> None:
    """Run one scheduled cleanup pass."""
    load_cipher()
    await db_pool.initialize()
    try:
        result = await cleanup_scheduler.run_once()
        failed = [r for r in result["results"] if not r.get("success")]
        logger.info(
            "Scheduled cleanup job finished",
            processed=result["processed"],
            failed=len(failed),
        )
    finally:
        await google_gmail_service.close()
        await google_oauth_service.close()
        await db_pool.close()
