"""
One-shot worker for process-level cron.

    python -m app.jobs.worker scheduled_cleanup
    WORKER_JOB=scheduled_cleanup spam-cleanup-worker

The job runs once and the process exits; a non-zero exit code tells the
cron host the run failed before any schedule was processed.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable, Sequence

from app.config import settings
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.jobs.scheduled_cleanup_job import run_scheduled_cleanup

logger = get_logger(__name__)

DEFAULT_JOB = "scheduled_cleanup"

JOB_REGISTRY: dict[str, Callable[[], Awaitable[None]]] = {
    DEFAULT_JOB: run_scheduled_cleanup,
}


def _resolve_job_name(argv: Sequence[str] | None = None) -> str:
    """First CLI argument, else WORKER_JOB, else the scheduled cleanup."""
    args = sys.argv[1:] if argv is None else argv
    raw = args[0] if args else os.getenv("WORKER_JOB", DEFAULT_JOB)
    return raw.strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """
    Raises:
        ValueError: If the job name is not registered
    """
    name = (job_name or _resolve_job_name()).strip().lower()
    job = JOB_REGISTRY.get(name)
    if job is None:
        raise ValueError(f"Unknown worker job '{name}'. Available jobs: {', '.join(sorted(JOB_REGISTRY))}")

    logger.info("Worker job starting", job=name)
    await job()
    logger.info("Worker job finished", job=name)


def main() -> int:
    setup_logging(log_level=settings.LOG_LEVEL)
    try:
        asyncio.run(run_worker(_resolve_job_name()))
    except Exception as e:
        logger.error("Worker job failed", error=str(e), error_type=type(e).__name__)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
