"""
Persistence for per-user cleanup schedules.
"""

from datetime import datetime

from app.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one, with_db_retry
from app.features.cleanup.domain import ScheduleConfig
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ScheduleRepositoryError(DatabaseError):
    """More specific exception for schedule persistence failures."""


class ScheduleRepository:
    """Queries against schedule_config."""

    SELECT_COLUMNS = """
        id, user_id, frequency, auto_approve, is_active, last_run_at, next_run_at
    """

    @classmethod
    def _row_to_schedule(cls, row: dict | None) -> ScheduleConfig | None:
        if not row:
            return None

        return ScheduleConfig(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            frequency=row["frequency"],
            auto_approve=bool(row.get("auto_approve")),
            is_active=bool(row.get("is_active")),
            last_run_at=row.get("last_run_at"),
            next_run_at=row.get("next_run_at"),
        )

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def list_due(cls, now: datetime) -> list[ScheduleConfig]:
        """Active schedules whose next run is at or before `now`, oldest first."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM schedule_config
            WHERE is_active = true AND next_run_at <= %s
            ORDER BY next_run_at ASC
        """
        rows = await fetch_all(query, (now,))
        return [cls._row_to_schedule(row) for row in rows]

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_for_user(cls, user_id: str) -> ScheduleConfig | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM schedule_config WHERE user_id = %s"
        return cls._row_to_schedule(await fetch_one(query, (user_id,)))

    @classmethod
    @with_db_retry(max_retries=3, base_delay=0.1)
    async def advance(cls, schedule_id: str, last_run_at: datetime, next_run_at: datetime) -> None:
        query = """
            UPDATE schedule_config
            SET last_run_at = %s,
                next_run_at = %s,
                updated_at = NOW()
            WHERE id = %s
        """
        await execute_query(query, (last_run_at, next_run_at, schedule_id))
        logger.info(
            "Schedule advanced", schedule_id=schedule_id, next_run_at=next_run_at.isoformat()
        )

    @classmethod
    async def upsert_for_user(
        cls,
        user_id: str,
        frequency: str,
        auto_approve: bool,
        is_active: bool,
        next_run_at: datetime | None,
    ) -> ScheduleConfig:
        query = f"""
            INSERT INTO schedule_config (
                user_id, frequency, auto_approve, is_active, next_run_at
            ) VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (user_id)
            DO UPDATE SET
                frequency = EXCLUDED.frequency,
                auto_approve = EXCLUDED.auto_approve,
                is_active = EXCLUDED.is_active,
                next_run_at = EXCLUDED.next_run_at,
                updated_at = NOW()
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (user_id, frequency, auto_approve, is_active, next_run_at))
        if not row:
            raise ScheduleRepositoryError("Failed to save schedule", operation="upsert_for_user")
        return cls._row_to_schedule(row)
