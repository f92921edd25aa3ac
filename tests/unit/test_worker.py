from unittest.mock import AsyncMock, MagicMock

import pytest

from app.jobs import scheduled_cleanup_job, worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_scheduled_cleanup_is_registered():
    assert worker.JOB_REGISTRY["scheduled_cleanup"] is scheduled_cleanup_job.run_scheduled_cleanup


def test_job_name_defaults_to_scheduled_cleanup(monkeypatch):
    monkeypatch.setattr("sys.argv", ["worker"])
    monkeypatch.delenv("WORKER_JOB", raising=False)

    assert worker._resolve_job_name() == "scheduled_cleanup"

    monkeypatch.setattr("sys.argv", ["worker", " Scheduled_Cleanup "])
    assert worker._resolve_job_name() == "scheduled_cleanup"


def _patch_resources(monkeypatch, scheduler):
    pool = MagicMock()
    pool.initialize = AsyncMock()
    pool.close = AsyncMock()
    gmail = MagicMock()
    gmail.close = AsyncMock()
    oauth = MagicMock()
    oauth.close = AsyncMock()

    monkeypatch.setattr(scheduled_cleanup_job, "db_pool", pool)
    monkeypatch.setattr(scheduled_cleanup_job, "cleanup_scheduler", scheduler)
    monkeypatch.setattr(scheduled_cleanup_job, "google_gmail_service", gmail)
    monkeypatch.setattr(scheduled_cleanup_job, "google_oauth_service", oauth)
    monkeypatch.setattr(scheduled_cleanup_job, "load_cipher", MagicMock(return_value=True))
    return pool, gmail, oauth


@pytest.mark.asyncio
async def test_scheduled_cleanup_job_runs_once_and_closes(monkeypatch):
    scheduler = MagicMock()
    scheduler.run_once = AsyncMock(return_value={"processed": 1, "results": [{"success": True}]})
    pool, gmail, oauth = _patch_resources(monkeypatch, scheduler)

    await scheduled_cleanup_job.run_scheduled_cleanup()

    scheduled_cleanup_job.load_cipher.assert_called_once_with()
    pool.initialize.assert_awaited_once()
    scheduler.run_once.assert_awaited_once()
    gmail.close.assert_awaited_once()
    oauth.close.assert_awaited_once()
    pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_scheduled_cleanup_job_closes_pool_on_failure(monkeypatch):
    scheduler = MagicMock()
    scheduler.run_once = AsyncMock(side_effect=RuntimeError("cannot load schedules"))
    pool, _, _ = _patch_resources(monkeypatch, scheduler)

    with pytest.raises(RuntimeError):
        await scheduled_cleanup_job.run_scheduled_cleanup()

    pool.close.assert_awaited_once()
