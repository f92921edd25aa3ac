# app/routes/health.py
"""
Liveness and readiness endpoints.

Readiness covers what a scheduled run needs: a working database pool and
the credentials for the token cipher, Google OAuth and the classifier.
Missing classifier credentials still let runs complete on heuristic labels,
but the service reports itself not ready so operators notice.
"""

import time
from typing import Any

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check

router = APIRouter()


@router.get("/healthz")
async def healthz():
    return {"status": "ok", "service": "spam-cleanup"}


async def _database_check() -> dict[str, Any]:
    started = time.time()
    try:
        health = await db_health_check()
    except Exception as e:
        return {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - started) * 1000, 1),
        }

    check: dict[str, Any] = {
        "ok": bool(health.get("healthy")),
        "latency_ms": round((time.time() - started) * 1000, 1),
    }
    check.update(health.get("pool_stats", {}))
    if not check["ok"]:
        check["error"] = health.get("error", "Database unhealthy")
    return check


def _configuration_check() -> dict[str, Any]:
    issues = []
    if not settings.TOKEN_ENCRYPTION_KEY:
        issues.append("TOKEN_ENCRYPTION_KEY not set")
    if not (settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET):
        issues.append("Google OAuth client not configured")
    if not settings.AI_API_KEY:
        issues.append("AI_API_KEY not set")

    return {"ok": not issues, "issues": issues or None, "environment": settings.environment}


@router.get("/readyz")
async def readyz():
    checks = {
        "database": await _database_check(),
        "configuration": _configuration_check(),
    }
    return {
        "overall_ok": all(check["ok"] for check in checks.values()),
        "checks": checks,
        "timestamp": time.time(),
    }
