# app/main.py
"""
FastAPI application: user settings routes, the cron trigger, health checks.

The database pool and the provider HTTP clients live for the whole process;
the lifespan opens the pool and closes everything on shutdown.
"""

import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.cleanup.api import accounts_router, cleanup_router, cron_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.middleware import RequestContextMiddleware
from app.routes import health
from app.services.google_gmail_service import google_gmail_service
from app.services.google_oauth_service import google_oauth_service
from app.services.infrastructure.encryption_service import load_cipher

setup_logging(log_level=settings.LOG_LEVEL, json_output=settings.environment != "development")
logger = get_logger(__name__)


async def _close_quietly(name: str, close: Callable[[], Awaitable[None]]) -> str | None:
    try:
        await close()
    except Exception as e:
        logger.error("Error during shutdown", resource=name, error=str(e))
        return f"{name}: {e}"
    return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting", environment=settings.environment, debug=settings.debug)
    load_cipher()
    await db_pool.initialize()

    yield

    logger.info("Application shutting down")
    # HTTP clients before the pool; a request still in flight may hold a connection
    errors = [
        error
        for error in [
            await _close_quietly("gmail_client", google_gmail_service.close),
            await _close_quietly("oauth_client", google_oauth_service.close),
            await _close_quietly("database_pool", db_pool.close),
        ]
        if error
    ]
    if errors:
        logger.warning("Shutdown finished with errors", errors=errors)


app = FastAPI(
    title="Spam Cleanup",
    description="Scheduled Gmail spam and trash cleanup",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(accounts_router)
app.include_router(cleanup_router)
app.include_router(cron_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


# Registered last so it runs first and the request id is bound before access logging
app.add_middleware(RequestContextMiddleware)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
