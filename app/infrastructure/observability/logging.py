"""
Structured logging for the spam cleanup service.

JSON lines on stdout. Request-scoped fields (request_id) come from
structlog contextvars; secret-bearing keys are masked before rendering so a
stray `access_token=` keyword can never reach the log stream.
"""

import logging
import sys

import structlog
from structlog.stdlib import LoggerFactory

# Event keys whose values are replaced before rendering
SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "authorization",
        "code",
        "client_secret",
        "token",
        "cron_secret",
    }
)
REDACTED = "[redacted]"

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "psycopg.pool", "uvicorn.access")


def redact_secrets(_logger, _method_name: str, event_dict: dict) -> dict:
    for key in SENSITIVE_KEYS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of the stdlib logging module.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_output: Render JSON (default) or a console format for local runs
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_secrets,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_request(method: str, path: str, status_code: int, duration_ms: float) -> None:
    """Access log line for one HTTP request. Cron and 5xx responses log louder."""
    logger = get_logger("http")
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }

    if status_code >= 500:
        logger.error("HTTP request errored", **fields)
    elif status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    elif path.startswith("/cron/"):
        logger.info("Cron trigger handled", **fields)
    else:
        logger.debug("HTTP request completed", **fields)
