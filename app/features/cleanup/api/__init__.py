from .accounts import router as accounts_router
from .cron import router as cron_router
from .router import router as cleanup_router

__all__ = ["accounts_router", "cleanup_router", "cron_router"]
