"""Event and report storage with pluggable backends."""
import structlog

from .base import EventStore
from .errors import DuplicateReportError, StoreError, StoreInitError
from .memory import InMemoryEventStore
from .redis_store import RedisEventStore
from ..config import Settings

log = structlog.get_logger()


def create_store(settings: Settings) -> EventStore:
    """
    Create the store selected by the STORE_BACKEND setting.

    Returns:
        EventStore instance (not yet initialized)
    """
    if settings.STORE_BACKEND == "redis":
        if not settings.REDIS_URL:
            log.warning(
                "store.fallback",
                requested="redis",
                actual="memory",
                reason="REDIS_URL not configured"
            )
            return InMemoryEventStore()

        log.info("store.selected", type="redis", url=str(settings.REDIS_URL))
        return RedisEventStore(str(settings.REDIS_URL))

    log.info("store.selected", type="memory")
    return InMemoryEventStore()


__all__ = [
    "EventStore",
    "InMemoryEventStore",
    "RedisEventStore",
    "StoreError",
    "StoreInitError",
    "DuplicateReportError",
    "create_store",
]
