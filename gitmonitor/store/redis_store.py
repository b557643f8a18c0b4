"""Redis-backed event store."""
from datetime import datetime, timezone
import structlog
import orjson
from redis.asyncio import Redis
from redis.exceptions import RedisError
from .base import EventStore
from .errors import DuplicateReportError, StoreError, StoreInitError
from ..models import Event, Report

log = structlog.get_logger()


def _score(ts: datetime) -> float:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.timestamp()


class RedisEventStore(EventStore):
    """Redis implementation of the event store.

    Uses the asyncio client, so every round trip is awaited. Events and
    reports are orjson documents in hashes keyed by event id.
    Two sorted sets scored by creation time index the pending (suspicious,
    unprocessed) events and the reports.
    """

    def __init__(self, redis_url: str, prefix: str = "gitmonitor"):
        """
        Initialize Redis event store.

        Args:
            redis_url: Redis connection URL
            prefix: Key namespace for all structures
        """
        self.redis_url = redis_url
        self._client: Redis | None = None
        self._events_key = f"{prefix}:events"
        self._pending_key = f"{prefix}:events:pending"
        self._reports_key = f"{prefix}:reports"
        self._reports_index_key = f"{prefix}:reports:index"

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,  # orjson handles encoding
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    async def initialize(self) -> None:
        try:
            await self._get_client().ping()
        except RedisError as e:
            log.error("redis.init_failed", error=str(e))
            raise StoreInitError(f"Redis unavailable at {self.redis_url}: {e}") from e
        log.info("store.initialized", store="redis")

    async def upsert_event(self, event: Event) -> None:
        client = self._get_client()
        existing = await self.get_event(event.id)
        if existing is not None and existing.processed:
            event = event.model_copy(update={"processed": True})

        pipe = client.pipeline()
        pipe.hset(self._events_key, event.id, orjson.dumps(event.model_dump(mode="json")))
        if event.is_suspicious and not event.processed:
            pipe.zadd(self._pending_key, {event.id: _score(event.created_at)})
        else:
            pipe.zrem(self._pending_key, event.id)
        await pipe.execute()
        log.debug("event.upserted", id=event.id, type=event.type, store="redis")

    async def get_event(self, event_id: str) -> Event | None:
        raw = await self._get_client().hget(self._events_key, event_id)
        if raw is None:
            return None
        return Event(**orjson.loads(raw))

    async def list_unprocessed_suspicious_events(self, limit: int = 10) -> list[Event]:
        client = self._get_client()
        ids = await client.zrevrange(self._pending_key, 0, limit - 1)
        if not ids:
            return []
        return [Event(**orjson.loads(raw)) for raw in await client.hmget(self._events_key, ids) if raw]

    async def mark_processed(self, event_id: str) -> None:
        event = await self.get_event(event_id)
        pipe = self._get_client().pipeline()
        if event is not None:
            event = event.model_copy(update={"processed": True})
            pipe.hset(self._events_key, event_id, orjson.dumps(event.model_dump(mode="json")))
        pipe.zrem(self._pending_key, event_id)
        await pipe.execute()

    async def insert_report(self, report: Report) -> Report:
        client = self._get_client()
        created = await client.hsetnx(
            self._reports_key, report.event_id, orjson.dumps(report.model_dump(mode="json"))
        )
        if not created:
            raise DuplicateReportError(report.event_id)
        await client.zadd(self._reports_index_key, {report.event_id: _score(report.created_at)})
        log.info("report.stored", event_id=report.event_id, store="redis")
        return report

    async def get_report(self, event_id: str) -> Report | None:
        raw = await self._get_client().hget(self._reports_key, event_id)
        if raw is None:
            return None
        return Report(**orjson.loads(raw))

    async def list_reports(self, since: datetime | None = None, limit: int = 50) -> list[Report]:
        """
        List reports from the creation-time index, newest first.

        Args:
            since: Exclusive lower bound on report creation time
            limit: Maximum number of reports to return

        Raises:
            StoreError: If Redis is unreachable
        """
        client = self._get_client()
        min_score = f"({_score(since)}" if since is not None else "-inf"
        try:
            ids = await client.zrevrangebyscore(
                self._reports_index_key, "+inf", min_score, start=0, num=limit
            )
            raws = await client.hmget(self._reports_key, ids) if ids else []
        except RedisError as e:
            raise StoreError(f"Failed to list reports: {e}") from e
        return [Report(**orjson.loads(raw)) for raw in raws if raw]

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is accessible, False otherwise
        """
        try:
            return bool(await self._get_client().ping())
        except RedisError as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
