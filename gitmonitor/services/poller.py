"""Polling loop that ingests the upstream events feed."""
import asyncio
import random
import time
from enum import Enum
from typing import Any, Iterable
import structlog
from pydantic import ValidationError
from .github_client import (
    GitHubEventsClient,
    GitHubError,
    GitHubRateLimitError,
    GitHubResponseShapeError,
)
from ..metrics import Metrics
from ..models import Event
from ..rules.classifier import Classifier
from ..store.base import EventStore

log = structlog.get_logger()


class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COOLING = "cooling"
    BACKOFF = "backoff"


def cursor_key(event_id: str) -> tuple[int, str]:
    """Sort key for event ids; digit strings compare numerically."""
    return (len(event_id), event_id)


class Backoff:
    """
    Exponential backoff with uniform jitter.

    ``current`` is the unjittered delay for the next failure. After N
    consecutive failures it equals ``min(initial * 2**N, ceiling)``.
    """

    def __init__(
        self,
        initial: float = 1.0,
        ceiling: float = 60.0,
        floor: float = 0.1,
        jitter: float = 0.25,
        rng: random.Random | None = None,
    ):
        self.initial = initial
        self.ceiling = ceiling
        self.floor = floor
        self.jitter = jitter
        self.current = initial
        self.failures = 0
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        """Return the jittered delay for this failure and double the backoff."""
        offset = self._rng.uniform(-self.jitter, self.jitter) * self.current
        delay = max(self.floor, self.current + offset)
        self.current = min(self.current * 2, self.ceiling)
        self.failures += 1
        return delay

    def reset(self) -> None:
        self.current = self.initial
        self.failures = 0


def _failure_reason(error: Exception) -> str:
    if isinstance(error, GitHubRateLimitError):
        return "rate_limited"
    if isinstance(error, GitHubResponseShapeError):
        return "bad_response"
    if isinstance(error, GitHubError):
        return "http_error"
    return "unexpected"


class Poller:
    """
    Repeatedly fetches the feed, classifies each new event and stores it.

    State machine: IDLE -> FETCHING -> {COOLING, BACKOFF} -> FETCHING ...
    No failure stops the loop; only ``stop()`` does.
    """

    def __init__(
        self,
        client: GitHubEventsClient,
        store: EventStore,
        classifier: Classifier,
        poll_interval: float = 10.0,
        backoff: Backoff | None = None,
        metrics: Metrics | None = None,
    ):
        """
        Initialize poller.

        Args:
            client: Upstream feed client
            store: Destination for ingested events
            classifier: Suspicion classifier applied to every new event
            poll_interval: Seconds to wait after a successful fetch
            backoff: Failure backoff policy (defaults to 1s doubling to 60s)
            metrics: Prometheus metrics (a private registry if omitted)
        """
        self.client = client
        self.store = store
        self.classifier = classifier
        self.poll_interval = poll_interval
        self.backoff = backoff or Backoff()
        self._metrics = metrics or Metrics()
        self._cursor: str | None = None
        self._state = PollerState.IDLE
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def cursor(self) -> str | None:
        """Most recent event id seen."""
        return self._cursor

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the polling loop; no-op if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="gitmonitor-poller")
        log.info("poller.started", interval=self.poll_interval)

    async def stop(self) -> None:
        """
        Stop the loop after the current iteration.

        An in-flight request is allowed to finish; pending sleeps end
        immediately. Returns once the loop has exited.
        """
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        self._state = PollerState.IDLE
        log.info("poller.stopped", cursor=self._cursor)

    async def run_cycle(self) -> int:
        """
        Fetch one page and ingest it.

        Returns:
            Number of events written to the store

        Raises:
            GitHubError: If the fetch fails
        """
        records = await self.client.fetch_events()
        return await self.process_events(records)

    async def process_events(self, records: Iterable[dict[str, Any]]) -> int:
        """
        Classify and store feed records in feed order (newest first).

        Iteration stops at the record whose id equals the cursor; the cursor
        then advances to the newest id seen. Malformed records are logged and
        skipped; they never abort the page.
        """
        stored = 0
        suspicious = 0
        newest: str | None = None

        for record in records:
            if not isinstance(record, dict):
                log.warning("poller.record_skipped", reason=f"record is {type(record).__name__}")
                continue
            event_id = str(record.get("id") or "")
            if not event_id:
                log.warning("poller.record_skipped", reason="missing id")
                continue
            if newest is None or cursor_key(event_id) > cursor_key(newest):
                newest = event_id
            if event_id == self._cursor:
                break

            is_suspicious = self.classifier.is_suspicious(record.get("type"), record.get("payload"))
            try:
                event = Event.from_feed(record, is_suspicious=is_suspicious)
            except (ValidationError, AttributeError, TypeError) as e:
                log.warning("poller.record_skipped", id=event_id, reason=str(e), error_type=type(e).__name__)
                continue

            await self.store.upsert_event(event)
            stored += 1
            self._metrics.events_ingested_total.labels(
                event_type=event.type, suspicious=str(is_suspicious).lower()
            ).inc()

            if is_suspicious:
                suspicious += 1
                log.info(
                    "poller.suspicious_event",
                    id=event.id,
                    type=event.type,
                    repo=event.repo_name,
                    rules=self.classifier.matched_rules(event.type, event.payload),
                )

        if newest is not None:
            self._advance_cursor(newest)

        if stored:
            log.info("poller.events_processed", stored=stored, suspicious=suspicious, cursor=self._cursor)
        return stored

    def _advance_cursor(self, event_id: str) -> None:
        if self._cursor is None or cursor_key(event_id) > cursor_key(self._cursor):
            self._cursor = event_id

    def _failure_delay(self, error: Exception) -> float:
        """Delay before the next fetch; the backoff doubles on every failure."""
        delay = self.backoff.next_delay()
        if isinstance(error, GitHubRateLimitError) and error.reset_at is not None:
            return max(error.reset_at - time.time(), self.backoff.floor)
        return delay

    async def _sleep(self, seconds: float) -> None:
        """Sleep that ends early when stop is requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            self._state = PollerState.FETCHING
            try:
                await self.run_cycle()
            except Exception as e:
                delay = self._failure_delay(e)
                reason = _failure_reason(e)
                self._state = PollerState.BACKOFF
                self._metrics.poll_failures_total.labels(reason=reason).inc()
                log.warning(
                    "poller.fetch_failed",
                    reason=reason,
                    error=str(e),
                    error_type=type(e).__name__,
                    retry_in_s=round(delay, 2),
                    consecutive_failures=self.backoff.failures,
                )
            else:
                self.backoff.reset()
                self._state = PollerState.COOLING
                delay = self.poll_interval

            if self._stop_event.is_set():
                break
            await self._sleep(delay)

        self._state = PollerState.IDLE
