"""In-memory event store."""
from datetime import datetime, timezone
import structlog
from .base import EventStore
from .errors import DuplicateReportError
from ..models import Event, Report

log = structlog.get_logger()


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class InMemoryEventStore(EventStore):
    """In-memory implementation of the event store."""

    def __init__(self):
        self._events: dict[str, Event] = {}
        self._reports: dict[str, Report] = {}

    async def upsert_event(self, event: Event) -> None:
        existing = self._events.get(event.id)
        if existing is not None and existing.processed and not event.processed:
            event = event.model_copy(update={"processed": True})
        self._events[event.id] = event
        log.debug("event.upserted", id=event.id, type=event.type, store="memory")

    async def get_event(self, event_id: str) -> Event | None:
        return self._events.get(event_id)

    async def list_unprocessed_suspicious_events(self, limit: int = 10) -> list[Event]:
        pending = [e for e in self._events.values() if e.is_suspicious and not e.processed]
        pending.sort(key=lambda e: _aware(e.created_at), reverse=True)
        return pending[:limit]

    async def mark_processed(self, event_id: str) -> None:
        event = self._events.get(event_id)
        if event is not None:
            self._events[event_id] = event.model_copy(update={"processed": True})

    async def insert_report(self, report: Report) -> Report:
        if report.event_id in self._reports:
            raise DuplicateReportError(report.event_id)
        self._reports[report.event_id] = report
        log.info("report.stored", event_id=report.event_id, store="memory")
        return report

    async def get_report(self, event_id: str) -> Report | None:
        return self._reports.get(event_id)

    async def list_reports(self, since: datetime | None = None, limit: int = 50) -> list[Report]:
        reports = list(self._reports.values())
        if since is not None:
            since = _aware(since)
            reports = [r for r in reports if _aware(r.created_at) > since]
        reports.sort(key=lambda r: _aware(r.created_at), reverse=True)
        return reports[:limit]

    async def health_check(self) -> bool:
        """In-memory store is always healthy."""
        return True
