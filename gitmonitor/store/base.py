"""Base interface for event and report storage backends."""
from abc import ABC, abstractmethod
from datetime import datetime
from ..models import Event, Report


class EventStore(ABC):
    """Abstract interface for durable event and report storage."""

    async def initialize(self) -> None:
        """
        Prepare the backend for use.

        Raises:
            StoreInitError: If the backend is unreachable or unusable
        """

    @abstractmethod
    async def upsert_event(self, event: Event) -> None:
        """
        Insert or replace an event keyed by its id.

        An event already marked processed stays processed.
        """
        pass

    @abstractmethod
    async def get_event(self, event_id: str) -> Event | None:
        """Return a stored event by id, or None."""
        pass

    @abstractmethod
    async def list_unprocessed_suspicious_events(self, limit: int = 10) -> list[Event]:
        """
        List suspicious events that have no report yet.

        Args:
            limit: Maximum number of events to return

        Returns:
            Events ordered newest first
        """
        pass

    @abstractmethod
    async def mark_processed(self, event_id: str) -> None:
        """Flag an event as processed."""
        pass

    @abstractmethod
    async def insert_report(self, report: Report) -> Report:
        """
        Persist a report.

        Raises:
            DuplicateReportError: If the event already has a report
        """
        pass

    @abstractmethod
    async def get_report(self, event_id: str) -> Report | None:
        """Return the report for an event, or None."""
        pass

    @abstractmethod
    async def list_reports(self, since: datetime | None = None, limit: int = 50) -> list[Report]:
        """
        List reports newest first.

        Args:
            since: Only include reports created strictly after this time
            limit: Maximum number of reports to return
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the backend is healthy and accessible.

        Returns:
            True if backend is healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release backend resources."""
