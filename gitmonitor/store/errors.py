"""Errors raised by event store implementations."""


class StoreError(Exception):
    """Base exception for event store failures."""


class StoreInitError(StoreError):
    """Raised when the store backend cannot be prepared at startup."""


class DuplicateReportError(StoreError):
    """Raised when a report already exists for the event."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Report already exists for event {event_id}")
