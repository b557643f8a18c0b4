"""Live subscriber streaming."""
from .broadcaster import (
    Broadcaster,
    Connection,
    SSEConnection,
    SubscriberBackpressureError,
    SubscriberClosedError,
    SubscriberError,
)

__all__ = [
    "Broadcaster",
    "Connection",
    "SSEConnection",
    "SubscriberError",
    "SubscriberClosedError",
    "SubscriberBackpressureError",
]
