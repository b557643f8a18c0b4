"""Live fan-out of new reports to stream subscribers."""
import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol
import orjson
import structlog
from ..metrics import Metrics
from ..models import Report, ReportView

log = structlog.get_logger()


class SubscriberError(Exception):
    """Base exception for subscriber delivery failures."""


class SubscriberClosedError(SubscriberError):
    """Raised when sending to a closed subscriber."""


class SubscriberBackpressureError(SubscriberError):
    """Raised when a subscriber has too many undelivered messages."""


class Connection(Protocol):
    """A subscriber output channel."""
    id: str

    async def send(self, message: bytes) -> None:
        ...

    def close(self) -> None:
        ...


class SSEConnection:
    """
    Server-sent-events output channel for one subscriber.

    Messages are framed as ``data: <json>\\n\\n`` and queued until the
    response body drains them.
    """

    def __init__(self, max_pending: int = 100):
        self.id = uuid.uuid4().hex
        self.max_pending = max_pending
        self.last_activity = time.time()
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: bytes) -> None:
        if self._closed:
            raise SubscriberClosedError(f"Subscriber {self.id} is closed")
        if self._queue.qsize() >= self.max_pending:
            raise SubscriberBackpressureError(
                f"Subscriber {self.id} has {self._queue.qsize()} undelivered messages"
            )
        self._queue.put_nowait(b"data: " + message + b"\n\n")
        self.last_activity = time.time()

    def close(self) -> None:
        """Close the channel; ``iter_messages`` ends after this."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    async def iter_messages(self) -> AsyncIterator[bytes]:
        """Yield framed messages until the channel is closed."""
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame


class Broadcaster:
    """
    Manages live subscriber connections.

    Features:
    - Pushes each new report to all connected subscribers
    - Periodic heartbeat that keeps streams open and prunes dead connections
    - Failed connections are dropped without affecting the others

    Delivery is at most once per connection per message; there is no replay.
    """

    def __init__(self, heartbeat_interval: float = 30.0, metrics: Metrics | None = None):
        """
        Initialize broadcaster.

        Args:
            heartbeat_interval: Seconds between ping messages
            metrics: Prometheus metrics (a private registry if omitted)
        """
        self.heartbeat_interval = heartbeat_interval
        self._metrics = metrics or Metrics()
        self._connections: dict[str, Connection] = {}
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def connection_count(self) -> int:
        """Get number of active connections."""
        return len(self._connections)

    async def register(self, connection: Connection) -> bool:
        """
        Add a subscriber and acknowledge the connection.

        Returns:
            False if the acknowledgement could not be delivered
        """
        self._connections[connection.id] = connection
        self._metrics.subscribers_active.set(len(self._connections))
        log.info("broadcaster.connected", subscriber=connection.id, total_connections=len(self._connections))

        message = _encode({
            "type": "connected",
            "message": "Git activity monitor connected",
            "subscriber_id": connection.id,
        })
        return await self._deliver(connection, message, "connected")

    def unregister(self, connection: Connection) -> None:
        """Remove a subscriber. Safe to call more than once."""
        removed = self._connections.pop(connection.id, None)
        connection.close()
        if removed is not None:
            self._metrics.subscribers_active.set(len(self._connections))
            log.info("broadcaster.disconnected", subscriber=connection.id, total_connections=len(self._connections))

    async def publish(self, report: Report) -> int:
        """
        Send a new report to every connected subscriber.

        Returns:
            Number of subscribers the report was delivered to
        """
        message = _encode({
            "type": "new_summary",
            "data": ReportView.from_report(report).to_wire(),
        })
        delivered = await self._broadcast(message, "new_summary")
        log.info("broadcaster.report_published", event_id=report.event_id, delivered=delivered)
        return delivered

    async def send_ping(self) -> int:
        """Send a heartbeat to every subscriber, pruning any that fail."""
        message = _encode({
            "type": "ping",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        return await self._broadcast(message, "ping")

    async def start(self) -> None:
        """Start the heartbeat task; no-op if already running."""
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="gitmonitor-heartbeat")

    async def stop(self) -> None:
        """Stop the heartbeat and close every connection."""
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None
        for connection in list(self._connections.values()):
            self.unregister(connection)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.send_ping()
            except Exception as e:
                # One bad tick must not end the heartbeat
                log.error(
                    "broadcaster.heartbeat_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )

    async def _broadcast(self, message: bytes, message_type: str) -> int:
        # Iterate a snapshot; registrations may change while sends are awaited.
        delivered = 0
        for connection in list(self._connections.values()):
            if await self._deliver(connection, message, message_type):
                delivered += 1
        return delivered

    async def _deliver(self, connection: Connection, message: bytes, message_type: str) -> bool:
        try:
            await connection.send(message)
        except Exception as e:
            log.warning(
                "broadcaster.connection_pruned",
                subscriber=connection.id,
                message_type=message_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.unregister(connection)
            return False
        self._metrics.broadcast_messages_total.labels(type=message_type).inc()
        return True


def _encode(envelope: dict[str, Any]) -> bytes:
    return orjson.dumps(envelope)
