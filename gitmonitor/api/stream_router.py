"""Live report stream (server-sent events)."""
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
import structlog
from .router import get_services
from ..runtime import Services
from ..streaming.broadcaster import SSEConnection

log = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["stream"])


@router.get("/stream")
async def stream_reports(services: Services = Depends(get_services)):
    """
    Server-sent events stream of new incident reports.

    Every message is a JSON envelope with a ``type`` field:
    - ``connected``: sent once when the stream opens
    - ``ping``: periodic heartbeat with a ``timestamp``
    - ``new_summary``: a new report under ``data``

    Clients should ignore unknown types and reconnect on their own
    if the stream drops.

    Example client (JavaScript):
    ```javascript
    const source = new EventSource('/api/stream');
    source.onmessage = (event) => {
        const message = JSON.parse(event.data);
        if (message.type === 'new_summary') {
            console.log('New incident:', message.data);
        }
    };
    ```
    """
    broadcaster = services.broadcaster
    connection = SSEConnection(max_pending=services.settings.SUBSCRIBER_MAX_PENDING)

    async def event_source():
        try:
            # Registered only once the response starts streaming
            await broadcaster.register(connection)
            async for frame in connection.iter_messages():
                yield frame
        finally:
            # Runs on client disconnect too: the response task is cancelled
            broadcaster.unregister(connection)

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
