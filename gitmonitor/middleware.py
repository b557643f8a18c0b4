"""
HTTP middleware: correlation ids, request metrics and structured errors.
"""
import time
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog
from .metrics import Metrics
from .store.errors import StoreError

CORRELATION_HEADER = "x-correlation-id"

# Long-lived responses; their duration is connection lifetime, not latency
STREAMING_PATHS = frozenset({"/api/stream"})


def _route_label(request: Request) -> str:
    """Route template ("/api/summary") rather than the raw path, to bound label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with a correlation id.

    The id comes from the X-Correlation-ID request header or is generated,
    is bound into structlog contextvars for the request's log lines, and is
    echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Request count, latency and in-flight gauge for everything except /metrics and the live stream."""

    def __init__(self, app, metrics: Metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics") or request.url.path in STREAMING_PATHS:
            return await call_next(request)

        log = structlog.get_logger()
        status = 500
        started = time.perf_counter()
        self.metrics.http_requests_active.inc()
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except Exception as e:
            log.error("http.request_failed", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            elapsed = time.perf_counter() - started
            path = _route_label(request)
            self.metrics.http_requests_active.dec()
            self.metrics.http_requests_total.labels(
                service=self.metrics.service_name, method=request.method, path=path, status=status
            ).inc()
            self.metrics.http_request_duration.labels(
                service=self.metrics.service_name, method=request.method, path=path
            ).observe(elapsed)
            log.info("http.request", http_status=status, duration_ms=round(elapsed * 1000, 2))


def _error_body(request: Request, error: str, message: str) -> dict:
    return {
        "error": error,
        "message": message,
        "correlation_id": structlog.contextvars.get_contextvars().get("correlation_id"),
        "path": request.url.path,
    }


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Turns unhandled exceptions into structured JSON error responses.

    - StoreError: 503, the backing store is unavailable
    - Anything else: 500
    """

    async def dispatch(self, request: Request, call_next):
        log = structlog.get_logger()
        try:
            return await call_next(request)
        except StoreError as e:
            log.warning("http.store_unavailable", error=str(e), error_type=type(e).__name__)
            return JSONResponse(
                _error_body(request, "StoreUnavailable", "Report storage is temporarily unavailable"),
                status_code=503,
            )
        except Exception as e:
            log.error("http.unhandled_exception", error=str(e), error_type=type(e).__name__, exc_info=True)
            return JSONResponse(
                _error_body(request, "InternalServerError", "An unexpected error occurred"),
                status_code=500,
            )
