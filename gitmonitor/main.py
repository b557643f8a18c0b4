"""
Git activity monitor service.

Features:
- Polls the public GitHub events feed and flags suspicious activity
- Writes incident summaries for flagged events with a generative backend
- Streams new summaries to dashboards over server-sent events
- Structured logging, Prometheus metrics, health checks
"""
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from . import __version__
from .config import Settings, get_settings
from .logging import setup_logging, get_logger, SERVICE_NAME
from .api.router import router as summary_router
from .api.stream_router import router as stream_router
from .middleware import CorrelationIdMiddleware, ErrorHandlerMiddleware, MetricsMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .runtime import Services, build_services

logger = get_logger()


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """
    Build the FastAPI application around the pipeline services.

    Args:
        settings: Configuration (defaults to environment settings)
        services: Prebuilt services; built from settings on startup if omitted

    On startup the store is initialized (a failure aborts startup) and, when
    BACKGROUND_TASKS_ENABLED is set, the poller, worker and heartbeat start.
    On shutdown they are stopped and closed.
    """
    settings = settings or (services.settings if services else get_settings())
    metrics = services.metrics if services else Metrics(service_name=SERVICE_NAME, version=__version__)
    health_checker = HealthChecker(service_name=SERVICE_NAME, version=__version__)

    app = FastAPI(
        title="Git Activity Monitor",
        version=__version__,
        description="Suspicious GitHub activity detection with live incident summaries",
    )
    app.state.settings = settings
    app.state.services = services

    # Middleware order matters: correlation ID first, then metrics, then errors
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(summary_router)
    app.include_router(stream_router)
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/health")
    async def health():
        """Liveness check. Returns 200 while the process is serving."""
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness check.

        Returns:
            200: Store reachable and pipeline loops running
            503: Service is not ready
        """
        result = await health_checker.readiness(app.state.services)
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            "service_starting",
            version=__version__,
            env=settings.ENV,
            store_backend=settings.STORE_BACKEND,
            background_tasks=settings.BACKGROUND_TASKS_ENABLED,
        )
        if app.state.services is None:
            app.state.services = build_services(settings, metrics)

        # StoreInitError propagates and aborts startup
        await app.state.services.store.initialize()

        if settings.BACKGROUND_TASKS_ENABLED:
            await app.state.services.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("service_stopping")
        if app.state.services is not None:
            await app.state.services.close()
        metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)

    return app


_settings = get_settings()
setup_logging(json_output=_settings.LOG_JSON)
app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gitmonitor.main:app",
        host="0.0.0.0",
        port=_settings.SERVICE_PORT,
    )
