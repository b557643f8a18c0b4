"""
Liveness and readiness checks.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import psutil
from .logging import get_logger
from .runtime import Services

logger = get_logger()

# Below this much available memory the service reports not ready
MIN_AVAILABLE_MB = 50.0


class HealthChecker:
    """
    Builds health check responses for the monitor.

    Liveness only says the process is serving. Readiness looks at the store,
    the background loops, live subscribers and host memory.
    """

    def __init__(self, service_name: str = "gitmonitor", version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version

    def _envelope(self, status: str, **extra: Any) -> Dict[str, Any]:
        return {
            "status": status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **extra,
        }

    def liveness(self) -> Dict[str, Any]:
        return self._envelope("ok")

    async def readiness(self, services: Services | None) -> Dict[str, Any]:
        """
        Run every readiness check.

        Any check reporting "error" makes the whole result "not_ready";
        "warning" is informational.
        """
        if services is None:
            checks = {"services": {"status": "error", "message": "Services not initialized"}}
        else:
            checks = {
                "store": await self._check_store(services),
                "pipeline": self._check_pipeline(services),
                "subscribers": {"status": "ok", "connections": services.broadcaster.connection_count},
            }
        checks["memory"] = self._check_memory()

        failed = [name for name, check in checks.items() if check["status"] == "error"]
        if failed:
            logger.warning("health.not_ready", failed_checks=failed)
        return self._envelope("not_ready" if failed else "ready", checks=checks)

    async def _check_store(self, services: Services) -> Dict[str, Any]:
        backend = type(services.store).__name__
        try:
            healthy = await services.store.health_check()
        except Exception as e:
            logger.warning("health.store_check_failed", backend=backend, error=str(e))
            return {"status": "error", "backend": backend, "error": str(e)}
        return {"status": "ok" if healthy else "error", "backend": backend}

    def _check_pipeline(self, services: Services) -> Dict[str, Any]:
        """Loops must be running whenever background tasks are enabled."""
        poller, worker = services.poller, services.worker
        expected = services.settings.BACKGROUND_TASKS_ENABLED
        running = poller.is_running and worker.is_running
        return {
            "status": "error" if expected and not running else "ok",
            "poller_running": poller.is_running,
            "poller_state": poller.state.value,
            "worker_running": worker.is_running,
            "cursor": poller.cursor,
        }

    def _check_memory(self) -> Dict[str, Any]:
        try:
            memory = psutil.virtual_memory()
        except Exception as e:
            logger.warning("health.memory_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        available_mb = round(memory.available / 1024**2, 2)
        if available_mb < MIN_AVAILABLE_MB:
            status = "error"
        elif available_mb < MIN_AVAILABLE_MB * 2:
            status = "warning"
        else:
            status = "ok"
        return {"status": status, "available_mb": available_mb, "used_percent": memory.percent}
