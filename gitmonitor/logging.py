"""
structlog configuration for the monitor.

Every entry is a flat dict, for example:
{
    "event": "poller.suspicious_event",
    "ts": "2024-05-01T12:00:03.511Z",
    "level": "info",
    "service": "gitmonitor",
    "module": "poller",
    "func_name": "process_events",
    "lineno": 212,
    "id": "38123456789",
    "type": "PushEvent",
    "rules": ["force_push_protected_branch"]
}

Log lines written while serving a request also carry the request's
``correlation_id``, ``http_method`` and ``http_path``.
"""
import logging
from typing import Any
import structlog

SERVICE_NAME = "gitmonitor"

_CALLSITE = structlog.processors.CallsiteParameterAdder(
    {
        structlog.processors.CallsiteParameter.MODULE,
        structlog.processors.CallsiteParameter.FUNC_NAME,
        structlog.processors.CallsiteParameter.LINENO,
    }
)


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def setup_logging(json_output: bool = True, level: int = logging.INFO):
    """
    Configure structlog for the process.

    Args:
        json_output: JSON lines when True, human-readable console output otherwise
        level: Minimum level emitted
    """
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_name,
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.processors.add_log_level,
            _CALLSITE,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Standard-library loggers (uvicorn, httpx) print the bare message
    logging.basicConfig(format="%(message)s", level=level)
    for name in ("uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger():
    return structlog.get_logger()
