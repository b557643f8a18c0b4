"""
Prometheus metrics for the git activity monitor.
"""
from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry

HTTP_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class Metrics:
    """
    All metrics the service exports.

    Each instance owns its registry, so tests and multiple apps in one
    process never collide on metric names. Pipeline series carry the
    ``gitmonitor_`` prefix; HTTP and app series use generic names shared
    with other services behind the same dashboards.
    """

    def __init__(self, service_name: str = "gitmonitor", version: str = "0.1.0", registry=None):
        self.service_name = service_name
        self.version = version
        self.registry = registry or CollectorRegistry()
        r = self.registry

        # HTTP
        self.http_requests_total = Counter(
            "http_requests_total", "HTTP requests served",
            ["service", "method", "path", "status"], registry=r,
        )
        self.http_request_duration = Histogram(
            "http_request_duration_seconds", "HTTP request latency",
            ["service", "method", "path"], buckets=HTTP_LATENCY_BUCKETS, registry=r,
        )
        self.http_requests_active = Gauge(
            "http_requests_active", "HTTP requests in flight", registry=r,
        )

        # Process
        self.app_info = Info("app", "Build information", registry=r)
        self.app_info.info({"service": service_name, "version": version})
        self.app_up = Gauge("app_up", "1 while the service is up, 0 after shutdown", ["service", "version"], registry=r)
        self.app_up.labels(service=service_name, version=version).set(1)

        # Pipeline
        self.events_ingested_total = Counter(
            "gitmonitor_events_ingested_total", "Upstream events written to the store",
            ["event_type", "suspicious"], registry=r,
        )
        self.poll_failures_total = Counter(
            "gitmonitor_poll_failures_total", "Failed upstream fetch cycles",
            ["reason"], registry=r,
        )
        self.reports_generated_total = Counter(
            "gitmonitor_reports_generated_total", "Incident reports persisted",
            ["source"], registry=r,
        )
        self.subscribers_active = Gauge(
            "gitmonitor_subscribers_active", "Live stream subscribers", registry=r,
        )
        self.broadcast_messages_total = Counter(
            "gitmonitor_broadcast_messages_total", "Messages delivered to live subscribers",
            ["type"], registry=r,
        )
