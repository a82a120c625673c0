"""
Shared metrics configuration for the Vehicle Cache service.
"""

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, generate_latest
from typing import Dict, Any, Optional
import time
from contextlib import contextmanager


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_refresh_metrics()

    def _setup_refresh_metrics(self):
        """Set up refresh-loop and document-serving metrics."""
        self._metrics["vc_refreshes_total"] = Counter(
            "vc_refreshes_total",
            "Object store refreshes by key",
            ["key"],
            registry=self.registry
        )

        self._metrics["vc_refresh_failures_total"] = Counter(
            "vc_refresh_failures_total",
            "Failed object store refreshes by key",
            ["key"],
            registry=self.registry
        )

        self._metrics["vc_refresh_duration_seconds"] = Histogram(
            "vc_refresh_duration_seconds",
            "Time spent checking and downloading a single object",
            ["key"],
            registry=self.registry
        )

        self._metrics["vc_stale_fallbacks_total"] = Counter(
            "vc_stale_fallbacks_total",
            "Vehicles placeholder publications after the feed went stale",
            ["track"],
            registry=self.registry
        )

        self._metrics["vc_staleness_passes"] = Gauge(
            "vc_staleness_passes",
            "Consecutive polling passes without any document change",
            ["track"],
            registry=self.registry
        )

        self._metrics["vc_document_requests_total"] = Counter(
            "vc_document_requests_total",
            "Document requests by track, document and status",
            ["track", "document", "status"],
            registry=self.registry
        )

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_refresh(self, key: str):
        self._metrics["vc_refreshes_total"].labels(key=key).inc()

    def record_refresh_failure(self, key: str):
        self._metrics["vc_refresh_failures_total"].labels(key=key).inc()
        self.record_error("refresh_failed")

    def record_stale_fallback(self, track: str, passes: int):
        self._metrics["vc_stale_fallbacks_total"].labels(track=track).inc()
        self.set_gauge("vc_staleness_passes", passes, track=track)

    def record_document_request(self, track: str, document: str, status_code: int):
        self._metrics["vc_document_requests_total"].labels(
            track=track,
            document=document,
            status=str(status_code)
        ).inc()

    @contextmanager
    def time_operation(self, operation_name: str, **labels):
        """Context manager to time an operation."""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            if operation_name in self._metrics:
                self._metrics[operation_name].labels(**labels).observe(duration)

    def set_gauge(self, metric_name: str, value: float, **labels):
        """Set a gauge metric value."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).set(value)

    def sample(self, metric_name: str, **labels) -> Optional[float]:
        """Read back a sample value from the registry."""
        return self.registry.get_sample_value(metric_name, labels)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
