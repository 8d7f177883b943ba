from __future__ import annotations

import structlog
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest


KNOWN_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "DELETE", "CONNECT", "OPTIONS", "TRACE", "PATCH"})
OTHER_METHOD = "OTHER"

# Declared once; never derived from observed values.
LATENCY_BUCKETS = (0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def method_label(method: str) -> str:
    upper = (method or "").upper()
    return upper if upper in KNOWN_METHODS else OTHER_METHOD


def status_class(status: int) -> str:
    try:
        code = int(status)
    except (TypeError, ValueError):
        return "unknown"
    if 100 <= code <= 599:
        return f"{code // 100}xx"
    return "unknown"


class MetricsRecorder:
    """Process-wide request counters exposed in the Prometheus text format.

    One instance is created at startup and shared by the echo and metrics apps.
    Labels are limited to the bucketed method and the status class, so the series
    count stays fixed no matter what clients send. The request path is never a
    label.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry(auto_describe=True)
        self.requests_total = Counter(
            "echo_requests",
            "Total echoed HTTP requests",
            registry=self.registry,
        )
        self.requests_by_method = Counter(
            "echo_requests_by_method",
            "Echoed HTTP requests by method",
            ["method"],
            registry=self.registry,
        )
        self.requests_by_status = Counter(
            "echo_requests_by_status",
            "Echoed HTTP requests by response status class",
            ["status_class"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "echo_request_duration_seconds",
            "Echo request latency (s)",
            ["method"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

    def record(self, method: str, path: str, status: int, duration: float) -> None:
        """Count one completed request. The path is never a label. Never raises."""
        _ = path
        try:
            label = method_label(method)
            self.requests_total.inc()
            self.requests_by_method.labels(method=label).inc()
            self.requests_by_status.labels(status_class=status_class(status)).inc()
            self.request_duration.labels(method=label).observe(max(float(duration), 0.0))
        except Exception:  # noqa: BLE001
            structlog.get_logger("metrics").debug("metrics_record_failed", exc_info=True)

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST

