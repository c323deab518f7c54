"""
Process-wide metrics registry.

Counters and gauges live in a dedicated ``CollectorRegistry`` so the
exposition only carries gateway series. The lifetime latency mean needs a
running sum and count, which are guarded by the registry's single lock.
"""

import threading
import time

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    disable_created_metrics,
    generate_latest,
)
from prometheus_client.core import Metric

CONTENT_TYPE = "text/plain; charset=utf-8"

# Only the documented series are exposed; no per-counter *_created samples.
disable_created_metrics()


class ProviderCheckoutCollector:
    """
    Checkouts per provider, exposed under the bare family name
    ``paylink_checkouts_by_provider`` (no ``_total`` suffix on the samples).
    """

    name = "paylink_checkouts_by_provider"

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self._counts: dict[str, int] = {}

    def inc(self, provider: str) -> None:
        with self._lock:
            self._counts[provider] = self._counts.get(provider, 0) + 1

    def collect(self):
        family = Metric(self.name, "Checkouts by provider", "counter")
        with self._lock:
            counts = sorted(self._counts.items())
        for provider, count in counts:
            family.add_sample(self.name, {"provider": provider}, float(count))
        yield family


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latency_total_ms = 0.0
        self._latency_count = 0
        self._started = time.monotonic()

        self.registry = CollectorRegistry(auto_describe=True)
        self.requests = Counter(
            "paylink_requests", "Total number of API requests", ["status"], registry=self.registry
        )
        self.checkouts = Counter(
            "paylink_checkouts", "Total checkouts created", registry=self.registry
        )
        self.checkouts_by_provider = ProviderCheckoutCollector(self._lock)
        self.registry.register(self.checkouts_by_provider)
        self.webhooks = Counter(
            "paylink_webhooks", "Total webhooks", ["status"], registry=self.registry
        )
        latency = Gauge(
            "paylink_latency_avg_ms", "Average API request latency in milliseconds", registry=self.registry
        )
        latency.set_function(self.average_latency_ms)
        uptime = Gauge(
            "paylink_uptime_seconds", "Time since process start", registry=self.registry
        )
        uptime.set_function(lambda: time.monotonic() - self._started)

        for status in ("success", "failed"):
            self.requests.labels(status=status)
        for status in ("received", "processed", "failed"):
            self.webhooks.labels(status=status)

    def record_request(self, success: bool, duration_ms: float) -> None:
        self.requests.labels(status="success" if success else "failed").inc()
        with self._lock:
            self._latency_total_ms += duration_ms
            self._latency_count += 1

    def average_latency_ms(self) -> float:
        with self._lock:
            if not self._latency_count:
                return 0.0
            return self._latency_total_ms / self._latency_count

    def record_checkout(self, provider: str) -> None:
        self.checkouts.inc()
        self.checkouts_by_provider.inc(provider)

    def record_webhook(self, status: str) -> None:
        """status is one of received, processed, failed."""
        self.webhooks.labels(status=status).inc()

    def value(self, name: str, **labels: str) -> float:
        return self.registry.get_sample_value(name, labels) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)


metrics = MetricsRegistry()
