"""Prometheus metrics for webhook ingestion and notification fan-out."""

import logging

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram
from prometheus_client import generate_latest

logger = logging.getLogger(__name__)


class RelayMetrics:
    """Counters and histograms for the relay.

    Bound to its own registry so several app instances (tests) never collide
    on metric names in the process-wide default registry.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.webhook_requests_total = Counter(
            "streamrelay_webhook_requests_total",
            "Inbound EventSub webhook requests by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.rate_limited_total = Counter(
            "streamrelay_rate_limited_total",
            "Requests rejected by a rate limiter",
            ["limiter"],
            registry=self.registry,
        )

        self.notifications_total = Counter(
            "streamrelay_notifications_total",
            "Per-recipient notification outcomes",
            ["outcome"],
            registry=self.registry,
        )

        self.fanouts_total = Counter(
            "streamrelay_fanouts_total",
            "stream.online fan-outs by outcome",
            ["outcome"],
            registry=self.registry,
        )

        self.fanout_duration_seconds = Histogram(
            "streamrelay_fanout_duration_seconds",
            "Wall time of one event's fan-out",
            buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

    def record_webhook(self, outcome: str) -> None:
        self.webhook_requests_total.labels(outcome=outcome).inc()

    def record_rate_limited(self, limiter: str) -> None:
        self.rate_limited_total.labels(limiter=limiter).inc()

    def record_notification(self, outcome: str) -> None:
        self.notifications_total.labels(outcome=outcome).inc()

    def record_fanout(self, outcome: str, duration: float | None = None) -> None:
        self.fanouts_total.labels(outcome=outcome).inc()
        if duration is not None:
            self.fanout_duration_seconds.observe(duration)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current value of a sample, 0.0 when it has not been recorded yet."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def export(self) -> bytes:
        return generate_latest(self.registry)
