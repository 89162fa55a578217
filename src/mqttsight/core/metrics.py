"""
Prometheus metrics collection.

Metrics live in a private registry so several collectors can coexist
(tests, embedded use); the registry is served over HTTP only when a
metrics port is configured.
"""

from typing import Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Info, start_http_server

from mqttsight import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for MQTT Sight.

    Keep metrics simple,
    use in-memory counters, let Prometheus handle storage.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()

        self.service_info = Info(
            "mqttsight_service",
            "MQTT Sight service information",
            registry=self.registry,
        )
        self.service_info.info({
            "version": __version__,
            "service": "mqttsight",
        })

        # Ingestion metrics
        self.messages_received_total = Counter(
            "messages_received_total",
            "Total messages delivered by the broker",
            registry=self.registry,
        )

        self.messages_rejected_total = Counter(
            "messages_rejected_total",
            "Total messages rejected before queueing",
            ["reason"],
            registry=self.registry,
        )

        self.messages_dropped_total = Counter(
            "messages_dropped_total",
            "Total queued messages dropped on overflow",
            registry=self.registry,
        )

        self.entries_updated_total = Counter(
            "entries_updated_total",
            "Total state store updates",
            registry=self.registry,
        )

        self.queue_depth = Gauge(
            "ingest_queue_depth",
            "Messages waiting to be applied",
            registry=self.registry,
        )

        self.stored_entries = Gauge(
            "stored_entries",
            "Distinct topics held in the state store",
            registry=self.registry,
        )

        # Render metrics
        self.renders_total = Counter(
            "renders_total",
            "Total table renders",
            ["trigger"],
            registry=self.registry,
        )

        self.render_errors_total = Counter(
            "render_errors_total",
            "Rows replaced by a placeholder after a formatting error",
            registry=self.registry,
        )

        # Retained clearing
        self.retained_clears_total = Counter(
            "retained_clears_total",
            "Retained message clear acknowledgements",
            ["outcome"],
            registry=self.registry,
        )

    def record_received(self) -> None:
        self.messages_received_total.inc()

    def record_rejected(self, reason: str) -> None:
        self.messages_rejected_total.labels(reason=reason).inc()

    def record_dropped(self, count: int) -> None:
        if count > 0:
            self.messages_dropped_total.inc(count)

    def record_batch(self, updated: int, queue_depth: int, stored: int) -> None:
        """Record the outcome of one drain step."""
        if updated:
            self.entries_updated_total.inc(updated)
        self.queue_depth.set(queue_depth)
        self.stored_entries.set(stored)

    def record_render(self, trigger: str, errors: int = 0) -> None:
        self.renders_total.labels(trigger=trigger).inc()
        if errors:
            self.render_errors_total.inc(errors)

    def record_clear(self, success: bool) -> None:
        self.retained_clears_total.labels(outcome="success" if success else "failure").inc()

    def serve(self, port: int) -> None:
        """Expose the registry on an HTTP port."""
        start_http_server(port, registry=self.registry)
        logger.info("Metrics endpoint started", port=port)
