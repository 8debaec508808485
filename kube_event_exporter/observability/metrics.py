"""Prometheus counters for the event pipeline.

The metric names carry the configurable ``metricsNamePrefix``, so the
counters are created per MetricsStore on a dedicated registry instead of at
import time on the global one.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

__all__ = ["CONTENT_TYPE_LATEST", "MetricsStore"]


class MetricsStore:
    """Counters shared by the watcher, enricher and receiver registry."""

    def __init__(self, prefix: str = "", registry: CollectorRegistry | None = None) -> None:
        self.prefix = prefix
        self.registry = registry or CollectorRegistry()

        self.events_sent = Counter(
            f"{prefix}events_sent",
            "The total number of events processed",
            registry=self.registry,
        )
        self.events_discarded = Counter(
            f"{prefix}events_discarded",
            "The total number of events discarded because of being older than the maxEventAgeSeconds specified",
            registry=self.registry,
        )
        self.watch_errors = Counter(
            f"{prefix}watch_errors",
            "The total number of errors received from the event watch",
            registry=self.registry,
        )
        self.send_errors = Counter(
            f"{prefix}send_event_errors",
            "The total number of send event errors",
            ["receiver"],
            registry=self.registry,
        )
        self.events_dropped = Counter(
            f"{prefix}events_dropped",
            "The total number of events dropped because a receiver queue was full or unknown",
            ["receiver"],
            registry=self.registry,
        )
        self.metadata_lookup_errors = Counter(
            f"{prefix}metadata_lookup_errors",
            "The total number of failed involved-object metadata lookups",
            ["cache"],
            registry=self.registry,
        )

    def render(self) -> bytes:
        """Prometheus text exposition of every counter in this store."""
        return generate_latest(self.registry)

    def value(self, name: str, **labels: str) -> float:
        """Current value of a counter sample, 0.0 when absent. Used by tests and health checks."""
        sample = self.registry.get_sample_value(f"{self.prefix}{name}_total", labels or None)
        return sample or 0.0
