"""Shared fixtures for exporter integration tests.

Provides in-memory sinks, fake object fetchers and raw ``v1.Event``
documents so the pipeline can be exercised end to end without touching a
real Kubernetes cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from kube_event_exporter.cache.metadata_cache import ObjectNotFoundError
from kube_event_exporter.models.events import EnhancedEvent, InvolvedObject
from kube_event_exporter.observability.metrics import MetricsStore
from kube_event_exporter.sinks.base import Sink

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

_NOW = datetime.now(UTC)


def _rfc3339(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class RecordingSink(Sink):
    """Sink that records delivered events; optionally slow or failing."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        super().__init__()
        self.fail = fail
        self.delay = delay
        self.events: list[EnhancedEvent] = []
        self.closed = False
        self.sends_after_close = 0

    @property
    def sink_name(self) -> str:
        return "recording"

    async def send(self, event: EnhancedEvent) -> None:
        if self.closed:
            self.sends_after_close += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("sink unavailable")
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True


class FakeFetcher:
    """ObjectFetcher over an in-memory uid -> metadata map."""

    def __init__(self, objects: dict[str, dict[str, Any]] | None = None) -> None:
        self.objects = objects or {}
        self.calls: list[str] = []

    async def get_metadata(self, ref: InvolvedObject) -> dict[str, Any]:
        self.calls.append(ref.uid)
        if ref.uid not in self.objects:
            raise ObjectNotFoundError(ref.uid)
        return self.objects[ref.uid]


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def make_raw_event(
    name: str = "api-6f7d9c-x2kj",
    namespace: str = "default",
    reason: str = "BackOff",
    event_type: str = "Warning",
    kind: str = "Pod",
    count: int = 1,
    age_seconds: float = 0.0,
    uid: str = "",
) -> dict[str, Any]:
    """Create a raw ``v1.Event`` document as returned by the API server."""
    timestamp = _rfc3339(datetime.now(UTC) - timedelta(seconds=age_seconds))
    return {
        "metadata": {
            "name": f"{name}.{reason.lower()}",
            "namespace": namespace,
            "uid": uid or f"event-{name}-{reason}",
            "resourceVersion": "1",
        },
        "reason": reason,
        "message": f"{reason} for {name}",
        "type": event_type,
        "count": count,
        "firstTimestamp": timestamp,
        "lastTimestamp": timestamp,
        "source": {"component": "kubelet", "host": "node-1"},
        "involvedObject": {
            "kind": kind,
            "namespace": namespace,
            "name": name,
            "uid": f"uid-{name}",
            "apiVersion": "v1",
        },
    }


def make_event(name: str = "api", reason: str = "BackOff") -> EnhancedEvent:
    return EnhancedEvent(
        name=f"{name}.{reason.lower()}",
        namespace="default",
        message=f"{reason} for {name}",
        reason=reason,
        involved_object=InvolvedObject(kind="Pod", namespace="default", name=name, uid=f"uid-{name}"),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def metrics() -> MetricsStore:
    """Fresh MetricsStore on its own registry."""
    return MetricsStore(prefix="event_exporter_")


@pytest.fixture()
def sink_factory() -> Callable[..., RecordingSink]:
    return RecordingSink


@pytest.fixture()
def fetcher() -> FakeFetcher:
    """Fetcher knowing the default test Pod's labels and annotations."""
    return FakeFetcher(
        {
            "uid-api-6f7d9c-x2kj": {
                "labels": {"app": "api", "app.kubernetes.io/part-of": "shop"},
                "annotations": {"owner": "team-a", "kubernetes.io/psp": "restricted"},
            }
        }
    )


@pytest.fixture()
def raw_event() -> Callable[..., dict[str, Any]]:
    return make_raw_event


@pytest.fixture()
def event() -> Callable[..., EnhancedEvent]:
    return make_event
