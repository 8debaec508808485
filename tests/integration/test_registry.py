"""Integration tests for the ReceiverRegistry.

Tests cover: per-receiver delivery, failure isolation, FIFO order,
queue-full drops, unknown receivers, and drain-then-close shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.observability.metrics import MetricsStore
from kube_event_exporter.receivers import ReceiverRegistry

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _settle(registry: ReceiverRegistry, *names: str, timeout: float = 2.0) -> None:
    """Wait until every named receiver's queue is empty and its worker idle."""

    async def _wait() -> None:
        for name in names:
            await registry._registrations[name].queue.join()

    await asyncio.wait_for(_wait(), timeout=timeout)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestDelivery:
    async def test_event_reaches_sink(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        sink = sink_factory()
        registry.register("dump", sink)
        registry.send_event("dump", event())
        await _settle(registry, "dump")
        assert [e.name for e in sink.events] == ["api.backoff"]
        await registry.close()

    async def test_order_preserved_within_receiver(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        sink = sink_factory()
        registry.register("dump", sink)
        for i in range(20):
            registry.send_event("dump", event(name=f"pod-{i}"))
        await registry.close()
        assert [e.involved_object.name for e in sink.events] == [f"pod-{i}" for i in range(20)]

    async def test_failing_sink_does_not_block_other_receiver(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        broken = sink_factory(fail=True)
        healthy = sink_factory()
        registry.register("broken", broken)
        registry.register("healthy", healthy)

        shared = event()
        registry.send_event("broken", shared)
        registry.send_event("healthy", shared)
        registry.send_event("broken", event(name="second"))
        await registry.close()

        assert healthy.events == [shared]
        assert metrics.value("send_event_errors", receiver="broken") == 2
        assert metrics.value("send_event_errors", receiver="healthy") == 0

    async def test_slow_sink_does_not_delay_fast_receiver(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        slow = sink_factory(delay=0.5)
        fast = sink_factory()
        registry.register("slow", slow)
        registry.register("fast", fast)
        registry.send_event("slow", event())
        registry.send_event("fast", event())
        await _settle(registry, "fast", timeout=0.3)
        assert len(fast.events) == 1
        assert slow.events == []
        await registry.close()
        assert len(slow.events) == 1


# ---------------------------------------------------------------------------
# Backpressure and misrouting
# ---------------------------------------------------------------------------


class TestDrops:
    async def test_queue_full_drops_and_counts(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics, queue_size=2)
        sink = sink_factory()
        registry.register("dump", sink)
        # No await in between: the worker has not run yet, so the queue fills.
        for i in range(5):
            registry.send_event("dump", event(name=f"pod-{i}"))
        assert registry.pending("dump") == 2
        assert metrics.value("events_dropped", receiver="dump") == 3
        await registry.close()
        assert [e.involved_object.name for e in sink.events] == ["pod-0", "pod-1"]

    async def test_unknown_receiver_is_counted(self, metrics: MetricsStore, event: Callable[..., EnhancedEvent]) -> None:
        registry = ReceiverRegistry(metrics)
        registry.send_event("ghost", event())
        assert metrics.value("events_dropped", receiver="ghost") == 1
        await registry.close()

    async def test_duplicate_registration_rejected(self, metrics: MetricsStore, sink_factory: Callable) -> None:
        registry = ReceiverRegistry(metrics)
        registry.register("dump", sink_factory())
        with pytest.raises(ValueError):
            registry.register("dump", sink_factory())
        await registry.close()

    def test_non_positive_queue_size_rejected(self, metrics: MetricsStore) -> None:
        with pytest.raises(ValueError):
            ReceiverRegistry(metrics, queue_size=0)


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestClose:
    async def test_close_drains_queued_events_before_closing_sinks(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        sink = sink_factory(delay=0.01)
        registry.register("dump", sink)
        for i in range(10):
            registry.send_event("dump", event(name=f"pod-{i}"))
        await registry.close()
        assert len(sink.events) == 10
        assert sink.closed
        assert sink.sends_after_close == 0

    async def test_no_sends_after_close(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        sink = sink_factory()
        registry.register("dump", sink)
        await registry.close()
        registry.send_event("dump", event())
        await asyncio.sleep(0.05)
        assert sink.events == []
        assert sink.sends_after_close == 0
        assert registry.closed

    async def test_drain_deadline_still_closes_hanging_sink(
        self, metrics: MetricsStore, sink_factory: Callable, event: Callable[..., EnhancedEvent]
    ) -> None:
        registry = ReceiverRegistry(metrics)
        hanging = sink_factory(delay=3600)
        healthy = sink_factory()
        registry.register("hanging", hanging)
        registry.register("healthy", healthy)
        for i in range(3):
            registry.send_event("hanging", event(name=f"pod-{i}"))
        registry.send_event("healthy", event())
        # Let the hanging worker pick up pod-0.
        await asyncio.sleep(0.01)

        await asyncio.wait_for(registry.close(timeout=0.2), timeout=2.0)

        assert hanging.closed
        assert healthy.closed
        assert len(healthy.events) == 1
        assert metrics.value("events_dropped", receiver="hanging") == 2
        assert metrics.value("events_dropped", receiver="healthy") == 0
        await registry.close()

    async def test_close_is_idempotent(self, metrics: MetricsStore, sink_factory: Callable) -> None:
        registry = ReceiverRegistry(metrics)
        registry.register("dump", sink_factory())
        await registry.close()
        await registry.close()

    async def test_register_after_close_rejected(self, metrics: MetricsStore, sink_factory: Callable) -> None:
        registry = ReceiverRegistry(metrics)
        await registry.close()
        with pytest.raises(RuntimeError):
            registry.register("dump", sink_factory())
