"""Receiver registry: one bounded queue and one worker task per receiver.

ReceiverRegistry -- Binds receiver names to sinks and fans events out to
                    them without ever calling a sink on the caller's task.

Backpressure policy: ``send_event`` uses ``put_nowait``. When a receiver's
queue is full the event is dropped for that receiver, logged and counted in
``events_dropped{receiver}``; the watcher is never blocked by a slow sink.

Failure isolation: a sink error is logged and counted in
``send_event_errors{receiver}``. It is not retried and does not affect other
receivers or later events.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.observability.metrics import MetricsStore
from kube_event_exporter.sinks.base import Sink

_log = structlog.get_logger(component="receivers.registry")

DEFAULT_QUEUE_SIZE = 1024

# Queued behind pending events by close(); tells a worker to exit.
_STOP = object()


@dataclass
class _Registration:
    name: str
    sink: Sink
    queue: asyncio.Queue[object]
    worker: asyncio.Task[None]


class ReceiverRegistry:
    """Per-receiver delivery queues with dedicated workers.

    * ``register`` must be called from a running event loop; it starts the
      receiver's worker.
    * ``send_event`` never awaits. FIFO order is kept within a receiver;
      nothing is coordinated across receivers.
    * ``close`` drains every queue, joins every worker, then closes every
      sink, also when the drain deadline expires. Calling it again is a
      no-op.
    """

    def __init__(self, metrics: MetricsStore, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        if queue_size <= 0:
            raise ValueError(f"queue_size must be positive, got {queue_size}")
        self._metrics = metrics
        self._queue_size = queue_size
        self._registrations: dict[str, _Registration] = {}
        self._closed = False

    @property
    def names(self) -> list[str]:
        return list(self._registrations)

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self, name: str) -> int:
        """Number of events waiting in *name*'s queue."""
        return self._registrations[name].queue.qsize()

    def register(self, name: str, sink: Sink) -> None:
        if self._closed:
            raise RuntimeError("cannot register a receiver on a closed registry")
        if name in self._registrations:
            raise ValueError(f"receiver {name!r} is already registered")
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=self._queue_size)
        worker = asyncio.create_task(self._drain(name, sink, queue), name=f"receiver-{name}")
        self._registrations[name] = _Registration(name=name, sink=sink, queue=queue, worker=worker)
        _log.info("receiver_registered", receiver=name, sink=sink.sink_name, queue_size=self._queue_size)

    def send_event(self, name: str, event: EnhancedEvent) -> None:
        """Enqueue *event* for receiver *name*. Never blocks, never raises."""
        if self._closed:
            _log.debug("event_after_close_ignored", receiver=name, event=event.name)
            return
        registration = self._registrations.get(name)
        if registration is None:
            _log.error("unknown_receiver", receiver=name, event=event.name)
            self._metrics.events_dropped.labels(receiver=name).inc()
            return
        try:
            registration.queue.put_nowait(event)
        except asyncio.QueueFull:
            _log.warning(
                "receiver_queue_full_event_dropped",
                receiver=name,
                queue_size=self._queue_size,
                event=event.name,
                namespace=event.namespace,
            )
            self._metrics.events_dropped.labels(receiver=name).inc()

    async def close(self, timeout: float | None = None) -> None:
        """Deliver everything already queued, stop the workers, close the sinks.

        When the drain takes longer than *timeout* seconds the workers are
        cancelled and the events still queued are dropped and counted. Every
        sink is closed either way.
        """
        if self._closed:
            return
        self._closed = True

        try:
            try:
                await asyncio.wait_for(self._drain_all(), timeout=timeout)
            except TimeoutError:
                _log.warning("receiver_drain_timed_out", timeout=timeout)
                await self._abort_workers()
        finally:
            for registration in self._registrations.values():
                try:
                    await registration.sink.close()
                except Exception as exc:
                    _log.error("sink_close_failed", receiver=registration.name, error=str(exc))
            _log.info("receivers_closed", receivers=len(self._registrations))

    async def _drain_all(self) -> None:
        for registration in self._registrations.values():
            await registration.queue.put(_STOP)
        await asyncio.gather(
            *(r.worker for r in self._registrations.values()),
            return_exceptions=True,
        )

    async def _abort_workers(self) -> None:
        for registration in self._registrations.values():
            registration.worker.cancel()
        await asyncio.gather(
            *(r.worker for r in self._registrations.values()),
            return_exceptions=True,
        )
        for registration in self._registrations.values():
            abandoned = 0
            while not registration.queue.empty():
                if registration.queue.get_nowait() is not _STOP:
                    abandoned += 1
            if abandoned:
                self._metrics.events_dropped.labels(receiver=registration.name).inc(abandoned)
                _log.warning("receiver_events_abandoned", receiver=registration.name, events=abandoned)

    async def _drain(self, name: str, sink: Sink, queue: asyncio.Queue[object]) -> None:
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                await self._deliver(name, sink, item)  # type: ignore[arg-type]
            finally:
                queue.task_done()

    async def _deliver(self, name: str, sink: Sink, event: EnhancedEvent) -> None:
        try:
            await sink.send(event)
        except Exception as exc:  # noqa: BLE001
            self._metrics.send_errors.labels(receiver=name).inc()
            _log.error(
                "Cannot send event",
                receiver=name,
                sink=sink.sink_name,
                event=event.name,
                namespace=event.namespace,
                error=str(exc),
            )
            return
        _log.debug("event_sent", receiver=name, sink=sink.sink_name, event=event.name)
