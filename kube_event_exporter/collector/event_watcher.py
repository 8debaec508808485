"""Cluster event source.

Lists ``v1.Event`` objects once, then watches from the list's
resourceVersion, behaving like an informer with add-only handling:

* every event seen for the first time (initial list, relist or ``ADDED``)
  goes through admission, enrichment and the handler
* updates of known events are ignored, deletions only forget the key
* a failed watch is counted and retried with exponential back-off; an
  expired resourceVersion (410 Gone) relists immediately

Notifications are processed one at a time on the watcher task, so events
reach the router in the order the API server delivered them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from kube_event_exporter.collector.admission import AdmissionFilter
from kube_event_exporter.collector.enricher import Enricher
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.observability.metrics import MetricsStore

_log = structlog.get_logger(component="collector.event_watcher")

EventHandler = Callable[[EnhancedEvent], None]

_BACKOFF_INITIAL = 1.0
_BACKOFF_MAX = 30.0
_WATCH_TIMEOUT_SECONDS = 300


class _ResourceExpired(Exception):
    """The watch resourceVersion is too old (HTTP 410)."""


def _event_key(raw: dict[str, Any]) -> str:
    metadata = raw.get("metadata") or {}
    return str(metadata.get("uid") or f"{metadata.get('namespace', '')}/{metadata.get('name', '')}")


class EventWatcher:
    """Feeds cluster events through the pipeline on a single task."""

    def __init__(
        self,
        core_api: Any,
        namespace: str,
        admission: AdmissionFilter,
        enricher: Enricher,
        handler: EventHandler,
        metrics: MetricsStore,
    ) -> None:
        self._api = core_api
        self._namespace = namespace
        self._admission = admission
        self._enricher = enricher
        self._handler = handler
        self._metrics = metrics
        self._known: set[str] = set()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="event-watcher")
        _log.info("event watcher started", namespace=self._namespace or "<all>")

    async def stop(self) -> None:
        """Stop producing notifications and wait for the watch task to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        _log.info("event watcher stopped")

    # ------------------------------------------------------------------
    # Per-event pipeline
    # ------------------------------------------------------------------

    async def process(self, raw: dict[str, Any]) -> None:
        """Admit, enrich and hand one raw event to the handler."""
        try:
            event = EnhancedEvent.from_raw(raw)
        except (TypeError, ValueError) as exc:
            _log.error("malformed event skipped", error=str(exc), key=_event_key(raw))
            return

        if self._admission.should_discard(event):
            return

        _log.debug(
            "Received event",
            msg=event.message,
            namespace=event.namespace,
            reason=event.reason,
            involved_object=event.involved_object.name,
        )
        self._metrics.events_sent.inc()

        enriched = await self._enricher.enrich(event)
        self._handler(enriched)

    # ------------------------------------------------------------------
    # List / watch loop
    # ------------------------------------------------------------------

    def _list_fn(self) -> tuple[Callable[..., Any], dict[str, Any]]:
        if self._namespace:
            return self._api.list_namespaced_event, {"namespace": self._namespace}
        return self._api.list_event_for_all_namespaces, {}

    async def _run(self) -> None:
        backoff = _BACKOFF_INITIAL
        while True:
            try:
                resource_version = await self._relist()
                backoff = _BACKOFF_INITIAL
                await self._watch(resource_version)
            except asyncio.CancelledError:
                raise
            except _ResourceExpired:
                _log.info("watch resourceVersion expired, relisting")
                continue
            except Exception as exc:
                if getattr(exc, "status", None) == 410:
                    _log.info("watch resourceVersion expired, relisting")
                    continue
                self._metrics.watch_errors.inc()
                _log.warning("event watch failed", error=str(exc), retry_in=backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _BACKOFF_MAX)

    async def _relist(self) -> str:
        list_fn, kwargs = self._list_fn()
        result = await list_fn(**kwargs)
        serialize = self._api.api_client.sanitize_for_serialization
        body = serialize(result)
        seen: set[str] = set()
        for item in body.get("items") or []:
            key = _event_key(item)
            seen.add(key)
            if key not in self._known:
                self._known.add(key)
                await self.process(item)
        # Keys that vanished while we were not watching.
        self._known &= seen
        return str((body.get("metadata") or {}).get("resourceVersion") or "")

    async def _watch(self, resource_version: str) -> None:
        from kubernetes_asyncio import watch  # type: ignore[import-untyped]

        list_fn, kwargs = self._list_fn()
        w = watch.Watch()
        async with w.stream(
            list_fn,
            resource_version=resource_version,
            timeout_seconds=_WATCH_TIMEOUT_SECONDS,
            **kwargs,
        ) as stream:
            async for notification in stream:
                await self._dispatch(notification)

    async def _dispatch(self, notification: dict[str, Any]) -> None:
        kind = notification.get("type")
        raw = notification.get("raw_object") or {}
        if kind == "ERROR":
            if raw.get("code") == 410:
                raise _ResourceExpired(raw.get("message", ""))
            raise RuntimeError(f"watch error: {raw.get('message', raw)}")

        key = _event_key(raw)
        if kind == "ADDED":
            if key in self._known:
                return
            self._known.add(key)
            await self.process(raw)
        elif kind == "MODIFIED":
            self._known.add(key)
        elif kind == "DELETED":
            self._known.discard(key)
