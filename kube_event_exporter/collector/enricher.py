"""Attach involved-object labels, annotations and cluster name to events."""

from __future__ import annotations

import structlog

from kube_event_exporter.cache.metadata_cache import MetadataCache, MetadataLookupError
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.observability.metrics import MetricsStore

_log = structlog.get_logger(component="collector.enricher")

# Lookups for these kinds fail routinely (short-lived or not discoverable);
# their failures are logged at debug level only.
TRANSIENT_KINDS = frozenset({"CustomResourceDefinition"})


class Enricher:
    def __init__(
        self,
        label_cache: MetadataCache,
        annotation_cache: MetadataCache,
        metrics: MetricsStore,
        cluster_name: str = "",
    ) -> None:
        self._label_cache = label_cache
        self._annotation_cache = annotation_cache
        self._metrics = metrics
        self._cluster_name = cluster_name

    async def enrich(self, event: EnhancedEvent) -> EnhancedEvent:
        """Return a copy of *event* carrying the involved object's metadata.

        A failed lookup leaves the corresponding field None; the event is
        never dropped because of it.
        """
        labels = await self._lookup(self._label_cache, event)
        annotations = await self._lookup(self._annotation_cache, event)
        return event.with_metadata(labels, annotations, cluster_name=self._cluster_name)

    async def _lookup(self, cache: MetadataCache, event: EnhancedEvent) -> dict[str, str] | None:
        involved = event.involved_object
        try:
            return await cache.lookup(involved)
        except MetadataLookupError as exc:
            self._metrics.metadata_lookup_errors.labels(cache=cache.name).inc()
            log_fn = _log.debug if involved.kind in TRANSIENT_KINDS else _log.error
            log_fn(
                f"Cannot list {cache.name} of the object",
                kind=involved.kind,
                namespace=involved.namespace,
                name=involved.name,
                error=str(exc.cause),
            )
            return None
