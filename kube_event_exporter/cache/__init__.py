"""Cache layer for the exporter.

Caches the labels and annotations of involved objects so that a burst of
events about the same object costs one API call.

Submodules:
    arc            -- Adaptive replacement cache (recency + frequency lists).
    metadata_cache -- Negative-caching metadata lookups keyed by object UID.
"""

from kube_event_exporter.cache.arc import ARCCache
from kube_event_exporter.cache.metadata_cache import (
    MetadataCache,
    MetadataLookupError,
    ObjectFetcher,
    ObjectNotFoundError,
    build_annotation_cache,
    build_label_cache,
)

__all__ = [
    "ARCCache",
    "MetadataCache",
    "MetadataLookupError",
    "ObjectFetcher",
    "ObjectNotFoundError",
    "build_annotation_cache",
    "build_label_cache",
]
