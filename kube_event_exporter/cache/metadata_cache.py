"""Negative-caching lookups of involved-object metadata.

Two instances run side by side: one for labels, one for annotations. Both
are keyed by the object's UID (names are reused across time, UIDs are not),
hold at most ``capacity`` entries in an ARCCache and never expire entries by
age.

A lookup that hits returns the stored value immediately, including a stored
"not found" marker. A miss calls the ObjectFetcher:

* success         -- the metadata is filtered, stored and returned
* not found       -- a negative entry is stored and None is returned
* any other error -- nothing is stored; MetadataLookupError is raised so the
                     next event for the same object retries the fetch
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from kube_event_exporter.cache.arc import ARCCache

if TYPE_CHECKING:
    from kube_event_exporter.models.events import InvolvedObject

_log = structlog.get_logger(component="cache.metadata")

DEFAULT_CAPACITY = 1024

# Annotation keys in these namespaces are control-plane internals.
_RESERVED_ANNOTATION_PREFIXES = ("kubernetes.io/", "k8s.io/")

_NOT_FOUND = object()


class ObjectNotFoundError(Exception):
    """The involved object no longer exists (HTTP 404)."""


class MetadataLookupError(Exception):
    """Fetching the involved object failed for a reason other than not-found."""

    def __init__(self, cache: str, ref: InvolvedObject, cause: Exception) -> None:
        super().__init__(f"{cache} lookup for {ref.kind}/{ref.namespace}/{ref.name} failed: {cause}")
        self.cache = cache
        self.cause = cause


class ObjectFetcher(Protocol):
    """Collaborator that reads an object's metadata from the API server."""

    async def get_metadata(self, ref: InvolvedObject) -> dict[str, Any]:
        """Return the object's ``metadata`` mapping.

        Raises ObjectNotFoundError when the object does not exist.
        """
        ...


def strip_reserved_annotations(annotations: dict[str, str]) -> dict[str, str]:
    return {
        key: value
        for key, value in annotations.items()
        if not any(prefix in key for prefix in _RESERVED_ANNOTATION_PREFIXES)
    }


class MetadataCache:
    """ARC-backed cache of one metadata field (labels or annotations).

    A single lock guards the ARC structure. It is never held while the
    fetcher runs.
    """

    def __init__(
        self,
        name: str,
        fetcher: ObjectFetcher,
        field: str,
        capacity: int = DEFAULT_CAPACITY,
        key_filter: Callable[[dict[str, str]], dict[str, str]] | None = None,
    ) -> None:
        self._name = name
        self._fetcher = fetcher
        self._field = field
        self._filter = key_filter
        self._cache = ARCCache(capacity)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    async def lookup(self, ref: InvolvedObject) -> dict[str, str] | None:
        """Return the cached metadata of *ref*, fetching it on a miss.

        Returns None when the object was not found.

        Raises:
            MetadataLookupError: the fetch failed for any other reason.
        """
        key = ref.uid
        if key:
            with self._lock:
                cached = self._cache.get(key, None)
            if cached is _NOT_FOUND:
                return None
            if cached is not None:
                return dict(cached)

        try:
            metadata = await self._fetcher.get_metadata(ref)
        except ObjectNotFoundError:
            # Events outlive their objects; remember the miss.
            _log.debug("involved_object_not_found", cache=self._name, kind=ref.kind, uid=key)
            self._store(key, _NOT_FOUND)
            return None
        except Exception as exc:
            raise MetadataLookupError(self._name, ref, exc) from exc

        values = {str(k): str(v) for k, v in (metadata.get(self._field) or {}).items()}
        if self._filter is not None:
            values = self._filter(values)
        self._store(key, values)
        return dict(values)

    def _store(self, key: str, value: object) -> None:
        # Objects without a UID cannot be told apart; they are always fetched.
        if not key:
            return
        with self._lock:
            self._cache.add(key, value)


def build_label_cache(fetcher: ObjectFetcher, capacity: int = DEFAULT_CAPACITY) -> MetadataCache:
    return MetadataCache("labels", fetcher, field="labels", capacity=capacity)


def build_annotation_cache(fetcher: ObjectFetcher, capacity: int = DEFAULT_CAPACITY) -> MetadataCache:
    return MetadataCache(
        "annotations",
        fetcher,
        field="annotations",
        capacity=capacity,
        key_filter=strip_reserved_annotations,
    )
