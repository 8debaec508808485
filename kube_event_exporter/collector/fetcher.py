"""Reads involved objects from the API server for the metadata caches.

Any kind can be the subject of an event, including custom resources, so
objects are resolved through the kubernetes-asyncio dynamic client using
the ``apiVersion`` and ``kind`` of the event's involved-object reference.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from kube_event_exporter.cache.metadata_cache import ObjectNotFoundError

if TYPE_CHECKING:
    from kube_event_exporter.models.events import InvolvedObject

_log = structlog.get_logger(component="collector.fetcher")


class RateLimiter:
    """Token bucket mirroring client-side QPS/burst throttling.

    ``qps <= 0`` disables limiting.
    """

    def __init__(self, qps: float, burst: int) -> None:
        self._qps = qps
        self._burst = max(burst, 1)
        self._tokens = float(self._burst)
        self._updated = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._qps > 0

    async def acquire(self) -> None:
        if not self.enabled:
            return
        async with self._lock:
            while True:
                now = time.monotonic()
                self._tokens = min(self._burst, self._tokens + (now - self._updated) * self._qps)
                self._updated = now
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep((1 - self._tokens) / self._qps)


def _is_not_found(exc: Exception) -> bool:
    return getattr(exc, "status", None) == 404


class KubeObjectFetcher:
    """ObjectFetcher backed by the kubernetes-asyncio dynamic client."""

    def __init__(self, api_client: Any, qps: float = 0.0, burst: int = 0) -> None:
        self._api_client = api_client
        self._dynamic: Any = None
        self._limiter = RateLimiter(qps, burst)

    async def _client(self) -> Any:
        if self._dynamic is None:
            from kubernetes_asyncio.dynamic import DynamicClient  # type: ignore[import-untyped]

            self._dynamic = await DynamicClient(self._api_client)
        return self._dynamic

    async def get_metadata(self, ref: InvolvedObject) -> dict[str, Any]:
        """Return ``metadata`` of the referenced object.

        Raises:
            ObjectNotFoundError: the API server answered 404.
        """
        from kubernetes_asyncio.dynamic.exceptions import NotFoundError  # type: ignore[import-untyped]

        await self._limiter.acquire()
        _log.debug("fetching_involved_object", kind=ref.kind, namespace=ref.namespace, name=ref.name)
        client = await self._client()
        try:
            resource = await client.resources.get(api_version=ref.api_version, kind=ref.kind)
            obj = await client.get(resource, name=ref.name, namespace=ref.namespace or None)
        except NotFoundError as exc:
            raise ObjectNotFoundError(f"{ref.kind}/{ref.namespace}/{ref.name}") from exc
        except Exception as exc:
            if _is_not_found(exc):
                raise ObjectNotFoundError(f"{ref.kind}/{ref.namespace}/{ref.name}") from exc
            raise

        body = obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)
        metadata: dict[str, Any] = body.get("metadata") or {}
        return metadata
