"""Tests for KubeObjectFetcher and its client-side rate limiter."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from kube_event_exporter.cache.metadata_cache import ObjectNotFoundError
from kube_event_exporter.collector.fetcher import KubeObjectFetcher, RateLimiter
from kube_event_exporter.models.events import InvolvedObject


def _make_ref(namespace: str = "default") -> InvolvedObject:
    return InvolvedObject(kind="Deployment", namespace=namespace, name="api", uid="uid-api", api_version="apps/v1")


def _make_fetcher(get_result: object = None, get_error: Exception | None = None) -> tuple[KubeObjectFetcher, MagicMock]:
    dynamic = MagicMock()
    dynamic.resources.get = AsyncMock(return_value="deployments")
    dynamic.get = AsyncMock(return_value=get_result, side_effect=get_error)
    fetcher = KubeObjectFetcher(api_client=MagicMock())
    fetcher._dynamic = dynamic
    return fetcher, dynamic


def _make_obj(metadata: dict) -> MagicMock:
    obj = MagicMock()
    obj.to_dict.return_value = {"metadata": metadata, "spec": {}}
    return obj


class TestGetMetadata:
    async def test_returns_metadata(self) -> None:
        fetcher, dynamic = _make_fetcher(_make_obj({"name": "api", "labels": {"app": "api"}}))
        metadata = await fetcher.get_metadata(_make_ref())
        assert metadata["labels"] == {"app": "api"}
        dynamic.resources.get.assert_awaited_once_with(api_version="apps/v1", kind="Deployment")
        dynamic.get.assert_awaited_once_with("deployments", name="api", namespace="default")

    async def test_cluster_scoped_object_has_no_namespace(self) -> None:
        fetcher, dynamic = _make_fetcher(_make_obj({"name": "node-1"}))
        await fetcher.get_metadata(_make_ref(namespace=""))
        assert dynamic.get.await_args.kwargs["namespace"] is None

    async def test_404_maps_to_not_found(self) -> None:
        fetcher, _ = _make_fetcher(get_error=ApiException(status=404, reason="Not Found"))
        with pytest.raises(ObjectNotFoundError):
            await fetcher.get_metadata(_make_ref())

    async def test_other_errors_propagate(self) -> None:
        fetcher, _ = _make_fetcher(get_error=ApiException(status=403, reason="Forbidden"))
        with pytest.raises(ApiException):
            await fetcher.get_metadata(_make_ref())


class TestRateLimiter:
    async def test_disabled_when_qps_not_positive(self) -> None:
        limiter = RateLimiter(qps=0, burst=0)
        assert not limiter.enabled
        for _ in range(100):
            await limiter.acquire()

    async def test_burst_then_throttle(self) -> None:
        limiter = RateLimiter(qps=20, burst=2)
        start = time.monotonic()
        await limiter.acquire()
        await limiter.acquire()
        burst_elapsed = time.monotonic() - start
        await limiter.acquire()
        throttled_elapsed = time.monotonic() - start
        assert burst_elapsed < 0.04
        assert throttled_elapsed >= 0.04
