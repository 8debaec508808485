"""Tests for the metrics/health FastAPI application.

Uses hypothesis to probe arbitrary paths and validates that the app never
answers 500 for unknown routes.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from hypothesis import given, settings
from hypothesis import strategies as st

from kube_event_exporter import __version__
from kube_event_exporter.api import create_app
from kube_event_exporter.observability.metrics import MetricsStore

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _make_client(metrics: MetricsStore | None = None, healthy: bool = True) -> TestClient:
    return TestClient(create_app(metrics=metrics or MetricsStore(prefix="event_exporter_"), health=lambda: healthy))


# ---------------------------------------------------------------------------
# /metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_exposes_prefixed_counters(self) -> None:
        metrics = MetricsStore(prefix="event_exporter_")
        metrics.events_sent.inc(3)
        metrics.send_errors.labels(receiver="dump").inc()
        resp = _make_client(metrics).get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert "event_exporter_events_sent_total 3.0" in resp.text
        assert 'event_exporter_send_event_errors_total{receiver="dump"} 1.0' in resp.text

    def test_all_counters_declared(self) -> None:
        text = _make_client().get("/metrics").text
        for name in ("events_sent", "events_discarded", "watch_errors", "send_event_errors", "events_dropped"):
            assert f"# TYPE event_exporter_{name} counter" in text

    def test_stores_are_isolated(self) -> None:
        """Each MetricsStore owns its registry, so two stores never share counts."""
        first = MetricsStore(prefix="a_")
        second = MetricsStore(prefix="a_")
        first.watch_errors.inc()
        assert first.value("watch_errors") == 1
        assert second.value("watch_errors") == 0


# ---------------------------------------------------------------------------
# /healthz
# ---------------------------------------------------------------------------


class TestHealthz:
    def test_healthy(self) -> None:
        resp = _make_client(healthy=True).get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    def test_unhealthy(self) -> None:
        resp = _make_client(healthy=False).get("/healthz")
        assert resp.status_code == 503
        assert resp.json()["status"] == "unavailable"

    def test_no_health_check_means_healthy(self) -> None:
        client = TestClient(create_app(metrics=MetricsStore()))
        assert client.get("/healthz").status_code == 200


# ---------------------------------------------------------------------------
# Unknown paths
# ---------------------------------------------------------------------------


class TestUnknownPaths:
    def test_docs_disabled(self) -> None:
        client = _make_client()
        assert client.get("/docs").status_code == 404
        assert client.get("/openapi.json").status_code == 404

    @given(path=st.text(alphabet=st.characters(min_codepoint=97, max_codepoint=122), min_size=1, max_size=20))
    @settings(max_examples=30)
    def test_random_paths_never_500(self, path: str) -> None:
        resp = _make_client().get(f"/x-{path}")
        assert resp.status_code == 404
