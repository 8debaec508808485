"""Application bootstrap for the exporter.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → validation → metrics → K8s client
              → engine (sinks + receivers) → caches + watcher
              → watcher start or leader election → metrics endpoint

Any failure before the watcher is started aborts startup: nothing of the
pipeline keeps running and the process exits non-zero.

Shutdown is graceful and happens in reverse order: the event source stops
first, then every receiver drains its queue and closes its sink.
"""

from __future__ import annotations

import asyncio
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kube_event_exporter.config import read_config, validate_config
from kube_event_exporter.errors import ConfigError
from kube_event_exporter.models.config import ExporterConfig
from kube_event_exporter.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15
DEFAULT_METRICS_ADDRESS = ":2112"


class _StartupError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def parse_address(address: str) -> tuple[str, int]:
    """Split ``[host]:port`` into (host, port); an empty host listens on all interfaces."""
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"metrics address must be [host]:port, got {address!r}")
    try:
        port_number = int(port)
    except ValueError as exc:
        raise ValueError(f"invalid port in metrics address {address!r}") from exc
    return host.strip("[]") or "0.0.0.0", port_number


class ExporterApp:
    """Application root. Owns every component and coordinates their lifecycle.

    ``stop()`` is safe to call on an app that was never started or is
    already stopped.
    """

    def __init__(self, config_path: str | Path, metrics_address: str = DEFAULT_METRICS_ADDRESS) -> None:
        self.config_path = Path(config_path)
        self.metrics_address = metrics_address
        self.config: ExporterConfig | None = None

        self._metrics: Any = None
        self._api_client: Any = None
        self._engine: Any = None
        self._registry: Any = None
        self._watcher: Any = None
        self._elector: Any = None
        self._http_server: Any = None
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._stopped = False
        self._shutdown = asyncio.Event()
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    def request_shutdown(self) -> None:
        """Ask ``main()`` to stop the app (signal or lost leadership)."""
        self._shutdown.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises ConfigError or _StartupError; main() turns both into a
        non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        config = read_config(self.config_path)

        # --- 2. Logging -------------------------------------------------
        setup_logging(config.log_level, config.log_format)
        self._log = get_logger("app")
        validate_config(config)
        self.config = config
        self._log.info("exporter starting", version=_exporter_version(), config=str(self.config_path))

        # --- 3. Metrics -------------------------------------------------
        from kube_event_exporter.observability.metrics import MetricsStore

        self._metrics = MetricsStore(prefix=config.metrics_name_prefix)

        # --- 4. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 5. Engine (sinks + receivers) -------------------------------
        await self._start_engine()

        # --- 6. Watcher (caches, enricher, admission) --------------------
        await self._build_watcher()

        # --- 7. Event source, directly or behind leader election ---------
        await self._start_event_source()

        # --- 8. Metrics endpoint -----------------------------------------
        await self._start_http()

        self._running = True
        self._log.info("exporter started", metrics_address=self.metrics_address)

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _StartupError("k8s_client", exc) from exc

    async def _start_engine(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from kube_event_exporter.exporter import Engine
        from kube_event_exporter.receivers.registry import ReceiverRegistry

        self._registry = ReceiverRegistry(self._metrics, queue_size=self.config.receiver_queue_size)
        self._engine = Engine(self.config, self._registry)
        self._log.info("engine started", receivers=self._registry.names)

    async def _build_watcher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from kube_event_exporter.cache import build_annotation_cache, build_label_cache
            from kube_event_exporter.collector import (
                AdmissionFilter,
                Enricher,
                EventWatcher,
                KubeObjectFetcher,
            )

            fetcher = KubeObjectFetcher(
                self._api_client,
                qps=self.config.kube_qps,
                burst=self.config.kube_burst,
            )
            enricher = Enricher(
                label_cache=build_label_cache(fetcher),
                annotation_cache=build_annotation_cache(fetcher),
                metrics=self._metrics,
                cluster_name=self.config.cluster_name,
            )
            admission = AdmissionFilter(self.config.max_event_age_seconds, self._metrics)
            self._watcher = EventWatcher(
                core_api=k8s_client.CoreV1Api(self._api_client),
                namespace=self.config.namespace,
                admission=admission,
                enricher=enricher,
                handler=self._engine.on_event,
                metrics=self._metrics,
            )
        except Exception as exc:
            raise _StartupError("watcher", exc) from exc

    async def _start_event_source(self) -> None:
        assert self._log is not None
        assert self.config is not None
        election = self.config.leader_election
        if not election.enabled:
            await self._watcher.start()
            return

        from kube_event_exporter.collector.leader import LeaderElector

        async def _on_lost() -> None:
            self.request_shutdown()

        try:
            self._elector = LeaderElector(
                self._api_client,
                lease_name=election.leader_election_id,
                namespace=election.namespace,
                on_started=self._watcher.start,
                on_stopped=_on_lost,
            )
            await self._elector.start()
        except Exception as exc:
            raise _StartupError("leader_election", exc) from exc

    async def _start_http(self) -> None:
        """Serve /metrics and /healthz with uvicorn."""
        assert self._log is not None
        try:
            import uvicorn  # type: ignore[import-untyped]

            from kube_event_exporter.api import create_app

            host, port = parse_address(self.metrics_address)
            fastapi_app = create_app(metrics=self._metrics, health=lambda: self._running)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host=host,
                port=port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="metrics-server")
            self._background_tasks.append(task)
            self._http_server = server
            self._log.info("metrics endpoint started", host=host, port=port)
        except Exception as exc:
            raise _StartupError("metrics_endpoint", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop the event source, drain every receiver, then release clients."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        log = self._log or get_logger("app")
        log.info("exporter shutting down")

        await self._stop_component("leader_election", self._elector)
        await self._stop_component("watcher", self._watcher)
        if self._registry is not None:
            # Drains every receiver; also covers sinks registered before an Engine failure.
            try:
                await self._registry.close(timeout=_SHUTDOWN_GRACE_SECONDS)
            except Exception as exc:
                log.error("receiver close raised an error", error=str(exc))

        if self._http_server is not None:
            self._http_server.should_exit = True
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_k8s_client()
        log.info("Exiting")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component, logging instead of raising."""
        if component is None:
            return
        log = self._log or get_logger("app")
        try:
            await asyncio.wait_for(component.stop(), timeout=_SHUTDOWN_GRACE_SECONDS)  # type: ignore[attr-defined]
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        if self._api_client is None:
            return
        try:
            await self._api_client.close()
        except Exception as exc:
            (self._log or get_logger("app")).debug("k8s client close raised (non-fatal)", error=str(exc))


def _exporter_version() -> str:
    from kube_event_exporter import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config_path: str | Path, metrics_address: str = DEFAULT_METRICS_ADDRESS) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = ExporterApp(config_path, metrics_address)
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        get_logger("app").info("Received signal to exit", signal=sig.name)
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal, sig)

    try:
        await app.start()
        await app.wait_for_shutdown()
    except ConfigError as exc:
        get_logger("app").critical("invalid configuration", error=str(exc))
        raise SystemExit(1) from exc
    except _StartupError as exc:
        get_logger("app").critical("fatal startup error", component=exc.component, error=str(exc.cause))
        raise SystemExit(1) from exc
    finally:
        await app.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
