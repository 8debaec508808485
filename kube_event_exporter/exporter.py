"""Engine: routes enriched events to the receiver registry.

Builds one sink per configured receiver, checks that the routing tree only
names registered receivers and, for each event, sends it to every receiver
the router selects.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from kube_event_exporter.models.config import ExporterConfig, ReceiverConfig
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.receivers.registry import ReceiverRegistry
from kube_event_exporter.routing.route import Router, validate_receivers
from kube_event_exporter.sinks import build_sink
from kube_event_exporter.sinks.base import Sink

_log = structlog.get_logger(component="exporter")

SinkFactory = Callable[[ReceiverConfig], Sink]


class Engine:
    """Router plus receiver registry, wired from configuration.

    Must be constructed inside a running event loop (receiver workers are
    started on registration).

    Raises:
        ConfigError: a sink cannot be built or the route names an unknown
            receiver. Sinks built before the failure are left to the
            caller's ``stop``.
    """

    def __init__(
        self,
        config: ExporterConfig,
        registry: ReceiverRegistry,
        sink_factory: SinkFactory = build_sink,
    ) -> None:
        self._registry = registry
        for receiver in config.receivers:
            registry.register(receiver.name, sink_factory(receiver))
        validate_receivers(config.route, registry.names)
        self._router = Router(config.route)

    @property
    def router(self) -> Router:
        return self._router

    def on_event(self, event: EnhancedEvent) -> None:
        receivers = self._router.route(event)
        if not receivers:
            _log.debug("event_not_routed", event=event.name, namespace=event.namespace, reason=event.reason)
            return
        for name in receivers:
            self._registry.send_event(name, event)

    async def stop(self) -> None:
        await self._registry.close()
