"""Delivery sinks for the exporter.

Exports:
    Sink         -- Abstract base for all sink implementations.
    SinkOptions  -- deDot / layout options shared by the built-in sinks.
    StdoutSink   -- JSON lines on stdout.
    FileSink     -- JSON lines to a file (also registered as ``pipe``).
    WebhookSink  -- JSON POST to an HTTP endpoint via httpx.
    SINK_TYPES   -- Sink-type tags accepted in ``receivers`` entries.
    build_sink   -- Factory keyed by the receiver's sink-type tag.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import structlog

from kube_event_exporter.errors import ConfigError
from kube_event_exporter.sinks.base import Sink, SinkOptions
from kube_event_exporter.sinks.file import FileSink
from kube_event_exporter.sinks.stdout import StdoutSink
from kube_event_exporter.sinks.webhook import WebhookSink

if TYPE_CHECKING:
    from kube_event_exporter.models.config import ReceiverConfig

_log = structlog.get_logger(component="sinks")

__all__ = [
    "FileSink",
    "SINK_TYPES",
    "Sink",
    "SinkOptions",
    "StdoutSink",
    "WebhookSink",
    "build_sink",
]


def _build_stdout(cfg: Mapping[str, Any], options: SinkOptions) -> Sink:
    return StdoutSink(options=options)


def _build_file(cfg: Mapping[str, Any], options: SinkOptions) -> Sink:
    path = cfg.get("path")
    if not path:
        raise ConfigError("file sink requires 'path'")
    return FileSink(path=str(path), options=options)


def _build_webhook(cfg: Mapping[str, Any], options: SinkOptions) -> Sink:
    endpoint = cfg.get("endpoint")
    if not endpoint:
        raise ConfigError("webhook sink requires 'endpoint'")
    headers = {str(k): str(v) for k, v in (cfg.get("headers") or {}).items()}
    timeout = float(cfg.get("timeout", 10.0))
    return WebhookSink(endpoint=str(endpoint), headers=headers, timeout=timeout, options=options)


_FACTORIES: dict[str, Callable[[Mapping[str, Any], SinkOptions], Sink]] = {
    "stdout": _build_stdout,
    "file": _build_file,
    "pipe": _build_file,
    "webhook": _build_webhook,
}

SINK_TYPES = frozenset(_FACTORIES)


def build_sink(receiver: ReceiverConfig) -> Sink:
    """Build the sink for one ``receivers`` entry.

    Raises:
        ConfigError: unknown sink type or invalid sink settings.
    """
    factory = _FACTORIES.get(receiver.sink_type)
    if factory is None:
        raise ConfigError(f"receiver {receiver.name!r}: unknown sink type {receiver.sink_type!r}")
    options = SinkOptions.from_dict(receiver.sink_config)
    try:
        sink = factory(receiver.sink_config, options)
    except (OSError, ValueError) as exc:
        if isinstance(exc, ConfigError):
            raise
        raise ConfigError(f"receiver {receiver.name!r}: {exc}") from exc
    _log.info("sink_enabled", receiver=receiver.name, sink=sink.sink_name)
    return sink
