"""Sink contract shared by every delivery channel.

Sink      -- ABC every sink must implement (``send`` / ``close``).
SinkOptions -- the ``deDot`` / ``layout`` options every built-in sink accepts.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kube_event_exporter.errors import ConfigError
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.sinks.layout import check_layout, render_layout


@dataclass(frozen=True)
class SinkOptions:
    """Sink-local event transformations.

    de_dot: replace ``.`` in label/annotation keys (``deDot``).
    layout: reshape the event into a caller-defined document (``layout``).
    """

    de_dot: bool = False
    layout: Mapping[str, Any] | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> SinkOptions:
        layout = raw.get("layout")
        if layout is not None and not isinstance(layout, Mapping):
            raise ConfigError(f"layout must be a mapping, got {type(layout).__name__}")
        if layout is not None:
            try:
                check_layout(layout)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        return cls(de_dot=bool(raw.get("deDot", False)), layout=layout)


class Sink(ABC):
    """Abstract base class for all sinks.

    ``send`` may block on I/O and raises on failure; the receiver worker
    logs and counts the failure. The event passed in is shared with other
    receivers and must not be mutated.
    """

    def __init__(self, options: SinkOptions | None = None) -> None:
        self._options = options or SinkOptions()

    @property
    @abstractmethod
    def sink_name(self) -> str:
        """Sink type identifier used in logs."""

    @abstractmethod
    async def send(self, event: EnhancedEvent) -> None:
        """Deliver *event*. Raise on failure."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. Best effort; the default does nothing."""

    def prepare(self, event: EnhancedEvent) -> Any:
        """Apply ``deDot`` and ``layout`` to a copy of *event* and return the document to emit."""
        if self._options.de_dot:
            event = event.dedot()
        document = event.to_dict()
        if self._options.layout is None:
            return document
        return render_layout(self._options.layout, document)
