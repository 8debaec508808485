"""Console sink: one JSON document per line on stdout."""

from __future__ import annotations

import json
import sys
from typing import TextIO

from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.sinks.base import Sink, SinkOptions


class StdoutSink(Sink):
    """Writes events as JSON lines to stdout (or the given stream)."""

    def __init__(self, options: SinkOptions | None = None, stream: TextIO | None = None) -> None:
        super().__init__(options)
        self._stream = stream

    @property
    def sink_name(self) -> str:
        return "stdout"

    async def send(self, event: EnhancedEvent) -> None:
        stream = self._stream or sys.stdout
        stream.write(json.dumps(self.prepare(event)) + "\n")
        stream.flush()
