"""File sink: JSON lines appended to a file truncated at startup.

Also registered as ``pipe``, the name used by older configurations for
named pipes and files.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog

from kube_event_exporter.errors import SinkError
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.sinks.base import Sink, SinkOptions

_log = structlog.get_logger(component="sinks.file")


class FileSink(Sink):
    """Writes events as JSON lines to *path*.

    Args:
        path:    Target file; created if missing, truncated if present.
        options: deDot / layout options.
    """

    def __init__(self, path: str, options: SinkOptions | None = None) -> None:
        if not path:
            raise ValueError("file sink path must not be empty")
        super().__init__(options)
        self._path = Path(path)
        self._file = self._path.open("w", encoding="utf-8")
        _log.debug("file sink opened", path=str(self._path))

    @property
    def sink_name(self) -> str:
        return "file"

    async def send(self, event: EnhancedEvent) -> None:
        if self._file.closed:
            raise SinkError(self.sink_name, f"{self._path} is closed")
        self._file.write(json.dumps(self.prepare(event)) + "\n")
        self._file.flush()

    async def close(self) -> None:
        if not self._file.closed:
            self._file.close()
