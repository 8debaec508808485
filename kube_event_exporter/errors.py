"""Exception types shared across the exporter packages."""

from __future__ import annotations


class ConfigError(ValueError):
    """Raised when the configuration document is unusable.

    Always fatal: the exporter refuses to start rather than run a partial
    pipeline.
    """


class SinkError(Exception):
    """Raised by a sink when an event could not be delivered."""

    def __init__(self, sink: str, message: str) -> None:
        super().__init__(f"{sink}: {message}")
        self.sink = sink
