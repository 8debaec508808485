"""Age-based admission control for incoming events.

An event is discarded when it is older than ``maxEventAgeSeconds``. The
initial list of a watch replays every event still stored by the API server,
so most discards right after startup are expected: only events whose
reference timestamp is after the filter's start time are reported with a
warning and counted.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.observability.metrics import MetricsStore

_log = structlog.get_logger(component="collector.admission")

DISCARD_MESSAGE = "Event discarded as being older then maxEventAgeSeconds"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AdmissionFilter:
    """Decides whether an event is too old to be forwarded.

    The start time is fixed when the filter is built. Tests that need a
    specific start time use ``with_start_time``.
    """

    def __init__(
        self,
        max_event_age_seconds: int,
        metrics: MetricsStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._max_age = timedelta(seconds=max_event_age_seconds)
        self._metrics = metrics
        self._clock = clock
        self._start_time = clock()

    @classmethod
    def with_start_time(
        cls,
        max_event_age_seconds: int,
        metrics: MetricsStore,
        start_time: datetime,
        clock: Callable[[], datetime] = _utcnow,
    ) -> AdmissionFilter:
        """Build a filter with an explicit start time (test support)."""
        admission = cls(max_event_age_seconds, metrics, clock=clock)
        admission._start_time = start_time
        return admission

    @property
    def start_time(self) -> datetime:
        return self._start_time

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def should_discard(self, event: EnhancedEvent) -> bool:
        timestamp = event.reference_time
        if timestamp is None:
            # Both timestamps unset: infinitely old, and never after startup.
            return True

        age = self._clock() - timestamp
        if age <= self._max_age:
            return False

        if timestamp > self._start_time:
            _log.warning(
                DISCARD_MESSAGE,
                event_age=str(age),
                event_namespace=event.namespace,
                event_name=event.name,
            )
            self._metrics.events_discarded.inc()
        return True
