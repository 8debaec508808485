"""Core data structures for the exporter."""

from kube_event_exporter.models.events import EnhancedEvent, InvolvedObject
from kube_event_exporter.models.config import (
    ExporterConfig,
    LeaderElectionConfig,
    ReceiverConfig,
)

__all__ = [
    "EnhancedEvent",
    "ExporterConfig",
    "InvolvedObject",
    "LeaderElectionConfig",
    "ReceiverConfig",
]
