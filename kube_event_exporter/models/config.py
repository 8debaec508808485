"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kube_event_exporter.routing.route import Route


@dataclass
class LeaderElectionConfig:
    """Lease-based leader election."""

    enabled: bool = False
    leader_election_id: str = ""
    namespace: str = ""


@dataclass
class ReceiverConfig:
    """A named receiver bound to exactly one sink type."""

    name: str
    sink_type: str
    sink_config: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExporterConfig:
    """Top-level exporter configuration (the YAML document)."""

    log_level: str = "info"
    log_format: str = "json"
    throttle_period: int = 0
    max_event_age_seconds: int = 0
    cluster_name: str = ""
    namespace: str = ""
    leader_election: LeaderElectionConfig = field(default_factory=LeaderElectionConfig)
    route: Route = field(default_factory=Route)
    receivers: list[ReceiverConfig] = field(default_factory=list)
    kube_qps: float = 0.0
    kube_burst: int = 0
    metrics_name_prefix: str = ""
    receiver_queue_size: int = 1024
