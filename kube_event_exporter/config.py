"""Configuration loading from the YAML config file.

Environment variables (``$VAR`` / ``${VAR}``) are expanded in the raw text
before it is parsed. Every problem found here is a ConfigError and aborts
startup.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
import yaml

from kube_event_exporter.errors import ConfigError
from kube_event_exporter.models.config import ExporterConfig, LeaderElectionConfig, ReceiverConfig
from kube_event_exporter.observability.logging import LOG_FORMATS, LOG_LEVELS
from kube_event_exporter.routing.route import Route, validate_receivers
from kube_event_exporter.sinks import SINK_TYPES

_log = structlog.get_logger(component="config")

DEFAULT_MAX_EVENT_AGE_SECONDS = 5

_METRICS_PREFIX_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_:]*_$")

_TOP_LEVEL_KEYS = frozenset(
    {
        "logLevel",
        "logFormat",
        "throttlePeriod",
        "maxEventAgeSeconds",
        "clusterName",
        "namespace",
        "leaderElection",
        "route",
        "receivers",
        "kubeQPS",
        "kubeBurst",
        "metricsNamePrefix",
        "receiverQueueSize",
    }
)


def _int(raw: Mapping[str, Any], key: str, default: int = 0) -> int:
    value = raw.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _float(raw: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    value = raw.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _parse_receiver(raw: Any) -> ReceiverConfig:
    if not isinstance(raw, Mapping):
        raise ConfigError(f"receiver entry must be a mapping, got {type(raw).__name__}")
    name = str(raw.get("name") or "")
    if not name:
        raise ConfigError("receiver entry without a name")
    sink_keys = [key for key in raw if key != "name"]
    if len(sink_keys) != 1:
        raise ConfigError(f"receiver {name!r} must configure exactly one sink, got {sorted(sink_keys)}")
    sink_type = sink_keys[0]
    sink_config = raw[sink_type] or {}
    if not isinstance(sink_config, Mapping):
        raise ConfigError(f"receiver {name!r}: {sink_type} settings must be a mapping")
    return ReceiverConfig(name=name, sink_type=sink_type, sink_config=dict(sink_config))


def parse_config(raw: Mapping[str, Any] | None) -> ExporterConfig:
    """Map the parsed YAML document onto ExporterConfig. No semantic checks."""
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ConfigError(f"config document must be a mapping, got {type(raw).__name__}")
    unknown = set(raw) - _TOP_LEVEL_KEYS
    if unknown:
        raise ConfigError(f"unknown config keys: {sorted(unknown)}")

    election = raw.get("leaderElection") or {}
    if not isinstance(election, Mapping):
        raise ConfigError(f"leaderElection must be a mapping, got {type(election).__name__}")
    receivers = raw.get("receivers") or []
    if not isinstance(receivers, list):
        raise ConfigError("receivers must be a list")

    return ExporterConfig(
        log_level=str(raw.get("logLevel") or "info"),
        log_format=str(raw.get("logFormat") or "json"),
        throttle_period=_int(raw, "throttlePeriod"),
        max_event_age_seconds=_int(raw, "maxEventAgeSeconds"),
        cluster_name=str(raw.get("clusterName") or ""),
        namespace=str(raw.get("namespace") or ""),
        leader_election=LeaderElectionConfig(
            enabled=bool(election.get("enabled", False)),
            leader_election_id=str(election.get("leaderElectionID") or ""),
            namespace=str(election.get("namespace") or ""),
        ),
        route=Route.from_dict(raw.get("route")),
        receivers=[_parse_receiver(r) for r in receivers],
        kube_qps=_float(raw, "kubeQPS"),
        kube_burst=_int(raw, "kubeBurst"),
        metrics_name_prefix=str(raw.get("metricsNamePrefix") or ""),
        receiver_queue_size=_int(raw, "receiverQueueSize", 1024),
    )


def read_config(path: str | Path) -> ExporterConfig:
    """Read, expand and parse the config file without validating it."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    try:
        document = yaml.safe_load(os.path.expandvars(text))
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse config to YAML: {exc}") from exc
    return parse_config(document)


def load_config(path: str | Path) -> ExporterConfig:
    """Read and validate the config file."""
    config = read_config(path)
    validate_config(config)
    return config


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_config(config: ExporterConfig) -> None:
    """Check *config* and fill derived defaults in place.

    Raises:
        ConfigError: on the first problem found.
    """
    _validate_log_settings(config)
    _validate_max_event_age(config)
    _validate_metrics_name_prefix(config)
    _validate_receivers(config)
    _validate_leader_election(config)
    if config.receiver_queue_size <= 0:
        raise ConfigError(f"receiverQueueSize must be positive, got {config.receiver_queue_size}")


def _validate_log_settings(config: ExporterConfig) -> None:
    level = config.log_level.lower()
    if level not in LOG_LEVELS:
        raise ConfigError(f"Invalid log level: {config.log_level}. Must be one of {sorted(LOG_LEVELS)}")
    config.log_level = level
    if config.log_format not in LOG_FORMATS:
        raise ConfigError(f"Unknown log format: {config.log_format}. Must be one of {list(LOG_FORMATS)}")


def _validate_max_event_age(config: ExporterConfig) -> None:
    if config.throttle_period == 0 and config.max_event_age_seconds == 0:
        config.max_event_age_seconds = DEFAULT_MAX_EVENT_AGE_SECONDS
        _log.info(f"set config.maxEventAgeSeconds={DEFAULT_MAX_EVENT_AGE_SECONDS} (default)")
    elif config.throttle_period != 0 and config.max_event_age_seconds != 0:
        _log.error("cannot set both throttlePeriod (deprecated) and maxEventAgeSeconds")
        raise ConfigError("cannot set both throttlePeriod (deprecated) and maxEventAgeSeconds")
    elif config.throttle_period != 0:
        _log.info(f"config.maxEventAgeSeconds={config.throttle_period}")
        _log.warning("config.throttlePeriod is deprecated, consider using config.maxEventAgeSeconds instead")
        config.max_event_age_seconds = config.throttle_period
    else:
        _log.info(f"config.maxEventAgeSeconds={config.max_event_age_seconds}")

    if config.max_event_age_seconds < 0:
        raise ConfigError(f"maxEventAgeSeconds must not be negative, got {config.max_event_age_seconds}")


def _validate_metrics_name_prefix(config: ExporterConfig) -> None:
    prefix = config.metrics_name_prefix
    if not prefix:
        _log.warning(
            "metrics name prefix is empty, setting config.metricsNamePrefix='event_exporter_' is recommended"
        )
        return
    if not _METRICS_PREFIX_RE.match(prefix):
        _log.error("config.metricsNamePrefix should match the regex: ^[a-zA-Z][a-zA-Z0-9_:]*_$")
        raise ConfigError(f"invalid metricsNamePrefix: {prefix!r}")
    _log.info(f"config.metricsNamePrefix='{prefix}'")


def _validate_receivers(config: ExporterConfig) -> None:
    seen: set[str] = set()
    for receiver in config.receivers:
        if receiver.name in seen:
            raise ConfigError(f"duplicate receiver name: {receiver.name!r}")
        seen.add(receiver.name)
        if receiver.sink_type not in SINK_TYPES:
            raise ConfigError(
                f"receiver {receiver.name!r}: unknown sink type {receiver.sink_type!r}, "
                f"expected one of {sorted(SINK_TYPES)}"
            )
    validate_receivers(config.route, seen)


def _validate_leader_election(config: ExporterConfig) -> None:
    election = config.leader_election
    if election.enabled and not election.leader_election_id:
        raise ConfigError("leaderElection.enabled requires leaderElection.leaderElectionID")
