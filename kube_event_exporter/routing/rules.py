"""Match and drop criteria for the routing tree.

A Rule is a conjunction of field checks; unset fields are ignored, so an
empty rule matches every event. Plain fields compare exactly. Regular
expressions are only used for the fields listed under ``patterns``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from kube_event_exporter.errors import ConfigError
from kube_event_exporter.models.events import EnhancedEvent

# Config key -> attribute on the event used for exact and pattern checks.
_EVENT_FIELDS: dict[str, str] = {
    "apiVersion": "api_version",
    "kind": "kind",
    "namespace": "namespace",
    "name": "name",
    "reason": "reason",
    "type": "type",
    "message": "message",
    "component": "component",
    "host": "host",
}

_PATTERN_FIELDS = frozenset({"namespace", "name", "kind", "reason", "message", "type", "component", "host"})

_RULE_KEYS = frozenset(_EVENT_FIELDS) | {"minCount", "labels", "annotations", "patterns", "receiver"}


def _event_field(event: EnhancedEvent, key: str) -> str:
    if key == "api_version":
        return event.involved_object.api_version
    if key == "kind":
        return event.involved_object.kind
    if key == "name":
        return event.involved_object.name
    if key == "component":
        return event.source_component
    if key == "host":
        return event.source_host
    return str(getattr(event, key))


def _as_str(value: Any) -> str:
    """Render a YAML scalar the way Kubernetes spells it; None is unset."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _string_map(raw: Mapping[str, Any], key: str) -> dict[str, str]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"rule {key} must be a mapping, got {type(value).__name__}")
    return {_as_str(k): _as_str(v) for k, v in value.items()}


def _metadata_matches(expected: Mapping[str, str], actual: Mapping[str, str] | None) -> bool:
    """Every expected key must be present; a non-empty value must be equal."""
    if not expected:
        return True
    if actual is None:
        return False
    for key, value in expected.items():
        if key not in actual:
            return False
        if value and actual[key] != value:
            return False
    return True


@dataclass(frozen=True)
class Rule:
    """A single match or drop criterion."""

    api_version: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    reason: str = ""
    type: str = ""
    message: str = ""
    component: str = ""
    host: str = ""
    min_count: int = 0
    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    patterns: Mapping[str, re.Pattern[str]] = field(default_factory=dict)
    receiver: str = ""

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> Rule:
        """Build a rule from its YAML mapping (camelCase keys)."""
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"rule must be a mapping, got {type(raw).__name__}")
        unknown = set(raw) - _RULE_KEYS
        if unknown:
            raise ConfigError(f"unknown rule keys: {sorted(unknown)}")

        exact = {attr: _as_str(raw.get(key)) for key, attr in _EVENT_FIELDS.items()}

        patterns: dict[str, re.Pattern[str]] = {}
        for key, expr in _string_map(raw, "patterns").items():
            if key not in _PATTERN_FIELDS:
                raise ConfigError(f"pattern not supported for field {key!r}")
            try:
                patterns[key] = re.compile(expr)
            except re.error as exc:
                raise ConfigError(f"invalid pattern for {key!r}: {exc}") from exc

        try:
            min_count = int(raw.get("minCount") or 0)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"minCount must be an integer, got {raw.get('minCount')!r}") from exc

        return cls(
            **exact,
            min_count=min_count,
            labels=_string_map(raw, "labels"),
            annotations=_string_map(raw, "annotations"),
            patterns=patterns,
            receiver=_as_str(raw.get("receiver")),
        )

    def matches(self, event: EnhancedEvent) -> bool:
        """Return True if *event* satisfies every populated field of this rule."""
        for attr in _EVENT_FIELDS.values():
            expected = getattr(self, attr)
            if expected and _event_field(event, attr) != expected:
                return False

        for key, pattern in self.patterns.items():
            if not pattern.search(_event_field(event, _EVENT_FIELDS[key])):
                return False

        if self.min_count > 0 and event.count < self.min_count:
            return False

        if not _metadata_matches(self.labels, event.involved_object.labels):
            return False
        return _metadata_matches(self.annotations, event.involved_object.annotations)
