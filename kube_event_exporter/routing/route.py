"""Routing tree evaluation.

The tree is built once from the ``route`` block of the configuration and is
read-only afterwards. Evaluation is an explicit depth-first walk:

1. If any drop rule of a node matches, the node and its whole subtree are
   skipped.
2. Otherwise the node is active when it has no match rules or when at least
   one of them matches. An active node contributes its own ``receiver`` and
   the ``receiver`` of every matching match rule, then every child is
   visited.
3. An inactive node is not descended into.

Receivers reached through several paths are reported once.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from kube_event_exporter.errors import ConfigError
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.routing.rules import Rule

_ROUTE_KEYS = frozenset({"match", "drop", "receiver", "routes"})


def _as_list(raw: Any, key: str) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"route.{key} must be a list, got {type(raw).__name__}")
    return raw


@dataclass(frozen=True)
class Route:
    """A node of the routing tree."""

    match: tuple[Rule, ...] = ()
    drop: tuple[Rule, ...] = ()
    receiver: str = ""
    routes: tuple[Route, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> Route:
        raw = raw or {}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"route must be a mapping, got {type(raw).__name__}")
        unknown = set(raw) - _ROUTE_KEYS
        if unknown:
            raise ConfigError(f"unknown route keys: {sorted(unknown)}")
        return cls(
            match=tuple(Rule.from_dict(r) for r in _as_list(raw.get("match"), "match")),
            drop=tuple(Rule.from_dict(r) for r in _as_list(raw.get("drop"), "drop")),
            receiver=str(raw.get("receiver") or ""),
            routes=tuple(cls.from_dict(r) for r in _as_list(raw.get("routes"), "routes")),
        )

    def receiver_names(self) -> Iterator[str]:
        """Yield every receiver name referenced in this subtree."""
        if self.receiver:
            yield self.receiver
        for rule in self.match:
            if rule.receiver:
                yield rule.receiver
        for child in self.routes:
            yield from child.receiver_names()


def validate_receivers(route: Route, known: Iterable[str]) -> None:
    """Raise ConfigError if *route* references a receiver not in *known*."""
    known_names = set(known)
    missing = sorted({name for name in route.receiver_names() if name not in known_names})
    if missing:
        raise ConfigError(f"route references unknown receivers: {missing}")


class Router:
    """Evaluates events against an immutable routing tree."""

    def __init__(self, root: Route) -> None:
        self._root = root

    @property
    def root(self) -> Route:
        return self._root

    def route(self, event: EnhancedEvent) -> set[str]:
        """Return the names of the receivers *event* should be delivered to."""
        receivers: set[str] = set()
        _walk(self._root, event, receivers)
        return receivers


def _walk(node: Route, event: EnhancedEvent, receivers: set[str]) -> None:
    for rule in node.drop:
        if rule.matches(event):
            return

    matched = [rule for rule in node.match if rule.matches(event)]
    if node.match and not matched:
        return

    if node.receiver:
        receivers.add(node.receiver)
    for rule in matched:
        if rule.receiver:
            receivers.add(rule.receiver)

    for child in node.routes:
        _walk(child, event, receivers)
