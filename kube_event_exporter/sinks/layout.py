"""Reshape events into a user-defined document.

A layout is a mapping whose string leaves may contain placeholders::

    layout:
      message: "{{ .Message }}"
      kind: "{{ .InvolvedObject.Kind }}"
      app: '{{ index .InvolvedObject.Labels "app" }}'
      summary: "{{ .Reason }} on {{ .InvolvedObject.Name }}"

Field paths are matched case-insensitively against the event's serialised
form; fields of the event's own metadata (``.Name``, ``.Namespace``, ...)
resolve without the ``.Metadata`` prefix. A leaf that is exactly one
placeholder keeps the type of the resolved value; otherwise values are
interpolated as strings. Unknown fields render as an empty string.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]*?)\s*\}\}")
_PATH_RE = re.compile(r"^\.([A-Za-z0-9_.]*)$")
_INDEX_RE = re.compile(r'^index\s+\.([A-Za-z0-9_.]+)\s+"([^"]*)"$')

_MISSING = object()


def _lookup_key(node: Any, segment: str) -> Any:
    if not isinstance(node, Mapping):
        return _MISSING
    if segment in node:
        return node[segment]
    lowered = segment.lower()
    for key, value in node.items():
        if str(key).lower() == lowered:
            return value
    return _MISSING


def _resolve_path(document: Mapping[str, Any], path: str) -> Any:
    if not path:
        return document
    segments = path.split(".")
    value = _lookup_key(document, segments[0])
    if value is _MISSING:
        value = _lookup_key(document.get("metadata"), segments[0])
    for segment in segments[1:]:
        if value is _MISSING:
            break
        value = _lookup_key(value, segment)
    return value


def _evaluate(expr: str, document: Mapping[str, Any]) -> Any:
    index = _INDEX_RE.match(expr)
    if index:
        container = _resolve_path(document, index.group(1))
        if isinstance(container, Mapping):
            return container.get(index.group(2), _MISSING)
        return _MISSING
    path = _PATH_RE.match(expr)
    if path:
        return _resolve_path(document, path.group(1))
    raise ValueError(f"unsupported layout expression: {expr!r}")


def _stringify(value: Any) -> str:
    if value is _MISSING or value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True)


def _render_string(template: str, document: Mapping[str, Any]) -> Any:
    whole = _PLACEHOLDER_RE.fullmatch(template.strip())
    if whole:
        value = _evaluate(whole.group(1), document)
        return None if value is _MISSING else value
    return _PLACEHOLDER_RE.sub(lambda m: _stringify(_evaluate(m.group(1), document)), template)


def _render(node: Any, document: Mapping[str, Any]) -> Any:
    if isinstance(node, str):
        return _render_string(node, document)
    if isinstance(node, Mapping):
        return {key: _render(value, document) for key, value in node.items()}
    if isinstance(node, list):
        return [_render(item, document) for item in node]
    return node


def render_layout(layout: Mapping[str, Any], document: Mapping[str, Any]) -> dict[str, Any]:
    """Render *layout* against the serialised event *document*.

    Raises:
        ValueError: a placeholder uses an unsupported expression.
    """
    return {key: _render(value, document) for key, value in layout.items()}


def check_layout(layout: Mapping[str, Any]) -> None:
    """Raise ValueError if any placeholder in *layout* is not a supported expression."""

    def _check(node: Any) -> None:
        if isinstance(node, str):
            for match in _PLACEHOLDER_RE.finditer(node):
                expr = match.group(1)
                if not (_PATH_RE.match(expr) or _INDEX_RE.match(expr)):
                    raise ValueError(f"unsupported layout expression: {expr!r}")
        elif isinstance(node, Mapping):
            for value in node.values():
                _check(value)
        elif isinstance(node, list):
            for item in node:
                _check(item)

    _check(layout)
