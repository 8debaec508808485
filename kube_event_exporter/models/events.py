"""Core event data structures.

EnhancedEvent is the canonical record flowing through the pipeline: the raw
Kubernetes ``v1.Event`` fields plus the labels and annotations of the
involved object and the optional cluster name.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any


def _parse_time(value: object) -> datetime | None:
    """Parse an RFC 3339 timestamp as sent by the API server.

    Empty values (the zero time on the Go side) map to None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_time(value: datetime | None, micro: bool = False) -> str | None:
    if value is None:
        return None
    value = value.astimezone(UTC)
    if micro:
        return value.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _dedot(mapping: dict[str, str] | None) -> dict[str, str] | None:
    if mapping is None:
        return None
    return {key.replace(".", "_"): value for key, value in mapping.items()}


@dataclass(frozen=True)
class InvolvedObject:
    """Reference to the object an event is about, plus its metadata."""

    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""
    api_version: str = ""
    resource_version: str = ""
    field_path: str = ""
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> InvolvedObject:
        raw = raw or {}
        return cls(
            kind=str(raw.get("kind") or ""),
            namespace=str(raw.get("namespace") or ""),
            name=str(raw.get("name") or ""),
            uid=str(raw.get("uid") or ""),
            api_version=str(raw.get("apiVersion") or ""),
            resource_version=str(raw.get("resourceVersion") or ""),
            field_path=str(raw.get("fieldPath") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "apiVersion": self.api_version,
            "resourceVersion": self.resource_version,
        }
        if self.field_path:
            data["fieldPath"] = self.field_path
        if self.labels is not None:
            data["labels"] = dict(self.labels)
        if self.annotations is not None:
            data["annotations"] = dict(self.annotations)
        return data


@dataclass(frozen=True)
class EnhancedEvent:
    """Kubernetes event enriched with involved-object metadata.

    Immutable: the same instance is handed to every receiver it is routed
    to. Sinks that need a different shape work on copies (see ``dedot``).
    """

    name: str
    namespace: str
    message: str
    reason: str
    involved_object: InvolvedObject
    uid: str = ""
    type: str = ""
    count: int = 0
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None
    event_time: datetime | None = None
    source_component: str = ""
    source_host: str = ""
    reporting_controller: str = ""
    reporting_instance: str = ""
    action: str = ""
    resource_version: str = ""
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    cluster_name: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> EnhancedEvent:
        """Build an event from its API JSON form. ``managedFields`` are dropped."""
        metadata = raw.get("metadata") or {}
        source = raw.get("source") or {}
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            uid=str(metadata.get("uid") or ""),
            resource_version=str(metadata.get("resourceVersion") or ""),
            labels=metadata.get("labels"),
            annotations=metadata.get("annotations"),
            message=str(raw.get("message") or ""),
            reason=str(raw.get("reason") or ""),
            type=str(raw.get("type") or ""),
            count=int(raw.get("count") or 0),
            first_timestamp=_parse_time(raw.get("firstTimestamp")),
            last_timestamp=_parse_time(raw.get("lastTimestamp")),
            event_time=_parse_time(raw.get("eventTime")),
            source_component=str(source.get("component") or ""),
            source_host=str(source.get("host") or ""),
            reporting_controller=str(raw.get("reportingComponent") or ""),
            reporting_instance=str(raw.get("reportingInstance") or ""),
            action=str(raw.get("action") or ""),
            involved_object=InvolvedObject.from_raw(raw.get("involvedObject")),
        )

    @property
    def reference_time(self) -> datetime | None:
        """``lastTimestamp`` when set, otherwise ``eventTime``."""
        return self.last_timestamp or self.event_time

    def with_metadata(
        self,
        labels: dict[str, str] | None,
        annotations: dict[str, str] | None,
        cluster_name: str = "",
    ) -> EnhancedEvent:
        involved = replace(self.involved_object, labels=labels, annotations=annotations)
        return replace(self, involved_object=involved, cluster_name=cluster_name or self.cluster_name)

    def dedot(self) -> EnhancedEvent:
        """Return a copy with ``.`` replaced by ``_`` in all label and annotation keys."""
        involved = replace(
            self.involved_object,
            labels=_dedot(self.involved_object.labels),
            annotations=_dedot(self.involved_object.annotations),
        )
        return replace(
            self,
            labels=_dedot(self.labels),
            annotations=_dedot(self.annotations),
            involved_object=involved,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the Kubernetes-shaped JSON document sinks emit."""
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "resourceVersion": self.resource_version,
        }
        if self.labels is not None:
            metadata["labels"] = dict(self.labels)
        if self.annotations is not None:
            metadata["annotations"] = dict(self.annotations)
        data: dict[str, Any] = {
            "metadata": metadata,
            "reason": self.reason,
            "message": self.message,
            "source": {"component": self.source_component, "host": self.source_host},
            "firstTimestamp": _format_time(self.first_timestamp),
            "lastTimestamp": _format_time(self.last_timestamp),
            "count": self.count,
            "type": self.type,
            "eventTime": _format_time(self.event_time, micro=True),
            "action": self.action,
            "reportingComponent": self.reporting_controller,
            "reportingInstance": self.reporting_instance,
            "involvedObject": self.involved_object.to_dict(),
        }
        if self.cluster_name:
            data["clusterName"] = self.cluster_name
        return data
