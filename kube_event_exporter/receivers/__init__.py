"""Receiver registry and per-receiver dispatch."""

from kube_event_exporter.receivers.registry import DEFAULT_QUEUE_SIZE, ReceiverRegistry

__all__ = ["DEFAULT_QUEUE_SIZE", "ReceiverRegistry"]
