"""Exporter command-line interface.

Exposes:
    cli -- Click entry point (registered as ``kube-event-exporter`` script).
"""

from kube_event_exporter.cli.main import cli

__all__ = ["cli"]
