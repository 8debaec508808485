"""Kubernetes event exporter: watch, enrich, route and ship cluster events."""

__version__ = "0.1.0"
