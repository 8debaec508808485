"""Logging and Prometheus metrics for the exporter."""
