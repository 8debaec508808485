"""Click entry point: parse flags and run the exporter until a signal arrives."""

from __future__ import annotations

import asyncio

import click

from kube_event_exporter import __version__
from kube_event_exporter.app import DEFAULT_METRICS_ADDRESS, main


@click.command(name="kube-event-exporter")
@click.option(
    "-conf",
    "--conf",
    "conf",
    default="config.yaml",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="The config path file.",
)
@click.option(
    "-metrics-address",
    "--metrics-address",
    "metrics_address",
    default=DEFAULT_METRICS_ADDRESS,
    show_default=True,
    help="The address to listen on for HTTP requests.",
)
@click.version_option(__version__, prog_name="kube-event-exporter")
def cli(conf: str, metrics_address: str) -> None:
    """Watch Kubernetes events and route them to the configured receivers."""
    asyncio.run(main(conf, metrics_address))
