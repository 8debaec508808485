"""Lease-based leader election for running a single active exporter.

Thin wrapper around ``kubernetes_asyncio.leaderelection``: the exporter's
pipeline starts in ``on_started`` and the process shuts down in
``on_stopped``.
"""

from __future__ import annotations

import asyncio
import os
import socket
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import structlog

_log = structlog.get_logger(component="collector.leader")

_SERVICE_ACCOUNT_NAMESPACE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")

LEASE_DURATION = 15
RENEW_DEADLINE = 10
RETRY_PERIOD = 2


def lease_namespace(configured: str = "") -> str:
    """Namespace holding the Lease: config, POD_NAMESPACE, service account, ``default``."""
    if configured:
        return configured
    env = os.environ.get("POD_NAMESPACE", "")
    if env:
        return env
    try:
        return _SERVICE_ACCOUNT_NAMESPACE.read_text().strip() or "default"
    except OSError:
        return "default"


def default_identity() -> str:
    return os.environ.get("POD_NAME") or socket.gethostname()


class LeaderElector:
    """Runs the election loop as a background task."""

    def __init__(
        self,
        api_client: Any,
        lease_name: str,
        on_started: Callable[[], Awaitable[None]],
        on_stopped: Callable[[], Awaitable[None]],
        namespace: str = "",
        identity: str = "",
    ) -> None:
        if not lease_name:
            raise ValueError("leader election requires a lease name")
        self._api_client = api_client
        self._lease_name = lease_name
        self._namespace = lease_namespace(namespace)
        self._identity = identity or default_identity()
        self._on_started = on_started
        self._on_stopped = on_stopped
        self._task: asyncio.Task[None] | None = None

    @property
    def identity(self) -> str:
        return self._identity

    async def start(self) -> None:
        from kubernetes_asyncio.leaderelection import (  # type: ignore[import-untyped]
            electionconfig,
            leaderelection,
        )
        from kubernetes_asyncio.leaderelection.resourcelock.leaselock import (  # type: ignore[import-untyped]
            LeaseLock,
        )

        lock = LeaseLock(self._lease_name, self._namespace, self._identity, self._api_client)
        config = electionconfig.Config(
            lock,
            lease_duration=LEASE_DURATION,
            renew_deadline=RENEW_DEADLINE,
            retry_period=RETRY_PERIOD,
            onstarted_leading=self._started,
            onstopped_leading=self._stopped,
        )
        election = leaderelection.LeaderElection(config)
        self._task = asyncio.create_task(self._run(election), name="leader-election")
        _log.info(
            "leader election started",
            lease=self._lease_name,
            namespace=self._namespace,
            identity=self._identity,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, election: Any) -> None:
        try:
            await election.run()
        except Exception as exc:
            # Without a running election nothing will ever start the pipeline.
            _log.error("leader election failed", identity=self._identity, error=str(exc))
            await self._on_stopped()

    async def _started(self) -> None:
        _log.info("leader election got", identity=self._identity)
        await self._on_started()

    async def _stopped(self) -> None:
        _log.error("leader election lost", identity=self._identity)
        await self._on_stopped()
