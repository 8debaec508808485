"""Generic JSON webhook sink.

POSTs each event (or its layout rendering) as a JSON body to a configured
HTTP endpoint. Non-2xx responses, timeouts and transport errors are
delivery failures; retries are left to the receiving side.
"""

from __future__ import annotations

import httpx
import structlog

from kube_event_exporter.errors import SinkError
from kube_event_exporter.models.events import EnhancedEvent
from kube_event_exporter.sinks.base import Sink, SinkOptions

_log = structlog.get_logger(component="sinks.webhook")


class WebhookSink(Sink):
    """Delivers events by POSTing a JSON payload to a configurable URL.

    Args:
        endpoint: Full endpoint URL.
        headers:  Optional extra headers (e.g. Authorization).
        timeout:  HTTP request timeout in seconds. Defaults to 10.
        options:  deDot / layout options.
        client:   Pre-built httpx.AsyncClient (tests inject a mock transport).
    """

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        options: SinkOptions | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not endpoint:
            raise ValueError("Webhook endpoint must not be empty")
        super().__init__(options)
        self._endpoint = endpoint
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def sink_name(self) -> str:
        return "webhook"

    async def send(self, event: EnhancedEvent) -> None:
        """POST *event* as JSON. Raises SinkError unless the response is 2xx."""
        payload = self.prepare(event)
        try:
            response = await self._client.post(self._endpoint, json=payload, headers=self._headers)
        except httpx.TimeoutException as exc:
            _log.warning("webhook_request_timeout", endpoint=self._endpoint, event=event.name)
            raise SinkError(self.sink_name, f"timeout posting to {self._endpoint}") from exc
        except httpx.HTTPError as exc:
            raise SinkError(self.sink_name, str(exc)) from exc

        if not response.is_success:
            _log.warning(
                "webhook_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:200],
                event=event.name,
            )
            raise SinkError(self.sink_name, f"{self._endpoint} answered {response.status_code}")

    async def close(self) -> None:
        await self._client.aclose()
