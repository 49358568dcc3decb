"""
HTTP log layer: POSTs each event as JSON to a webhook.

The request shape is the serialized LogEvent unless a `payload` builder is
given, which is how a caller targets a specific service:

    WebhookLogger(
        "discord",
        url=DISCORD_WEBHOOK_URL,
        payload=lambda event: {"content": str(event.content)},
        kinds={LogEventKind.COMPLETED},
    )
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

import httpx

from yugent.config.logging import get_logger
from yugent.config.settings import WebhookSettings
from yugent.errors import LogError
from yugent.layers import LogLayer
from yugent.models import LogEvent, LogEventKind

logger = get_logger(__name__)


def default_payload(event: LogEvent) -> dict[str, Any]:
    return event.model_dump(mode="json")


class WebhookLogger(LogLayer):
    """
    Delivers events to an HTTP endpoint.

    Each request has a bounded timeout. A failed request (timeout, transport
    error, 429 or 5xx) is retried at most `max_retries` times, which is
    capped at 1. Any other non-2xx response fails immediately.

    Args:
        id: Logger identifier
        url: Webhook URL
        timeout: Request timeout in seconds
        max_retries: 0 or 1
        payload: Builds the JSON body from an event
        kinds: Only deliver events of these kinds (all kinds when None)
        client: Pre-built httpx.AsyncClient; owned by the caller if given
        transport: Transport for clients this logger creates itself
        blocking: See LogLayer
    """

    def __init__(
        self,
        id: str = "webhook",
        *,
        url: str,
        timeout: float = 10.0,
        max_retries: int = 1,
        payload: Callable[[LogEvent], dict[str, Any]] = default_payload,
        kinds: Iterable[LogEventKind] | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        blocking: bool = False,
    ):
        super().__init__(id, connector="http", blocking=blocking)
        if not url:
            raise ValueError(
                "Webhook URL not configured. Provide url or set WEBHOOK_URL."
            )
        if timeout is None or timeout <= 0:
            raise ValueError("Webhook timeout must be a positive number of seconds")
        if max_retries not in (0, 1):
            raise ValueError("max_retries must be 0 or 1")
        self._url = url
        self._timeout = timeout
        self._max_retries = max_retries
        self._payload = payload
        self._kinds = set(kinds) if kinds is not None else None
        self._client = client
        self._owns_client = client is None
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: WebhookSettings, id: str = "webhook", **kwargs) -> "WebhookLogger":
        return cls(
            id,
            url=settings.url,
            timeout=settings.timeout_seconds,
            max_retries=settings.max_retries,
            **kwargs,
        )

    async def initialize(self) -> None:
        if self._client is None:
            self._client = self._new_client()

    async def shutdown(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def execute(self, event: LogEvent) -> None:
        if self._kinds is not None and event.kind not in self._kinds:
            return

        body = self._payload(event)
        if self._client is not None:
            await self._post(self._client, body)
            return

        # Not initialized: use a client scoped to this delivery
        async with self._new_client() as client:
            await self._post(client, body)

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> None:
        attempts = 1 + self._max_retries
        last_error: LogError | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await client.post(
                    self._url,
                    json=body,
                    headers={"Content-Type": "application/json"},
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                last_error = LogError(
                    f"Webhook request timed out after {self._timeout}s",
                    logger_id=self.id,
                    cause=e,
                )
            except httpx.RequestError as e:
                last_error = LogError(
                    f"Webhook request failed: {e}", logger_id=self.id, cause=e
                )
            else:
                if response.is_success:
                    return
                error_text = response.text[:500] if response.text else "Unknown error"
                last_error = LogError(
                    f"Webhook returned {response.status_code} - {error_text}",
                    logger_id=self.id,
                )
                if response.status_code != 429 and response.status_code < 500:
                    raise last_error

            if attempt < attempts:
                logger.debug(f"Retrying webhook delivery for {self.id}: {last_error.message}")

        raise last_error
