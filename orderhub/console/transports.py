"""
Order Hub Console — SSE transport for the realtime client

Opens /realtime/stream/admin or /realtime/stream/orders/{id} with an httpx
streaming request and yields the decoded event envelopes. The admin stream
needs the operator token; a refused token is not retried.
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Protocol

import httpx

from orderhub.core.config import get_settings
from orderhub.core.errors import ConnectivityError, NotFound, OrderStoreError
from orderhub.realtime.events import ADMIN_ROOM, parse_order_room

settings = get_settings()
logger = logging.getLogger(__name__)


class RealtimeTransport(Protocol):
    retry_seconds: float | None

    def connect(self, room: str) -> AsyncContextManager[AsyncIterator[dict[str, Any]]]:
        """Open the room stream; entering the context means the connection is up."""
        ...


def stream_path(room: str) -> str:
    if room == ADMIN_ROOM:
        return "/realtime/stream/admin"
    order_id = parse_order_room(room)
    if order_id is None:
        raise ValueError(f"Unknown room: {room}")
    return f"/realtime/stream/orders/{order_id}"


class SseParser:
    """Incremental text/event-stream decoder (one instance per connection)."""

    def __init__(self):
        self.event: str | None = None
        self.data: list[str] = []
        self.retry_ms: int | None = None

    def feed(self, line: str) -> dict[str, Any] | None:
        """Feed one line; returns a payload when a blank line completes an event."""
        if line == "":
            return self._flush()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self.event = value
        elif field == "data":
            self.data.append(value)
        elif field == "retry" and value.isdigit():
            self.retry_ms = int(value)
        return None

    def _flush(self) -> dict[str, Any] | None:
        event, data = self.event, self.data
        self.event, self.data = None, []
        if not data:
            return None
        try:
            payload = json.loads("\n".join(data))
        except ValueError:
            logger.warning("Dropping undecodable SSE event %r", event)
            return None
        if not isinstance(payload, dict):
            return None
        if event and "type" not in payload:
            payload["type"] = event
        return payload


class SseTransport:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url or settings.ORDER_HUB_URL
        self._headers = {"Accept": "text/event-stream"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._transport = transport
        self.retry_seconds: float | None = None

    @asynccontextmanager
    async def connect(self, room: str) -> AsyncIterator[AsyncIterator[dict[str, Any]]]:
        path = stream_path(room)
        # no read timeout: keepalive comments arrive every SSE_KEEPALIVE_INTERVAL_SECONDS
        timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS, read=None)
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=self._transport) as client:
                async with client.stream("GET", path, headers=self._headers) as response:
                    if response.status_code == 404:
                        raise NotFound(f"No stream for {room}")
                    if response.status_code in (401, 403):
                        raise OrderStoreError(
                            f"Stream {path} refused the operator token", status_code=response.status_code
                        )
                    if response.status_code != 200:
                        raise ConnectivityError(f"Stream {path} answered {response.status_code}")
                    yield self._events(response)
        except httpx.HTTPError as exc:
            raise ConnectivityError(f"Stream {path} dropped: {exc}") from exc

    async def _events(self, response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
        parser = SseParser()
        async for line in response.aiter_lines():
            payload = parser.feed(line.rstrip("\r"))
            if parser.retry_ms is not None:
                self.retry_seconds = parser.retry_ms / 1000.0
            if payload is not None:
                yield payload
