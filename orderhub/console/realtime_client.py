"""
Order Hub Console — Realtime client

One listener task per joined room. When a room's stream drops the listener
reconnects with exponential backoff + jitter, re-joins the room and runs the
reconnect callbacks so the consoles can re-fetch their snapshot. Events
published while disconnected are not replayed.
"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable

from orderhub.console.transports import RealtimeTransport, SseTransport
from orderhub.core.config import get_settings
from orderhub.core.errors import ConnectivityError, NotFound, OrderStoreError

settings = get_settings()
logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]
ReconnectCallback = Callable[[str], Awaitable[None]]


class RealtimeClient:
    def __init__(
        self,
        transport: RealtimeTransport | None = None,
        *,
        base_delay: float | None = None,
        max_delay: float | None = None,
        jitter: float | None = None,
    ):
        self._transport = transport or SseTransport()
        self._base_delay = base_delay if base_delay is not None else settings.REALTIME_RETRY_SECONDS
        self._max_delay = max_delay if max_delay is not None else settings.REALTIME_MAX_RETRY_SECONDS
        self._jitter = jitter if jitter is not None else settings.REALTIME_RETRY_JITTER_SECONDS
        self._handlers: dict[str, list[EventHandler]] = {}
        self._reconnect_callbacks: list[ReconnectCallback] = []
        self._tasks: dict[str, asyncio.Task] = {}
        self._connected: dict[str, bool] = {}
        self._running = False

    # ── Registration ─────────────────────────────────────────
    def subscribe(self, room: str, handler: EventHandler) -> None:
        self._handlers.setdefault(room, []).append(handler)
        if self._running and room not in self._tasks:
            self._tasks[room] = asyncio.create_task(self._listen(room))

    async def unsubscribe(self, room: str) -> None:
        self._handlers.pop(room, None)
        self._connected.pop(room, None)
        task = self._tasks.pop(room, None)
        if task is None or task is asyncio.current_task():
            # called from one of this room's handlers: the listener exits by itself
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        self._reconnect_callbacks.append(callback)

    def is_connected(self, room: str) -> bool:
        return self._connected.get(room, False)

    # ── Lifecycle ────────────────────────────────────────────
    async def start(self) -> None:
        self._running = True
        for room in self._handlers:
            if room not in self._tasks:
                self._tasks[room] = asyncio.create_task(self._listen(room))

    async def stop(self) -> None:
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._connected.clear()

    # ── Internals ────────────────────────────────────────────
    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff: base * 2^(attempt-1), capped, plus jitter."""
        base = self._transport.retry_seconds or self._base_delay
        delay = min(base * (2 ** max(attempt - 1, 0)), self._max_delay)
        return delay + random.uniform(0, self._jitter)

    async def _listen(self, room: str) -> None:
        attempt = 0
        connected_once = False
        while self._running and room in self._handlers:
            try:
                async with self._transport.connect(room) as events:
                    self._connected[room] = True
                    attempt = 0
                    if connected_once:
                        logger.info("Realtime room %s reconnected", room)
                        await self._run_reconnect_callbacks(room)
                    connected_once = True
                    async for payload in events:
                        await self._dispatch(room, payload)
                        if room not in self._handlers:
                            return
                logger.info("Realtime stream for %s closed by server", room)
            except NotFound:
                logger.warning("Realtime room %s does not exist; giving up", room)
                self._connected[room] = False
                return
            except OrderStoreError as exc:
                logger.error("Realtime room %s refused: %s", room, exc.message)
                self._connected[room] = False
                return
            except ConnectivityError as exc:
                logger.warning("Realtime room %s disconnected: %s", room, exc)
            self._connected[room] = False
            if not self._running or room not in self._handlers:
                return

            attempt += 1
            delay = self.backoff_delay(attempt)
            logger.info("Reconnecting to %s in %.2fs (attempt %d)", room, delay, attempt)
            await asyncio.sleep(delay)

    async def _dispatch(self, room: str, payload: dict[str, Any]) -> None:
        for handler in list(self._handlers.get(room, ())):
            try:
                await handler(payload)
            except Exception:
                logger.exception("Realtime handler failed for %s on %s", payload.get("type"), room)

    async def _run_reconnect_callbacks(self, room: str) -> None:
        for callback in list(self._reconnect_callbacks):
            try:
                await callback(room)
            except Exception:
                logger.exception("Reconnect callback failed for %s", room)
