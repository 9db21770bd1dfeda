"""
Order Hub — Realtime transports (WebSocket rooms + SSE streams)

WebSocket /ws, client → server messages:
  {"type": "join-admin"}                  → joins admin-room
  {"type": "join-client", "order_id": 42} → joins order-42
  {"type": "leave", "room": "order-42"}
  {"type": "ping"}
Server acks with joined / left / pong; anything malformed gets an error
message and the socket stays open.

SSE /realtime/stream/admin and /realtime/stream/orders/{order_id} carry the
same envelopes for clients that cannot hold a WebSocket.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import get_settings
from orderhub.core.state_machine import is_terminal
from orderhub.db import order_store
from orderhub.db.database import get_db
from orderhub.realtime.channel import Channel, Subscription, get_channel
from orderhub.realtime.events import ADMIN_ROOM, RealtimeEvents, order_room

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class _RoomConnection:
    """One WebSocket and the rooms it has joined."""

    def __init__(self, websocket: WebSocket, channel: Channel):
        self.websocket = websocket
        self.channel = channel
        self.rooms: dict[str, Subscription] = {}
        self._send_lock = asyncio.Lock()

    async def send(self, message: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_text(json.dumps(message, default=str))

    async def _forward(self, topic: str, payload: dict[str, Any]) -> None:
        await self.send(payload)

    async def join(self, room: str) -> None:
        if room not in self.rooms:
            self.rooms[room] = await self.channel.subscribe(room, self._forward)
        await self.send({"type": "joined", "room": room, "timestamp": _now()})

    async def leave(self, room: str) -> None:
        sub = self.rooms.pop(room, None)
        if sub is not None:
            await self.channel.unsubscribe(sub)
        await self.send({"type": "left", "room": room, "timestamp": _now()})

    async def error(self, message: str) -> None:
        await self.send({"type": "error", "message": message, "timestamp": _now()})

    async def close(self) -> None:
        for sub in self.rooms.values():
            await self.channel.unsubscribe(sub)
        self.rooms.clear()


async def _handle_client_message(conn: _RoomConnection, message: Any) -> None:
    if not isinstance(message, dict):
        await conn.error("Message must be a JSON object")
        return

    message_type = message.get("type")
    if message_type == "ping":
        await conn.send({"type": "pong", "timestamp": _now()})
    elif message_type == "join-admin":
        await conn.join(ADMIN_ROOM)
    elif message_type == "join-client":
        order_id = message.get("order_id")
        if isinstance(order_id, bool) or not isinstance(order_id, (int, str)) or not str(order_id).isdigit():
            await conn.error("join-client requires a numeric order_id")
            return
        await conn.join(order_room(int(order_id)))
    elif message_type == "leave":
        room = message.get("room")
        if not isinstance(room, str) or not room:
            await conn.error("leave requires a room")
            return
        await conn.leave(room)
    else:
        await conn.error(f"Unknown message type: {message_type}")


@router.websocket("/ws")
async def websocket_rooms(websocket: WebSocket, channel: Channel = Depends(get_channel)):
    await websocket.accept()
    conn = _RoomConnection(websocket, channel)
    logger.info("WebSocket connected: %s", websocket.client)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Invalid WebSocket message from %s", websocket.client)
                await conn.error("Invalid message format")
                continue
            await _handle_client_message(conn, message)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", websocket.client)
    finally:
        await conn.close()


# ── Server-Sent Events ───────────────────────────────────────
async def _sse_generator(
    topic: str,
    request: Request,
    channel: Channel,
    stop_on_terminal: bool = False,
) -> AsyncGenerator[str, None]:
    """Subscribe to a room and yield SSE frames until the client leaves."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def _enqueue(_topic: str, payload: dict[str, Any]) -> None:
        queue.put_nowait(payload)

    sub = await channel.subscribe(topic, _enqueue)
    try:
        yield f": connected to {topic}\n\n"
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"

        while True:
            if await request.is_disconnected():
                break
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=settings.SSE_KEEPALIVE_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue

            event_type = payload.get("type", "message")
            yield f"event: {event_type}\ndata: {json.dumps(payload, default=str)}\n\n"

            # Order streams end once the order can no longer change
            if stop_on_terminal and event_type in RealtimeEvents.ORDER_ROOM:
                status = (payload.get("order") or {}).get("order_status")
                if status and is_terminal(status):
                    break
    finally:
        await channel.unsubscribe(sub)


def _sse_response(generator: AsyncGenerator[str, None]) -> StreamingResponse:
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable Nginx buffering
            "Connection": "keep-alive",
        },
    )


@router.get("/realtime/stream/admin")
async def stream_admin(request: Request, channel: Channel = Depends(get_channel)):
    return _sse_response(_sse_generator(ADMIN_ROOM, request, channel))


@router.get("/realtime/stream/orders/{order_id}")
async def stream_order(
    order_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    # 404 before opening the stream
    await order_store.get_order(db, order_id)
    return _sse_response(_sse_generator(order_room(order_id), request, channel, stop_on_terminal=True))


@router.get("/realtime/stats")
async def realtime_stats(channel: Channel = Depends(get_channel)):
    rooms = channel.stats()
    return {
        "backend": channel.backend,
        "rooms": rooms,
        "admin_subscribers": rooms.get(ADMIN_ROOM, 0),
        "total_subscribers": sum(rooms.values()),
    }
