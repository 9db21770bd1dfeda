"""
Order Hub — Realtime event contract

Central list of event names and rooms (no loose strings in publishers or consumers).
"""
from datetime import datetime, timezone
from typing import Any

ADMIN_ROOM = "admin-room"
ORDER_ROOM_PREFIX = "order-"


class RealtimeEvents:
    NEW_ORDER = "new-order"
    ORDER_CREATED = "order-created"
    ORDER_UPDATED = "order-updated"
    ORDER_STATUS_UPDATED = "order-status-updated"
    PAYMENT_CONFIRMED = "payment-confirmed"
    PAYMENT_REJECTED = "payment-rejected"

    # events that carry a new order snapshot for the per-order room
    ORDER_ROOM = frozenset({ORDER_CREATED, ORDER_STATUS_UPDATED, PAYMENT_CONFIRMED, PAYMENT_REJECTED})
    ADMIN = frozenset({NEW_ORDER, ORDER_UPDATED})


def order_room(order_id: int | str) -> str:
    return f"{ORDER_ROOM_PREFIX}{order_id}"


def parse_order_room(room: str) -> int | None:
    if not room.startswith(ORDER_ROOM_PREFIX):
        return None
    try:
        return int(room[len(ORDER_ROOM_PREFIX):])
    except ValueError:
        return None


def envelope(event_type: str, order: dict[str, Any], message: str) -> dict[str, Any]:
    return {
        "type": event_type,
        "order": order,
        "message": message,
        "sent_at": datetime.now(tz=timezone.utc).isoformat(),
    }
