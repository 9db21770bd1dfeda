"""
Order Hub — Lifecycle event publisher

Called after a store mutation has committed. Publishing is best-effort:
a channel failure is logged and never undoes or fails the mutation.
"""
import logging
from typing import Any

from orderhub.core.tracking import status_display
from orderhub.realtime.channel import Channel
from orderhub.realtime.events import ADMIN_ROOM, RealtimeEvents, envelope, order_room
from orderhub.schemas.order import OrderRecord

logger = logging.getLogger(__name__)


def serialize_order(order) -> dict[str, Any]:
    return OrderRecord.model_validate(order).model_dump(mode="json")


async def _safe_publish(channel: Channel, topic: str, payload: dict[str, Any]) -> int:
    try:
        return await channel.publish(topic, payload)
    except Exception as exc:
        logger.warning("Failed to publish %s to %s: %s", payload.get("type"), topic, exc)
        return 0


async def publish_order_created(channel: Channel, order) -> None:
    data = serialize_order(order)
    await _safe_publish(channel, ADMIN_ROOM, envelope(RealtimeEvents.NEW_ORDER, data, "Novo pedido recebido!"))
    await _safe_publish(
        channel, order_room(order.id),
        envelope(RealtimeEvents.ORDER_CREATED, data, "Pedido criado com sucesso!"),
    )


async def publish_status_updated(channel: Channel, order) -> None:
    data = serialize_order(order)
    label = status_display(order.order_status, order.payment_status, order.delivery_type)
    await _safe_publish(
        channel, order_room(order.id),
        envelope(RealtimeEvents.ORDER_STATUS_UPDATED, data, f"Status atualizado para: {label}"),
    )
    await _safe_publish(
        channel, ADMIN_ROOM,
        envelope(RealtimeEvents.ORDER_UPDATED, data, f"Pedido #{order.id} atualizado"),
    )


async def publish_payment_confirmed(channel: Channel, order) -> None:
    data = serialize_order(order)
    await _safe_publish(
        channel, order_room(order.id),
        envelope(RealtimeEvents.PAYMENT_CONFIRMED, data, "Pagamento confirmado com sucesso!"),
    )
    await _safe_publish(
        channel, ADMIN_ROOM,
        envelope(RealtimeEvents.ORDER_UPDATED, data, f"Pagamento confirmado para pedido #{order.id}"),
    )


async def publish_payment_rejected(channel: Channel, order) -> None:
    data = serialize_order(order)
    await _safe_publish(
        channel, order_room(order.id),
        envelope(RealtimeEvents.PAYMENT_REJECTED, data, "Pagamento rejeitado e pedido cancelado!"),
    )
    await _safe_publish(
        channel, ADMIN_ROOM,
        envelope(RealtimeEvents.ORDER_UPDATED, data, f"Pagamento rejeitado para pedido #{order.id}"),
    )
