"""
Order Hub Console — Customer order tracker

Joins order-<id> first, then fetches the record: any event that lands while
the fetch is in flight is newer than the fetched snapshot, so the snapshot
is only applied if no event arrived in between.
"""
import logging
from enum import Enum
from typing import Any

from orderhub.console.realtime_client import RealtimeClient
from orderhub.console.store_client import OrderStoreClient
from orderhub.core.errors import NotFound, OrderHubError
from orderhub.core.state_machine import is_terminal
from orderhub.core.tracking import TrackingView, build_tracking_view
from orderhub.realtime.events import RealtimeEvents, order_room
from orderhub.schemas.order import OrderRecord

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Pedido não encontrado"


class TrackerState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"
    ERROR = "error"


class CustomerTracker:
    def __init__(self, order_id: int, store: OrderStoreClient, realtime: RealtimeClient):
        self.order_id = order_id
        self.room = order_room(order_id)
        self.store = store
        self.realtime = realtime
        self.order: OrderRecord | None = None
        self.state = TrackerState.LOADING
        self.error: str | None = None
        self.last_message: str | None = None
        self._events_seen = 0

    async def start(self) -> None:
        self.realtime.subscribe(self.room, self.handle_event)
        self.realtime.on_reconnect(self._on_reconnect)
        await self.realtime.start()
        await self.hydrate()

    async def stop(self) -> None:
        await self.realtime.stop()

    async def hydrate(self) -> None:
        seen_before = self._events_seen
        try:
            data = await self.store.get_order(self.order_id)
        except NotFound:
            self.state = TrackerState.NOT_FOUND
            self.error = NOT_FOUND_MESSAGE
            await self.realtime.unsubscribe(self.room)
            return
        except OrderHubError as exc:
            if self.order is None:
                self.state = TrackerState.ERROR
                self.error = exc.message
            logger.warning("Tracker for order %s could not fetch: %s", self.order_id, exc.message)
            return

        if self._events_seen == seen_before:
            self.order = OrderRecord.model_validate(data)
        self.state = TrackerState.READY
        self.error = None
        if is_terminal(self.order.order_status):
            # nothing will be published for this order again
            await self.realtime.unsubscribe(self.room)

    async def _on_reconnect(self, room: str) -> None:
        if room == self.room:
            await self.hydrate()

    async def handle_event(self, payload: dict[str, Any]) -> None:
        if payload.get("type") not in RealtimeEvents.ORDER_ROOM or not payload.get("order"):
            return
        order = OrderRecord.model_validate(payload["order"])
        if order.id != self.order_id:
            return
        self._events_seen += 1
        self.order = order
        self.state = TrackerState.READY
        self.error = None
        self.last_message = payload.get("message")
        if is_terminal(order.order_status):
            logger.info("Order %s reached %s; leaving %s", order.id, order.order_status.value, self.room)
            await self.realtime.unsubscribe(self.room)

    def view(self) -> TrackingView | None:
        if self.order is None:
            return None
        return build_tracking_view(self.order)
