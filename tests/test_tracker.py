"""
Customer tracker tests

Covers:
  1. Snapshot fetched after joining the room
  2. An event landing during the fetch wins over the (older) snapshot
  3. Unknown order → not_found, room left
  4. Terminal status, from an event or from the fetch → room left;
     events for other orders ignored
  5. Reconnect re-fetches
"""
import pytest

from orderhub.console.tracker import NOT_FOUND_MESSAGE, CustomerTracker, TrackerState
from orderhub.core.errors import ConnectivityError, NotFound
from orderhub.core.tracking import CANCELLED_STEP
from orderhub.models.order import OrderStatus
from orderhub.realtime.events import order_room


class FakeStore:
    def __init__(self, order=None, error=None):
        self.order = order
        self.error = error
        self.during_fetch = None
        self.fetches = 0

    async def get_order(self, order_id):
        self.fetches += 1
        if self.during_fetch:
            await self.during_fetch()
        if self.error:
            raise self.error
        return dict(self.order)


class FakeRealtime:
    def __init__(self):
        self.handlers = {}
        self.reconnect_callbacks = []
        self.joined_before_fetch = None
        self.unsubscribed = []

    def subscribe(self, room, handler):
        self.handlers.setdefault(room, []).append(handler)

    async def unsubscribe(self, room):
        self.handlers.pop(room, None)
        self.unsubscribed.append(room)

    def on_reconnect(self, callback):
        self.reconnect_callbacks.append(callback)

    async def start(self):
        pass

    async def stop(self):
        pass

    async def emit(self, room, payload):
        for handler in list(self.handlers.get(room, [])):
            await handler(payload)


@pytest.fixture
def realtime():
    return FakeRealtime()


@pytest.mark.asyncio
async def test_joins_room_before_fetching(realtime, make_order):
    store = FakeStore(make_order(id=4, payment_status="confirmado", order_status="preparando"))

    async def check_joined():
        realtime.joined_before_fetch = order_room(4) in realtime.handlers

    store.during_fetch = check_joined
    tracker = CustomerTracker(4, store, realtime)
    await tracker.start()

    assert realtime.joined_before_fetch is True
    assert tracker.state is TrackerState.READY
    view = tracker.view()
    assert view.current_step == 2
    assert [s.key for s in view.completed_steps] == ["awaiting_payment", "payment_confirmed"]


@pytest.mark.asyncio
async def test_event_during_fetch_wins_over_snapshot(realtime, make_order):
    store = FakeStore(make_order(id=4))

    async def payment_confirmed_meanwhile():
        await realtime.emit(order_room(4), {
            "type": "payment-confirmed",
            "order": make_order(id=4, payment_status="confirmado"),
            "message": "Pagamento confirmado! Seu pedido está sendo preparado.",
        })

    store.during_fetch = payment_confirmed_meanwhile
    tracker = CustomerTracker(4, store, realtime)
    await tracker.start()

    assert tracker.order.payment_status.value == "confirmado"
    assert tracker.view().current_step == 1
    assert tracker.last_message.startswith("Pagamento confirmado")


@pytest.mark.asyncio
async def test_unknown_order_reports_not_found(realtime):
    tracker = CustomerTracker(99, FakeStore(error=NotFound("Order not found")), realtime)
    await tracker.start()

    assert tracker.state is TrackerState.NOT_FOUND
    assert tracker.error == NOT_FOUND_MESSAGE
    assert realtime.unsubscribed == [order_room(99)]
    assert tracker.view() is None


@pytest.mark.asyncio
async def test_fetch_failure_without_snapshot_is_an_error(realtime):
    tracker = CustomerTracker(5, FakeStore(error=ConnectivityError("down")), realtime)
    await tracker.start()

    assert tracker.state is TrackerState.ERROR
    assert tracker.error == "down"
    assert realtime.unsubscribed == []


@pytest.mark.asyncio
async def test_terminal_status_leaves_room(realtime, make_order):
    tracker = CustomerTracker(4, FakeStore(make_order(id=4)), realtime)
    await tracker.start()

    # other orders and admin-only events are ignored
    await realtime.emit(order_room(4), {"type": "order-status-updated", "order": make_order(id=5)})
    await realtime.emit(order_room(4), {"type": "new-order", "order": make_order(id=4, order_status="cancelado")})
    assert tracker.order.order_status is OrderStatus.NOVO

    await realtime.emit(order_room(4), {
        "type": "payment-rejected",
        "order": make_order(id=4, payment_status="rejeitado", order_status="cancelado", admin_notes="PIX expirado"),
        "message": "Pagamento rejeitado.",
    })

    assert realtime.unsubscribed == [order_room(4)]
    view = tracker.view()
    assert view.cancelled
    assert view.current_step == CANCELLED_STEP
    assert view.cancel_reason == "PIX expirado"


@pytest.mark.asyncio
async def test_already_finished_order_leaves_room_after_fetch(realtime, make_order):
    store = FakeStore(make_order(id=6, payment_status="confirmado", order_status="finalizado"))
    tracker = CustomerTracker(6, store, realtime)
    await tracker.start()

    assert tracker.state is TrackerState.READY
    assert realtime.unsubscribed == [order_room(6)]
    assert order_room(6) not in realtime.handlers
    assert tracker.view().current_step == 4


@pytest.mark.asyncio
async def test_reconnect_refetches_snapshot(realtime, make_order):
    store = FakeStore(make_order(id=4))
    tracker = CustomerTracker(4, store, realtime)
    await tracker.start()

    store.order = make_order(id=4, payment_status="confirmado", order_status="preparando")
    for callback in realtime.reconnect_callbacks:
        await callback(order_room(4))
        await callback("admin-room")

    assert store.fetches == 2
    assert tracker.order.order_status is OrderStatus.PREPARANDO
