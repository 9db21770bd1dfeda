"""
Order Hub Console — Operator console

Holds the operator's in-memory order snapshot and keeps it in sync:
  - initial fetch (the only step that toggles `loading`)
  - admin-room events: new-order prepends + notifies, order-updated replaces by id
  - reconnect → silent re-fetch
  - operator actions are applied optimistically. The store's answer (record
    on success, revert on failure) only lands if the optimistic copy is
    still the local one: a broadcast that arrived meanwhile is newer.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any

from orderhub.console.notifier import NotificationDispatcher
from orderhub.console.realtime_client import RealtimeClient
from orderhub.console.store_client import OrderStoreClient
from orderhub.core.errors import OrderHubError
from orderhub.core.priority import filter_queue, sort_queue
from orderhub.core.state_machine import (
    is_finished,
    next_status,
    validate_payment_decision,
    validate_transition,
)
from orderhub.models.order import OrderStatus, PaymentStatus
from orderhub.realtime.events import ADMIN_ROOM, RealtimeEvents
from orderhub.schemas.order import OrderRecord

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class OperatorConsole:
    def __init__(
        self,
        store: OrderStoreClient,
        realtime: RealtimeClient,
        dispatcher: NotificationDispatcher,
    ):
        self.store = store
        self.realtime = realtime
        self.dispatcher = dispatcher
        self.toasts = dispatcher.toasts
        self.orders: list[OrderRecord] = []
        self.loading = False
        self.load_error: str | None = None

    # ── Lifecycle ────────────────────────────────────────────
    async def start(self) -> None:
        self.realtime.subscribe(ADMIN_ROOM, self.handle_event)
        self.realtime.on_reconnect(self._on_reconnect)
        self.dispatcher.start()
        await self.realtime.start()
        await self.load()

    async def stop(self) -> None:
        await self.realtime.stop()
        await self.dispatcher.stop()

    async def load(self) -> None:
        self.loading = True
        try:
            await self.refresh()
        finally:
            self.loading = False

    async def refresh(self) -> None:
        try:
            rows = await self.store.list_all_orders()
        except OrderHubError as exc:
            self.load_error = exc.message
            self.toasts.show(f"Erro ao carregar pedidos: {exc.message}", kind="error")
            return
        self.load_error = None
        self.orders = [OrderRecord.model_validate(row) for row in rows]

    async def _on_reconnect(self, room: str) -> None:
        if room == ADMIN_ROOM:
            await self.refresh()

    # ── Snapshot helpers ─────────────────────────────────────
    def get(self, order_id: int) -> OrderRecord | None:
        return next((o for o in self.orders if o.id == order_id), None)

    def _replace(self, order: OrderRecord) -> bool:
        for i, current in enumerate(self.orders):
            if current.id == order.id:
                self.orders[i] = order
                return True
        return False

    def _upsert(self, order: OrderRecord) -> bool:
        """Replace by id or prepend; returns True when the order was new."""
        if self._replace(order):
            return False
        self.orders.insert(0, order)
        return True

    # ── Realtime ─────────────────────────────────────────────
    async def handle_event(self, payload: dict[str, Any]) -> None:
        event_type = payload.get("type")
        if event_type not in RealtimeEvents.ADMIN or not payload.get("order"):
            logger.debug("Ignoring admin event %s", event_type)
            return
        order = OrderRecord.model_validate(payload["order"])
        is_new = self._upsert(order)
        if event_type == RealtimeEvents.NEW_ORDER and is_new:
            await self.dispatcher.notify_new_order(order)

    # ── Views ────────────────────────────────────────────────
    def queue(self, search: str | None = None, status: str | None = None) -> list[OrderRecord]:
        return sort_queue(filter_queue(self.orders, search=search, status=status))

    def stats(self, today: date | None = None) -> dict[str, int]:
        today = today or datetime.now(tz=timezone.utc).date()
        return {
            "total": len(self.orders),
            "pending": sum(1 for o in self.orders if o.payment_status is PaymentStatus.PENDENTE),
            "active": sum(1 for o in self.orders if not is_finished(o)),
            "finished": sum(1 for o in self.orders if is_finished(o)),
            "today": sum(1 for o in self.orders if _as_utc(o.created_at).date() == today),
        }

    # ── Actions ──────────────────────────────────────────────
    async def _apply(self, order_id: int, changes: dict[str, Any], request, success: str) -> OrderRecord | None:
        current = self.get(order_id)
        if current is None:
            return self._missing(order_id)

        optimistic = current.model_copy(update=changes)
        self._replace(optimistic)
        try:
            result = OrderRecord.model_validate(await request())
        except OrderHubError as exc:
            logger.warning("Action on order %s failed: %s", order_id, exc.message)
            # an event may already have replaced our optimistic copy
            if self.get(order_id) is optimistic:
                self._replace(current)
            self.toasts.show(f"Erro no pedido #{order_id}: {exc.message}", kind="error")
            return None

        self.toasts.show(success, kind="success")
        latest = self.get(order_id)
        if latest is not optimistic:
            # a broadcast newer than our request already landed
            return latest
        self._replace(result)
        return result

    def _missing(self, order_id: int) -> None:
        self.toasts.show(f"Pedido #{order_id} não está na lista", kind="error")
        return None

    def _reject_locally(self, order_id: int, exc: OrderHubError) -> None:
        self.toasts.show(f"Erro no pedido #{order_id}: {exc.message}", kind="error")

    async def advance(self, order_id: int, admin_notes: str | None = None) -> OrderRecord | None:
        """Move the order to its single next status, computed from the local copy."""
        current = self.get(order_id)
        if current is None:
            return self._missing(order_id)
        try:
            target = next_status(current.order_status, current.delivery_type)
        except OrderHubError as exc:
            self._reject_locally(order_id, exc)
            return None
        return await self.set_status(order_id, target, admin_notes)

    async def set_status(
        self, order_id: int, target: OrderStatus | str, admin_notes: str | None = None
    ) -> OrderRecord | None:
        current = self.get(order_id)
        if current is None:
            return self._missing(order_id)
        try:
            target = validate_transition(
                current.order_status, target, current.delivery_type, current.payment_status
            )
        except OrderHubError as exc:
            self._reject_locally(order_id, exc)
            return None
        return await self._apply(
            order_id,
            {"order_status": target},
            lambda: self.store.update_status(order_id, target.value, admin_notes),
            f"Pedido #{order_id} atualizado",
        )

    async def confirm_payment(self, order_id: int, admin_notes: str | None = None) -> OrderRecord | None:
        current = self.get(order_id)
        if current is not None:
            try:
                validate_payment_decision(current.order_status, current.payment_status)
            except OrderHubError as exc:
                self._reject_locally(order_id, exc)
                return None
        return await self._apply(
            order_id,
            {"payment_status": PaymentStatus.CONFIRMADO},
            lambda: self.store.confirm_payment(order_id, admin_notes),
            f"Pagamento do pedido #{order_id} confirmado",
        )

    async def reject_payment(self, order_id: int, admin_notes: str | None = None) -> OrderRecord | None:
        current = self.get(order_id)
        if current is not None:
            try:
                validate_payment_decision(current.order_status, current.payment_status)
            except OrderHubError as exc:
                self._reject_locally(order_id, exc)
                return None
        return await self._apply(
            order_id,
            {"payment_status": PaymentStatus.REJEITADO, "order_status": OrderStatus.CANCELADO},
            lambda: self.store.reject_payment(order_id, admin_notes),
            f"Pagamento do pedido #{order_id} rejeitado",
        )

    async def cancel(self, order_id: int, admin_notes: str | None = None) -> OrderRecord | None:
        return await self.set_status(order_id, OrderStatus.CANCELADO, admin_notes)
