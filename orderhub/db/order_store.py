"""
Order Hub — Order Store operations

Every mutation is a single compare-and-set UPDATE:
  - READ:  fetch the current record
  - CHECK: ask the state machine whether the move is legal from that snapshot
  - WRITE: UPDATE ... WHERE id = :id AND order_status = :read_status [AND payment_status = :read_payment]
  - rowcount == 0 → another operator won the race → InvalidTransition

A lost race is not retried: the caller already decided based on a stale view.
"""
import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import get_settings
from orderhub.core.errors import InvalidTransition, NotFound
from orderhub.core.state_machine import validate_payment_decision, validate_transition
from orderhub.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from orderhub.schemas.order import OrderCreate, OrderItemIn

settings = get_settings()
logger = logging.getLogger(__name__)

SUMMARY_MAX_ITEMS = 3
CENTS = Decimal("0.01")


def compute_total(items: Iterable[OrderItemIn]) -> Decimal:
    total = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
    return total.quantize(CENTS, rounding=ROUND_HALF_UP)


def summarize_items(items: list[OrderItemIn]) -> str:
    parts = [f"{item.product_name} x{item.quantity}" for item in items[:SUMMARY_MAX_ITEMS]]
    summary = ", ".join(parts)
    if len(items) > SUMMARY_MAX_ITEMS:
        summary += "..."
    return summary


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


async def create_order(db: AsyncSession, payload: OrderCreate) -> Order:
    order = Order(
        customer_name=payload.customer_name.strip(),
        customer_phone=payload.customer_phone.strip(),
        customer_address=payload.customer_address,
        customer_email=payload.customer_email,
        delivery_type=payload.delivery_type,
        payment_method=payload.payment_method,
        order_status=OrderStatus.NOVO,
        payment_status=PaymentStatus.PENDENTE,
        total_amount=compute_total(payload.items),
        items_summary=summarize_items(payload.items),
        notes=payload.notes,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)
    logger.info(
        "Order %s created (%s, %s, total=%s)",
        order.id, order.delivery_type.value, order.payment_method.value, order.total_amount,
    )
    return order


async def get_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order {order_id} not found.")
    return order


async def list_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int | None = None,
) -> tuple[list[Order], int]:
    """Filtered, newest-first page of orders plus the total match count."""
    limit = max(1, min(limit or settings.ORDERS_PAGE_SIZE, settings.ORDERS_MAX_PAGE_SIZE))
    page = max(1, page)

    query = select(Order)
    if status and status != "all":
        query = query.where(Order.order_status == OrderStatus(status))
    if payment_method and payment_method != "all":
        query = query.where(Order.payment_method == PaymentMethod(payment_method))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            Order.customer_name.ilike(pattern),
            Order.customer_phone.ilike(pattern),
            Order.customer_address.ilike(pattern),
        ))
    if date_from:
        query = query.where(Order.created_at >= _day_start(date_from))
    if date_to:
        # inclusive of the whole date_to day
        query = query.where(Order.created_at < _day_start(date_to + timedelta(days=1)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


def pagination(total: int, page: int, limit: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


async def _compare_and_set(db: AsyncSession, order: Order, values: dict, *, check_payment: bool) -> Order:
    stmt = (
        update(Order)
        .where(Order.id == order.id, Order.order_status == order.order_status)
        .values(**values, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if check_payment:
        stmt = stmt.where(Order.payment_status == order.payment_status)

    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.rollback()
        logger.warning("Compare-and-set lost for order %s (expected %s)", order.id, order.order_status.value)
        raise InvalidTransition(
            f"Order {order.id} was changed by someone else; reload and try again.",
            current=order.order_status.value,
        )
    await db.commit()
    await db.refresh(order)
    return order


async def update_status(
    db: AsyncSession,
    order_id: int,
    target: OrderStatus | str,
    admin_notes: str | None = None,
) -> Order:
    order = await get_order(db, order_id)
    target = validate_transition(order.order_status, target, order.delivery_type, order.payment_status)

    values: dict = {"order_status": target}
    if admin_notes is not None:
        values["admin_notes"] = admin_notes
    previous = order.order_status
    order = await _compare_and_set(db, order, values, check_payment=True)
    logger.info("Order %s status %s -> %s", order.id, previous.value, order.order_status.value)
    return order


async def confirm_payment(
    db: AsyncSession,
    order_id: int,
    operator_id: str | None = None,
    admin_notes: str | None = None,
) -> Order:
    order = await get_order(db, order_id)
    validate_payment_decision(order.order_status, order.payment_status)

    values: dict = {
        "payment_status": PaymentStatus.CONFIRMADO,
        "confirmed_by": operator_id,
        "confirmed_at": _utcnow(),
    }
    if admin_notes is not None:
        values["admin_notes"] = admin_notes
    order = await _compare_and_set(db, order, values, check_payment=True)
    logger.info("Order %s payment confirmed by %s", order.id, operator_id)
    return order


async def reject_payment(
    db: AsyncSession,
    order_id: int,
    operator_id: str | None = None,
    admin_notes: str | None = None,
) -> Order:
    """Rejecting a payment also cancels the order."""
    order = await get_order(db, order_id)
    validate_payment_decision(order.order_status, order.payment_status)

    values: dict = {
        "payment_status": PaymentStatus.REJEITADO,
        "order_status": OrderStatus.CANCELADO,
        "confirmed_by": operator_id,
        "confirmed_at": _utcnow(),
    }
    if admin_notes is not None:
        values["admin_notes"] = admin_notes
    order = await _compare_and_set(db, order, values, check_payment=True)
    logger.info("Order %s payment rejected by %s", order.id, operator_id)
    return order


async def cancel_order(db: AsyncSession, order_id: int, admin_notes: str | None = None) -> Order:
    return await update_status(db, order_id, OrderStatus.CANCELADO, admin_notes=admin_notes)
