"""
Order Hub — Operator (admin) orders API

JWT with is_admin=true enforced by AdminAuthMiddleware (request.state.user set).
Every mutation is a compare-and-set in the store; the resulting record is
broadcast to admin-room and the order's room once committed.
"""
from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.core.config import get_settings
from orderhub.db import order_store
from orderhub.db.database import get_db
from orderhub.models.order import OrderStatus, PaymentMethod
from orderhub.realtime.channel import Channel, get_channel
from orderhub.realtime.publisher import (
    publish_payment_confirmed,
    publish_payment_rejected,
    publish_status_updated,
)
from orderhub.schemas.order import (
    AdminOrderView,
    OrderListResponse,
    Pagination,
    PaymentActionRequest,
    StatusUpdateRequest,
)

settings = get_settings()
router = APIRouter(prefix="/admin/orders", tags=["admin"])


def _operator_id(request: Request) -> str | None:
    user = getattr(request.state, "user", None) or {}
    return user.get("sub")


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status: OrderStatus | None = None,
    payment_method: PaymentMethod | None = None,
    search: str | None = Query(None, max_length=100),
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.ORDERS_PAGE_SIZE, ge=1, le=settings.ORDERS_MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_store.list_orders(
        db,
        status=status.value if status else None,
        payment_method=payment_method.value if payment_method else None,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return OrderListResponse(
        data=[AdminOrderView.from_order(o) for o in orders],
        pagination=Pagination(**order_store.pagination(total, page, limit)),
    )


@router.get("/{order_id}", response_model=AdminOrderView)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await order_store.get_order(db, order_id)
    return AdminOrderView.from_order(order)


@router.api_route("/{order_id}/status", methods=["PUT", "PATCH"], response_model=AdminOrderView)
async def update_status(
    order_id: int,
    payload: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    order = await order_store.update_status(db, order_id, payload.order_status, payload.admin_notes)
    await publish_status_updated(channel, order)
    return AdminOrderView.from_order(order)


@router.post("/{order_id}/confirm-payment", response_model=AdminOrderView)
async def confirm_payment(
    order_id: int,
    request: Request,
    payload: PaymentActionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    notes = payload.admin_notes if payload else None
    order = await order_store.confirm_payment(db, order_id, _operator_id(request), notes)
    await publish_payment_confirmed(channel, order)
    return AdminOrderView.from_order(order)


@router.post("/{order_id}/reject-payment", response_model=AdminOrderView)
async def reject_payment(
    order_id: int,
    request: Request,
    payload: PaymentActionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    notes = payload.admin_notes if payload else None
    order = await order_store.reject_payment(db, order_id, _operator_id(request), notes)
    await publish_payment_rejected(channel, order)
    return AdminOrderView.from_order(order)


@router.post("/{order_id}/cancel", response_model=AdminOrderView)
async def cancel_order(
    order_id: int,
    payload: PaymentActionRequest | None = None,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    notes = payload.admin_notes if payload else None
    order = await order_store.cancel_order(db, order_id, notes)
    await publish_status_updated(channel, order)
    return AdminOrderView.from_order(order)
