"""
Order Hub — Public orders API (checkout + customer tracking)

Flow (checkout):
  1. Validate payload (address required for delivery)
  2. Persist with order_status=novo, payment_status=pendente
  3. Broadcast new-order (admin-room) and order-created (order-<id>)
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.db import order_store
from orderhub.db.database import get_db
from orderhub.realtime.channel import Channel, get_channel
from orderhub.realtime.publisher import publish_order_created
from orderhub.schemas.order import OrderCreate, OrderRecord, TrackingResponse

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRecord, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    channel: Channel = Depends(get_channel),
):
    order = await order_store.create_order(db, payload)
    await publish_order_created(channel, order)
    return order


@router.get("/{order_id}", response_model=OrderRecord)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    return await order_store.get_order(db, order_id)


@router.get("/{order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await order_store.get_order(db, order_id)
    return TrackingResponse.from_order(order)
