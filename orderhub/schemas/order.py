"""
Order Hub — Pydantic Schemas
"""
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from orderhub.core.priority import priority
from orderhub.core.state_machine import available_actions, is_finished
from orderhub.core.tracking import build_tracking_view, payment_status_display, status_display
from orderhub.models.order import DeliveryType, OrderStatus, PaymentMethod, PaymentStatus


class OrderItemIn(BaseModel):
    product_id: int | None = None
    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., gt=0, decimal_places=2)


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_phone: str = Field(..., min_length=1, max_length=32)
    customer_address: str | None = None
    customer_email: str | None = Field(None, max_length=255)
    delivery_type: DeliveryType
    payment_method: PaymentMethod
    items: list[OrderItemIn] = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def _address_required_for_delivery(self):
        if self.delivery_type is DeliveryType.DELIVERY and not (self.customer_address or "").strip():
            raise ValueError("customer_address is required for delivery orders")
        return self


class OrderRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_name: str
    customer_phone: str
    customer_address: str | None = None
    customer_email: str | None = None
    delivery_type: DeliveryType
    order_status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    total_amount: Decimal
    items_summary: str
    notes: str | None = None
    admin_notes: str | None = None
    confirmed_by: str | None = None
    confirmed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AdminOrderView(OrderRecord):
    """Order record plus the derived fields the operator queue renders."""

    status_display: str
    payment_status_display: str
    priority: int
    is_finished: bool
    actions: list[str]

    @classmethod
    def from_order(cls, order) -> "AdminOrderView":
        record = OrderRecord.model_validate(order)
        return cls(
            **record.model_dump(),
            status_display=status_display(order.order_status, order.payment_status, order.delivery_type),
            payment_status_display=payment_status_display(order.payment_status),
            priority=priority(order),
            is_finished=is_finished(order),
            actions=available_actions(order),
        )


class TrackingStepOut(BaseModel):
    key: str
    label: str


class TrackingResponse(BaseModel):
    order: OrderRecord
    steps: list[TrackingStepOut]
    current_step: int
    cancelled: bool
    status_display: str
    payment_status_display: str
    cancel_reason: str | None = None

    @classmethod
    def from_order(cls, order) -> "TrackingResponse":
        view = build_tracking_view(order)
        return cls(
            order=OrderRecord.model_validate(order),
            steps=[TrackingStepOut(key=s.key, label=s.label) for s in view.steps],
            current_step=view.current_step,
            cancelled=view.cancelled,
            status_display=view.status_label,
            payment_status_display=view.payment_label,
            cancel_reason=view.cancel_reason,
        )


class StatusUpdateRequest(BaseModel):
    order_status: OrderStatus
    admin_notes: str | None = Field(None, max_length=1000)


class PaymentActionRequest(BaseModel):
    admin_notes: str | None = Field(None, max_length=1000)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class OrderListResponse(BaseModel):
    data: list[AdminOrderView]
    pagination: Pagination
