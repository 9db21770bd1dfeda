"""
Order Hub — Order DB model and lifecycle enums

Status values are the wire values used by the storefront and the consoles.
"""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.db.database import Base


class OrderStatus(str, PyEnum):
    NOVO = "novo"
    PREPARANDO = "preparando"
    PRONTO = "pronto"
    SAIU_ENTREGA = "saiu_entrega"
    ENTREGUE = "entregue"
    PRONTO_RETIRADA = "pronto_retirada"
    RETIRADO = "retirado"
    FINALIZADO = "finalizado"
    CANCELADO = "cancelado"


class PaymentStatus(str, PyEnum):
    PENDENTE = "pendente"
    CONFIRMADO = "confirmado"
    REJEITADO = "rejeitado"


class PaymentMethod(str, PyEnum):
    PIX = "pix"
    CARTAO = "cartao"
    DINHEIRO = "dinheiro"


class DeliveryType(str, PyEnum):
    DELIVERY = "delivery"
    PICKUP = "pickup"


def _values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Order(Base):
    """
    Authoritative order record.
    order_status / payment_status only change through orderhub.db.order_store.
    """
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    customer_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    delivery_type: Mapped[DeliveryType] = mapped_column(
        Enum(DeliveryType, name="delivery_type", native_enum=False, values_callable=_values),
        nullable=False,
    )
    order_status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", native_enum=False, values_callable=_values),
        default=OrderStatus.NOVO, index=True, nullable=False,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, values_callable=_values),
        default=PaymentStatus.PENDENTE, nullable=False,
    )
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, values_callable=_values),
        nullable=False,
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    items_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    confirmed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
