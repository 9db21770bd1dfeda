"""
Order Hub — Customer tracking view

Turns (order_status, payment_status, delivery_type) into the ordered steps
shown by the customer tracker and the index of the current one.
"""
from dataclasses import dataclass

from orderhub.models.order import DeliveryType, OrderStatus, PaymentStatus

CANCELLED_STEP = -1


@dataclass(frozen=True)
class TrackingStep:
    key: str
    label: str


AWAITING_PAYMENT = TrackingStep("awaiting_payment", "Aguardando Pagamento")
PAYMENT_CONFIRMED = TrackingStep("payment_confirmed", "Pagamento Confirmado")
PREPARING = TrackingStep("preparing", "Preparando")
OUT_FOR_DELIVERY = TrackingStep("out_for_delivery", "Em Rota")
READY_FOR_PICKUP = TrackingStep("ready_for_pickup", "Pronto para Retirada")
FINISHED = TrackingStep("finished", "Finalizado")

TRACKING_STEPS: dict[DeliveryType, tuple[TrackingStep, ...]] = {
    DeliveryType.DELIVERY: (AWAITING_PAYMENT, PAYMENT_CONFIRMED, PREPARING, OUT_FOR_DELIVERY, FINISHED),
    DeliveryType.PICKUP: (AWAITING_PAYMENT, PAYMENT_CONFIRMED, PREPARING, READY_FOR_PICKUP, FINISHED),
}

_STEP_INDEX: dict[DeliveryType, dict[OrderStatus, int]] = {
    DeliveryType.DELIVERY: {
        OrderStatus.PREPARANDO: 2,
        OrderStatus.PRONTO: 3,
        OrderStatus.SAIU_ENTREGA: 3,
        OrderStatus.ENTREGUE: 4,
        OrderStatus.FINALIZADO: 4,
    },
    DeliveryType.PICKUP: {
        OrderStatus.PREPARANDO: 2,
        OrderStatus.PRONTO_RETIRADA: 3,
        OrderStatus.RETIRADO: 4,
        OrderStatus.FINALIZADO: 4,
    },
}

_DELIVERY_LABELS = {
    OrderStatus.NOVO: "Aguardando Pagamento",
    OrderStatus.PREPARANDO: "Pedido em Preparação",
    OrderStatus.PRONTO: "Pedido Pronto",
    OrderStatus.SAIU_ENTREGA: "Saiu para Entrega",
    OrderStatus.ENTREGUE: "Entregue",
    OrderStatus.FINALIZADO: "Finalizado",
    OrderStatus.CANCELADO: "Cancelado",
}
_PICKUP_LABELS = {
    OrderStatus.NOVO: "Aguardando Pagamento",
    OrderStatus.PREPARANDO: "Pedido em Preparação",
    OrderStatus.PRONTO_RETIRADA: "Pedido Pronto para Retirada",
    OrderStatus.RETIRADO: "Retirado pelo Cliente",
    OrderStatus.FINALIZADO: "Finalizado",
    OrderStatus.CANCELADO: "Cancelado",
}
_PAYMENT_LABELS = {
    PaymentStatus.PENDENTE: "Aguardando Pagamento",
    PaymentStatus.CONFIRMADO: "Pagamento Aprovado",
    PaymentStatus.REJEITADO: "Pagamento Rejeitado",
}


@dataclass(frozen=True)
class TrackingView:
    order_id: int
    delivery_type: DeliveryType
    steps: tuple[TrackingStep, ...]
    current_step: int
    cancelled: bool
    status_label: str
    payment_label: str
    cancel_reason: str | None = None

    @property
    def completed_steps(self) -> tuple[TrackingStep, ...]:
        if self.cancelled:
            return ()
        return self.steps[: self.current_step]


def tracking_steps(delivery_type: DeliveryType | str) -> tuple[TrackingStep, ...]:
    return TRACKING_STEPS[DeliveryType(delivery_type)]


def current_step(
    order_status: OrderStatus | str,
    payment_status: PaymentStatus | str,
    delivery_type: DeliveryType | str,
) -> int:
    status = OrderStatus(order_status)
    if status is OrderStatus.CANCELADO:
        return CANCELLED_STEP
    if status is OrderStatus.NOVO:
        return 1 if PaymentStatus(payment_status) is PaymentStatus.CONFIRMADO else 0
    return _STEP_INDEX[DeliveryType(delivery_type)].get(status, 0)


def status_display(
    order_status: OrderStatus | str,
    payment_status: PaymentStatus | str,
    delivery_type: DeliveryType | str = DeliveryType.DELIVERY,
) -> str:
    if PaymentStatus(payment_status) is PaymentStatus.PENDENTE:
        return _PAYMENT_LABELS[PaymentStatus.PENDENTE]
    labels = _DELIVERY_LABELS if DeliveryType(delivery_type) is DeliveryType.DELIVERY else _PICKUP_LABELS
    status = OrderStatus(order_status)
    return labels.get(status, status.value)


def payment_status_display(payment_status: PaymentStatus | str) -> str:
    return _PAYMENT_LABELS[PaymentStatus(payment_status)]


def build_tracking_view(order) -> TrackingView:
    status = OrderStatus(order.order_status)
    delivery_type = DeliveryType(order.delivery_type)
    cancelled = status is OrderStatus.CANCELADO
    return TrackingView(
        order_id=order.id,
        delivery_type=delivery_type,
        steps=tracking_steps(delivery_type),
        current_step=current_step(status, order.payment_status, delivery_type),
        cancelled=cancelled,
        status_label=status_display(status, order.payment_status, delivery_type),
        payment_label=payment_status_display(order.payment_status),
        cancel_reason=(order.admin_notes or "Este pedido foi cancelado.") if cancelled else None,
    )
