"""
Order Hub — Order lifecycle state machine

Delivery: novo → preparando → pronto → saiu_entrega → entregue → finalizado
Pickup:   novo → preparando → pronto_retirada → retirado → finalizado
Any non-terminal status may move to cancelado.

Forward moves require a confirmed payment. The store does not gate this on
its own, so every caller goes through validate_transition().
Pure functions only: persisting the new value is the store's job.
"""
from orderhub.core.errors import InvalidTransition
from orderhub.models.order import DeliveryType, OrderStatus, PaymentStatus

STATUS_PATHS: dict[DeliveryType, tuple[OrderStatus, ...]] = {
    DeliveryType.DELIVERY: (
        OrderStatus.NOVO,
        OrderStatus.PREPARANDO,
        OrderStatus.PRONTO,
        OrderStatus.SAIU_ENTREGA,
        OrderStatus.ENTREGUE,
        OrderStatus.FINALIZADO,
    ),
    DeliveryType.PICKUP: (
        OrderStatus.NOVO,
        OrderStatus.PREPARANDO,
        OrderStatus.PRONTO_RETIRADA,
        OrderStatus.RETIRADO,
        OrderStatus.FINALIZADO,
    ),
}

# next_status lookup built once from the paths above
NEXT_STATUS: dict[DeliveryType, dict[OrderStatus, OrderStatus]] = {
    delivery_type: dict(zip(path, path[1:]))
    for delivery_type, path in STATUS_PATHS.items()
}

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELADO, OrderStatus.FINALIZADO})
FINISHED_STATUSES = frozenset({
    OrderStatus.ENTREGUE,
    OrderStatus.CANCELADO,
    OrderStatus.FINALIZADO,
    OrderStatus.RETIRADO,
})

ACTION_CONFIRM_PAYMENT = "confirm_payment"
ACTION_REJECT_PAYMENT = "reject_payment"
ACTION_ADVANCE = "advance"
ACTION_CANCEL = "cancel"


def status_path(delivery_type: DeliveryType | str) -> tuple[OrderStatus, ...]:
    return STATUS_PATHS[DeliveryType(delivery_type)]


def is_terminal(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def is_finished(order) -> bool:
    """True once the order no longer needs operator attention."""
    return OrderStatus(order.order_status) in FINISHED_STATUSES


def next_status(current: OrderStatus | str, delivery_type: DeliveryType | str) -> OrderStatus:
    """Return the single legal successor of `current` on the delivery type's path."""
    current = OrderStatus(current)
    delivery_type = DeliveryType(delivery_type)
    if current in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Order is already '{current.value}'; no further transitions are accepted.",
            current=current.value,
        )
    successor = NEXT_STATUS[delivery_type].get(current)
    if successor is None:
        raise InvalidTransition(
            f"Status '{current.value}' is not part of the {delivery_type.value} flow.",
            current=current.value,
        )
    return successor


def allowed_transitions(current: OrderStatus | str, delivery_type: DeliveryType | str) -> frozenset[OrderStatus]:
    current = OrderStatus(current)
    if current in TERMINAL_STATUSES:
        return frozenset()
    successor = NEXT_STATUS[DeliveryType(delivery_type)].get(current)
    allowed = {OrderStatus.CANCELADO}
    if successor is not None:
        allowed.add(successor)
    return frozenset(allowed)


def validate_transition(
    current: OrderStatus | str,
    target: OrderStatus | str,
    delivery_type: DeliveryType | str,
    payment_status: PaymentStatus | str,
) -> OrderStatus:
    """
    Check that `target` is reachable from `current`.

    Returns the target as an OrderStatus, raises InvalidTransition otherwise.
    Cancelling is always allowed before a terminal status; moving forward
    needs payment_status == confirmado.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    payment_status = PaymentStatus(payment_status)

    if current in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Order is already '{current.value}'; no further transitions are accepted.",
            current=current.value, target=target.value,
        )
    if target is OrderStatus.CANCELADO:
        return target

    expected = next_status(current, delivery_type)
    if target is not expected:
        raise InvalidTransition(
            f"Invalid status transition {current.value} -> {target.value} "
            f"(expected {expected.value}).",
            current=current.value, target=target.value,
        )
    if payment_status is not PaymentStatus.CONFIRMADO:
        raise InvalidTransition(
            "Payment must be confirmed before the order can move forward.",
            current=current.value, target=target.value,
        )
    return target


def validate_payment_decision(order_status: OrderStatus | str, payment_status: PaymentStatus | str) -> None:
    """Confirm/reject is only accepted while payment is pending on a live order."""
    if OrderStatus(order_status) in TERMINAL_STATUSES:
        raise InvalidTransition(
            f"Order is already '{OrderStatus(order_status).value}'.",
            current=OrderStatus(order_status).value,
        )
    if PaymentStatus(payment_status) is not PaymentStatus.PENDENTE:
        raise InvalidTransition(
            "Payment was already confirmed or rejected.",
            current=PaymentStatus(payment_status).value,
        )


def available_actions(order) -> list[str]:
    """Operator actions the machine accepts for `order` right now."""
    status = OrderStatus(order.order_status)
    payment = PaymentStatus(order.payment_status)
    if status in TERMINAL_STATUSES:
        return []

    actions: list[str] = []
    if payment is PaymentStatus.PENDENTE:
        actions += [ACTION_CONFIRM_PAYMENT, ACTION_REJECT_PAYMENT]
    elif payment is PaymentStatus.CONFIRMADO and status in NEXT_STATUS[DeliveryType(order.delivery_type)]:
        actions.append(ACTION_ADVANCE)
    actions.append(ACTION_CANCEL)
    return actions
