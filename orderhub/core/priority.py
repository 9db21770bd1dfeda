"""
Order Hub — Operator queue ordering

Lower priority value = more urgent. Finished orders sink to the bottom;
within the same priority the newest order comes first.
"""
from functools import cmp_to_key
from typing import Iterable

from orderhub.core.state_machine import is_finished
from orderhub.models.order import OrderStatus, PaymentStatus

FINISHED_PRIORITY = 100
DEFAULT_PRIORITY = 8

STATUS_PRIORITY: dict[OrderStatus, int] = {
    OrderStatus.PREPARANDO: 2,
    OrderStatus.PRONTO: 3,
    OrderStatus.SAIU_ENTREGA: 4,
    OrderStatus.PRONTO_RETIRADA: 5,
}


def priority(order) -> int:
    if is_finished(order):
        return FINISHED_PRIORITY
    status = OrderStatus(order.order_status)
    if status is OrderStatus.NOVO:
        # Pending payment blocks every forward step
        return 0 if PaymentStatus(order.payment_status) is PaymentStatus.PENDENTE else 1
    return STATUS_PRIORITY.get(status, DEFAULT_PRIORITY)


def compare_orders(a, b) -> int:
    """Three-way comparator: priority asc, then created_at desc."""
    pa, pb = priority(a), priority(b)
    if pa != pb:
        return -1 if pa < pb else 1
    if a.created_at != b.created_at:
        return -1 if a.created_at > b.created_at else 1
    return 0


def sort_queue(orders: Iterable) -> list:
    return sorted(orders, key=cmp_to_key(compare_orders))


def filter_queue(orders: Iterable, search: str | None = None, status: str | None = None) -> list:
    """Console-side search (name, id, phone) and status filter."""
    term = (search or "").strip().lower()
    out = []
    for order in orders:
        if status and status != "all" and OrderStatus(order.order_status).value != status:
            continue
        if term and not (
            term in (order.customer_name or "").lower()
            or term in str(order.id)
            or term in (order.customer_phone or "")
        ):
            continue
        out.append(order)
    return out
