"""Order lifecycle: submission, status and payment transitions.

Status moves strictly forward along pending -> preparing -> ready ->
completed; any non-terminal order may be cancelled. Payment moves
unpaid -> paid -> refunded independently of status.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidTransition, NotFound, ValidationError
from .models import (
    MenuItem,
    Order,
    OrderItem,
    OrderLineIn,
    OrderPatch,
    OrderStatus,
    PaymentStatus,
    utc_now,
)

log = logging.getLogger("pos.orders")

STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.UNPAID: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

ItemLike = Union[OrderItem, Mapping[str, Any]]


def format_order_number(n: int) -> str:
    return f"#{n:04d}"


def next_statuses(order: Order) -> List[OrderStatus]:
    """Statuses the order may move to next, forward step first."""
    allowed = STATUS_TRANSITIONS[order.status]
    return sorted(allowed, key=lambda st: st == OrderStatus.CANCELLED)


def is_terminal(order: Order) -> bool:
    return not STATUS_TRANSITIONS[order.status]


def compute_total(items: Iterable[OrderItem]) -> int:
    return sum(it.line_total for it in items)


def snapshot_line(menu_item: MenuItem, quantity: int) -> OrderItem:
    return OrderItem(
        menu_item_id=menu_item.id,
        menu_item=menu_item.model_copy(deep=True),
        name=menu_item.name,
        quantity=quantity,
        price=menu_item.price,
    )


def build_lines(lines: Iterable[OrderLineIn], menu_items: Iterable[MenuItem]) -> List[OrderItem]:
    """Turn requested lines into priced order items.

    Repeated menu items are merged into one line with the summed quantity.
    Unknown ids raise ``NotFound``; unavailable items raise ``ValidationError``.
    """
    menu = {m.id: m for m in menu_items}
    qty: Dict[str, int] = {}
    for ln in lines:
        mi = menu.get(ln.menu_item_id)
        if mi is None:
            raise NotFound(f"menu item {ln.menu_item_id} not found", menu_item_id=ln.menu_item_id)
        if not mi.available:
            raise ValidationError(f"menu item {mi.name} is not available", menu_item_id=mi.id)
        qty[mi.id] = qty.get(mi.id, 0) + ln.quantity
    return [snapshot_line(menu[mid], q) for mid, q in qty.items()]


def _coerce_items(items: Optional[Iterable[ItemLike]]) -> List[OrderItem]:
    out: List[OrderItem] = []
    for raw in items or []:
        if isinstance(raw, OrderItem):
            out.append(raw)
            continue
        data = dict(raw)
        if "menuItemId" not in data and "menu_item_id" not in data:
            data["menuItemId"] = ""
        try:
            out.append(OrderItem.model_validate(data))
        except PydanticValidationError as e:
            raise ValidationError(
                "invalid order line: quantity must be >= 1 and price >= 0",
                errors=e.errors(include_url=False),
            ) from e
    return out


def create_order(
    table_number: str,
    items: Iterable[ItemLike],
    created_by: str,
    *,
    order_number: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Order:
    table = (table_number or "").strip()
    if not table:
        raise ValidationError("table number is required")
    lines = _coerce_items(items)
    if not lines:
        raise ValidationError("order must contain at least one item")
    ts = now or utc_now()
    od = Order(
        id=str(uuid.uuid4()),
        order_number=order_number,
        table_number=table,
        items=lines,
        total=compute_total(lines),
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.UNPAID,
        payment_method=None,
        created_by=created_by,
        created_at=ts,
        updated_at=ts,
    )
    log.info("order %s created for table %s total=%s", od.id, od.table_number, od.total)
    return od


def _check_status(order: Order, target: OrderStatus) -> None:
    if target == order.status:
        return
    if target not in STATUS_TRANSITIONS[order.status]:
        raise InvalidTransition(
            f"cannot move order from {order.status.value} to {target.value}",
            order_id=order.id,
            current=order.status.value,
            target=target.value,
        )


def _check_payment(order: Order, patch: OrderPatch) -> None:
    target = patch.payment_status
    if target is None:
        # only a method was supplied
        raise InvalidTransition(
            "payment method can only be set together with payment status paid",
            order_id=order.id,
        )
    if target == PaymentStatus.PAID and patch.payment_method is None:
        raise InvalidTransition("payment method is required to mark an order paid", order_id=order.id)
    if target != PaymentStatus.PAID and patch.payment_method is not None:
        raise InvalidTransition(
            "payment method can only be set together with payment status paid",
            order_id=order.id,
        )
    if target not in PAYMENT_TRANSITIONS[order.payment_status]:
        raise InvalidTransition(
            f"cannot move payment from {order.payment_status.value} to {target.value}",
            order_id=order.id,
            current=order.payment_status.value,
            target=target.value,
        )


def apply_patch(order: Order, patch: OrderPatch, now: Optional[datetime] = None) -> Order:
    """Validate ``patch`` against ``order`` and return the updated copy.

    Only the patched fields and the timestamps change; ``total`` is kept
    unless the items are replaced.
    """
    ts = now or utc_now()
    changes: Dict[str, Any] = {}

    if patch.touches_items():
        if order.status != OrderStatus.PENDING:
            raise InvalidTransition("items can only be changed while the order is pending", order_id=order.id)
        if not patch.items:
            raise ValidationError("order must contain at least one item", order_id=order.id)
        changes["items"] = [it.model_copy(deep=True) for it in patch.items]
        changes["total"] = compute_total(patch.items)

    if patch.touches_status():
        if patch.status is None:
            raise ValidationError("status must not be empty", order_id=order.id)
        _check_status(order, patch.status)
        if patch.status != order.status:
            changes["status"] = patch.status
            if patch.status == OrderStatus.COMPLETED:
                changes["completed_at"] = ts

    if patch.touches_payment():
        _check_payment(order, patch)
        changes["payment_status"] = patch.payment_status
        if patch.payment_status == PaymentStatus.PAID:
            changes["payment_method"] = patch.payment_method

    if not changes:
        return order
    changes["updated_at"] = ts
    updated = order.model_copy(update=changes)
    log.info("order %s updated: %s", order.id, sorted(k for k in changes if k != "updated_at"))
    return updated
