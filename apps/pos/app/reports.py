from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .models import AppSettings, MenuItem, Order, OrderStatus, PaymentMethod, PaymentStatus
from .settings import format_money, tax_for

ACTIVE_KITCHEN_STATUSES = (OrderStatus.PENDING, OrderStatus.PREPARING)


class ReportPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TableSummary(BaseModel):
    table_number: str
    orders: List[Order]
    latest_order: Order
    unpaid_orders: List[Order]
    total_unpaid: int
    is_paid: bool


class ItemSales(BaseModel):
    menu_item_id: str
    name: str
    quantity: int
    revenue: int


class PaymentSales(BaseModel):
    method: PaymentMethod
    count: int
    total: int


class SalesReport(BaseModel):
    period: ReportPeriod
    date: str
    total_orders: int
    paid_orders: int
    total_revenue: int
    average_order_value: float
    tax_total: float = 0
    revenue_display: str = ""
    item_breakdown: List[ItemSales] = Field(default_factory=list)
    payment_breakdown: List[PaymentSales] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    today_orders: int
    today_revenue: int
    today_revenue_display: str = ""
    pending_orders: int
    available_menu_items: int
    unavailable_menu_items: int


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _local_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now().astimezone()
    return now if now.tzinfo is not None else now.astimezone()


def _table_key(table_number: str):
    if table_number.isdigit():
        return (0, int(table_number), "")
    return (1, 0, table_number)


def _is_unpaid(od: Order) -> bool:
    return od.payment_status == PaymentStatus.UNPAID


def active_tables(orders: Iterable[Order]) -> List[TableSummary]:
    """Tables with an unpaid order or an order still in progress."""
    by_table: Dict[str, List[Order]] = {}
    for od in orders:
        by_table.setdefault(od.table_number, []).append(od)

    out: List[TableSummary] = []
    for table, tos in by_table.items():
        latest = max(tos, key=lambda o: _aware(o.created_at))
        unpaid = [o for o in tos if _is_unpaid(o)]
        if not unpaid and latest.status == OrderStatus.COMPLETED:
            continue
        out.append(
            TableSummary(
                table_number=table,
                orders=tos,
                latest_order=latest,
                unpaid_orders=unpaid,
                total_unpaid=sum(o.total for o in unpaid),
                is_paid=not unpaid,
            )
        )
    out.sort(key=lambda t: _table_key(t.table_number))
    return out


def pending_alert_count(orders: Iterable[Order]) -> int:
    return sum(1 for od in orders if od.status in ACTIVE_KITCHEN_STATUSES)


def orders_in_period(orders: Iterable[Order], period: ReportPeriod, now: Optional[datetime] = None) -> List[Order]:
    ref = _local_now(now)
    period = ReportPeriod(period)
    out: List[Order] = []
    for od in orders:
        created = _aware(od.created_at).astimezone(ref.tzinfo)
        if period == ReportPeriod.DAILY:
            keep = created.date() == ref.date()
        elif period == ReportPeriod.WEEKLY:
            keep = created >= ref - timedelta(days=7)
        else:
            keep = created.year == ref.year and created.month == ref.month
        if keep:
            out.append(od)
    return out


def sales_report(
    orders: Iterable[Order],
    period: ReportPeriod,
    now: Optional[datetime] = None,
    settings: Optional[AppSettings] = None,
) -> SalesReport:
    """Paid revenue for the period, with tax and display text from ``settings``."""
    settings = settings or AppSettings()
    ref = _local_now(now)
    scoped = orders_in_period(orders, period, ref)
    paid = [od for od in scoped if od.payment_status == PaymentStatus.PAID]
    revenue = sum(od.total for od in paid)

    items: Dict[str, ItemSales] = {}
    for od in paid:
        for it in od.items:
            row = items.get(it.menu_item_id)
            if row is None:
                items[it.menu_item_id] = ItemSales(
                    menu_item_id=it.menu_item_id,
                    name=it.name or (it.menu_item.name if it.menu_item else it.menu_item_id),
                    quantity=it.quantity,
                    revenue=it.line_total,
                )
            else:
                row.quantity += it.quantity
                row.revenue += it.line_total

    payments: Dict[PaymentMethod, PaymentSales] = {}
    for od in paid:
        if od.payment_method is None:
            continue
        row = payments.get(od.payment_method)
        if row is None:
            payments[od.payment_method] = PaymentSales(method=od.payment_method, count=1, total=od.total)
        else:
            row.count += 1
            row.total += od.total

    return SalesReport(
        period=ReportPeriod(period),
        date=ref.date().isoformat(),
        total_orders=len(scoped),
        paid_orders=len(paid),
        total_revenue=revenue,
        average_order_value=revenue / len(paid) if paid else 0,
        tax_total=tax_for(revenue, settings),
        revenue_display=format_money(revenue, settings),
        item_breakdown=sorted(items.values(), key=lambda r: r.revenue, reverse=True),
        payment_breakdown=list(payments.values()),
    )


def filter_orders(orders: Iterable[Order], status: Optional[OrderStatus] = None) -> List[Order]:
    if status is None:
        return list(orders)
    return [od for od in orders if od.status == OrderStatus(status)]


def kitchen_queue(orders: Iterable[Order], include_all: bool = False) -> List[Order]:
    if include_all:
        return list(orders)
    return [od for od in orders if od.status in ACTIVE_KITCHEN_STATUSES]


def dashboard_summary(
    orders: Sequence[Order],
    menu_items: Sequence[MenuItem],
    now: Optional[datetime] = None,
    settings: Optional[AppSettings] = None,
) -> DashboardSummary:
    today = orders_in_period(orders, ReportPeriod.DAILY, now)
    revenue = sum(od.total for od in today if od.payment_status == PaymentStatus.PAID)
    return DashboardSummary(
        today_orders=len(today),
        today_revenue=revenue,
        today_revenue_display=format_money(revenue, settings or AppSettings()),
        pending_orders=pending_alert_count(orders),
        available_menu_items=sum(1 for m in menu_items if m.available),
        unavailable_menu_items=sum(1 for m in menu_items if not m.available),
    )


def menu_categories(menu_items: Iterable[MenuItem]) -> List[str]:
    seen: List[str] = []
    for m in menu_items:
        if m.category not in seen:
            seen.append(m.category)
    return seen


def available_menu(menu_items: Iterable[MenuItem], category: Optional[str] = None) -> List[MenuItem]:
    wanted = category.strip().lower() if category and category != "all" else None
    return [m for m in menu_items if m.available and (wanted is None or m.category == wanted)]
