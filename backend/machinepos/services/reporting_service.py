# Overview: Read-only sales, order, dashboard and customer statistics.

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Machine, Order, OrderItem
from ..models.inventory import LOW_STOCK_LEVEL
from ..models.orders import ORDER_STATUS_CANCELLED, ORDER_STATUS_COMPLETED, ORDER_STATUS_PROCESSING
from ..errors import ValidationError
from .pricing_service import ZERO, to_cents
from machinepos.time_utils import (
    add_months,
    parse_iso_datetime,
    start_of_day,
    start_of_month,
    start_of_week,
    to_utc_z,
    utcnow,
)


# Revenue never counts cancelled orders.
_COUNTED = Order.order_status != ORDER_STATUS_CANCELLED


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return to_cents(Decimal(str(value)))


def _average(revenue: Decimal, count: int) -> Decimal:
    return to_cents(revenue / count) if count else ZERO


def _period(start: datetime | None, end: datetime | None = None) -> dict:
    query = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.final_total), 0),
    ).filter(_COUNTED)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at < end)

    count, revenue = query.one()
    count = int(count or 0)
    revenue = _money(revenue)
    return {
        "count": count,
        "revenue": str(revenue),
        "average": str(_average(revenue, count)),
    }


def _top_items(start: datetime | None, limit: int) -> list[dict]:
    sold = func.sum(OrderItem.quantity - OrderItem.returned_quantity)
    query = (
        db.session.query(
            OrderItem.machine_id,
            OrderItem.name,
            sold.label("quantity"),
            func.coalesce(func.sum(OrderItem.total_with_vat), 0).label("revenue"),
        )
        .join(Order, OrderItem.order_id == Order.id)
        .filter(_COUNTED)
    )
    if start is not None:
        query = query.filter(Order.created_at >= start)

    rows = (
        query.group_by(OrderItem.machine_id, OrderItem.name)
        .having(sold > 0)
        .order_by(sold.desc(), OrderItem.machine_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "machine_id": row.machine_id,
            "name": row.name,
            "quantity": int(row.quantity or 0),
            "revenue": str(_money(row.revenue)),
        }
        for row in rows
    ]


def _status_count(status: str, start: datetime | None = None) -> int:
    query = db.session.query(func.count(Order.id)).filter(Order.order_status == status)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    return int(query.scalar() or 0)


def _growth(current: Decimal, previous: Decimal) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round(float((current - previous) / previous * 100), 2)


# =============================================================================
# SALES / ORDERS
# =============================================================================

def sales_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "today": _period(start_of_day(now)),
        "this_week": _period(start_of_week(now)),
        "this_month": _period(start_of_month(now)),
        "top_items": _top_items(start_of_month(now), 10),
    }


def order_stats() -> dict:
    overview = _period(None)
    statuses = dict(
        db.session.query(Order.order_status, func.count(Order.id)).group_by(Order.order_status).all()
    )
    recent = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(5).all()

    return {
        "overview": {
            "total_orders": overview["count"],
            "total_revenue": overview["revenue"],
            "average_order_value": overview["average"],
            "by_status": {status: int(count) for status, count in statuses.items()},
        },
        "top_items": _top_items(None, 5),
        "recent_orders": [o.to_dict(include_lines=False) for o in recent],
    }


def orders_by_date_range(start: str | None, end: str | None) -> dict:
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_dt is None or end_dt is None:
        raise ValidationError("Start date and end date are required")

    # A bare end date covers that whole day.
    if end and len(end.strip()) == 10:
        end_dt = end_dt + timedelta(days=1)

    orders = (
        db.session.query(Order)
        .filter(Order.created_at >= start_dt, Order.created_at < end_dt)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    totals = _period(start_dt, end_dt)

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "orders": [o.to_dict(include_lines=True) for o in orders],
        "count": len(orders),
        "revenue": totals["revenue"],
        "average": totals["average"],
    }


# =============================================================================
# DASHBOARD
# =============================================================================

def dashboard_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    month_start = start_of_month(now)
    prev_month_start = datetime.combine(add_months(month_start.date(), -1), datetime.min.time())
    year_start = datetime(now.year, 1, 1)

    year = _period(year_start)
    month = _period(month_start)
    prev_month = _period(prev_month_start, month_start)

    month_revenue = Decimal(month["revenue"])
    prev_revenue = Decimal(prev_month["revenue"])

    return {
        "year": {"revenue": year["revenue"], "orders": year["count"]},
        "month": {
            "revenue": month["revenue"],
            "orders": month["count"],
            "average_order_value": month["average"],
            "revenue_growth": _growth(month_revenue, prev_revenue),
            "order_growth": _growth(Decimal(month["count"]), Decimal(prev_month["count"])),
        },
        "previous_month": {"revenue": prev_month["revenue"], "orders": prev_month["count"]},
        "total_machines": int(db.session.query(func.count(Machine.id)).scalar() or 0),
        "low_stock_machines": int(
            db.session.query(func.count(Machine.id))
            .filter(Machine.quantity > 0, Machine.quantity <= LOW_STOCK_LEVEL)
            .scalar() or 0
        ),
        "out_of_stock_machines": int(
            db.session.query(func.count(Machine.id)).filter(Machine.quantity == 0).scalar() or 0
        ),
        "total_customers": int(db.session.query(func.count(Customer.id)).scalar() or 0),
        "completed_orders": _status_count(ORDER_STATUS_COMPLETED),
        "processing_orders": _status_count(ORDER_STATUS_PROCESSING),
        "top_items": _top_items(month_start, 5),
    }


def monthly_revenue(now: datetime | None = None, months: int = 12) -> list[dict]:
    """Revenue and order count per calendar month, oldest first, zero-filled."""
    now = now or utcnow()
    first = add_months(now.date(), -(months - 1))
    start = datetime.combine(first, datetime.min.time())

    period_expr = func.strftime("%Y-%m", Order.created_at)
    rows = (
        db.session.query(
            period_expr.label("period"),
            func.count(Order.id).label("orders"),
            func.coalesce(func.sum(Order.final_total), 0).label("revenue"),
        )
        .filter(_COUNTED, Order.created_at >= start)
        .group_by("period")
        .all()
    )
    by_period = {row.period: row for row in rows}

    result = []
    for offset in range(months):
        month = add_months(first, offset)
        key = month.strftime("%Y-%m")
        row = by_period.get(key)
        result.append({
            "month": key,
            "revenue": str(_money(row.revenue)) if row else str(ZERO),
            "orders": int(row.orders) if row else 0,
        })
    return result


# =============================================================================
# CUSTOMERS
# =============================================================================

def customer_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    total = int(db.session.query(func.count(Customer.id)).scalar() or 0)
    new_customers = int(
        db.session.query(func.count(Customer.id))
        .filter(Customer.created_at >= now - timedelta(days=30))
        .scalar() or 0
    )
    top = (
        db.session.query(Customer)
        .filter(Customer.total_orders > 0)
        .order_by(Customer.total_spent.desc(), Customer.id.asc())
        .limit(5)
        .all()
    )
    return {
        "total_customers": total,
        "new_customers_last_30_days": new_customers,
        "top_customers": [c.to_dict() for c in top],
    }
