# Overview: Order record store and the order editor; lookups, listing, partial updates, cancellation.

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, OrderExtra, ORDER_STATUSES, PAYMENT_STATUSES
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_RETURNED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_REFUNDED,
)
from ..errors import ConflictError, NotFoundError, ValidationError
from ..validation import (
    normalize_email,
    normalize_nic,
    normalize_phone,
    check_customer_fields,
    to_amount,
    to_int,
    to_percentage,
)
from .inventory_service import get_machine
from .pricing_service import recompute_totals
from .query_utils import paginate, search_filter
from machinepos.time_utils import order_code_date, parse_iso_datetime, utcnow


logger = logging.getLogger(__name__)

ORDER_CODE_ATTEMPTS = 10

EDITABLE_FIELDS = {
    "customer_info",
    "items",
    "extras",
    "discount_percentage",
    "order_status",
    "payment_status",
    "notes",
    "processed_by",
}


def generate_order_code() -> str:
    """ORD-YYYYMMDD-NNNNN, re-rolled until no existing order uses it."""
    date_part = order_code_date(utcnow())
    for _ in range(ORDER_CODE_ATTEMPTS):
        code = f"ORD-{date_part}-{secrets.randbelow(100000):05d}"
        if not db.session.query(Order.id).filter_by(order_code=code).first():
            return code
    raise ConflictError("order_code", code, message="Could not allocate a unique order code")


# =============================================================================
# LOOKUPS
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def get_order_by_code(order_code: str) -> Order:
    order = db.session.query(Order).filter_by(order_code=order_code).first()
    if not order:
        raise NotFoundError("Order not found", details={"order_code": order_code})
    return order


def list_orders(
    *,
    customer_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int | None = 1,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Order)

    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)

    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_dt and end_dt:
        query = query.filter(Order.created_at >= start_dt, Order.created_at <= end_dt)

    if status and status != "all":
        query = query.filter(Order.order_status == status)

    if search:
        item_match = db.session.query(OrderItem.order_id).filter(search_filter(search, OrderItem.name))
        query = query.filter(
            search_filter(search, Order.order_code, Order.customer_name, Order.customer_phone)
            | Order.id.in_(item_match)
        )

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page, per_page, lambda o: o.to_dict(include_lines=True))


# =============================================================================
# ORDER EDITOR
# =============================================================================

def _apply_customer_snapshot(order: Order, info) -> None:
    if not isinstance(info, dict):
        raise ValidationError("customer_info must be an object")

    name = str(info.get("name", order.customer_name) or "").strip()
    phone = normalize_phone(info.get("phone", order.customer_phone))
    email = normalize_email(info.get("email", order.customer_email))
    nic = normalize_nic(info.get("nic", order.customer_nic))

    errors = check_customer_fields(name=name, phone=phone, email=email, nic=nic)
    if errors:
        raise ValidationError("Validation Error", errors=errors)

    order.customer_name = name
    order.customer_phone = phone
    order.customer_email = email
    order.customer_nic = nic


def _replace_items(order: Order, items) -> None:
    """
    Swap the order's line items for ``items``. Snapshots come from the
    machine record. Existing lines are matched by machine in line order, so
    the n-th line for a machine keeps the price, snapshot and return history
    of the n-th existing line for that machine. Stock is not touched.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", errors={"items": "at least one item is required"})

    previous: dict[int, list[OrderItem]] = {}
    for item in order.items:
        previous.setdefault(item.machine_id, []).append(item)
    new_items: list[OrderItem] = []

    for position, raw in enumerate(items, start=1):
        if not isinstance(raw, dict) or raw.get("machine_id") is None or raw.get("quantity") is None:
            raise ValidationError("Invalid item data: machine_id and quantity are required")

        machine = get_machine(to_int(raw["machine_id"], "machine_id"))
        quantity = to_int(raw["quantity"], "quantity")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", errors={"quantity": "must be at least 1"})

        matches = previous.get(machine.id)
        old = matches.pop(0) if matches else None
        returned_quantity = old.returned_quantity if old else 0
        if returned_quantity > quantity:
            raise ValidationError(
                f"Quantity for {machine.name} cannot be below the {returned_quantity} unit(s) already returned",
                errors={"quantity": "below returned quantity"},
            )

        if raw.get("unit_price") is not None:
            unit_price = to_amount(raw["unit_price"], "unit_price")
        else:
            unit_price = old.unit_price if old else machine.price

        if raw.get("vat_percentage") is not None:
            vat_percentage = to_percentage(raw["vat_percentage"], "vat_percentage")
        else:
            vat_percentage = old.vat_percentage if old else None

        if raw.get("warranty_months") is not None:
            warranty_months = to_int(raw["warranty_months"], "warranty_months")
            if warranty_months < 0:
                raise ValidationError("warranty_months cannot be negative")
        else:
            warranty_months = old.warranty_months if old else None

        new_items.append(OrderItem(
            position=position,
            machine_id=machine.id,
            item_code=old.item_code if old else machine.item_code,
            name=old.name if old else machine.name,
            category=old.category if old else machine.category,
            quantity=quantity,
            unit_price=unit_price,
            vat_percentage=vat_percentage if vat_percentage is not None else _default_vat(),
            warranty_months=warranty_months if warranty_months is not None else _default_warranty(),
            returned_quantity=returned_quantity,
            returned=bool(old and returned_quantity >= quantity and returned_quantity > 0),
            returned_at=old.returned_at if old else None,
        ))

    order.items = new_items


@dataclass(frozen=True)
class ExtraCharge:
    description: str
    amount: Decimal


def parse_extras(extras) -> list[ExtraCharge]:
    """Validate a caller's extra charges; every entry needs a description and a non-negative amount."""
    if extras is None:
        return []
    if not isinstance(extras, list):
        raise ValidationError("extras must be a list")

    parsed = []
    for raw in extras:
        if not isinstance(raw, dict):
            raise ValidationError("Extra charge must have description and valid amount")
        description = str(raw.get("description") or "").strip()
        if not description or raw.get("amount") is None:
            raise ValidationError("Extra charge must have description and valid amount")
        if len(description) > 200:
            raise ValidationError("Extra charge description cannot exceed 200 characters")
        parsed.append(ExtraCharge(description=description, amount=to_amount(raw["amount"], "amount")))
    return parsed


def build_extras(charges: list[ExtraCharge]) -> list[OrderExtra]:
    return [
        OrderExtra(position=position, description=charge.description, amount=charge.amount)
        for position, charge in enumerate(charges, start=1)
    ]


def _default_vat():
    return current_app.config.get("DEFAULT_VAT_PERCENTAGE", 18)


def _default_warranty():
    return current_app.config.get("DEFAULT_WARRANTY_MONTHS", 12)


def _check_status(order: Order, order_status: str | None, payment_status: str | None) -> None:
    if order_status is not None:
        if order_status not in ORDER_STATUSES:
            raise ValidationError(
                f"order_status must be one of: {', '.join(ORDER_STATUSES)}",
                errors={"order_status": "invalid status"},
            )
        if order.order_status == ORDER_STATUS_CANCELLED and order_status != ORDER_STATUS_CANCELLED:
            raise ValidationError("Cancelled orders cannot be reopened", errors={"order_status": "order is cancelled"})

    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}",
            errors={"payment_status": "invalid status"},
        )


def _derive_return_status(order: Order) -> None:
    """Keep the Returned/Refunded pair in step with the line quantities after an item edit."""
    if order.order_status == ORDER_STATUS_CANCELLED:
        return
    if order.fully_returned:
        order.order_status = ORDER_STATUS_RETURNED
        order.payment_status = PAYMENT_STATUS_REFUNDED
    elif order.order_status == ORDER_STATUS_RETURNED:
        order.order_status = ORDER_STATUS_COMPLETED
        if order.payment_status == PAYMENT_STATUS_REFUNDED:
            order.payment_status = PAYMENT_STATUS_PAID


def update_order(order_id: int, patch: dict) -> Order:
    """
    Apply a partial update and re-derive the totals.

    Only keys present in ``patch`` are touched. Replacing the item list
    does not move stock; use the sale and return paths for that.
    """
    order = get_order(order_id)

    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    try:
        _check_status(order, patch.get("order_status"), patch.get("payment_status"))

        if "customer_info" in patch:
            _apply_customer_snapshot(order, patch["customer_info"])
        if "items" in patch:
            _replace_items(order, patch["items"])
        if "extras" in patch:
            order.extras = build_extras(parse_extras(patch["extras"]))
        if "discount_percentage" in patch:
            order.discount_percentage = to_percentage(patch["discount_percentage"] or 0, "discount_percentage")
        if "items" in patch and patch.get("order_status") is None:
            _derive_return_status(order)
        if patch.get("order_status") is not None:
            order.order_status = patch["order_status"]
        if patch.get("payment_status") is not None:
            order.payment_status = patch["payment_status"]
        if "notes" in patch:
            notes = str(patch["notes"] or "").strip()
            if len(notes) > 500:
                raise ValidationError("Notes cannot exceed 500 characters", errors={"notes": "too long"})
            order.notes = notes
        if patch.get("processed_by"):
            order.processed_by = str(patch["processed_by"]).strip()[:100]

        recompute_totals(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s updated (%s)", order.order_code, ", ".join(sorted(patch)))
    return order


def update_order_status(
    order_id: int,
    *,
    order_status: str | None = None,
    payment_status: str | None = None,
    notes: str | None = None,
) -> Order:
    patch: dict = {}
    if order_status:
        patch["order_status"] = order_status
    if payment_status:
        patch["payment_status"] = payment_status
    if notes is not None:
        patch["notes"] = notes
    return update_order(order_id, patch)


def cancel_order(order_id: int) -> Order:
    """Orders are never deleted; cancelling flips the status."""
    order = get_order(order_id)
    order.order_status = ORDER_STATUS_CANCELLED
    db.session.commit()
    logger.info("Order %s cancelled", order.order_code)
    return order
