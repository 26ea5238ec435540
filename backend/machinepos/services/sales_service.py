"""
Sale processing.

process_sale() records a sale as one unit of work:

    validate input
    for each line: load machine -> check stock -> VAT math -> decrement stock
    find or create the customer
    insert the order (totals derived by recompute_totals)
    COMMIT
    bump customer statistics (best effort, after commit)

Everything before COMMIT shares a single database transaction. Any failure
in it rolls the session back, so no stock decrement, customer change or
order row outlives a failed sale. On SQLite the transaction is opened with
BEGIN IMMEDIATE and the decrement itself is a guarded UPDATE, so two sales
racing for the same units cannot both succeed.

validate_sale() runs the same checks read-only and returns a report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Machine, Order, OrderItem
from ..errors import ConflictError, InsufficientStockError, PosError, TransactionAbortError, ValidationError
from ..validation import to_int, to_percentage
from .concurrency import begin_write, run_with_retry
from .customer_service import CustomerInfo, find_or_create_customer, record_order_stats
from .inventory_service import get_machine_for_update, reserve_stock
from .order_service import ExtraCharge, build_extras, generate_order_code, parse_extras
from .pricing_service import ZERO, compute_totals, line_amounts, recompute_totals


logger = logging.getLogger(__name__)


# =============================================================================
# REQUEST PARSING
# =============================================================================

@dataclass(frozen=True)
class SaleLineRequest:
    machine_id: int
    quantity: int
    vat_percentage: Decimal | None = None
    warranty_months: int | None = None


@dataclass(frozen=True)
class SaleRequest:
    customer: CustomerInfo
    lines: list[SaleLineRequest]
    extras: list[ExtraCharge] = field(default_factory=list)
    discount_percentage: Decimal = ZERO
    vat_rate: Decimal | None = None
    notes: str = ""
    processed_by: str = "System"


def _parse_line(raw) -> SaleLineRequest:
    if not isinstance(raw, dict) or raw.get("machine_id") in (None, "") or raw.get("quantity") in (None, ""):
        raise ValidationError("Invalid item data: machine_id and quantity are required")

    quantity = to_int(raw["quantity"], "quantity")
    if quantity <= 0:
        raise ValidationError("Invalid item data: quantity must be at least 1", errors={"quantity": "must be at least 1"})

    vat = raw.get("vat_percentage")
    warranty = raw.get("warranty_months")
    warranty_months = to_int(warranty, "warranty_months") if warranty is not None else None
    if warranty_months is not None and warranty_months < 0:
        raise ValidationError("warranty_months cannot be negative", errors={"warranty_months": "cannot be negative"})

    return SaleLineRequest(
        machine_id=to_int(raw["machine_id"], "machine_id"),
        quantity=quantity,
        vat_percentage=to_percentage(vat, "vat_percentage") if vat is not None else None,
        warranty_months=warranty_months,
    )


def parse_sale_request(payload: dict | None) -> SaleRequest:
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_customer = payload.get("customer_info") or {}
    if not isinstance(raw_customer, dict) or not raw_customer.get("name") or not raw_customer.get("phone"):
        raise ValidationError(
            "Customer name and phone are required",
            errors={"customer_info": "name and phone are required"},
        )

    raw_items = payload.get("items")
    if not raw_items or not isinstance(raw_items, list):
        raise ValidationError("At least one item is required", errors={"items": "at least one item is required"})

    discount = payload.get("discount_percentage")
    vat_rate = payload.get("vat_rate")
    notes = str(payload.get("notes") or "").strip()
    if len(notes) > 500:
        raise ValidationError("Notes cannot exceed 500 characters", errors={"notes": "too long"})

    customer = CustomerInfo.from_payload(raw_customer)
    errors = customer.field_errors()
    if errors:
        raise ValidationError("Validation Error", errors=errors)

    return SaleRequest(
        customer=customer,
        lines=[_parse_line(raw) for raw in raw_items],
        extras=parse_extras(payload.get("extras")),
        discount_percentage=to_percentage(discount, "discount_percentage") if discount is not None else ZERO,
        vat_rate=to_percentage(vat_rate, "vat_rate") if vat_rate is not None else None,
        notes=notes,
        processed_by=str(payload.get("processed_by") or "System").strip()[:100] or "System",
    )


# =============================================================================
# PROCESS SALE
# =============================================================================

@dataclass
class SaleResult:
    order: Order
    summary: dict


def _build_line(position: int, machine: Machine, line: SaleLineRequest) -> OrderItem:
    config = current_app.config
    vat_percentage = (
        line.vat_percentage
        if line.vat_percentage is not None
        else Decimal(str(config.get("DEFAULT_VAT_PERCENTAGE", 18)))
    )
    warranty_months = (
        line.warranty_months
        if line.warranty_months is not None
        else int(config.get("DEFAULT_WARRANTY_MONTHS", 12))
    )
    amounts = line_amounts(machine.price, line.quantity, vat_percentage)

    return OrderItem(
        position=position,
        machine_id=machine.id,
        item_code=machine.item_code,
        name=machine.name,
        category=machine.category,
        quantity=line.quantity,
        unit_price=machine.price,
        vat_percentage=vat_percentage,
        warranty_months=warranty_months,
        subtotal=amounts.subtotal,
        vat_amount=amounts.vat_amount,
        total_with_vat=amounts.total_with_vat,
        returned_quantity=0,
        returned=False,
    )


def _record_sale(request: SaleRequest) -> Order:
    """The unit of work. Commits on success; the caller rolls back on error."""
    begin_write()

    items = []
    for position, line in enumerate(request.lines, start=1):
        machine = get_machine_for_update(line.machine_id)
        if machine.quantity < line.quantity:
            raise InsufficientStockError(machine.id, machine.name, machine.quantity, line.quantity)

        items.append(_build_line(position, machine, line))
        reserve_stock(machine, line.quantity)

    customer = find_or_create_customer(request.customer)

    order = Order(
        order_code=generate_order_code(),
        customer=customer,
        customer_name=request.customer.name,
        customer_phone=request.customer.phone,
        customer_email=request.customer.email or customer.email,
        customer_nic=request.customer.nic or customer.nic,
        items=items,
        extras=build_extras(request.extras),
        discount_percentage=request.discount_percentage,
        vat_rate=(
            request.vat_rate
            if request.vat_rate is not None
            else Decimal(str(current_app.config.get("LEGACY_VAT_RATE", 15)))
        ),
        notes=request.notes,
        processed_by=request.processed_by,
    )
    recompute_totals(order)

    db.session.add(order)
    db.session.flush()
    db.session.commit()
    return order


def _conflict_from_integrity_error(exc: IntegrityError) -> ConflictError:
    message = str(exc.orig).lower()
    for fld in ("nic", "phone", "order_code", "item_code"):
        if fld in message:
            return ConflictError(fld, None, message=f"Duplicate {fld} error")
    return ConflictError("unknown", None, message="Duplicate key error")


def order_summary(order: Order) -> dict:
    return {
        "order_id": order.id,
        "order_code": order.order_code,
        "item_count": sum(item.quantity for item in order.items),
        "subtotal": str(order.subtotal),
        "vat_rate": str(order.vat_rate),
        "vat_amount": str(order.vat_amount),
        "total_before_discount": str(order.total_before_discount),
        "discount_percentage": str(order.discount_percentage),
        "discount_amount": str(order.discount_amount),
        "extras_total": str(order.extras_total),
        "total": str(order.total),
        "final_total": str(order.final_total),
        "customer": {
            "name": order.customer.name,
            "phone": order.customer.phone,
        },
    }


def process_sale(payload: dict | None) -> SaleResult:
    """
    Record a sale atomically.

    Raises:
        ValidationError: missing customer name/phone, empty item list, bad
            quantities, invalid extra charge, discount outside 0-100
        NotFoundError: a machine id does not exist
        InsufficientStockError: a line asks for more than is on hand
        ConflictError: customer phone/NIC collides with another customer
        TransactionAbortError: anything else went wrong in the unit of work
    """
    request = parse_sale_request(payload)

    try:
        order = run_with_retry(lambda: _record_sale(request))
    except PosError as exc:
        db.session.rollback()
        logger.info("Sale rejected: %s", exc)
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Sale rejected on unique constraint: %s", exc.orig)
        raise _conflict_from_integrity_error(exc) from exc
    except Exception as exc:
        db.session.rollback()
        logger.exception("Sale transaction aborted")
        raise TransactionAbortError("Error processing sale") from exc

    logger.info(
        "Sale %s committed for customer %s, final total %s",
        order.order_code,
        order.customer_id,
        order.final_total,
    )

    record_order_stats(order.customer_id, order.final_total)

    return SaleResult(order=order, summary=order_summary(order))


# =============================================================================
# VALIDATE SALE (read-only)
# =============================================================================

def validate_sale(payload: dict | None) -> dict:
    """
    Pre-flight check with the same rules as process_sale(), without writing.

    Returns {is_valid, errors, warnings, summary, item_validation}. The
    summary totals are a preview; the authoritative numbers come from the
    real sale.
    """
    if not isinstance(payload, dict):
        payload = {}
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)

    validation: dict = {
        "is_valid": True,
        "errors": [],
        "warnings": [],
        "summary": {},
        "item_validation": [],
    }

    def fail(message: str) -> None:
        validation["is_valid"] = False
        validation["errors"].append(message)

    raw_customer = payload.get("customer_info")
    if not isinstance(raw_customer, dict) or not raw_customer.get("name") or not raw_customer.get("phone"):
        fail("Customer name and phone are required")
    else:
        for message in CustomerInfo.from_payload(raw_customer).field_errors().values():
            fail(message)

    raw_items = payload.get("items")
    if not raw_items or not isinstance(raw_items, list):
        fail("At least one item is required")
        return validation

    requested_per_machine: dict[int, int] = {}
    priced_lines = []

    for raw in raw_items:
        machine_ref = raw.get("machine_id") if isinstance(raw, dict) else None
        check: dict = {"machine_id": machine_ref, "is_valid": True, "errors": [], "warnings": []}

        try:
            line = _parse_line(raw)
        except ValidationError as exc:
            check["is_valid"] = False
            check["errors"].append(str(exc))
            fail(f"Item {machine_ref}: {exc}")
            validation["item_validation"].append(check)
            continue

        machine = db.session.get(Machine, line.machine_id)
        if machine is None:
            check["is_valid"] = False
            check["errors"].append("Machine not found")
            fail(f"Machine not found: {line.machine_id}")
            validation["item_validation"].append(check)
            continue

        already = requested_per_machine.get(machine.id, 0)
        remaining = machine.quantity - already - line.quantity
        check.update({
            "machine_name": machine.name,
            "unit_price": str(machine.price),
            "available_stock": machine.quantity - already,
        })

        if remaining < 0:
            check["is_valid"] = False
            check["errors"].append(
                f"Insufficient stock. Available: {machine.quantity - already}, Requested: {line.quantity}"
            )
            fail(f"Insufficient stock for {machine.name}")
        else:
            requested_per_machine[machine.id] = already + line.quantity
            vat = line.vat_percentage
            if vat is None:
                vat = Decimal(str(current_app.config.get("DEFAULT_VAT_PERCENTAGE", 18)))
            amounts = line_amounts(machine.price, line.quantity, vat)
            priced_lines.append(amounts)
            check["subtotal"] = str(amounts.subtotal)
            check["total_with_vat"] = str(amounts.total_with_vat)

            if remaining <= threshold:
                check["warnings"].append(f"Stock will be low after sale: {remaining} remaining")
                validation["warnings"].append(f"{machine.name} will have low stock after this sale")

        validation["item_validation"].append(check)

    try:
        extras = parse_extras(payload.get("extras"))
    except ValidationError as exc:
        fail(str(exc))
        extras = []

    discount = ZERO
    if payload.get("discount_percentage") is not None:
        try:
            discount = to_percentage(payload["discount_percentage"], "discount_percentage")
        except ValidationError as exc:
            fail(str(exc))

    totals = compute_totals(priced_lines, [e.amount for e in extras], discount)
    validation["summary"] = {
        "item_count": sum(_quantity_or_zero(raw) for raw in raw_items),
        "unique_items": len(raw_items),
        **totals.to_dict(),
    }
    return validation


def _quantity_or_zero(raw) -> int:
    if not isinstance(raw, dict):
        return 0
    try:
        return max(to_int(raw.get("quantity"), "quantity"), 0)
    except ValidationError:
        return 0
