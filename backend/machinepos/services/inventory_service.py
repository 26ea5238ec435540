# Overview: Inventory record store; machine CRUD plus the guarded stock decrement and restock.

from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Machine, OrderItem
from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_machine
from .concurrency import lock_for_update
from .query_utils import paginate, search_filter, sort_column
from machinepos.time_utils import utcnow


logger = logging.getLogger(__name__)

MACHINE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"item_code", "name", "category", "description", "price", "quantity"},
    required_on_create={"item_code", "name", "category", "description", "price"},
)

MACHINE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"item_code", "name", "category", "description", "price", "quantity"},
)

MACHINE_SORT_FIELDS = {"name", "item_code", "category", "price", "quantity", "created_at"}


# =============================================================================
# LOOKUPS
# =============================================================================

def get_machine(machine_id: int, *, lock: bool = False) -> Machine:
    query = db.session.query(Machine).filter_by(id=machine_id)
    if lock:
        query = lock_for_update(query)
    machine = query.first()
    if not machine:
        raise NotFoundError(f"Machine not found: {machine_id}", details={"machine_id": machine_id})
    return machine


def get_machine_for_update(machine_id: int) -> Machine:
    return get_machine(machine_id, lock=True)


def list_machines(
    *,
    search: str | None = None,
    category: str | None = None,
    in_stock: bool | None = None,
    sort_by: str | None = None,
    sort_order: str = "asc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Machine)

    if search:
        query = query.filter(search_filter(search, Machine.name, Machine.item_code, Machine.description))
    if category and category != "all":
        query = query.filter(Machine.category == category)
    if in_stock is True:
        query = query.filter(Machine.quantity > 0)
    elif in_stock is False:
        query = query.filter(Machine.quantity == 0)

    col = sort_column(Machine, sort_by, MACHINE_SORT_FIELDS, "name")
    query = query.order_by(col.desc() if sort_order == "desc" else col.asc(), Machine.id.asc())

    return paginate(query, page, per_page, Machine.to_dict)


def list_categories() -> list[dict]:
    rows = (
        db.session.query(Machine.category, func.count(Machine.id))
        .group_by(Machine.category)
        .order_by(Machine.category.asc())
        .all()
    )
    return [{"name": name, "count": int(count)} for name, count in rows]


# =============================================================================
# CRUD
# =============================================================================

def create_machine(payload: dict) -> Machine:
    patch = validate_payload(model=Machine, payload=payload, policy=MACHINE_CREATE_POLICY, partial=False)
    enforce_rules_machine(patch)
    patch.setdefault("quantity", 0)

    if db.session.query(Machine.id).filter_by(item_code=patch["item_code"]).first():
        raise ConflictError(
            "item_code",
            patch["item_code"],
            message="Machine with this Item ID already exists",
        )

    machine = Machine(**patch)
    db.session.add(machine)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("item_code", patch["item_code"], message="Machine with this Item ID already exists")

    logger.info("Machine %s created (%s)", machine.item_code, machine.id)
    return machine


def update_machine(machine_id: int, payload: dict) -> Machine:
    machine = get_machine(machine_id)

    patch = validate_payload(model=Machine, payload=payload, policy=MACHINE_UPDATE_POLICY, partial=True)
    enforce_rules_machine(patch)

    if "item_code" in patch and patch["item_code"] != machine.item_code:
        raise ValidationError("item_code cannot be changed", errors={"item_code": "immutable"})

    for key, value in patch.items():
        setattr(machine, key, value)

    db.session.commit()
    return machine


def delete_machine(machine_id: int) -> Machine:
    machine = get_machine(machine_id)

    referenced = db.session.query(func.count(OrderItem.id)).filter(OrderItem.machine_id == machine.id).scalar()
    if referenced:
        raise ConflictError(
            "machine_id",
            machine.id,
            message=f"Cannot delete machine referenced by {referenced} order line(s)",
        )

    db.session.delete(machine)
    db.session.commit()
    logger.info("Machine %s deleted", machine.item_code)
    return machine


# =============================================================================
# STOCK MOVEMENTS
# =============================================================================

def reserve_stock(machine: Machine, quantity: int) -> Machine:
    """
    Decrement on-hand stock inside the caller's unit of work.

    The check and the write are one statement
    (UPDATE ... SET quantity = quantity - :q WHERE id = :id AND quantity >= :q),
    so a concurrent sale that got there first makes the row count zero
    instead of driving the quantity negative. Does not commit.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", errors={"quantity": "must be at least 1"})

    result = db.session.execute(
        update(Machine)
        .where(Machine.id == machine.id, Machine.quantity >= quantity)
        .values(quantity=Machine.quantity - quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(machine, ["quantity"])

    if result.rowcount != 1:
        raise InsufficientStockError(machine.id, machine.name, machine.quantity, quantity)
    return machine


def restock(machine: Machine, quantity: int) -> Machine:
    """Increment on-hand stock inside the caller's unit of work. Does not commit."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", errors={"quantity": "must be at least 1"})

    db.session.execute(
        update(Machine)
        .where(Machine.id == machine.id)
        .values(quantity=Machine.quantity + quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(machine, ["quantity"])
    return machine
