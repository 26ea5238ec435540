# Overview: Customer record store; lookup by phone or NIC, upsert for sales, running statistics.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order
from ..errors import ConflictError, NotFoundError, ValidationError
from ..validation import check_customer_fields, normalize_email, normalize_nic, normalize_phone
from .query_utils import paginate, search_filter, sort_column
from machinepos.time_utils import utcnow


logger = logging.getLogger(__name__)

CUSTOMER_SORT_FIELDS = {"name", "phone", "total_orders", "total_spent", "last_order_date", "created_at"}
RECENT_ORDER_LIMIT = 10


@dataclass(frozen=True)
class CustomerInfo:
    """Normalized customer descriptor as supplied by a caller."""
    name: str | None
    phone: str
    email: str | None = None
    nic: str | None = None
    address: str | None = None

    @classmethod
    def from_payload(cls, payload: dict | None) -> "CustomerInfo":
        payload = payload or {}
        if not isinstance(payload, dict):
            raise ValidationError("customer_info must be an object")
        name = payload.get("name")
        address = payload.get("address")
        return cls(
            name=str(name).strip() if name is not None else None,
            phone=normalize_phone(payload.get("phone")),
            email=normalize_email(payload.get("email")),
            nic=normalize_nic(payload.get("nic")),
            address=(str(address).strip() or None) if address is not None else None,
        )

    def field_errors(self) -> dict[str, str]:
        return check_customer_fields(name=self.name, phone=self.phone, email=self.email, nic=self.nic)


# =============================================================================
# LOOKUP / UPSERT (used by the sale path)
# =============================================================================

def find_by_phone_or_nic(phone: str | None, nic: str | None = None) -> Customer | None:
    """Match on the normalized phone OR the upper-cased NIC; None when neither is given."""
    clauses = []
    if phone:
        clauses.append(Customer.phone == normalize_phone(phone))
    if nic:
        clauses.append(Customer.nic == nic.strip().upper())
    if not clauses:
        return None
    return db.session.query(Customer).filter(or_(*clauses)).order_by(Customer.id.asc()).first()


def _ensure_unique(field: str, value: str | None, exclude_id: int | None = None) -> None:
    if not value:
        return
    query = db.session.query(Customer.id).filter(getattr(Customer, field) == value)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError(field, value, message=f"A customer with this {field} already exists")


def find_or_create_customer(info: CustomerInfo) -> Customer:
    """
    Resolve the customer for a sale inside the caller's unit of work.

    An existing match gets any changed name/email/NIC/address written back;
    otherwise a new record is added. Flushes, never commits.
    """
    errors = info.field_errors()
    if errors:
        raise ValidationError("Validation Error", errors=errors)

    customer = find_by_phone_or_nic(info.phone, info.nic)

    if customer is None:
        _ensure_unique("phone", info.phone)
        customer = Customer(
            name=info.name,
            phone=info.phone,
            email=info.email,
            nic=info.nic,
            address=info.address,
            total_orders=0,
            total_spent=Decimal("0.00"),
        )
        db.session.add(customer)
        db.session.flush()
        logger.info("Customer %s created for phone %s", customer.id, customer.phone)
        return customer

    if info.name and customer.name != info.name:
        customer.name = info.name
    if info.email and customer.email != info.email:
        customer.email = info.email
    if info.nic and customer.nic != info.nic:
        _ensure_unique("nic", info.nic, exclude_id=customer.id)
        customer.nic = info.nic
    if info.address and customer.address != info.address:
        customer.address = info.address

    db.session.flush()
    return customer


def record_order_stats(customer_id: int, order_total: Decimal) -> bool:
    """
    Bump lifetime order count / spend and the last-order date after a sale
    has committed.

    Best effort: the order is already persisted, so a failure here is logged
    and swallowed rather than reported as a failed sale. Returns whether the
    update was applied.
    """
    try:
        result = db.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(
                total_orders=Customer.total_orders + 1,
                total_spent=Customer.total_spent + order_total,
                last_order_date=utcnow(),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Error updating customer stats for customer %s", customer_id)
        return False

    customer = db.session.get(Customer, customer_id)
    if customer is not None:
        db.session.refresh(customer)
    return result.rowcount == 1


# =============================================================================
# CRUD
# =============================================================================

def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def get_customer_with_orders(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    recent = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDER_LIMIT)
        .all()
    )
    return {
        "customer": customer.to_dict(),
        "recent_orders": [o.to_dict(include_lines=False) for o in recent],
    }


def list_customers(
    *,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str = "desc",
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Customer)
    if search:
        query = query.filter(search_filter(search, Customer.name, Customer.phone, Customer.email, Customer.nic))

    col = sort_column(Customer, sort_by, CUSTOMER_SORT_FIELDS, "created_at")
    query = query.order_by(col.asc() if sort_order == "asc" else col.desc(), Customer.id.desc())

    return paginate(query, page, per_page, Customer.to_dict)


def create_customer(payload: dict) -> Customer:
    info = CustomerInfo.from_payload(payload)
    errors = info.field_errors()
    if errors:
        raise ValidationError("Validation Error", errors=errors)

    existing = find_by_phone_or_nic(info.phone, info.nic)
    if existing:
        field = "phone" if existing.phone == info.phone else "nic"
        raise ConflictError(
            field,
            getattr(info, field),
            message="Customer already exists with this phone number or NIC",
        )

    customer = Customer(
        name=info.name,
        phone=info.phone,
        email=info.email,
        nic=info.nic,
        address=info.address,
        total_orders=0,
        total_spent=Decimal("0.00"),
    )
    db.session.add(customer)
    _commit_or_conflict(info)
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    payload = payload or {}

    allowed = {"name", "phone", "email", "nic", "address"}
    unknown = set(payload) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    merged = {key: getattr(customer, key) for key in allowed}
    merged.update(payload)
    info = CustomerInfo.from_payload(merged)

    errors = info.field_errors()
    if errors:
        raise ValidationError("Validation Error", errors=errors)

    _ensure_unique("phone", info.phone, exclude_id=customer.id)
    _ensure_unique("nic", info.nic, exclude_id=customer.id)

    customer.name = info.name
    customer.phone = info.phone
    customer.email = info.email
    customer.nic = info.nic
    customer.address = info.address
    _commit_or_conflict(info)
    return customer


def delete_customer(customer_id: int) -> Customer:
    customer = get_customer(customer_id)

    order_count = db.session.query(func.count(Order.id)).filter(Order.customer_id == customer.id).scalar()
    if order_count:
        raise ConflictError(
            "customer_id",
            customer.id,
            message=f"Cannot delete customer with existing orders. Customer has {order_count} order(s).",
        )

    db.session.delete(customer)
    db.session.commit()
    return customer


def _commit_or_conflict(info: CustomerInfo) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        field = "nic" if "nic" in str(exc.orig).lower() else "phone"
        raise ConflictError(field, getattr(info, field), message=f"A customer with this {field} already exists")
