from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from machinepos.time_utils import to_utc_z, utcnow


ORDER_STATUS_COMPLETED = "Completed"
ORDER_STATUS_PROCESSING = "Processing"
ORDER_STATUS_CANCELLED = "Cancelled"
ORDER_STATUS_RETURNED = "Returned"
ORDER_STATUSES = (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_RETURNED,
)

PAYMENT_STATUS_PENDING = "Pending"
PAYMENT_STATUS_PAID = "Paid"
PAYMENT_STATUS_PARTIAL = "Partial"
PAYMENT_STATUS_REFUNDED = "Refunded"
PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_REFUNDED,
)

_ZERO = Decimal("0.00")


def _money(value) -> str:
    return str(value if value is not None else _ZERO)


class Order(db.Model):
    """
    A recorded sale.

    The customer_* columns are a snapshot taken at sale time so the order
    keeps reading the same even after the customer record changes. Line
    items carry the same kind of snapshot for the machine.

    The money columns are derived: pricing_service.recompute_totals() fills
    them from the line items and extras, and every service that mutates an
    order calls it before committing. Nothing copies caller-supplied totals
    into these columns.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_created_at", "created_at"),
        db.Index("ix_orders_customer_phone", "customer_phone"),
        db.Index("ix_orders_status_created", "order_status", "created_at"),
        db.CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_orders_discount_percentage_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code, e.g. "ORD-20261019-04213"
    order_code = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Customer snapshot at sale time
    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_nic = db.Column(db.String(12), nullable=True)

    # Derived totals
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("15"))
    vat_amount = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    total_before_discount = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=_ZERO)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    extras_total = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)  # subtotal + extras, for older readers
    final_total = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)

    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PAID)
    order_status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_COMPLETED)

    notes = db.Column(db.String(500), nullable=True)
    processed_by = db.Column(db.String(100), nullable=False, default="System")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    extras = db.relationship(
        "OrderExtra",
        back_populates="order",
        order_by="OrderExtra.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def summary(self) -> dict:
        return {
            "item_count": sum(item.quantity for item in self.items),
            "unique_items": len(self.items),
            "has_extras": bool(self.extras),
        }

    @property
    def fully_returned(self) -> bool:
        return bool(self.items) and all(item.returned_quantity >= item.quantity for item in self.items)

    @property
    def customer_display(self) -> str:
        return f"{self.customer_name} ({self.customer_phone})"

    def find_item(self, item_ref) -> "OrderItem | None":
        """
        Locate a line by machine id, item code, or 1-based line position.
        Machine id wins when a numeric reference could mean either.
        """
        ref = str(item_ref).strip()
        for item in self.items:
            if str(item.machine_id) == ref:
                return item
        for item in self.items:
            if item.item_code == ref:
                return item
        if ref.startswith("#") and ref[1:].isdigit():
            position = int(ref[1:])
            for item in self.items:
                if item.position == position:
                    return item
        return None

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_code": self.order_code,
            "customer_id": self.customer_id,
            "customer_info": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
                "nic": self.customer_nic,
            },
            "customer_display": self.customer_display,
            "subtotal": _money(self.subtotal),
            "vat_rate": _money(self.vat_rate),
            "vat_amount": _money(self.vat_amount),
            "total_before_discount": _money(self.total_before_discount),
            "discount_percentage": _money(self.discount_percentage),
            "discount_amount": _money(self.discount_amount),
            "extras_total": _money(self.extras_total),
            "total": _money(self.total),
            "final_total": _money(self.final_total),
            "payment_status": self.payment_status,
            "order_status": self.order_status,
            "notes": self.notes,
            "processed_by": self.processed_by,
            "summary": self.summary,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["extras"] = [extra.to_dict() for extra in self.extras]
        return data


class OrderItem(db.Model):
    """One machine and quantity on an order, with its own VAT and warranty terms."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        db.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_order_items_returned_quantity_range",
        ),
        db.CheckConstraint(
            "vat_percentage >= 0 AND vat_percentage <= 100",
            name="ck_order_items_vat_percentage_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    machine_id = db.Column(db.Integer, db.ForeignKey("machines.id"), nullable=False, index=True)

    # Machine snapshot at sale time
    item_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(32), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False)  # tax-inclusive
    vat_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("18"))
    warranty_months = db.Column(db.Integer, nullable=False, default=12)

    # Derived by recompute_totals
    vat_amount = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)  # tax-exclusive
    total_with_vat = db.Column(db.Numeric(14, 2), nullable=False, default=_ZERO)

    returned_quantity = db.Column(db.Integer, nullable=False, default=0)
    returned = db.Column(db.Boolean, nullable=False, default=False)
    returned_at = db.Column(db.DateTime, nullable=True)

    order = db.relationship("Order", back_populates="items")
    machine = db.relationship("Machine")

    @property
    def available_to_return(self) -> int:
        return self.quantity - (self.returned_quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "machine_id": self.machine_id,
            "item_code": self.item_code,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "vat_percentage": _money(self.vat_percentage),
            "vat_amount": _money(self.vat_amount),
            "warranty_months": self.warranty_months,
            "subtotal": _money(self.subtotal),
            "total_with_vat": _money(self.total_with_vat),
            "returned_quantity": self.returned_quantity or 0,
            "returned": bool(self.returned),
            "returned_at": to_utc_z(self.returned_at) if self.returned_at else None,
        }


class OrderExtra(db.Model):
    """Non-inventory charge on an order (delivery, installation...)."""
    __tablename__ = "order_extras"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_order_extras_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    description = db.Column(db.String(200), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)

    order = db.relationship("Order", back_populates="extras")

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "amount": _money(self.amount),
        }
