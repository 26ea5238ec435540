from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from machinepos.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data.

    `phone` is stored normalized (formatting stripped) and is the uniqueness
    key used by the sale path. `nic` is optional; NULLs never collide under
    a UNIQUE index, so absent values are allowed on any number of rows.

    The running totals are denormalized and only changed after a sale
    commits (see customer_service.record_order_stats).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("total_orders >= 0", name="ck_customers_total_orders_non_negative"),
        db.CheckConstraint("total_spent >= 0", name="ck_customers_total_spent_non_negative"),
        db.Index("ix_customers_email", "email"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    nic = db.Column(db.String(12), nullable=True, unique=True)
    address = db.Column(db.String(500), nullable=True)

    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    last_order_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def customer_status(self) -> str:
        if not self.total_orders:
            return "New Customer"
        if self.total_orders >= 10:
            return "VIP Customer"
        if self.total_orders >= 5:
            return "Regular Customer"
        return "Occasional Customer"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "nic": self.nic,
            "address": self.address,
            "total_orders": self.total_orders,
            "total_spent": str(self.total_spent),
            "last_order_date": to_utc_z(self.last_order_date) if self.last_order_date else None,
            "customer_status": self.customer_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
