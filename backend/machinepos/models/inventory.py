from __future__ import annotations

from ..extensions import db
from machinepos.time_utils import to_utc_z, utcnow


MACHINE_CATEGORIES = (
    "Pumps",
    "Motors",
    "Pipes",
    "Bearings",
    "Valves",
    "Filters",
    "Seals",
    "Tools",
    "Electronics",
    "Other",
)

LOW_STOCK_LEVEL = 5


class Machine(db.Model):
    """
    An inventory item.

    `price` is tax-inclusive. `quantity` is the on-hand count and is only
    changed by the sale path (decrement) and the return path (increment);
    the check constraint keeps it from ever going negative, even if a
    caller skips the service layer.
    """
    __tablename__ = "machines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_machines_quantity_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_machines_price_non_negative"),
        db.Index("ix_machines_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Business-facing code, immutable after creation
    item_code = db.Column(db.String(64), nullable=False, unique=True)

    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    description = db.Column(db.Text, nullable=False)

    price = db.Column(db.Numeric(14, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    date_added = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def stock_status(self) -> str:
        if self.quantity == 0:
            return "Out of Stock"
        if self.quantity <= LOW_STOCK_LEVEL:
            return "Low Stock"
        return "In Stock"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_code": self.item_code,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price": str(self.price),
            "quantity": self.quantity,
            "stock_status": self.stock_status,
            "date_added": to_utc_z(self.date_added),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
