# Overview: Tax-inclusive line math and order total recomputation.

"""
Pricing rules.

Stored unit prices already include VAT. VAT is back-calculated as a share of
the price (vat = price * pct / 100) and the base price is what is left, so
base + vat always equals the stored price to the cent.

recompute_totals() is the single place order money columns are derived. It
is a plain function over the in-memory order (no queries, no commit) and the
sale, return and edit services call it before persisting.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineAmounts:
    vat_per_unit: Decimal
    base_per_unit: Decimal
    subtotal: Decimal        # base * quantity, tax-exclusive
    vat_amount: Decimal      # vat * quantity
    total_with_vat: Decimal  # price * quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    vat_amount: Decimal
    total_before_discount: Decimal
    discount_amount: Decimal
    extras_total: Decimal
    total: Decimal
    final_total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "vat_amount": str(self.vat_amount),
            "total_before_discount": str(self.total_before_discount),
            "discount_amount": str(self.discount_amount),
            "extras_total": str(self.extras_total),
            "total": str(self.total),
            "final_total": str(self.final_total),
        }


def line_amounts(unit_price: Decimal, quantity: int, vat_percentage: Decimal) -> LineAmounts:
    price = to_cents(unit_price)
    vat_per_unit = to_cents(Decimal(vat_percentage) / HUNDRED * price)
    base_per_unit = price - vat_per_unit
    return LineAmounts(
        vat_per_unit=vat_per_unit,
        base_per_unit=base_per_unit,
        subtotal=base_per_unit * quantity,
        vat_amount=vat_per_unit * quantity,
        total_with_vat=price * quantity,
    )


def compute_totals(
    lines: Iterable[LineAmounts],
    extras: Iterable[Decimal],
    discount_percentage: Decimal = ZERO,
) -> OrderTotals:
    """Order-level aggregation. Discount applies to goods only, never to extras."""
    subtotal = ZERO
    vat_amount = ZERO
    for line in lines:
        subtotal += line.subtotal
        vat_amount += line.vat_amount

    extras_total = sum((to_cents(amount) for amount in extras), ZERO)

    total_before_discount = subtotal + vat_amount
    discount_amount = to_cents(total_before_discount * Decimal(discount_percentage) / HUNDRED)

    return OrderTotals(
        subtotal=subtotal,
        vat_amount=vat_amount,
        total_before_discount=total_before_discount,
        discount_amount=discount_amount,
        extras_total=extras_total,
        total=subtotal + extras_total,
        final_total=total_before_discount - discount_amount + extras_total,
    )


def effective_quantity(item) -> int:
    """Units still sold on a line: returned units no longer count toward totals."""
    return item.quantity - (item.returned_quantity or 0)


def recompute_totals(order):
    """
    Re-derive every money column of ``order`` from its line items and extras.

    Line columns describe the units still kept by the customer, so a partial
    return lowers the line subtotal/VAT/total and with them the order totals.
    Returns the same order object.
    """
    amounts = []
    for item in order.items:
        line = line_amounts(item.unit_price, effective_quantity(item), item.vat_percentage)
        item.subtotal = line.subtotal
        item.vat_amount = line.vat_amount
        item.total_with_vat = line.total_with_vat
        amounts.append(line)

    totals = compute_totals(
        amounts,
        [extra.amount for extra in order.extras],
        order.discount_percentage if order.discount_percentage is not None else ZERO,
    )

    order.subtotal = totals.subtotal
    order.vat_amount = totals.vat_amount
    order.total_before_discount = totals.total_before_discount
    order.discount_amount = totals.discount_amount
    order.extras_total = totals.extras_total
    order.total = totals.total
    order.final_total = totals.final_total
    return order
