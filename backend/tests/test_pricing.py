# Overview: Pytest coverage for tax-inclusive line math and order total derivation.

from decimal import Decimal

from machinepos.models import Order, OrderItem, OrderExtra
from machinepos.services.pricing_service import compute_totals, line_amounts, recompute_totals


class TestLineAmounts:

    def test_vat_is_back_calculated_from_inclusive_price(self):
        line = line_amounts(Decimal("1000.00"), 2, Decimal("18"))

        assert line.vat_per_unit == Decimal("180.00")
        assert line.base_per_unit == Decimal("820.00")
        assert line.subtotal == Decimal("1640.00")
        assert line.vat_amount == Decimal("360.00")
        assert line.total_with_vat == Decimal("2000.00")

    def test_base_plus_vat_equals_price_after_rounding(self):
        """Odd prices still split to the cent."""
        line = line_amounts(Decimal("999.99"), 3, Decimal("18"))

        assert line.vat_per_unit == Decimal("180.00")
        assert line.base_per_unit + line.vat_per_unit == Decimal("999.99")
        assert line.subtotal + line.vat_amount == line.total_with_vat

    def test_zero_vat(self):
        line = line_amounts(Decimal("250.00"), 4, Decimal("0"))

        assert line.vat_amount == Decimal("0.00")
        assert line.subtotal == Decimal("1000.00")


class TestComputeTotals:

    def test_discount_applies_to_goods_not_extras(self):
        lines = [line_amounts(Decimal("1000.00"), 2, Decimal("18"))]
        totals = compute_totals(lines, [Decimal("150.00")], Decimal("10"))

        assert totals.total_before_discount == Decimal("2000.00")
        assert totals.discount_amount == Decimal("200.00")
        assert totals.extras_total == Decimal("150.00")
        assert totals.final_total == Decimal("1950.00")
        # legacy field: tax-exclusive goods plus extras
        assert totals.total == Decimal("1790.00")

    def test_no_lines_no_extras(self):
        totals = compute_totals([], [], Decimal("0"))

        assert totals.final_total == Decimal("0.00")
        assert totals.to_dict()["final_total"] == "0.00"


class TestRecomputeTotals:

    def _order(self, returned_quantity=0):
        order = Order(discount_percentage=Decimal("0"))
        order.items = [
            OrderItem(
                position=1,
                quantity=5,
                unit_price=Decimal("1000.00"),
                vat_percentage=Decimal("18"),
                returned_quantity=returned_quantity,
            ),
        ]
        order.extras = [OrderExtra(position=1, description="Delivery", amount=Decimal("500.00"))]
        return order

    def test_totals_derived_from_lines_and_extras(self):
        order = recompute_totals(self._order())

        assert order.items[0].subtotal == Decimal("4100.00")
        assert order.vat_amount == Decimal("900.00")
        assert order.extras_total == Decimal("500.00")
        assert order.final_total == Decimal("5500.00")

    def test_returned_units_leave_the_totals(self):
        order = recompute_totals(self._order(returned_quantity=2))

        assert order.items[0].subtotal == Decimal("2460.00")
        assert order.items[0].total_with_vat == Decimal("3000.00")
        assert order.final_total == Decimal("3500.00")

    def test_caller_supplied_totals_are_overwritten(self):
        order = self._order()
        order.final_total = Decimal("1.00")

        recompute_totals(order)

        assert order.final_total == Decimal("5500.00")
