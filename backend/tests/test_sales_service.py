# Overview: Pytest coverage for recording sales as one unit of work.

"""
Sale processing tests.

Covers the money arithmetic of a committed sale, stock decrements, the
customer upsert, and the guarantee that a failed sale leaves stock and
customer records exactly as they were.
"""

from decimal import Decimal

import pytest
from machinepos.extensions import db
from machinepos.models import Customer, Machine, Order
from machinepos.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    TransactionAbortError,
    ValidationError,
)
from machinepos.services import order_service, sales_service

from conftest import sale_payload


def _stock(machine_id):
    db.session.expire_all()
    return db.session.get(Machine, machine_id).quantity


class TestProcessSale:

    def test_single_line_totals(self, db_session, pump):
        """1000.00 at 18% VAT, two units."""
        result = sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 2}]))
        order = result.order

        assert order.subtotal == Decimal("1640.00")
        assert order.vat_amount == Decimal("360.00")
        assert order.total_before_discount == Decimal("2000.00")
        assert order.discount_amount == Decimal("0.00")
        assert order.final_total == Decimal("2000.00")
        assert order.vat_rate == Decimal("15")
        assert order.order_status == "Completed"
        assert order.payment_status == "Paid"

        line = order.items[0]
        assert line.vat_amount == Decimal("360.00")
        assert line.warranty_months == 12
        assert line.item_code == "PMP-001"

        assert _stock(pump.id) == 8

    def test_discount_applies_to_total_before_discount(self, db_session, pump):
        result = sales_service.process_sale(
            sale_payload([{"machine_id": pump.id, "quantity": 2}], discount_percentage=10)
        )

        assert result.order.discount_amount == Decimal("200.00")
        assert result.order.final_total == Decimal("1800.00")
        assert result.summary["final_total"] == "1800.00"
        assert result.summary["item_count"] == 2

    def test_extras_and_per_line_terms(self, db_session, pump, motor):
        payload = sale_payload(
            [
                {"machine_id": pump.id, "quantity": 1, "vat_percentage": 0, "warranty_months": 24},
                {"machine_id": motor.id, "quantity": 1},
            ],
            extras=[{"description": "Installation", "amount": "300.00"}],
            notes="Deliver on Monday",
            processed_by="cashier-1",
        )

        order = sales_service.process_sale(payload).order

        assert [item.position for item in order.items] == [1, 2]
        assert order.items[0].vat_amount == Decimal("0.00")
        assert order.items[0].warranty_months == 24
        assert order.items[1].vat_amount == Decimal("450.00")
        assert order.extras_total == Decimal("300.00")
        assert order.final_total == Decimal("3800.00")
        assert order.notes == "Deliver on Monday"
        assert order.processed_by == "cashier-1"

    def test_order_code_format(self, db_session, pump):
        order = sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}])).order

        prefix, date_part, suffix = order.order_code.split("-")
        assert prefix == "ORD"
        assert len(date_part) == 8 and date_part.isdigit()
        assert len(suffix) == 5 and suffix.isdigit()

    def test_order_code_space_exhausted(self, db_session, pump, monkeypatch):
        monkeypatch.setattr(order_service.secrets, "randbelow", lambda _: 42)
        first = sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}])).order
        assert first.order_code.endswith("-00042")

        with pytest.raises(ConflictError) as exc_info:
            sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}]))

        assert exc_info.value.field == "order_code"
        assert db.session.query(Order).count() == 1
        assert _stock(pump.id) == 9

    def test_refetch_is_stable(self, db_session, pump, motor):
        """Reading an order back never re-derives different totals."""
        order = sales_service.process_sale(sale_payload(
            [
                {"machine_id": pump.id, "quantity": 3},
                {"machine_id": motor.id, "quantity": 1},
            ],
            extras=[{"description": "Delivery", "amount": "150.00"}],
            discount_percentage=5,
        )).order
        order_id = order.id

        db.session.expire_all()
        first = order_service.get_order(order_id).to_dict()
        db.session.expire_all()
        second = order_service.get_order(order_id).to_dict()
        third = order_service.get_order_by_code(first["order_code"]).to_dict()

        assert first == second == third
        assert Decimal(first["final_total"]) == Decimal("5375.00")


class TestStock:

    def test_insufficient_stock_leaves_quantity_unchanged(self, db_session, motor):
        """Three on hand, five requested."""
        with pytest.raises(InsufficientStockError) as exc_info:
            sales_service.process_sale(sale_payload([{"machine_id": motor.id, "quantity": 5}]))

        assert exc_info.value.available == 3
        assert exc_info.value.requested == 5
        assert "Available: 3, Requested: 5" in str(exc_info.value)
        assert _stock(motor.id) == 3
        assert db.session.query(Order).count() == 0

    def test_later_line_shortfall_rolls_back_earlier_lines(self, db_session, pump, motor):
        with pytest.raises(InsufficientStockError):
            sales_service.process_sale(sale_payload([
                {"machine_id": pump.id, "quantity": 4},
                {"machine_id": motor.id, "quantity": 4},
            ]))

        assert _stock(pump.id) == 10
        assert _stock(motor.id) == 3

    def test_same_machine_on_two_lines_cannot_oversell(self, db_session, motor):
        with pytest.raises(InsufficientStockError):
            sales_service.process_sale(sale_payload([
                {"machine_id": motor.id, "quantity": 2},
                {"machine_id": motor.id, "quantity": 2},
            ]))

        assert _stock(motor.id) == 3

    def test_selling_exact_stock_reaches_zero(self, db_session, motor):
        sales_service.process_sale(sale_payload([{"machine_id": motor.id, "quantity": 3}]))

        assert _stock(motor.id) == 0

    def test_unknown_machine(self, db_session, pump):
        with pytest.raises(NotFoundError):
            sales_service.process_sale(sale_payload([
                {"machine_id": pump.id, "quantity": 1},
                {"machine_id": 99999, "quantity": 1},
            ]))

        assert _stock(pump.id) == 10


class TestCustomerResolution:

    def test_phone_formats_resolve_to_one_customer(self, db_session, pump):
        sales_service.process_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 1}],
            customer_info={"name": "Nimal Perera", "phone": "077-123-4567"},
        ))
        sales_service.process_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 1}],
            customer_info={"name": "Nimal Perera", "phone": "0771234567"},
        ))

        db.session.expire_all()
        customers = db.session.query(Customer).all()
        assert len(customers) == 1
        assert customers[0].phone == "0771234567"
        assert customers[0].total_orders == 2
        assert customers[0].total_spent == Decimal("2000.00")
        assert customers[0].last_order_date is not None

    def test_existing_customer_matched_by_nic(self, db_session, pump, customer):
        order = sales_service.process_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 1}],
            customer_info={"name": "Nimal P.", "phone": "0712223344", "nic": "901234567v"},
        )).order

        assert order.customer_id == customer.id
        assert order.customer_name == "Nimal P."
        assert db.session.query(Customer).count() == 1

    def test_existing_customer_details_are_refreshed(self, db_session, pump, customer):
        sales_service.process_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 1}],
            customer_info={"name": "Nimal Perera", "phone": "0771234567", "email": "NEW@Example.com"},
        ))

        db.session.expire_all()
        assert db.session.get(Customer, customer.id).email == "new@example.com"

    def test_stats_failure_does_not_fail_the_sale(self, db_session, pump, monkeypatch):
        from machinepos.services import customer_service

        def broken_update(*args, **kwargs):
            raise RuntimeError("stats store unavailable")

        monkeypatch.setattr(customer_service, "update", broken_update)

        result = sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}]))

        db.session.expire_all()
        assert db.session.query(Order).filter_by(order_code=result.order.order_code).count() == 1
        assert db.session.query(Customer).one().total_orders == 0


class TestAtomicity:

    def test_failure_after_stock_decrement_restores_stock(self, db_session, pump, motor, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("order insert failed")

        monkeypatch.setattr(sales_service, "generate_order_code", fail)

        with pytest.raises(TransactionAbortError) as exc_info:
            sales_service.process_sale(sale_payload([
                {"machine_id": pump.id, "quantity": 2},
                {"machine_id": motor.id, "quantity": 1},
            ]))

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert _stock(pump.id) == 10
        assert _stock(motor.id) == 3
        assert db.session.query(Customer).count() == 0
        assert db.session.query(Order).count() == 0

    def test_customer_conflict_rolls_back(self, db_session, pump, customer):
        """Phone matches one customer, NIC is taken by another."""
        other = Customer(name="Kamal Silva", phone="0719998887", nic="851234567V", total_orders=0, total_spent=Decimal("0"))
        db.session.add(other)
        db.session.commit()

        from machinepos.errors import ConflictError

        with pytest.raises(ConflictError) as exc_info:
            sales_service.process_sale(sale_payload(
                [{"machine_id": pump.id, "quantity": 1}],
                customer_info={"name": "Nimal Perera", "phone": "0771234567", "nic": "851234567V"},
            ))

        assert exc_info.value.field == "nic"
        assert _stock(pump.id) == 10


class TestInputValidation:

    @pytest.mark.parametrize("payload", [
        {"items": [{"machine_id": 1, "quantity": 1}]},
        {"customer_info": {"name": "Nimal"}, "items": [{"machine_id": 1, "quantity": 1}]},
        {"customer_info": {"name": "Nimal", "phone": "0771234567"}, "items": []},
        {"customer_info": {"name": "Nimal", "phone": "0771234567"}, "items": [{"machine_id": 1}]},
        {"customer_info": {"name": "Nimal", "phone": "0771234567"}, "items": [{"machine_id": 1, "quantity": 0}]},
        {"customer_info": {"name": "Nimal", "phone": "12345"}, "items": [{"machine_id": 1, "quantity": 1}]},
    ])
    def test_rejected_before_touching_stock(self, db_session, payload):
        with pytest.raises(ValidationError):
            sales_service.process_sale(payload)

    def test_invalid_extra_charge(self, db_session, pump):
        with pytest.raises(ValidationError) as exc_info:
            sales_service.process_sale(sale_payload(
                [{"machine_id": pump.id, "quantity": 1}],
                extras=[{"description": "", "amount": 100}],
            ))

        assert "Extra charge" in str(exc_info.value)
        assert _stock(pump.id) == 10

    def test_discount_out_of_range(self, db_session, pump):
        with pytest.raises(ValidationError):
            sales_service.process_sale(sale_payload(
                [{"machine_id": pump.id, "quantity": 1}],
                discount_percentage=150,
            ))
