# Overview: Pytest coverage for the read-only sale pre-flight check.

from machinepos.extensions import db
from machinepos.models import Customer, Machine, Order
from machinepos.services import sales_service

from conftest import sale_payload


class TestValidateSale:

    def test_valid_sale_with_preview(self, db_session, pump):
        report = sales_service.validate_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 2}],
            discount_percentage=10,
        ))

        assert report["is_valid"] is True
        assert report["errors"] == []
        assert report["summary"]["item_count"] == 2
        assert report["summary"]["unique_items"] == 1
        assert report["summary"]["final_total"] == "1800.00"
        assert report["item_validation"][0]["machine_name"] == "Centrifugal Pump"
        assert report["item_validation"][0]["available_stock"] == 10

    def test_does_not_write(self, db_session, pump):
        sales_service.validate_sale(sale_payload([{"machine_id": pump.id, "quantity": 2}]))

        db.session.expire_all()
        assert db.session.get(Machine, pump.id).quantity == 10
        assert db.session.query(Customer).count() == 0
        assert db.session.query(Order).count() == 0

    def test_low_stock_warning(self, db_session, pump):
        """10 on hand, 6 sold leaves 4, at or below the threshold of 5."""
        report = sales_service.validate_sale(sale_payload([{"machine_id": pump.id, "quantity": 6}]))

        assert report["is_valid"] is True
        assert len(report["warnings"]) == 1
        assert report["item_validation"][0]["warnings"]

    def test_insufficient_stock(self, db_session, motor):
        report = sales_service.validate_sale(sale_payload([{"machine_id": motor.id, "quantity": 5}]))

        assert report["is_valid"] is False
        assert "Insufficient stock for Induction Motor" in report["errors"]
        assert report["item_validation"][0]["is_valid"] is False

    def test_stock_is_counted_across_lines(self, db_session, motor):
        report = sales_service.validate_sale(sale_payload([
            {"machine_id": motor.id, "quantity": 2},
            {"machine_id": motor.id, "quantity": 2},
        ]))

        assert report["is_valid"] is False
        assert report["item_validation"][0]["is_valid"] is True
        assert report["item_validation"][1]["is_valid"] is False

    def test_missing_machine(self, db_session):
        report = sales_service.validate_sale(sale_payload([{"machine_id": 4242, "quantity": 1}]))

        assert report["is_valid"] is False
        assert report["item_validation"][0]["errors"] == ["Machine not found"]

    def test_missing_customer_and_items(self, db_session):
        report = sales_service.validate_sale({})

        assert report["is_valid"] is False
        assert "Customer name and phone are required" in report["errors"]
        assert "At least one item is required" in report["errors"]

    def test_bad_phone_and_extra(self, db_session, pump):
        report = sales_service.validate_sale(sale_payload(
            [{"machine_id": pump.id, "quantity": 1}],
            customer_info={"name": "Nimal Perera", "phone": "abc"},
            extras=[{"description": "Delivery"}],
        ))

        assert report["is_valid"] is False
        assert len(report["errors"]) == 2
