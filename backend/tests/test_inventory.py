# Overview: Pytest coverage for the machine inventory record store.

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from machinepos.extensions import db
from machinepos.models import Machine
from machinepos.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from machinepos.services import inventory_service, sales_service

from conftest import make_machine, sale_payload


class TestMachineCrud:

    def test_create(self, db_session):
        machine = inventory_service.create_machine({
            "item_code": "VLV-010",
            "name": "Gate Valve",
            "category": "Valves",
            "description": "2 inch brass gate valve",
            "price": "450.50",
            "quantity": 12,
        })

        assert machine.price == Decimal("450.50")
        assert machine.stock_status == "In Stock"

    def test_duplicate_item_code(self, db_session, pump):
        with pytest.raises(ConflictError) as exc_info:
            inventory_service.create_machine({
                "item_code": "PMP-001",
                "name": "Another Pump",
                "category": "Pumps",
                "description": "dup",
                "price": 10,
            })

        assert exc_info.value.field == "item_code"
        assert str(exc_info.value) == "Machine with this Item ID already exists"

    @pytest.mark.parametrize("overrides", [
        {"category": "Spaceships"},
        {"price": -1},
        {"quantity": -3},
        {"quantity": 1.5},
        {"name": None},
        {"colour": "red"},
    ])
    def test_create_validation(self, db_session, overrides):
        payload = {
            "item_code": "TL-001",
            "name": "Torque Wrench",
            "category": "Tools",
            "description": "Half inch drive",
            "price": "120.00",
        }
        payload.update(overrides)

        with pytest.raises(ValidationError):
            inventory_service.create_machine(payload)

    def test_update_keeps_item_code(self, db_session, pump):
        updated = inventory_service.update_machine(pump.id, {"price": "1100.00", "item_code": "PMP-001"})
        assert updated.price == Decimal("1100.00")

        with pytest.raises(ValidationError):
            inventory_service.update_machine(pump.id, {"item_code": "PMP-999"})

    def test_delete_blocked_when_sold(self, db_session, pump):
        sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}]))

        with pytest.raises(ConflictError):
            inventory_service.delete_machine(pump.id)

    def test_delete(self, db_session, pump):
        inventory_service.delete_machine(pump.id)

        with pytest.raises(NotFoundError):
            inventory_service.get_machine(pump.id)


class TestListing:

    def test_filters_and_categories(self, db_session, pump, motor):
        make_machine(db_session, item_code="PMP-002", name="Submersible Pump", quantity=0)

        assert inventory_service.list_machines(category="Pumps")["count"] == 2
        assert inventory_service.list_machines(search="submersible")["count"] == 1
        assert inventory_service.list_machines(in_stock=False)["count"] == 1
        assert inventory_service.list_machines(sort_by="price", sort_order="desc")["items"][0]["item_code"] == "MTR-001"

        categories = {row["name"]: row["count"] for row in inventory_service.list_categories()}
        assert categories == {"Motors": 1, "Pumps": 2}

    def test_stock_status(self, db_session):
        assert make_machine(db_session, item_code="A", quantity=0).stock_status == "Out of Stock"
        assert make_machine(db_session, item_code="B", quantity=5).stock_status == "Low Stock"
        assert make_machine(db_session, item_code="C", quantity=6).stock_status == "In Stock"


class TestStockMovements:

    def test_reserve_and_restock(self, db_session, motor):
        inventory_service.reserve_stock(motor, 2)
        assert motor.quantity == 1

        inventory_service.restock(motor, 4)
        assert motor.quantity == 5
        db.session.rollback()

    def test_reserve_never_goes_negative(self, db_session, motor):
        with pytest.raises(InsufficientStockError):
            inventory_service.reserve_stock(motor, 4)

        assert motor.quantity == 3
        db.session.rollback()

    def test_check_constraint_rejects_negative_quantity(self, db_session, motor):
        motor.quantity = -1

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()
