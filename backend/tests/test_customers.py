# Overview: Pytest coverage for the customer record store.

from decimal import Decimal

import pytest
from machinepos.extensions import db
from machinepos.models import Customer
from machinepos.errors import ConflictError, NotFoundError, ValidationError
from machinepos.services import customer_service, sales_service
from machinepos.validation import is_valid_phone, normalize_phone

from conftest import sale_payload


class TestPhoneRules:

    @pytest.mark.parametrize("raw, expected", [
        ("077 123 4567", "0771234567"),
        ("077-123-4567", "0771234567"),
        ("(077) 123.4567", "0771234567"),
        ("+94 77 123 4567", "+94771234567"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("phone, valid", [
        ("0771234567", True),
        ("+94771234567", True),
        ("+14155550123", True),
        ("0071234567", False),
        ("12345", False),
        ("", False),
    ])
    def test_validity(self, phone, valid):
        assert is_valid_phone(phone) is valid


class TestCreateCustomer:

    def test_create_normalizes_fields(self, db_session):
        customer = customer_service.create_customer({
            "name": "  Sunil Fernando ",
            "phone": "071 555 6666",
            "email": "Sunil@Example.COM",
            "nic": "200012345678",
        })

        assert customer.name == "Sunil Fernando"
        assert customer.phone == "0715556666"
        assert customer.email == "sunil@example.com"
        assert customer.total_spent == Decimal("0.00")
        assert customer.customer_status == "New Customer"

    def test_duplicate_phone(self, db_session, customer):
        with pytest.raises(ConflictError) as exc_info:
            customer_service.create_customer({"name": "Someone Else", "phone": "077-123-4567"})

        assert exc_info.value.field == "phone"

    def test_duplicate_nic(self, db_session, customer):
        with pytest.raises(ConflictError) as exc_info:
            customer_service.create_customer({"name": "Someone Else", "phone": "0710000000", "nic": "901234567v"})

        assert exc_info.value.field == "nic"

    @pytest.mark.parametrize("payload, field", [
        ({"name": "A", "phone": "0771234567"}, "name"),
        ({"name": "Valid Name", "phone": "999"}, "phone"),
        ({"name": "Valid Name", "phone": "0771234567", "email": "not-an-email"}, "email"),
        ({"name": "Valid Name", "phone": "0771234567", "nic": "1234"}, "nic"),
    ])
    def test_field_validation(self, db_session, payload, field):
        with pytest.raises(ValidationError) as exc_info:
            customer_service.create_customer(payload)

        assert field in exc_info.value.errors


class TestUpdateDeleteCustomer:

    def test_update(self, db_session, customer):
        updated = customer_service.update_customer(customer.id, {"address": "12 Galle Road, Colombo"})

        assert updated.address == "12 Galle Road, Colombo"
        assert updated.phone == "0771234567"

    def test_update_collision(self, db_session, customer):
        other = customer_service.create_customer({"name": "Kamal Silva", "phone": "0719998887"})

        with pytest.raises(ConflictError):
            customer_service.update_customer(other.id, {"phone": "0771234567"})

    def test_update_unknown_field(self, db_session, customer):
        with pytest.raises(ValidationError):
            customer_service.update_customer(customer.id, {"total_spent": "1000000"})

    def test_delete_blocked_by_orders(self, db_session, pump):
        order = sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}])).order

        with pytest.raises(ConflictError) as exc_info:
            customer_service.delete_customer(order.customer_id)

        assert "Customer has 1 order(s)" in str(exc_info.value)

    def test_delete(self, db_session, customer):
        customer_service.delete_customer(customer.id)

        assert db.session.query(Customer).count() == 0
        with pytest.raises(NotFoundError):
            customer_service.get_customer(customer.id)


class TestLookups:

    def test_find_by_phone_or_nic(self, db_session, customer):
        assert customer_service.find_by_phone_or_nic("077 123 4567").id == customer.id
        assert customer_service.find_by_phone_or_nic(None, "901234567v").id == customer.id
        assert customer_service.find_by_phone_or_nic(None, None) is None

    def test_customer_with_recent_orders(self, db_session, pump):
        for _ in range(3):
            sales_service.process_sale(sale_payload([{"machine_id": pump.id, "quantity": 1}]))

        customer = db.session.query(Customer).one()
        detail = customer_service.get_customer_with_orders(customer.id)

        assert detail["customer"]["total_orders"] == 3
        assert len(detail["recent_orders"]) == 3

    def test_list_search_and_paging(self, db_session, customer):
        customer_service.create_customer({"name": "Kamal Silva", "phone": "0719998887"})

        assert customer_service.list_customers(search="kamal")["count"] == 1
        page = customer_service.list_customers(page=1, per_page=1)
        assert page["count"] == 1
        assert page["pagination"]["total"] == 2
        assert page["pagination"]["has_next"] is True
