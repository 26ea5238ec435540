# Overview: Pytest fixtures shared by the service and route tests.

"""
Pytest fixtures for machinepos backend tests.

Provides the application on an in-memory database, a per-test table wipe,
sample machines and customers, and the Flask test client.
"""

from decimal import Decimal

import pytest
from machinepos import create_app
from machinepos.extensions import db
from machinepos.models import Machine, Customer


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_machine(session, item_code="PMP-001", name="Centrifugal Pump", price="1000.00", quantity=10, category="Pumps"):
    machine = Machine(
        item_code=item_code,
        name=name,
        category=category,
        description=f"{name} for testing",
        price=Decimal(price),
        quantity=quantity,
    )
    session.add(machine)
    session.commit()
    return machine


@pytest.fixture(scope='function')
def pump(db_session):
    """1000.00 tax-inclusive, 10 on hand."""
    return make_machine(db_session)


@pytest.fixture(scope='function')
def motor(db_session):
    """2500.00 tax-inclusive, 3 on hand."""
    return make_machine(db_session, item_code="MTR-001", name="Induction Motor", price="2500.00", quantity=3, category="Motors")


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        name="Nimal Perera",
        phone="0771234567",
        email="nimal@example.com",
        nic="901234567V",
        total_orders=0,
        total_spent=Decimal("0.00"),
    )
    db_session.add(customer)
    db_session.commit()
    return customer


def sale_payload(items, **overrides):
    """Sale request body for the walk-in customer used across tests."""
    payload = {
        "customer_info": {"name": "Nimal Perera", "phone": "077 123 4567"},
        "items": items,
    }
    payload.update(overrides)
    return payload
