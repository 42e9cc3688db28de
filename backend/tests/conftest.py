"""
Pytest fixtures for back office tests.

Provides an in-memory database, a pinned business clock, and a small
catalog (user, bank account, card, products).
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.config import TestingConfig
from backoffice.extensions import CLOCK_EXTENSION_KEY, db
from backoffice.models import BankAccount, Card, Product, User
from backoffice.services import opening_balance_service
from backoffice.time_utils import FixedClock


TODAY = date(2026, 1, 5)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig, clock=FixedClock(datetime(2026, 1, 5, 10, 0, 0)))

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function', autouse=True)
def clock(app):
    """Business clock pinned to 2026-01-05 10:00 local; tests may move it."""
    fixed = FixedClock(datetime(2026, 1, 5, 10, 0, 0))
    app.extensions[CLOCK_EXTENSION_KEY] = fixed
    return fixed


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


@pytest.fixture(scope='function')
def user(db_session):
    user = User(username="cashier", name="Counter Cashier", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def bank_account(db_session):
    account = BankAccount(bank_name="Meezan", account_number="0101-55", account_title="Shop")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture(scope='function')
def card(db_session):
    card = Card(name="Visa Business")
    db_session.add(card)
    db_session.commit()
    return card


@pytest.fixture(scope='function')
def product(db_session):
    """Product P: 10 in front, 20 in the warehouse, sells at 100.00."""
    product = Product(name="Notebook A4", sale_price=Decimal("100.00"), front_quantity=10, warehouse_quantity=20)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session):
    product = Product(name="Gel Pen", sale_price=Decimal("25.00"), front_quantity=50, warehouse_quantity=0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def funded_cash(db_session, user):
    """Opening cash of 5000.00 for today."""
    opening_balance_service.set_opening_balance(
        lines=[{"method": "cash", "amount": "5000.00"}],
        actor_id=user.id,
    )
    return Decimal("5000.00")
