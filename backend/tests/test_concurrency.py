"""
Concurrent payment tests.

Runs real threads against a file-backed SQLite database (the in-memory
test database is a single shared connection and cannot contend). Each
thread gets its own app context and therefore its own session.

Verifies:
- Concurrent purchases cannot overdraw one (date, target) balance
- Lock anchor rows are created once per key
"""

import threading
from datetime import date, datetime
from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.config import TestingConfig
from backoffice.errors import InsufficientBalance
from backoffice.extensions import db
from backoffice.models import BalanceLock, LedgerEntry, Product, Transaction, User
from backoffice.services import closing_balance_service, opening_balance_service, transaction_service
from backoffice.targets import Cash
from backoffice.time_utils import FixedClock


WORKERS = 4


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """Separate app bound to a SQLite file so threads hold real connections."""
    config = type("FileBackedConfig", (TestingConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.sqlite3'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })
    app = create_app(config, clock=FixedClock(datetime(2026, 1, 5, 10, 0, 0)))

    with app.app_context():
        db.create_all()
        user = User(username="cashier", name="Counter Cashier", is_active=True)
        product = Product(name="Notebook A4", sale_price=Decimal("100.00"), front_quantity=10, warehouse_quantity=20)
        db.session.add_all([user, product])
        db.session.commit()
        opening_balance_service.set_opening_balance(
            lines=[{"method": "cash", "amount": "1000.00"}],
            actor_id=user.id,
        )
        app.config["RACE_USER_ID"] = user.id
        app.config["RACE_PRODUCT_ID"] = product.id

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _race(app, worker_count, payload):
    results = []
    results_lock = threading.Lock()
    barrier = threading.Barrier(worker_count)

    def worker():
        with app.app_context():
            barrier.wait()
            try:
                transaction_service.create_transaction(
                    "purchase", payload, actor_id=app.config["RACE_USER_ID"],
                )
                outcome = "ok"
            except InsufficientBalance:
                outcome = "insufficient"
            except Exception as exc:
                outcome = repr(exc)
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(worker_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


def test_concurrent_purchases_cannot_overdraw_cash(file_app):
    payload = {
        "items": [{"product_id": file_app.config["RACE_PRODUCT_ID"], "quantity": 8, "unit_price": "100"}],
        "payments": [{"method": "cash", "amount": "800"}],
    }

    results = _race(file_app, WORKERS, payload)

    assert sorted(results) == ["insufficient"] * (WORKERS - 1) + ["ok"], results

    with file_app.app_context():
        payments = db.session.query(LedgerEntry).filter_by(source="purchase_payment").all()
        assert len(payments) == 1
        assert payments[0].amount == Decimal("800.00")
        assert db.session.query(Transaction).count() == 1
        assert db.session.get(Product, file_app.config["RACE_PRODUCT_ID"]).warehouse_quantity == 28
        assert db.session.query(BalanceLock).filter_by(lock_key="2026-01-05:cash").count() == 1
        assert closing_balance_service.available_balance(date(2026, 1, 5), Cash()) == Decimal("200.00")


def test_concurrent_purchases_within_balance_all_post(file_app):
    payload = {
        "items": [{"product_id": file_app.config["RACE_PRODUCT_ID"], "quantity": 2, "unit_price": "100"}],
        "payments": [{"method": "cash", "amount": "200"}],
    }

    results = _race(file_app, WORKERS, payload)

    assert results == ["ok"] * WORKERS, results

    with file_app.app_context():
        assert db.session.query(LedgerEntry).filter_by(source="purchase_payment").count() == WORKERS
        references = sorted(r for (r,) in db.session.query(Transaction.reference_number).all())
        assert references == [f"P-20260105-{n:04d}" for n in range(1, WORKERS + 1)]
        assert closing_balance_service.available_balance(date(2026, 1, 5), Cash()) == Decimal("200.00")
