from datetime import date
from decimal import Decimal

import pytest

from backoffice.errors import InsufficientBalance, ValidationError
from backoffice.models import ClosingBalanceSnapshot
from backoffice.services import closing_balance_service, ledger_service, opening_balance_service
from backoffice.targets import Bank, Cash


DAY1 = date(2026, 1, 4)
DAY2 = date(2026, 1, 5)


def _post(target, amount, direction, entry_date):
    ledger_service.record(
        target=target,
        entry_date=entry_date,
        amount=amount,
        direction=direction,
        source="sale_payment" if direction == "income" else "purchase_payment",
    )


@pytest.fixture
def history(db_session, user, bank_account):
    """Opening 1000 cash on DAY1, -200 cash on DAY1, +300 cash and +50 bank on DAY2."""
    _post(Cash(), "200", "expense", DAY1)
    _post(Cash(), "300", "income", DAY2)
    _post(Bank(bank_account.id), "50", "income", DAY2)
    db_session.commit()
    opening_balance_service.set_opening_balance(
        lines=[{"method": "cash", "amount": "1000"}],
        actor_id=user.id,
        balance_date=DAY1,
    )
    return bank_account


def test_no_history_is_zero_and_not_stored(db_session):
    snap = closing_balance_service.snapshot(DAY2)

    assert snap.balances == {}
    assert snap.balance(Cash()) == Decimal("0.00")
    assert not snap.stored
    assert db_session.query(ClosingBalanceSnapshot).count() == 0


def test_snapshot_follows_previous_day_plus_movements(db_session, history):
    day1 = closing_balance_service.snapshot(DAY1)
    day2 = closing_balance_service.snapshot(DAY2)

    assert day1.balance(Cash()) == Decimal("800.00")
    assert day2.balance(Cash()) == Decimal("1100.00")
    assert day2.balance(Bank(history.id)) == Decimal("50.00")

    movements = ledger_service.net_movements(DAY2)
    for target in (Cash(), Bank(history.id)):
        assert day2.balance(target) == day1.balance(target) + movements.get(target, Decimal("0"))


def test_day_before_history_is_zero(db_session, history):
    assert closing_balance_service.snapshot(date(2026, 1, 3)).balances == {}


def test_snapshot_is_cached_until_recompute(db_session, history):
    closing_balance_service.snapshot(DAY1)
    closing_balance_service.snapshot(DAY2)

    # late posting dated DAY1
    _post(Cash(), "100", "expense", DAY1)
    db_session.commit()

    assert closing_balance_service.snapshot(DAY1).balance(Cash()) == Decimal("800.00")

    rebuilt = closing_balance_service.recompute(DAY1)

    assert rebuilt.balance(Cash()) == Decimal("700.00")
    # later snapshots chained off the stale figure are rebuilt too
    assert closing_balance_service.snapshot(DAY2).balance(Cash()) == Decimal("1000.00")


def test_walks_gaps_without_activity(db_session, history):
    snap = closing_balance_service.snapshot(date(2026, 1, 9))

    assert snap.balance(Cash()) == Decimal("1100.00")
    assert db_session.query(ClosingBalanceSnapshot).count() == 6


def test_try_recompute_swallows_failures(db_session, history, monkeypatch):
    def boom(value, clock=None):
        raise RuntimeError("disk full")

    monkeypatch.setattr(closing_balance_service, "recompute", boom)

    assert closing_balance_service.try_recompute(DAY2) is None


def test_available_balance_reads_live_movements(db_session, history):
    closing_balance_service.snapshot(DAY2)
    _post(Cash(), "400", "expense", DAY2)
    db_session.commit()

    # the stored DAY2 snapshot is stale, the live figure is not
    assert closing_balance_service.available_balance(DAY2, Cash()) == Decimal("700.00")


def test_assert_sufficient(db_session, history):
    closing_balance_service.assert_sufficient(DAY2, {Cash(): Decimal("1100.00")})

    with pytest.raises(InsufficientBalance) as exc:
        closing_balance_service.assert_sufficient(DAY2, {Cash(): Decimal("1100.01")})
    assert exc.value.details["available"] == "1100.00"


def test_opening_override_is_an_addend(db_session, history, user):
    opening_balance_service.set_opening_balance(
        lines=[{"method": "cash", "amount": "250"}],
        actor_id=user.id,
        balance_date=DAY2,
    )

    assert closing_balance_service.snapshot(DAY2).balance(Cash()) == Decimal("1350.00")


def test_range_listing(db_session, history):
    snaps = closing_balance_service.get_closing_balances(DAY1, DAY2)
    assert [s.snapshot_date for s in snaps] == [DAY1, DAY2]

    with pytest.raises(ValidationError):
        closing_balance_service.get_closing_balances(DAY2, DAY1)


def test_close_day(db_session, history):
    yesterday, today = closing_balance_service.close_day(DAY2)

    assert yesterday.snapshot_date == DAY1
    assert today.balance(Cash()) == Decimal("1100.00")
    assert today.stored
