from datetime import date, datetime

import pytest

from backoffice.errors import ConfirmationRequired, NotFound
from backoffice.models import DailyConfirmation
from backoffice.services import confirmation_service, opening_balance_service


TODAY = date(2026, 1, 5)
YESTERDAY = date(2026, 1, 4)


@pytest.fixture
def yesterday_opening(db_session, user):
    opening_balance_service.set_opening_balance(
        lines=[{"method": "cash", "amount": "750"}],
        actor_id=user.id,
        balance_date=YESTERDAY,
    )


def test_nothing_to_confirm_without_history(db_session):
    assert confirmation_service.needs_confirmation(TODAY) is False


def test_needs_confirmation_after_cutoff(db_session, yesterday_opening):
    assert confirmation_service.needs_confirmation(TODAY) is True


def test_not_needed_before_cutoff(db_session, yesterday_opening, clock):
    clock.set(datetime(2026, 1, 5, 5, 59))
    assert confirmation_service.needs_confirmation(TODAY) is False

    clock.set(datetime(2026, 1, 5, 6, 0))
    assert confirmation_service.needs_confirmation(TODAY) is True


def test_future_dates_never_need_confirmation(db_session, yesterday_opening):
    assert confirmation_service.needs_confirmation(date(2026, 1, 6)) is False


def test_confirm_is_idempotent(db_session, user, yesterday_opening):
    first, created = confirmation_service.confirm(TODAY, actor_id=user.id)
    second, created_again = confirmation_service.confirm(TODAY, actor_id=user.id)

    assert created is True
    assert created_again is False
    assert first.id == second.id
    assert db_session.query(DailyConfirmation).filter_by(confirmation_date=TODAY).count() == 1
    assert confirmation_service.needs_confirmation(TODAY) is False


def test_confirm_defaults_to_today(db_session, user):
    row, _ = confirmation_service.confirm(actor_id=user.id)
    assert row.confirmation_date == TODAY
    assert row.confirmed_at == datetime(2026, 1, 5, 10, 0, 0)


def test_confirm_requires_known_user(db_session):
    with pytest.raises(NotFound):
        confirmation_service.confirm(TODAY, actor_id=404)


def test_status_includes_previous_snapshot(db_session, user, yesterday_opening):
    status = confirmation_service.get_status("2026-01-05")

    assert status["date"] == "2026-01-05"
    assert status["confirmed"] is False
    assert status["needs_confirmation"] is True
    assert status["previous_snapshot"]["date"] == "2026-01-04"
    assert status["previous_snapshot"]["balances"] == [{"method": "cash", "balance": "750.00"}]

    confirmation_service.confirm(TODAY, actor_id=user.id)
    status = confirmation_service.get_status(TODAY)

    assert status["confirmed"] is True
    assert status["needs_confirmation"] is False
    assert status["confirmed_by_user_id"] == user.id


def test_write_gate_only_when_enforced(app, db_session, user, yesterday_opening, monkeypatch):
    confirmation_service.assert_confirmed_for_writes()

    monkeypatch.setitem(app.config, "ENFORCE_DAILY_CONFIRMATION", True)
    with pytest.raises(ConfirmationRequired):
        confirmation_service.assert_confirmed_for_writes()

    confirmation_service.confirm(TODAY, actor_id=user.id)
    confirmation_service.assert_confirmed_for_writes()
