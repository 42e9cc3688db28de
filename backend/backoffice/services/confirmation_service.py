# Overview: Service-layer operations for the daily reconciliation gate.

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConfirmationRequired, ValidationError
from ..extensions import db
from ..models import DailyConfirmation
from ..time_utils import format_local_date, get_clock, parse_local_date, to_local_iso
from . import closing_balance_service, ledger_service, user_service


def _cutoff() -> time:
    raw = str(current_app.config.get("CONFIRMATION_CUTOFF") or "06:00")
    try:
        return datetime.strptime(raw.strip(), "%H:%M").time()
    except ValueError:
        raise ValidationError(f"Invalid CONFIRMATION_CUTOFF: {raw}")


def resolve_date(value, clock=None) -> date:
    try:
        parsed = parse_local_date(value)
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD", {"date": str(value)})
    return parsed or get_clock(clock).today()


def get_confirmation(value: date) -> Optional[DailyConfirmation]:
    return db.session.query(DailyConfirmation).filter_by(confirmation_date=value).first()


def cutoff_passed(value: date, clock=None) -> bool:
    clk = get_clock(clock)
    today = clk.today()
    if value < today:
        return True
    if value > today:
        return False
    return clk.now().time() >= _cutoff()


def needs_confirmation(value: date, clock=None) -> bool:
    """
    True when `value` has no confirmation yet, its cutoff has passed, and
    there is an earlier day whose closing balance could be confirmed.
    """
    if get_confirmation(value) is not None:
        return False
    if not cutoff_passed(value, clock=clock):
        return False
    return ledger_service.has_activity_before(value)


def confirm(value=None, *, actor_id: int, clock=None) -> tuple[DailyConfirmation, bool]:
    """
    Record the confirmation for a date. Idempotent.

    Returns (row, created). A repeat (or a lost race against another
    confirmer) returns the existing row with created=False.
    """
    clk = get_clock(clock)
    target_date = resolve_date(value, clock=clk)
    actor = user_service.get_actor(actor_id)

    existing = get_confirmation(target_date)
    if existing is not None:
        current_app.logger.info("daily confirmation for %s already recorded", target_date)
        return existing, False

    row = DailyConfirmation(
        confirmation_date=target_date,
        confirmed_by_user_id=actor.id,
        confirmed_at=clk.now(),
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = get_confirmation(target_date)
        if existing is None:
            raise
        current_app.logger.info("daily confirmation for %s recorded concurrently", target_date)
        return existing, False

    current_app.logger.info("daily confirmation for %s recorded by user %s", target_date, actor.id)
    return row, True


def get_status(value=None, clock=None) -> dict:
    clk = get_clock(clock)
    target_date = resolve_date(value, clock=clk)
    row = get_confirmation(target_date)
    previous = closing_balance_service.previous_snapshot(target_date, clock=clk)
    return {
        "date": format_local_date(target_date),
        "confirmed": row is not None,
        "needs_confirmation": needs_confirmation(target_date, clock=clk),
        "confirmed_by_user_id": row.confirmed_by_user_id if row else None,
        "confirmed_at": to_local_iso(row.confirmed_at) if row else None,
        "previous_snapshot": previous.to_dict(),
    }


def assert_confirmed_for_writes(clock=None) -> None:
    """Gate writes on today's confirmation when ENFORCE_DAILY_CONFIRMATION is on."""
    if not current_app.config.get("ENFORCE_DAILY_CONFIRMATION"):
        return
    clk = get_clock(clock)
    today = clk.today()
    if needs_confirmation(today, clock=clk):
        raise ConfirmationRequired(
            "Previous day's closing balance must be confirmed first",
            {"date": today.isoformat()},
        )
