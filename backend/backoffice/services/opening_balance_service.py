# Overview: Service-layer operations for opening balances and manual fund additions.

from __future__ import annotations

from datetime import date
from typing import Optional

from flask import current_app

from ..errors import InvalidAmount, ValidationError
from ..extensions import db
from ..models import OpeningBalance, OpeningBalanceLine
from ..models.ledger import DIRECTION_INCOME, SOURCE_ADD_OPENING_BALANCE
from ..money import to_money
from ..targets import parse_target, target_columns, target_key
from ..time_utils import get_clock, parse_local_date
from . import closing_balance_service, ledger_service, user_service
from .concurrency import acquire_locks, begin_immediate, ensure_lock_rows, run_with_retry


def _parse_lines(lines) -> dict:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("at least one opening balance line is required")
    amounts: dict = {}
    for idx, raw in enumerate(lines):
        target = parse_target(raw)
        try:
            amount = to_money(raw.get("amount"))
        except ValueError:
            raise InvalidAmount("Opening balance amount must be a number", {"line": idx})
        if amount < 0:
            raise InvalidAmount("Opening balance amount cannot be negative", {"line": idx})
        user_service.ensure_target_exists(target)
        amounts[target] = amounts.get(target, 0) + amount
    return amounts


def get_opening_balance(balance_date: date) -> Optional[OpeningBalance]:
    return db.session.query(OpeningBalance).filter_by(balance_date=balance_date).first()


def set_opening_balance(
    *,
    lines,
    actor_id: int,
    balance_date=None,
    notes: Optional[str] = None,
    clock=None,
) -> OpeningBalance:
    """
    Create or replace the opening override for a date.

    The override is an addend for that date's closing balance, so it moves
    the date's snapshot (and every later one) by exactly its amount.
    """
    clk = get_clock(clock)
    try:
        target_date = parse_local_date(balance_date) or clk.today()
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD", {"date": str(balance_date)})
    actor = user_service.get_actor(actor_id)
    amounts = _parse_lines(lines)

    def _op():
        try:
            row = get_opening_balance(target_date)
            if row is None:
                row = OpeningBalance(balance_date=target_date, created_at=clk.now())
                db.session.add(row)
            else:
                row.lines.clear()
                db.session.flush()
            row.notes = notes
            row.created_by_user_id = actor.id
            for target, amount in amounts.items():
                kind, ref = target_columns(target)
                row.lines.append(OpeningBalanceLine(target_kind=kind, target_ref=ref, amount=amount))
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return row

    row = run_with_retry(_op)
    current_app.logger.info("opening balance set for %s by user %s", target_date, actor.id)
    closing_balance_service.try_recompute(target_date, clock=clk)
    return row


def add_funds(
    *,
    payment: dict,
    actor_id: int,
    description: Optional[str] = None,
    clock=None,
):
    """
    Add money to a target today (owner top-up, float for the drawer).

    Posted as an income ledger entry tagged add_opening_balance.
    """
    clk = get_clock(clock)
    actor = user_service.get_actor(actor_id)
    target = parse_target(payment)
    try:
        amount = to_money(payment.get("amount"))
    except ValueError:
        raise InvalidAmount("Amount must be a number")
    if amount <= 0:
        raise InvalidAmount("Amount must be positive", {"amount": str(amount)})
    user_service.ensure_target_exists(target)
    today = clk.today()
    key = f"{today.isoformat()}:{target_key(target)}"

    def _op():
        ensure_lock_rows([key])
        begin_immediate()
        acquire_locks([key])
        try:
            entry = ledger_service.record(
                target=target,
                entry_date=today,
                amount=amount,
                direction=DIRECTION_INCOME,
                source=SOURCE_ADD_OPENING_BALANCE,
                actor=actor,
                description=description or "Funds added",
                clock=clk,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return entry

    entry = run_with_retry(_op)
    closing_balance_service.try_recompute(today, clock=clk)
    return entry

