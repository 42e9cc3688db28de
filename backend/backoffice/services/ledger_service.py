# Overview: Service-layer operations for the money ledger; appends entries and sums movements.

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidAmount, ValidationError
from ..extensions import db
from ..models import LedgerEntry, OpeningBalance
from ..models.ledger import DIRECTION_INCOME, DIRECTION_EXPENSE, VALID_DIRECTIONS, VALID_SOURCES
from ..money import to_money
from ..targets import target_columns, target_from_columns
from ..time_utils import get_clock
"""
Ledger invariants (authoritative)

- Append-only: entries are never updated or deleted.
- amount > 0 always; the sign lives in direction (income | expense).
- No sufficiency check here; callers check balances under their locks.
- Entries are written inside the caller's DB transaction (flush, no commit).
- entry_date is the local business date the money moved.
"""


def record(
    *,
    target,
    entry_date: date,
    amount,
    direction: str,
    source: str,
    source_transaction_id: int | None = None,
    actor=None,
    description: Optional[str] = None,
    clock=None,
) -> LedgerEntry:
    """
    Append one ledger entry.

    Raises:
        InvalidAmount: amount missing, not a number, or <= 0
        ValidationError: unknown direction or source
    """
    try:
        value = to_money(amount)
    except ValueError:
        raise InvalidAmount("Ledger amount must be a number", {"amount": str(amount)})
    if value <= 0:
        raise InvalidAmount("Ledger amount must be positive", {"amount": str(value)})
    if direction not in VALID_DIRECTIONS:
        raise ValidationError(f"Invalid ledger direction: {direction}", {"valid": list(VALID_DIRECTIONS)})
    if source not in VALID_SOURCES:
        raise ValidationError(f"Invalid ledger source: {source}", {"valid": list(VALID_SOURCES)})

    kind, ref = target_columns(target)
    entry = LedgerEntry(
        entry_date=entry_date,
        target_kind=kind,
        target_ref=ref,
        amount=value,
        direction=direction,
        source=source,
        source_transaction_id=source_transaction_id,
        actor_user_id=getattr(actor, "id", None),
        actor_name=getattr(actor, "display_name", None),
        description=description,
        created_at=get_clock(clock).now(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing

    current_app.logger.info(
        "ledger: %s %s %s on %s (%s, txn=%s)",
        direction, value, target.describe(), entry_date, source, source_transaction_id,
    )
    return entry


def entries_for(entry_date: date, target=None, source_transaction_id: int | None = None) -> list[LedgerEntry]:
    query = db.session.query(LedgerEntry).filter(LedgerEntry.entry_date == entry_date)
    if target is not None:
        kind, ref = target_columns(target)
        query = query.filter(LedgerEntry.target_kind == kind, LedgerEntry.target_ref == ref)
    if source_transaction_id is not None:
        query = query.filter(LedgerEntry.source_transaction_id == source_transaction_id)
    return query.order_by(LedgerEntry.id).all()


def entries_for_transaction(transaction_id: int) -> list[LedgerEntry]:
    return (
        db.session.query(LedgerEntry)
        .filter(LedgerEntry.source_transaction_id == transaction_id)
        .order_by(LedgerEntry.id)
        .all()
    )


def net_movements(entry_date: date) -> dict:
    """Signed (income - expense) total per target for one local date."""
    rows = (
        db.session.query(
            LedgerEntry.target_kind,
            LedgerEntry.target_ref,
            LedgerEntry.direction,
            func.sum(LedgerEntry.amount),
        )
        .filter(LedgerEntry.entry_date == entry_date)
        .group_by(LedgerEntry.target_kind, LedgerEntry.target_ref, LedgerEntry.direction)
        .all()
    )
    totals: dict = {}
    for kind, ref, direction, total in rows:
        target = target_from_columns(kind, ref)
        amount = to_money(total or 0)
        if direction == DIRECTION_EXPENSE:
            amount = -amount
        totals[target] = totals.get(target, Decimal("0.00")) + amount
    return totals


def net_movement(entry_date: date, target) -> Decimal:
    return net_movements(entry_date).get(target, Decimal("0.00"))


def daily_totals(entry_date: date) -> dict:
    """Income and expense totals for one date (all targets)."""
    rows = (
        db.session.query(LedgerEntry.direction, func.sum(LedgerEntry.amount))
        .filter(LedgerEntry.entry_date == entry_date)
        .group_by(LedgerEntry.direction)
        .all()
    )
    totals = {DIRECTION_INCOME: Decimal("0.00"), DIRECTION_EXPENSE: Decimal("0.00")}
    for direction, total in rows:
        totals[direction] = to_money(total or 0)
    return totals


def earliest_activity_date() -> Optional[date]:
    """First date with any ledger entry or opening balance (history floor)."""
    first_entry = db.session.query(func.min(LedgerEntry.entry_date)).scalar()
    first_opening = db.session.query(func.min(OpeningBalance.balance_date)).scalar()
    candidates = [d for d in (first_entry, first_opening) if d is not None]
    return min(candidates) if candidates else None


def has_activity_before(value: date) -> bool:
    first = earliest_activity_date()
    return first is not None and first < value
