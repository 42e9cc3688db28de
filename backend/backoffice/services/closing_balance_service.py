# Overview: Service-layer operations for closing balances; derives and caches per-day target balances.

"""
Closing Balance Calculator

WHY: Every day's end-of-day balance per payment target is derived from the
previous day's balance plus that day's opening override (if any) plus the
day's signed ledger movements:

    snapshot(d)[t] = snapshot(d - 1)[t] + opening(d)[t] + net(d)[t]

DESIGN PRINCIPLES:
- Snapshots are a cache; the ledger is the source of truth.
- Dates before the first recorded activity are all zero and never stored.
- A late posting dated d invalidates d and every later snapshot, so
  recompute(d) drops them all before rebuilding d.
- Sufficiency checks never read the cached snapshot for the posting date
  itself; they use yesterday's snapshot plus today's live movements.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientBalance, ValidationError
from ..extensions import db
from ..models import ClosingBalanceLine, ClosingBalanceSnapshot, LedgerEntry, OpeningBalance
from ..models.ledger import DIRECTION_EXPENSE
from ..money import ZERO, format_money, to_money
from ..targets import target_columns, target_from_columns, target_key, target_sort_key, target_to_dict
from ..time_utils import format_local_date, get_clock, previous_day, to_local_iso
from . import ledger_service


MAX_RANGE_DAYS = 366


@dataclass(frozen=True)
class Snapshot:
    snapshot_date: date
    balances: dict = field(default_factory=dict)
    stored: bool = False
    computed_at: Optional[datetime] = None

    def balance(self, target) -> Decimal:
        return self.balances.get(target, ZERO)

    @property
    def total(self) -> Decimal:
        return sum(self.balances.values(), ZERO)

    def to_dict(self) -> dict:
        lines = []
        for target in sorted(self.balances, key=target_sort_key):
            entry = target_to_dict(target)
            entry["balance"] = format_money(self.balances[target])
            lines.append(entry)
        return {
            "date": format_local_date(self.snapshot_date),
            "balances": lines,
            "total": format_money(self.total),
            "stored": self.stored,
            "computed_at": to_local_iso(self.computed_at),
        }


def _from_row(row: ClosingBalanceSnapshot) -> Snapshot:
    balances = {
        target_from_columns(line.target_kind, line.target_ref): to_money(line.balance)
        for line in row.lines
    }
    return Snapshot(snapshot_date=row.snapshot_date, balances=balances, stored=True, computed_at=row.computed_at)


def _stored_row(value: date) -> Optional[ClosingBalanceSnapshot]:
    return db.session.query(ClosingBalanceSnapshot).filter_by(snapshot_date=value).first()


def _opening_amounts(start: date, end: date) -> dict:
    """{date: {target: amount}} for opening overrides in [start, end]."""
    out: dict = {}
    rows = (
        db.session.query(OpeningBalance)
        .filter(OpeningBalance.balance_date >= start, OpeningBalance.balance_date <= end)
        .all()
    )
    for row in rows:
        day = out.setdefault(row.balance_date, {})
        for line in row.lines:
            target = target_from_columns(line.target_kind, line.target_ref)
            day[target] = day.get(target, ZERO) + to_money(line.amount)
    return out


def _ledger_movements(start: date, end: date) -> dict:
    """{date: {target: signed net}} for ledger entries in [start, end]."""
    rows = (
        db.session.query(
            LedgerEntry.entry_date,
            LedgerEntry.target_kind,
            LedgerEntry.target_ref,
            LedgerEntry.direction,
            func.sum(LedgerEntry.amount),
        )
        .filter(LedgerEntry.entry_date >= start, LedgerEntry.entry_date <= end)
        .group_by(
            LedgerEntry.entry_date,
            LedgerEntry.target_kind,
            LedgerEntry.target_ref,
            LedgerEntry.direction,
        )
        .all()
    )
    out: dict = {}
    for entry_date, kind, ref, direction, total in rows:
        amount = to_money(total or 0)
        if direction == DIRECTION_EXPENSE:
            amount = -amount
        day = out.setdefault(entry_date, {})
        target = target_from_columns(kind, ref)
        day[target] = day.get(target, ZERO) + amount
    return out


def _store(value: date, balances: dict, computed_at: datetime) -> ClosingBalanceSnapshot:
    row = ClosingBalanceSnapshot(snapshot_date=value, computed_at=computed_at)
    for target in sorted(balances, key=target_sort_key):
        kind, ref = target_columns(target)
        row.lines.append(ClosingBalanceLine(target_kind=kind, target_ref=ref, balance=balances[target]))
    db.session.add(row)
    return row


def _compute(value: date, *, persist: bool, clock=None) -> Snapshot:
    """
    Resolve snapshot(value), walking forward from the nearest usable base.

    The recursion in the law above is unrolled into a loop: start from the
    latest stored snapshot before `value` (or zero just before the history
    floor) and fold each day in.
    """
    stored = _stored_row(value)
    if stored is not None:
        return _from_row(stored)

    floor = ledger_service.earliest_activity_date()
    if floor is None or value < floor:
        return Snapshot(snapshot_date=value)

    base_row = (
        db.session.query(ClosingBalanceSnapshot)
        .filter(ClosingBalanceSnapshot.snapshot_date < value)
        .filter(ClosingBalanceSnapshot.snapshot_date >= floor)
        .order_by(ClosingBalanceSnapshot.snapshot_date.desc())
        .first()
    )
    if base_row is not None:
        balances = dict(_from_row(base_row).balances)
        day = base_row.snapshot_date + timedelta(days=1)
    else:
        balances = {}
        day = floor

    openings = _opening_amounts(day, value)
    movements = _ledger_movements(day, value)
    now = get_clock(clock).now()

    while day <= value:
        for source in (openings.get(day, {}), movements.get(day, {})):
            for target, amount in source.items():
                balances[target] = to_money(balances.get(target, ZERO) + amount)
        if persist:
            _store(day, balances, now)
        day += timedelta(days=1)

    if persist:
        db.session.flush()
    return Snapshot(snapshot_date=value, balances=dict(balances), stored=persist, computed_at=now)


# =============================================================================
# PUBLIC API
# =============================================================================

def snapshot(value: date, clock=None) -> Snapshot:
    """Cached closing balance for a date; computes and stores it when missing."""
    result = _compute(value, persist=True, clock=clock)
    db.session.commit()
    return result


def previous_snapshot(value: date, clock=None) -> Snapshot:
    return snapshot(previous_day(value), clock=clock)


def recompute(value: date, clock=None) -> Snapshot:
    """
    Rebuild the snapshot for `value`.

    Stored snapshots for `value` and every later date are dropped first;
    they chained off the stale figure and are rebuilt lazily on read.
    """
    stale = (
        db.session.query(ClosingBalanceSnapshot)
        .filter(ClosingBalanceSnapshot.snapshot_date >= value)
        .all()
    )
    for row in stale:
        db.session.delete(row)
    db.session.flush()

    result = _compute(value, persist=True, clock=clock)
    db.session.commit()
    current_app.logger.info("closing balance recomputed for %s (dropped %d stored)", value, len(stale))
    return result


def try_recompute(value: date, clock=None) -> Optional[Snapshot]:
    """
    Best-effort recompute after a committed write.

    A failure here never undoes the write; it is logged and the next read
    (or the nightly close) rebuilds the snapshot.
    """
    try:
        return recompute(value, clock=clock)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to recompute closing balance for %s", value)
        return None


def available_balance(value: date, target) -> Decimal:
    """
    Live balance of `target` on `value` for sufficiency checks.

    yesterday's snapshot + today's opening override + today's ledger net.
    Reads without persisting so it is safe inside a locked unit of work.
    """
    previous = _compute(previous_day(value), persist=False)
    opening = _opening_amounts(value, value).get(value, {}).get(target, ZERO)
    movement = ledger_service.net_movement(value, target)
    return to_money(previous.balance(target) + opening + movement)


def assert_sufficient(entry_date: date, required: dict) -> None:
    """Raise InsufficientBalance if any target cannot cover its expense total."""
    for target in sorted(required, key=target_sort_key):
        amount = required[target]
        available = available_balance(entry_date, target)
        if available < amount:
            raise InsufficientBalance(
                f"Insufficient balance in {target.describe()}",
                {
                    "target": target_key(target),
                    "available": str(available),
                    "required": str(amount),
                    "date": entry_date.isoformat(),
                },
            )


def get_closing_balances(start: date, end: date, clock=None) -> list[Snapshot]:
    if end < start:
        raise ValidationError("end date must not be before start date", {"start": str(start), "end": str(end)})
    if (end - start).days >= MAX_RANGE_DAYS:
        raise ValidationError(f"date range cannot exceed {MAX_RANGE_DAYS} days")
    results = []
    day = start
    while day <= end:
        results.append(_compute(day, persist=True, clock=clock))
        day += timedelta(days=1)
    db.session.commit()
    return results


def close_day(value: Optional[date] = None, clock=None) -> tuple[Snapshot, Snapshot]:
    """
    Nightly close: rebuild yesterday from the ledger and seed today.

    Returns (yesterday, today) snapshots.
    """
    today = value or get_clock(clock).today()
    yesterday = recompute(previous_day(today), clock=clock)
    current = snapshot(today, clock=clock)
    return yesterday, current
