from __future__ import annotations

from ..extensions import db
from ..money import format_money
from ..targets import target_from_columns, target_to_dict
from ..time_utils import format_local_date, to_local_iso


DIRECTION_INCOME = "income"
DIRECTION_EXPENSE = "expense"
VALID_DIRECTIONS = (DIRECTION_INCOME, DIRECTION_EXPENSE)

SOURCE_PURCHASE_PAYMENT = "purchase_payment"
SOURCE_SALE_PAYMENT = "sale_payment"
SOURCE_PURCHASE_REFUND = "purchase_refund"
SOURCE_SALE_REFUND = "sale_refund"
SOURCE_ADD_OPENING_BALANCE = "add_opening_balance"

VALID_SOURCES = (
    SOURCE_PURCHASE_PAYMENT,
    SOURCE_SALE_PAYMENT,
    SOURCE_PURCHASE_REFUND,
    SOURCE_SALE_REFUND,
    SOURCE_ADD_OPENING_BALANCE,
)


class LedgerEntry(db.Model):
    """
    Immutable money movement against one payment target on one local date.

    WHY: Balances are derived, never stored on the target; every change of
    money is a row here. Rows are never updated or deleted.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        db.Index("ix_ledger_entries_date_target", "entry_date", "target_kind", "target_ref"),
        db.Index("ix_ledger_entries_source", "source", "source_transaction_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_date = db.Column(db.Date, nullable=False, index=True)
    target_kind = db.Column(db.String(16), nullable=False)
    target_ref = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    direction = db.Column(db.String(16), nullable=False)
    source = db.Column(db.String(32), nullable=False)
    source_transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    actor_name = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    @property
    def target(self):
        return target_from_columns(self.target_kind, self.target_ref)

    @property
    def signed_amount(self):
        return self.amount if self.direction == DIRECTION_INCOME else -self.amount

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "entry_date": format_local_date(self.entry_date),
            "amount": format_money(self.amount),
            "direction": self.direction,
            "source": self.source,
            "source_transaction_id": self.source_transaction_id,
            "actor_user_id": self.actor_user_id,
            "actor_name": self.actor_name,
            "description": self.description,
            "created_at": to_local_iso(self.created_at),
        }
        data.update(target_to_dict(self.target))
        return data


class ClosingBalanceSnapshot(db.Model):
    """
    Cached end-of-day balances, one row per local date.

    A stored snapshot may be stale after late postings; recompute replaces
    it together with every later snapshot.
    """
    __tablename__ = "closing_balance_snapshots"
    __table_args__ = (
        db.UniqueConstraint("snapshot_date", name="uq_closing_balance_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    snapshot_date = db.Column(db.Date, nullable=False, index=True)
    computed_at = db.Column(db.DateTime, nullable=False)

    lines = db.relationship(
        "ClosingBalanceLine",
        backref="snapshot",
        cascade="all, delete-orphan",
        order_by="ClosingBalanceLine.id",
        lazy=True,
    )


class ClosingBalanceLine(db.Model):
    __tablename__ = "closing_balance_lines"
    __table_args__ = (
        db.UniqueConstraint("snapshot_id", "target_kind", "target_ref", name="uq_closing_balance_line_target"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    snapshot_id = db.Column(db.Integer, db.ForeignKey("closing_balance_snapshots.id"), nullable=False, index=True)
    target_kind = db.Column(db.String(16), nullable=False)
    target_ref = db.Column(db.Integer, nullable=True)
    balance = db.Column(db.Numeric(14, 2), nullable=False)


class OpeningBalance(db.Model):
    """
    Externally entered starting balances for a date.

    Consumed by the calculator as a one-time addend for that date.
    """
    __tablename__ = "opening_balances"
    __table_args__ = (
        db.UniqueConstraint("balance_date", name="uq_opening_balance_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    balance_date = db.Column(db.Date, nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False)

    lines = db.relationship(
        "OpeningBalanceLine",
        backref="opening_balance",
        cascade="all, delete-orphan",
        order_by="OpeningBalanceLine.id",
        lazy=True,
    )

    def to_dict(self) -> dict:
        lines = []
        for line in self.lines:
            entry = target_to_dict(target_from_columns(line.target_kind, line.target_ref))
            entry["amount"] = format_money(line.amount)
            lines.append(entry)
        return {
            "id": self.id,
            "date": format_local_date(self.balance_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_local_iso(self.created_at),
            "lines": lines,
        }


class OpeningBalanceLine(db.Model):
    __tablename__ = "opening_balance_lines"
    __table_args__ = (
        db.UniqueConstraint("opening_balance_id", "target_kind", "target_ref", name="uq_opening_balance_line_target"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    opening_balance_id = db.Column(db.Integer, db.ForeignKey("opening_balances.id"), nullable=False, index=True)
    target_kind = db.Column(db.String(16), nullable=False)
    target_ref = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)


class DailyConfirmation(db.Model):
    """System-wide 'previous day reconciled' acknowledgement, one per date."""
    __tablename__ = "daily_confirmations"
    __table_args__ = (
        db.UniqueConstraint("confirmation_date", name="uq_daily_confirmation_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    confirmation_date = db.Column(db.Date, nullable=False, index=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    confirmed_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": format_local_date(self.confirmation_date),
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "confirmed_at": to_local_iso(self.confirmed_at),
        }


class BalanceLock(db.Model):
    """
    Anchor rows for per-(date, target) advisory locks.

    WHY: The balance check and the ledger posting must not interleave with
    another writer on the same target and day. Writers SELECT ... FOR UPDATE
    these rows (in sorted key order) before checking.
    """
    __tablename__ = "balance_locks"
    __table_args__ = (
        db.UniqueConstraint("lock_key", name="uq_balance_locks_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    lock_key = db.Column(db.String(64), nullable=False)

