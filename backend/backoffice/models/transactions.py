from __future__ import annotations

from ..extensions import db
from ..money import format_money
from ..targets import target_from_columns, target_to_dict
from ..time_utils import format_local_date, to_local_iso


KIND_PURCHASE = "purchase"
KIND_SALE = "sale"
VALID_KINDS = (KIND_PURCHASE, KIND_SALE)

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


class Transaction(db.Model):
    """
    Purchase or sale document.

    WHY: One row per bill; stock, payments and ledger postings all hang off
    it. remaining_balance == total - sum(payments) at every commit.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("reference_number", name="uq_transactions_reference"),
        db.Index("ix_transactions_kind_date", "kind", "date"),
        db.Index("ix_transactions_kind_status", "kind", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False)
    reference_number = db.Column(db.String(32), nullable=False)

    # Supplier for purchases, customer for sales (denormalized snapshot)
    counterparty_name = db.Column(db.String(255), nullable=True)
    counterparty_phone = db.Column(db.String(32), nullable=True)

    # Header money, all server-computed
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="value")
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_type = db.Column(db.String(16), nullable=False, default="percent")
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    remaining_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Business date (local calendar day) vs. local wall-clock timestamps
    date = db.Column(db.Date, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "LineItem",
        backref="transaction",
        cascade="all, delete-orphan",
        order_by="LineItem.id",
        lazy=True,
    )
    payments = db.relationship(
        "TransactionPayment",
        backref="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionPayment.position",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "reference_number": self.reference_number,
            "counterparty_name": self.counterparty_name,
            "counterparty_phone": self.counterparty_phone,
            "subtotal": format_money(self.subtotal),
            "discount": format_money(self.discount),
            "discount_type": self.discount_type,
            "discount_amount": format_money(self.discount_amount),
            "tax": format_money(self.tax),
            "tax_type": self.tax_type,
            "tax_amount": format_money(self.tax_amount),
            "total": format_money(self.total),
            "total_paid": format_money(self.total_paid),
            "remaining_balance": format_money(self.remaining_balance),
            "status": self.status,
            "notes": self.notes,
            "date": format_local_date(self.date),
            "created_at": to_local_iso(self.created_at),
            "updated_at": to_local_iso(self.updated_at),
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "cancelled_at": to_local_iso(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class LineItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    # Quantities are whole units; dozen entries are already multiplied out
    front_quantity = db.Column(db.Integer, nullable=False, default=0)
    warehouse_quantity = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)

    price_type = db.Column(db.String(16), nullable=False, default="single")
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    dozen_price = db.Column(db.Numeric(12, 2), nullable=False)

    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(16), nullable=False, default="value")
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    # to_warehouse for purchases, from_warehouse for sales
    warehouse_flag = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "front_quantity": self.front_quantity,
            "warehouse_quantity": self.warehouse_quantity,
            "quantity": self.quantity,
            "price_type": self.price_type,
            "unit_price": format_money(self.unit_price),
            "dozen_price": format_money(self.dozen_price),
            "discount": format_money(self.discount),
            "discount_type": self.discount_type,
            "discount_amount": format_money(self.discount_amount),
            "subtotal": format_money(self.subtotal),
            "total": format_money(self.total),
            "warehouse_flag": self.warehouse_flag,
        }


class TransactionPayment(db.Model):
    """
    One partial payment against a transaction.

    Append-only: position is the 0-based order of arrival and rows are never
    rewritten by an edit.
    """
    __tablename__ = "transaction_payments"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "position", name="uq_txn_payments_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    target_kind = db.Column(db.String(16), nullable=False)
    target_ref = db.Column(db.Integer, nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_at = db.Column(db.DateTime, nullable=False)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    @property
    def target(self):
        return target_from_columns(self.target_kind, self.target_ref)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "position": self.position,
            "amount": format_money(self.amount),
            "paid_at": to_local_iso(self.paid_at),
            "recorded_by_user_id": self.recorded_by_user_id,
        }
        data.update(target_to_dict(self.target))
        return data


class Counterparty(db.Model):
    """
    Supplier / customer directory entry.

    Upserted by (kind, name, phone) when bills are saved; used for listing
    and autocomplete only, transactions keep their own snapshot.
    """
    __tablename__ = "counterparties"
    __table_args__ = (
        db.UniqueConstraint("kind", "name_key", "phone", name="uq_counterparties_identity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    name_key = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, default="")
    last_seen_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "phone": self.phone or None,
            "last_seen_at": to_local_iso(self.last_seen_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-day reference number sequences.

    WHY: Prevent race conditions when numbering bills (P-/BILL- prefixes).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "sequence_date", name="uq_doc_sequences_type_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    sequence_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
