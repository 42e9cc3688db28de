# Overview: Service-layer operations for purchases and sales; orchestrates stock, payments and ledger postings.

"""
Transaction Orchestrator

WHY: A purchase or sale touches stock, payments, the money ledger and the
closing balance. The caller needs all-or-nothing behaviour for the first
three and a fresh closing balance afterwards.

DESIGN PRINCIPLES:
- One unit of work: balance checks, the transaction row, stock deltas and
  ledger entries commit together or roll back together.
- Per-(date, target) lock rows are held from the balance check to the
  commit, so two payments cannot both spend the same balance.
- Closing balance recompute runs after the commit and never fails the call.
- Payments are append-only; an edit can add payments but never rewrite them.
- Money-moving creation is only allowed for today's business date.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import (
    AlreadyCancelled,
    CancelWindowExpired,
    ConflictError,
    CostImmutable,
    EditWindowExpired,
    InvalidAmount,
    LedgerError,
    NotFound,
    PaymentExceedsTotal,
    RefundRequired,
    RefundTargetInvalid,
    TransactionNotPending,
    ValidationError,
)
from ..extensions import db
from ..models import Counterparty, DocumentSequence, LineItem, Product, Transaction, TransactionPayment
from ..models.ledger import (
    DIRECTION_EXPENSE,
    DIRECTION_INCOME,
    SOURCE_PURCHASE_PAYMENT,
    SOURCE_PURCHASE_REFUND,
    SOURCE_SALE_PAYMENT,
    SOURCE_SALE_REFUND,
)
from ..models.transactions import (
    KIND_PURCHASE,
    KIND_SALE,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    VALID_KINDS,
)
from ..money import ZERO, to_money
from ..pricing import PRICE_DOZEN, bill_totals, price_line, same_price
from ..targets import parse_target, target_columns, target_key
from ..time_utils import days_between, get_clock, parse_local_date
from . import closing_balance_service, confirmation_service, ledger_service, stock_service, user_service
from .concurrency import acquire_locks, begin_immediate, ensure_lock_rows, lock_for_update, run_with_retry


REFERENCE_PREFIXES = {
    KIND_PURCHASE: "P",
    KIND_SALE: "BILL",
}

VALID_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)

COUNTERPARTY_KEYS = {
    "counterparty_name", "counterparty_phone",
    "supplier_name", "supplier_phone",
    "customer_name", "customer_phone",
}


# =============================================================================
# HELPERS
# =============================================================================

def _stock_sign(kind: str) -> int:
    return 1 if kind == KIND_PURCHASE else -1


def _payment_direction(kind: str) -> str:
    return DIRECTION_EXPENSE if kind == KIND_PURCHASE else DIRECTION_INCOME


def _payment_source(kind: str) -> str:
    return SOURCE_PURCHASE_PAYMENT if kind == KIND_PURCHASE else SOURCE_SALE_PAYMENT


def _refund_direction(kind: str) -> str:
    return DIRECTION_INCOME if kind == KIND_PURCHASE else DIRECTION_EXPENSE


def _refund_source(kind: str) -> str:
    return SOURCE_PURCHASE_REFUND if kind == KIND_PURCHASE else SOURCE_SALE_REFUND


def _derive_status(remaining: Decimal) -> str:
    return STATUS_PENDING if remaining > 0 else STATUS_COMPLETED


def _lock_keys(entry_date: date, targets) -> list[str]:
    return sorted({f"{entry_date.isoformat()}:{target_key(t)}" for t in targets})


def _check_kind(kind: str) -> None:
    if kind not in VALID_KINDS:
        raise ValidationError(f"Invalid transaction kind: {kind}", {"valid": list(VALID_KINDS)})


def _counterparty_fields(kind: str, payload: dict) -> tuple[Optional[str], Optional[str]]:
    prefix = "supplier" if kind == KIND_PURCHASE else "customer"
    name = payload.get("counterparty_name", payload.get(f"{prefix}_name"))
    phone = payload.get("counterparty_phone", payload.get(f"{prefix}_phone"))
    name = str(name).strip() if name else None
    phone = str(phone).strip() if phone else None
    return name or None, phone or None


def _parse_payments(raw) -> list[tuple]:
    """Wire payments -> [(target, amount)], dropping amounts <= 0."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("payments must be a list")
    parsed = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError("each payment must be an object", {"payment": idx})
        try:
            amount = to_money(entry.get("amount"))
        except ValueError:
            raise InvalidAmount("Payment amount must be a number", {"payment": idx})
        if amount <= 0:
            continue
        parsed.append((parse_target(entry), amount))
    return parsed


def _stored_price(item) -> dict:
    """
    Price fields to re-enter for a line already on the bill.

    A dozen-priced line keeps its dozen price; its stored unit price is
    rounded and would drift the line total.
    """
    if item.price_type == PRICE_DOZEN:
        return {"dozen_price": item.dozen_price, "unit_price": None}
    return {"unit_price": item.unit_price}


def _price_items(kind: str, raw_items, existing_items=None) -> list:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("at least one item is required")

    # Edits may omit prices for lines already on the bill
    known = {}
    for item in existing_items or []:
        known.setdefault(item.product_id, item)

    lines = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", {"item": idx})
        try:
            product_id = int(raw.get("product_id"))
        except (TypeError, ValueError):
            raise ValidationError("product_id is required", {"item": idx})
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found", {"product_id": product_id})
        stored = known.get(product_id)
        if (
            stored is not None
            and raw.get("unit_price") in (None, "")
            and raw.get("dozen_price") in (None, "")
        ):
            raw = dict(raw, **_stored_price(stored))
        lines.append(price_line(kind, raw, product))
    return lines


def _required_funds(kind: str, payments) -> dict:
    """Expense postings per target that must be covered by available balance."""
    if _payment_direction(kind) != DIRECTION_EXPENSE:
        return {}
    required: dict = {}
    for target, amount in payments:
        required[target] = required.get(target, ZERO) + amount
    return required


def _next_reference(kind: str, business_date: date) -> str:
    """
    Allocate the next bill number for (kind, date), e.g. P-20260105-0003.

    Runs inside the caller's unit of work, after the write lock is taken.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == kind,
            DocumentSequence.sequence_date == business_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=kind, sequence_date=business_date)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(document_type=kind, sequence_date=business_date, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{REFERENCE_PREFIXES[kind]}-{business_date.strftime('%Y%m%d')}-{next_num:04d}"


def _upsert_counterparty(kind: str, name: Optional[str], phone: Optional[str], now) -> None:
    if not name:
        return
    party_kind = "supplier" if kind == KIND_PURCHASE else "customer"
    name_key = name.lower()
    row = (
        db.session.query(Counterparty)
        .filter_by(kind=party_kind, name_key=name_key, phone=phone or "")
        .first()
    )
    if row is None:
        row = Counterparty(kind=party_kind, name=name, name_key=name_key, phone=phone or "")
        db.session.add(row)
    row.name = name
    row.last_seen_at = now


def _post_payments(txn: Transaction, payments, *, entry_date: date, actor, clock) -> list:
    """Append payment rows and their ledger entries (no commit)."""
    entries = []
    position = len(txn.payments)
    now = clock.now()
    for target, amount in payments:
        kind, ref = target_columns(target)
        txn.payments.append(TransactionPayment(
            position=position,
            target_kind=kind,
            target_ref=ref,
            amount=amount,
            paid_at=now,
            recorded_by_user_id=actor.id,
        ))
        position += 1
        entries.append(ledger_service.record(
            target=target,
            entry_date=entry_date,
            amount=amount,
            direction=_payment_direction(txn.kind),
            source=_payment_source(txn.kind),
            source_transaction_id=txn.id,
            actor=actor,
            description=f"Payment for {txn.reference_number}",
            clock=clock,
        ))
    return entries


def _refresh_balances(txn: Transaction) -> None:
    paid = to_money(sum((to_money(p.amount) for p in txn.payments), ZERO))
    total = to_money(txn.total)
    if paid > total:
        raise PaymentExceedsTotal(
            "Total payments exceed the transaction total",
            {"total": str(total), "paid": str(paid)},
        )
    txn.total_paid = paid
    txn.remaining_balance = to_money(total - paid)
    if txn.status != STATUS_CANCELLED:
        txn.status = _derive_status(txn.remaining_balance)


def _apply_totals(txn: Transaction, totals) -> None:
    txn.subtotal = totals.subtotal
    txn.discount = totals.discount
    txn.discount_type = totals.discount_type
    txn.discount_amount = totals.discount_amount
    txn.tax = totals.tax
    txn.tax_type = totals.tax_type
    txn.tax_amount = totals.tax_amount
    txn.total = totals.total


def _abort(action: str, exc: Exception) -> None:
    """Roll back the unit of work; a failing rollback is logged, never raised."""
    try:
        db.session.rollback()
    except Exception:
        current_app.logger.exception("Rollback failed while aborting %s", action)
    if isinstance(exc, LedgerError):
        current_app.logger.info("%s rejected: %s (%s)", action, exc.message, exc.code)
    else:
        current_app.logger.error("%s failed and was rolled back: %r", action, exc)


def _run(op):
    try:
        return run_with_retry(op)
    except StaleDataError:
        raise ConflictError("Transaction was modified concurrently; reload and retry")


def _load(transaction_id: int, kind: Optional[str] = None) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if not txn or (kind is not None and txn.kind != kind):
        raise NotFound(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return txn


def _load_locked(transaction_id: int) -> Transaction:
    txn = (
        lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id))
        .populate_existing()
        .first()
    )
    if not txn:
        raise NotFound(f"Transaction {transaction_id} not found", {"transaction_id": transaction_id})
    return txn


def _age_days(txn: Transaction, today: date) -> int:
    return days_between(txn.date, today)


def _check_editable(txn: Transaction, today: date) -> None:
    if txn.status == STATUS_CANCELLED:
        raise AlreadyCancelled("Cancelled transactions cannot be edited", {"transaction_id": txn.id})
    window = current_app.config.get("EDIT_WINDOW_DAYS", 7)
    if txn.status == STATUS_COMPLETED and _age_days(txn, today) > window:
        raise EditWindowExpired(
            f"Completed transactions can only be edited within {window} days",
            {"transaction_id": txn.id, "date": txn.date.isoformat()},
        )


def _check_costs(existing_items, new_lines) -> None:
    existing = {}
    for item in existing_items:
        existing.setdefault(item.product_id, item)
    for line in new_lines:
        old = existing.get(line.product_id)
        if old is None:
            continue
        field = "dozen_price" if old.price_type == PRICE_DOZEN else "unit_price"
        stored, entered = getattr(old, field), getattr(line, field)
        if not same_price(stored, entered):
            raise CostImmutable(
                f"Price of {old.product_name} cannot be changed",
                {
                    "product_id": line.product_id,
                    "field": field,
                    "stored": str(to_money(stored)),
                    "entered": str(to_money(entered)),
                },
            )


def _payment_tail(txn: Transaction, parsed) -> list:
    """New payments beyond the stored list; the stored list must be a prefix."""
    stored = [(p.target, to_money(p.amount)) for p in txn.payments]
    if len(parsed) < len(stored) or parsed[:len(stored)] != stored:
        raise ValidationError(
            "Existing payments cannot be changed or removed; only new payments may be appended",
            {"stored_count": len(stored), "submitted_count": len(parsed)},
        )
    return parsed[len(stored):]


# =============================================================================
# CREATION
# =============================================================================

def create_transaction(kind: str, payload: dict, *, actor_id: int, clock=None) -> dict:
    """
    Create a purchase or sale with its stock and payment effects.

    Returns:
        {"transaction": Transaction, "applied_stock_deltas": [StockDelta]}

    Raises:
        ValidationError, NotFound, QuantityInvalid, StockWouldGoNegative,
        PaymentExceedsTotal, InsufficientBalance, ConfirmationRequired
    """
    _check_kind(kind)
    payload = payload or {}
    clk = get_clock(clock)
    today = clk.today()
    actor = user_service.get_actor(actor_id)
    confirmation_service.assert_confirmed_for_writes(clk)

    try:
        business_date = parse_local_date(payload.get("date")) or today
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD", {"date": str(payload.get("date"))})
    if business_date != today:
        raise ValidationError(
            "Transactions can only be created for today's date",
            {"date": business_date.isoformat(), "today": today.isoformat()},
        )

    lines = _price_items(kind, payload.get("items"))
    totals = bill_totals(
        lines,
        discount=payload.get("discount"),
        discount_type=payload.get("discount_type"),
        tax=payload.get("tax"),
        tax_type=payload.get("tax_type"),
    )

    payments = _parse_payments(payload.get("payments"))
    paid = sum((amount for _, amount in payments), ZERO)
    if paid > totals.total:
        raise PaymentExceedsTotal(
            "Total payments exceed the transaction total",
            {"total": str(totals.total), "paid": str(paid)},
        )
    for target, _ in payments:
        user_service.ensure_target_exists(target)

    name, phone = _counterparty_fields(kind, payload)
    keys = _lock_keys(today, [t for t, _ in payments])
    required = _required_funds(kind, payments)
    sign = _stock_sign(kind)

    def _op():
        ensure_lock_rows(keys)
        begin_immediate()
        try:
            acquire_locks(keys)
            closing_balance_service.assert_sufficient(today, required)

            now = clk.now()
            txn = Transaction(
                kind=kind,
                reference_number=_next_reference(kind, today),
                counterparty_name=name,
                counterparty_phone=phone,
                notes=payload.get("notes"),
                date=today,
                created_at=now,
                created_by_user_id=actor.id,
                total_paid=ZERO,
                remaining_balance=totals.total,
                status=_derive_status(totals.total),
            )
            _apply_totals(txn, totals)
            for line in lines:
                txn.items.append(LineItem(**asdict(line)))
            db.session.add(txn)
            db.session.flush()

            deltas = []
            for line in lines:
                deltas.extend(stock_service.item_deltas(line, sign))
            applied = stock_service.apply_deltas(deltas)

            _post_payments(txn, payments, entry_date=today, actor=actor, clock=clk)
            _refresh_balances(txn)
            _upsert_counterparty(kind, name, phone, now)

            db.session.commit()
        except Exception as exc:
            _abort(f"create {kind}", exc)
            raise
        return txn, applied

    txn, applied = _run(_op)
    current_app.logger.info(
        "%s %s created: total=%s paid=%s status=%s",
        kind, txn.reference_number, txn.total, txn.total_paid, txn.status,
    )
    closing_balance_service.try_recompute(today, clock=clk)
    return {"transaction": txn, "applied_stock_deltas": applied}


# =============================================================================
# EDIT
# =============================================================================

def update_transaction(transaction_id: int, payload: dict, *, actor_id: int, kind: Optional[str] = None, clock=None) -> Transaction:
    """
    Edit quantities, discounts, counterparty details and/or append payments.

    - items (optional): replaces the item set; prices of lines already on the
      bill are immutable; stock moves by the net difference.
    - payments (optional): the full list; stored payments must be an
      unchanged prefix, the tail is posted today.
    The business date never changes.
    """
    payload = payload or {}
    clk = get_clock(clock)
    today = clk.today()
    actor = user_service.get_actor(actor_id)

    txn = _load(transaction_id, kind)
    _check_editable(txn, today)

    new_lines = None
    if "items" in payload:
        new_lines = _price_items(txn.kind, payload.get("items"), existing_items=txn.items)
        _check_costs(txn.items, new_lines)

    parsed_payments = None
    tail = []
    if "payments" in payload:
        parsed_payments = _parse_payments(payload.get("payments"))
        tail = _payment_tail(txn, parsed_payments)
        for target, _ in tail:
            user_service.ensure_target_exists(target)
    if tail:
        confirmation_service.assert_confirmed_for_writes(clk)

    keys = _lock_keys(today, [t for t, _ in tail])

    def _op():
        ensure_lock_rows(keys)
        begin_immediate()
        try:
            acquire_locks(keys)
            locked = _load_locked(transaction_id)
            _check_editable(locked, today)

            if new_lines is not None:
                _check_costs(locked.items, new_lines)
                sign = _stock_sign(locked.kind)
                deltas = []
                for item in locked.items:
                    deltas.extend(stock_service.item_deltas(item, -sign))
                for line in new_lines:
                    deltas.extend(stock_service.item_deltas(line, sign))
                stock_service.apply_deltas(deltas)

                locked.items.clear()
                db.session.flush()
                for line in new_lines:
                    locked.items.append(LineItem(**asdict(line)))
                db.session.flush()

            totals = bill_totals(
                locked.items,
                discount=payload.get("discount", locked.discount),
                discount_type=payload.get("discount_type", locked.discount_type),
                tax=payload.get("tax", locked.tax),
                tax_type=payload.get("tax_type", locked.tax_type),
            )
            _apply_totals(locked, totals)

            locked_tail = []
            if parsed_payments is not None:
                locked_tail = _payment_tail(locked, parsed_payments)
                closing_balance_service.assert_sufficient(today, _required_funds(locked.kind, locked_tail))
                _post_payments(locked, locked_tail, entry_date=today, actor=actor, clock=clk)
            _refresh_balances(locked)

            if COUNTERPARTY_KEYS & payload.keys():
                name, phone = _counterparty_fields(locked.kind, payload)
                locked.counterparty_name = name
                locked.counterparty_phone = phone
                _upsert_counterparty(locked.kind, name, phone, clk.now())
            if "notes" in payload:
                locked.notes = payload.get("notes")

            locked.updated_at = clk.now()
            locked.updated_by_user_id = actor.id
            db.session.commit()
        except Exception as exc:
            _abort(f"update transaction {transaction_id}", exc)
            raise
        return locked, len(locked_tail)

    updated, posted = _run(_op)
    current_app.logger.info(
        "%s %s updated: total=%s paid=%s status=%s new_payments=%d",
        updated.kind, updated.reference_number, updated.total, updated.total_paid, updated.status, posted,
    )
    if posted:
        closing_balance_service.try_recompute(today, clock=clk)
    return updated


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_transaction(transaction_id: int, refund: Optional[dict] = None, *, actor_id: int, kind: Optional[str] = None, clock=None) -> Transaction:
    """
    Cancel within the window: refund everything paid, reverse all stock.

    The refund is one ledger entry for the total paid in the opposite
    direction of the original payments, dated today.
    """
    clk = get_clock(clock)
    today = clk.today()
    actor = user_service.get_actor(actor_id)

    txn = _load(transaction_id, kind)
    if txn.status == STATUS_CANCELLED:
        raise AlreadyCancelled("Transaction is already cancelled", {"transaction_id": txn.id})
    window = current_app.config.get("CANCEL_WINDOW_DAYS", 7)
    if _age_days(txn, today) > window:
        raise CancelWindowExpired(
            f"Transactions can only be cancelled within {window} days",
            {"transaction_id": txn.id, "date": txn.date.isoformat()},
        )

    refund_target = None
    if to_money(txn.total_paid) > 0:
        if not refund:
            raise RefundRequired(
                "A refund method is required to cancel a paid transaction",
                {"total_paid": str(to_money(txn.total_paid))},
            )
        try:
            refund_target = parse_target(refund)
        except ValidationError as exc:
            raise RefundTargetInvalid(exc.message, exc.details)
        user_service.ensure_refund_target(refund_target)
        confirmation_service.assert_confirmed_for_writes(clk)

    keys = _lock_keys(today, [refund_target] if refund_target is not None else [])

    def _op():
        ensure_lock_rows(keys)
        begin_immediate()
        try:
            acquire_locks(keys)
            locked = _load_locked(transaction_id)
            if locked.status == STATUS_CANCELLED:
                raise AlreadyCancelled("Transaction is already cancelled", {"transaction_id": locked.id})

            paid = to_money(locked.total_paid)
            if refund_target is not None and paid > 0:
                direction = _refund_direction(locked.kind)
                if direction == DIRECTION_EXPENSE:
                    closing_balance_service.assert_sufficient(today, {refund_target: paid})
                ledger_service.record(
                    target=refund_target,
                    entry_date=today,
                    amount=paid,
                    direction=direction,
                    source=_refund_source(locked.kind),
                    source_transaction_id=locked.id,
                    actor=actor,
                    description=f"Refund for cancelled {locked.reference_number}",
                    clock=clk,
                )

            sign = _stock_sign(locked.kind)
            deltas = []
            for item in locked.items:
                deltas.extend(stock_service.item_deltas(item, -sign))
            stock_service.apply_deltas(deltas)

            now = clk.now()
            locked.status = STATUS_CANCELLED
            locked.cancelled_at = now
            locked.cancelled_by_user_id = actor.id
            locked.updated_at = now
            locked.updated_by_user_id = actor.id
            db.session.commit()
        except Exception as exc:
            _abort(f"cancel transaction {transaction_id}", exc)
            raise
        return locked

    cancelled = _run(_op)
    current_app.logger.info(
        "%s %s cancelled by user %s (refund=%s)",
        cancelled.kind, cancelled.reference_number, actor.id,
        refund_target.describe() if refund_target is not None else "none",
    )
    if refund_target is not None:
        closing_balance_service.try_recompute(today, clock=clk)
    return cancelled


# =============================================================================
# ADD PAYMENT
# =============================================================================

def add_payment(transaction_id: int, payment: dict, *, actor_id: int, kind: Optional[str] = None, clock=None) -> Transaction:
    """Append one payment to a pending transaction, posted today."""
    clk = get_clock(clock)
    today = clk.today()
    actor = user_service.get_actor(actor_id)

    txn = _load(transaction_id, kind)
    if txn.status == STATUS_CANCELLED:
        raise AlreadyCancelled("Cannot add payment to a cancelled transaction", {"transaction_id": txn.id})
    if txn.status != STATUS_PENDING:
        raise TransactionNotPending(
            "Payments can only be added to pending transactions",
            {"transaction_id": txn.id, "status": txn.status},
        )

    payment = payment or {}
    try:
        amount = to_money(payment.get("amount"))
    except ValueError:
        raise InvalidAmount("Payment amount must be a number")
    if amount <= 0:
        raise InvalidAmount("Payment amount must be positive", {"amount": str(amount)})
    target = parse_target(payment)
    user_service.ensure_target_exists(target)
    confirmation_service.assert_confirmed_for_writes(clk)

    keys = _lock_keys(today, [target])

    def _op():
        ensure_lock_rows(keys)
        begin_immediate()
        try:
            acquire_locks(keys)
            locked = _load_locked(transaction_id)
            if locked.status != STATUS_PENDING:
                raise TransactionNotPending(
                    "Payments can only be added to pending transactions",
                    {"transaction_id": locked.id, "status": locked.status},
                )
            remaining = to_money(locked.remaining_balance)
            if amount > remaining:
                raise PaymentExceedsTotal(
                    "Payment exceeds the remaining balance",
                    {"remaining_balance": str(remaining), "amount": str(amount)},
                )
            closing_balance_service.assert_sufficient(today, _required_funds(locked.kind, [(target, amount)]))
            _post_payments(locked, [(target, amount)], entry_date=today, actor=actor, clock=clk)
            _refresh_balances(locked)
            locked.updated_at = clk.now()
            locked.updated_by_user_id = actor.id
            db.session.commit()
        except Exception as exc:
            _abort(f"add payment to transaction {transaction_id}", exc)
            raise
        return locked

    updated = _run(_op)
    current_app.logger.info(
        "payment of %s added to %s: remaining=%s status=%s",
        amount, updated.reference_number, updated.remaining_balance, updated.status,
    )
    closing_balance_service.try_recompute(today, clock=clk)
    return updated


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int, kind: Optional[str] = None) -> Transaction:
    return _load(transaction_id, kind)


def list_transactions(
    kind: Optional[str] = None,
    *,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Transaction listing, newest first, with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = db.session.query(Transaction)
    if kind is not None:
        _check_kind(kind)
        query = query.filter(Transaction.kind == kind)
    if status:
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status: {status}", {"valid": list(VALID_STATUSES)})
        query = query.filter(Transaction.status == status)
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Transaction.reference_number).like(like),
            func.lower(Transaction.counterparty_name).like(like),
            Transaction.counterparty_phone.like(like),
        ))
    query = query.order_by(Transaction.date.desc(), Transaction.id.desc())

    if page is None:
        rows = query.all()
        return {
            "items": [t.to_dict(include_lines=False) for t in rows],
            "count": len(rows),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    page = max(page, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [t.to_dict(include_lines=False) for t in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_counterparties(kind: str, search: Optional[str] = None) -> list[dict]:
    query = db.session.query(Counterparty).filter(Counterparty.kind == kind)
    if search:
        query = query.filter(Counterparty.name_key.like(f"%{search.strip().lower()}%"))
    return [c.to_dict() for c in query.order_by(Counterparty.name_key.asc(), Counterparty.id.asc()).all()]
