# Overview: Service-layer helpers for locking, retries and serialized write transactions.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import BalanceLock


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_immediate() covers it there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def begin_immediate() -> None:
    """
    Take the SQLite database write lock up front.

    No-op on other dialects, and when the connection already has an open
    transaction (BEGIN cannot nest).
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if raw is not None and raw.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def ensure_lock_rows(keys) -> None:
    """
    Make sure an anchor row exists for every lock key, committing new ones.

    Must run before the unit of work opens; a concurrent insert of the same
    key is fine (the unique constraint wins and we move on).
    """
    wanted = sorted(set(keys))
    if not wanted:
        return
    existing = {
        row.lock_key
        for row in db.session.query(BalanceLock.lock_key).filter(BalanceLock.lock_key.in_(wanted)).all()
    }
    missing = [key for key in wanted if key not in existing]
    for key in missing:
        db.session.add(BalanceLock(lock_key=key))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
    if not missing:
        # Close the read-only transaction so the writer can BEGIN IMMEDIATE
        db.session.commit()


def acquire_locks(keys) -> list[BalanceLock]:
    """Lock anchor rows FOR UPDATE in sorted key order (deadlock-free ordering)."""
    wanted = sorted(set(keys))
    if not wanted:
        return []
    return (
        lock_for_update(
            db.session.query(BalanceLock)
            .filter(BalanceLock.lock_key.in_(wanted))
            .order_by(BalanceLock.lock_key)
        )
        .all()
    )
