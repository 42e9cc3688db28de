# backend/backoffice/routes/system.py
"""
System health endpoint.

Reports database reachability and the business clock so deployments can
spot a wrong timezone before it shifts a day boundary.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import LedgerEntry, Transaction
from ..time_utils import get_clock, to_local_iso

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        transaction_count = db.session.query(Transaction).count()
        ledger_count = db.session.query(LedgerEntry).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "transactions": transaction_count,
                "ledger_entries": ledger_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    start_time = time.time()
    database_health = check_database_health()
    clock = get_clock()

    http_status = 503 if database_health["status"] == "unhealthy" else 200
    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": database_health["status"],
        "business_time": to_local_iso(clock.now()),
        "business_date": clock.today().isoformat(),
        "timezone": current_app.config.get("BUSINESS_TIMEZONE"),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
