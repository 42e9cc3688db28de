# Overview: Flask API routes for closing balances, opening balances and the money ledger.

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import LedgerError, ValidationError
from ..services import closing_balance_service, ledger_service, opening_balance_service
from ..decorators import require_actor
from ..targets import parse_target
from ..time_utils import get_clock, parse_local_date


balances_bp = Blueprint("balances", __name__, url_prefix="/api")


def _parse_date(raw, name: str = "date"):
    try:
        value = parse_local_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD", {name: raw})
    if value is None:
        raise ValidationError(f"{name} is required", {"field": name})
    return value


@balances_bp.get("/closing-balances/<date_str>")
def get_closing_balance_route(date_str: str):
    """Closing balance snapshot for one local date (computed and cached if missing)."""
    try:
        snapshot = closing_balance_service.snapshot(_parse_date(date_str))
        return jsonify({"snapshot": snapshot.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get closing balance for %s", date_str)
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.post("/closing-balances/<date_str>/recompute")
@require_actor
def recompute_closing_balance_route(date_str: str):
    """Drop and rebuild the snapshot for a date (and every later stored one)."""
    try:
        snapshot = closing_balance_service.recompute(_parse_date(date_str))
        current_app.logger.info("closing balance for %s recomputed by user %s", date_str, g.current_user.id)
        return jsonify({"snapshot": snapshot.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to recompute closing balance for %s", date_str)
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.get("/closing-balances")
def list_closing_balances_route():
    """Query params: start, end (YYYY-MM-DD, inclusive)."""
    try:
        start = _parse_date(request.args.get("start"), "start")
        end = _parse_date(request.args.get("end"), "end")
        snapshots = closing_balance_service.get_closing_balances(start, end)
        return jsonify({"items": [s.to_dict() for s in snapshots], "count": len(snapshots)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list closing balances")
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.get("/opening-balances/<date_str>")
def get_opening_balance_route(date_str: str):
    try:
        row = opening_balance_service.get_opening_balance(_parse_date(date_str))
        if row is None:
            return jsonify({"error": "Opening balance not found"}), 404
        return jsonify({"opening_balance": row.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get opening balance for %s", date_str)
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.post("/opening-balances")
@require_actor
def set_opening_balance_route():
    """
    Create or replace the opening balance for a date.

    Body: {"date": "YYYY-MM-DD", "lines": [{"method": "cash", "amount": "1000.00"}, ...], "notes": ...}
    """
    try:
        data = request.get_json(silent=True) or {}
        row = opening_balance_service.set_opening_balance(
            lines=data.get("lines"),
            actor_id=g.current_user.id,
            balance_date=data.get("date"),
            notes=data.get("notes"),
        )
        return jsonify({"opening_balance": row.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to set opening balance")
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.post("/opening-balances/add")
@require_actor
def add_funds_route():
    """Add funds to a target today: {"method": "cash", "amount": "500.00", "description": ...}."""
    try:
        data = request.get_json(silent=True) or {}
        entry = opening_balance_service.add_funds(
            payment=data,
            actor_id=g.current_user.id,
            description=data.get("description"),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add funds")
        return jsonify({"error": "Internal server error"}), 500


@balances_bp.get("/ledger")
def list_ledger_entries_route():
    """
    Ledger entries for one date.

    Query params:
    - date: YYYY-MM-DD (default today)
    - method / bank_account_id / card_id: optional target filter
    - transaction_id: optional source transaction filter
    """
    try:
        raw_date = request.args.get("date")
        entry_date = _parse_date(raw_date) if raw_date else get_clock().today()
        target = parse_target(request.args.to_dict()) if request.args.get("method") else None
        entries = ledger_service.entries_for(
            entry_date,
            target=target,
            source_transaction_id=request.args.get("transaction_id", type=int),
        )
        totals = ledger_service.daily_totals(entry_date)
        return jsonify({
            "date": entry_date.isoformat(),
            "items": [e.to_dict() for e in entries],
            "count": len(entries),
            "totals": {k: f"{v:.2f}" for k, v in totals.items()},
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list ledger entries")
        return jsonify({"error": "Internal server error"}), 500
