# Overview: Flask API routes for purchases and sales; parses input and returns JSON responses.

# backend/backoffice/routes/transactions.py
"""Purchase and sale API routes (same handlers, kind taken from the URL)"""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import LedgerError, ValidationError
from ..services import transaction_service
from ..decorators import require_actor
from ..time_utils import parse_local_date


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api")

COLLECTION_KINDS = {
    "purchases": "purchase",
    "sales": "sale",
}


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_local_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD", {name: raw})


@transactions_bp.post("/<any(purchases, sales):collection>")
@require_actor
def create_transaction_route(collection: str):
    """
    Create a purchase or sale dated today.

    Body: items[], payments[], discount/discount_type, tax/tax_type,
    counterparty_name/phone (or supplier_*/customer_*), notes, date.
    """
    kind = COLLECTION_KINDS[collection]
    try:
        data = request.get_json(silent=True) or {}
        result = transaction_service.create_transaction(kind, data, actor_id=g.current_user.id)
        return jsonify({
            "transaction": result["transaction"].to_dict(),
            "applied_stock_deltas": [d.to_dict() for d in result["applied_stock_deltas"]],
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create %s", kind)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<any(purchases, sales):collection>")
def list_transactions_route(collection: str):
    """
    List purchases or sales.

    Query params:
    - status: pending | completed | cancelled
    - start_date / end_date: YYYY-MM-DD (inclusive)
    - search: reference number, counterparty name or phone
    - page / per_page: optional pagination (per_page max 100)
    """
    kind = COLLECTION_KINDS[collection]
    try:
        result = transaction_service.list_transactions(
            kind,
            status=request.args.get("status"),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list %s", collection)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<any(purchases, sales):collection>/<int:transaction_id>")
def get_transaction_route(collection: str, transaction_id: int):
    kind = COLLECTION_KINDS[collection]
    try:
        txn = transaction_service.get_transaction(transaction_id, kind)
        return jsonify({"transaction": txn.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get %s %s", kind, transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.put("/<any(purchases, sales):collection>/<int:transaction_id>")
@require_actor
def update_transaction_route(collection: str, transaction_id: int):
    """
    Edit a transaction.

    Item prices already on the bill cannot change; payments may only be
    appended (send the full list, existing entries unchanged).
    """
    kind = COLLECTION_KINDS[collection]
    try:
        data = request.get_json(silent=True) or {}
        txn = transaction_service.update_transaction(
            transaction_id, data, actor_id=g.current_user.id, kind=kind,
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update %s %s", kind, transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<any(purchases, sales):collection>/<int:transaction_id>/cancel")
@require_actor
def cancel_transaction_route(collection: str, transaction_id: int):
    """
    Cancel a transaction.

    Body: {"refund": {"method": "cash"}} or
    {"refund": {"method": "bank", "bank_account_id": 1}}; required when
    anything has been paid.
    """
    kind = COLLECTION_KINDS[collection]
    try:
        data = request.get_json(silent=True) or {}
        txn = transaction_service.cancel_transaction(
            transaction_id, data.get("refund"), actor_id=g.current_user.id, kind=kind,
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel %s %s", kind, transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<any(purchases, sales):collection>/<int:transaction_id>/payments")
@require_actor
def add_payment_route(collection: str, transaction_id: int):
    """Add one payment: {"method": "cash", "amount": "200.00"}."""
    kind = COLLECTION_KINDS[collection]
    try:
        data = request.get_json(silent=True) or {}
        txn = transaction_service.add_payment(
            transaction_id, data, actor_id=g.current_user.id, kind=kind,
        )
        return jsonify({"transaction": txn.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add payment to %s %s", kind, transaction_id)
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/counterparties")
def list_counterparties_route():
    """Query params: kind=supplier|customer (required), search."""
    kind = request.args.get("kind")
    if kind not in ("supplier", "customer"):
        return jsonify({"error": "kind must be supplier or customer"}), 400
    try:
        items = transaction_service.list_counterparties(kind, request.args.get("search"))
        return jsonify({"items": items, "count": len(items)}), 200
    except Exception:
        current_app.logger.exception("Failed to list counterparties")
        return jsonify({"error": "Internal server error"}), 500
