# Overview: Flask API routes for the daily closing-balance confirmation.

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..errors import LedgerError
from ..services import confirmation_service
from ..decorators import require_actor


confirmations_bp = Blueprint("confirmations", __name__, url_prefix="/api/daily-confirmation")


@confirmations_bp.get("")
def get_status_route():
    """
    Confirmation status for a date (default today).

    Response: date, confirmed, needs_confirmation, confirmed_by_user_id,
    confirmed_at, previous_snapshot.
    """
    try:
        status = confirmation_service.get_status(request.args.get("date"))
        return jsonify(status), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get confirmation status")
        return jsonify({"error": "Internal server error"}), 500


@confirmations_bp.post("")
@require_actor
def confirm_route():
    """Confirm a date (default today). Repeats return 200 with created=false."""
    try:
        data = request.get_json(silent=True) or {}
        row, created = confirmation_service.confirm(data.get("date"), actor_id=g.current_user.id)
        return jsonify({"confirmation": row.to_dict(), "created": created}), 201 if created else 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to confirm daily balance")
        return jsonify({"error": "Internal server error"}), 500
