# Overview: Flask API routes for the end-of-day register closing.

# backend/kiosco/routes/registers.py
"""Cash register closing routes."""

from flask import Blueprint, request, jsonify, current_app

from ..services import register_service
from ..services.gateway import get_gateway
from ..services.register_service import AlreadyClosedError, NothingToCloseError, RegisterError
from kiosco.time_utils import get_zone


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _closing_options() -> dict:
    config = current_app.config
    return {
        "gateway": get_gateway(),
        "zone": get_zone(config["KIOSCO_TIMEZONE"]),
        "secondary_currency": config["SECONDARY_CURRENCY"],
        "exclude_voided": config["CLOSING_EXCLUDE_VOIDED"],
    }


@registers_bp.post("/close")
def close_register_route():
    """
    Close today's register.

    Body: {"note": str?}
    Returns 409 when today is already closed or has no sales.
    """
    try:
        data = request.get_json(silent=True) or {}
        closing = register_service.close_cash_register(data.get("note"), **_closing_options())
        return jsonify({"closing": closing.to_dict()}), 201

    except (AlreadyClosedError, NothingToCloseError) as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except RegisterError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/closings")
def list_closings_route():
    limit = request.args.get("limit", default=30, type=int)
    if limit is None or limit <= 0:
        return jsonify({"error": "limit must be positive"}), 400
    closings = register_service.list_closings(gateway=get_gateway(), limit=min(limit, 365))
    return jsonify({"closings": [c.to_dict() for c in closings]}), 200


@registers_bp.get("/closings/today")
def today_closing_route():
    """Today's closing if there is one, and the totals a closing would record now."""
    options = _closing_options()
    closing = register_service.get_today_closing(gateway=options["gateway"], zone=options["zone"])
    preview = register_service.preview_closing(**options)
    return jsonify({
        "closed": closing is not None,
        "closing": closing.to_dict() if closing else None,
        "preview": preview.to_dict(),
    }), 200
