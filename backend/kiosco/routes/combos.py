# Overview: Flask API routes for combos; parses input and returns JSON responses.

# backend/kiosco/routes/combos.py
"""Combo routes. DELETE is a soft delete."""

from flask import Blueprint, request, current_app

from ..services import combos_service
from ..services.combos_service import ComboError, ComboNotFoundError
from ..validation import coerce_int, enforce_rules_combo, ValidationError


combos_bp = Blueprint("combos", __name__, url_prefix="/api/combos")


def _combo_fields(data: dict) -> dict:
    name = data.get("name")
    if not name:
        raise ValidationError("name required")
    price_cents = coerce_int(data.get("price_cents"), "price_cents")
    enforce_rules_combo({"price_cents": price_cents})
    items = data.get("items") or []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    return {
        "name": str(name),
        "price_cents": price_cents,
        "description": data.get("description"),
        "items": items,
    }


@combos_bp.get("")
def list_combos_route():
    """Query params: all=1 to include inactive combos."""
    active_only = request.args.get("all") not in {"1", "true", "yes"}
    combos = combos_service.list_combos(active_only=active_only)
    return {"combos": [c.to_dict() for c in combos]}


@combos_bp.get("/<int:combo_id>")
def get_combo_route(combo_id: int):
    try:
        return combos_service.get_combo(combo_id).to_dict()
    except ComboNotFoundError:
        return {"error": "Combo not found"}, 404


@combos_bp.post("")
def create_combo_route():
    data = request.get_json(silent=True) or {}
    try:
        combo = combos_service.create_combo(**_combo_fields(data))
        return combo.to_dict(), 201
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ComboError as e:
        return {"error": str(e), "details": e.details}, 400
    except Exception:
        current_app.logger.exception("Failed to create combo")
        return {"error": "Internal server error"}, 500


@combos_bp.put("/<int:combo_id>")
def update_combo_route(combo_id: int):
    data = request.get_json(silent=True) or {}
    try:
        fields = _combo_fields(data)
        combo = combos_service.update_combo(
            combo_id,
            is_active=bool(data.get("is_active", True)),
            **fields,
        )
        return combo.to_dict()
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ComboNotFoundError:
        return {"error": "Combo not found"}, 404
    except ComboError as e:
        return {"error": str(e), "details": e.details}, 400
    except Exception:
        current_app.logger.exception("Failed to update combo")
        return {"error": "Internal server error"}, 500


@combos_bp.delete("/<int:combo_id>")
def delete_combo_route(combo_id: int):
    try:
        combo = combos_service.deactivate_combo(combo_id)
    except ComboNotFoundError:
        return {"error": "Combo not found"}, 404
    return combo.to_dict()
