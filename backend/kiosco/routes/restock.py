# Overview: Flask API routes for restock sources and purchases.

# backend/kiosco/routes/restock.py
from flask import Blueprint, request, jsonify, current_app

from ..services import restock_service
from ..services.gateway import get_gateway, GatewayError
from ..services.restock_service import RestockError, RestockNotFoundError
from ..validation import coerce_int, ValidationError


restock_bp = Blueprint("restock", __name__, url_prefix="/api/restock")


@restock_bp.get("/sources")
def list_sources_route():
    product_id = request.args.get("product_id", type=int)
    if product_id is None:
        return jsonify({"error": "product_id required"}), 400
    sources = restock_service.list_sources(product_id)
    return jsonify({"sources": [s.to_dict() for s in sources]}), 200


@restock_bp.post("/sources")
def create_source_route():
    data = request.get_json(silent=True) or {}
    try:
        source = restock_service.create_source(
            product_id=coerce_int(data.get("product_id"), "product_id"),
            place=data.get("place") or "",
            purchase_price_cents=coerce_int(data.get("purchase_price_cents"), "purchase_price_cents"),
            currency=data.get("currency") or current_app.config["PRIMARY_CURRENCY"],
            presentation=data.get("presentation"),
            contact=data.get("contact"),
            url=data.get("url"),
            notes=data.get("notes"),
        )
        return jsonify({"source": source.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RestockNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except RestockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400


@restock_bp.delete("/sources/<int:source_id>")
def delete_source_route(source_id: int):
    try:
        restock_service.delete_source(source_id)
    except RestockNotFoundError:
        return jsonify({"error": "Restock source not found"}), 404
    return "", 204


@restock_bp.post("/purchases")
def register_purchase_route():
    """
    Body: {"product_id", "quantity", "unit_price_cents", "currency"?,
           "source_id"?, "total_cost_cents"?, "notes"?}
    """
    data = request.get_json(silent=True) or {}
    try:
        source_id = data.get("source_id")
        total_cost = data.get("total_cost_cents")
        purchase, new_stock = restock_service.register_purchase(
            gateway=get_gateway(),
            product_id=coerce_int(data.get("product_id"), "product_id"),
            quantity=coerce_int(data.get("quantity"), "quantity"),
            unit_price_cents=coerce_int(data.get("unit_price_cents"), "unit_price_cents"),
            currency=data.get("currency") or current_app.config["PRIMARY_CURRENCY"],
            source_id=coerce_int(source_id, "source_id") if source_id is not None else None,
            total_cost_cents=coerce_int(total_cost, "total_cost_cents") if total_cost is not None else None,
            notes=data.get("notes"),
        )
        return jsonify({"purchase": purchase.to_dict(), "stock": new_stock}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except RestockNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except RestockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except GatewayError as e:
        current_app.logger.warning("Restock stock update failed: %s", e)
        return jsonify({"error": str(e), "details": e.details}), 502
    except Exception:
        current_app.logger.exception("Failed to register purchase")
        return jsonify({"error": "Internal server error"}), 500
