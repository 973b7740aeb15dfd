# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/kiosco/routes/sales.py
"""
Sales API routes.

POST /api/sales takes cart lines, rebuilds the cart against the current
catalog and settles it:

    {
      "payment_method": "efectivo",
      "currency": "UYU",              (optional, defaults to PRIMARY_CURRENCY)
      "note": "...",                  (optional)
      "lines": [
        {"product_id": 1, "quantity": 2, "unit_price_cents": 15000, "shot_extra": false, "monster": false},
        {"combo_id": 3, "quantity": 1}
      ]
    }
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import combos_service, products_service, sales_service
from ..services.cart import Cart, CartError
from ..services.combos_service import InsufficientComboStock
from ..services.events import get_event_bus
from ..services.gateway import get_gateway
from ..services.sales_service import (
    SaleError,
    SaleValidationError,
    SaleNotFoundError,
    SaleAlreadyVoidedError,
    SalePersistenceError,
    SaleOutcomeUnknownError,
)
from ..validation import coerce_int, ValidationError
from kiosco.time_utils import get_zone, parse_iso_datetime, today_bounds


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def build_cart(lines: list) -> Cart:
    """Replay request lines onto a fresh cart. Repeated products add up."""
    if not isinstance(lines, list):
        raise ValidationError("lines must be a list")

    cart = Cart.from_catalog(
        products_service.list_products(),
        combos_service.list_combos(active_only=False),
        shot_extra_cents=current_app.config["SHOT_EXTRA_CENTS"],
        monster_extra_cents=current_app.config["MONSTER_EXTRA_CENTS"],
    )

    requested: dict[str, int] = {}
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError("each line must be an object")
        quantity = coerce_int(raw.get("quantity", 1), "quantity")
        if quantity <= 0:
            raise ValidationError("quantity must be positive")

        if raw.get("combo_id") is not None:
            line = cart.add_combo(coerce_int(raw["combo_id"], "combo_id"))
        elif raw.get("product_id") is not None:
            line = cart.add_product(coerce_int(raw["product_id"], "product_id"))
        else:
            raise ValidationError("each line needs product_id or combo_id")

        requested[line.line_id] = requested.get(line.line_id, 0) + quantity
        cart.set_quantity(line.line_id, requested[line.line_id])

        if raw.get("unit_price_cents") is not None:
            cart.set_unit_price(line.line_id, coerce_int(raw["unit_price_cents"], "unit_price_cents"))
        if raw.get("shot_extra") and not line.shot_extra:
            cart.toggle_shot_extra(line.line_id)
        if raw.get("monster") and not line.monster:
            cart.toggle_monster(line.line_id)

    return cart


def _sale_payload(sale_id: int) -> dict:
    sale, items, combos = sales_service.get_sale_detail(sale_id, gateway=get_gateway())
    return {
        "sale": sale.to_dict(),
        "items": [item.to_dict() for item in items],
        "combos": [combo.to_dict() for combo in combos],
    }


@sales_bp.post("")
def settle_sale_route():
    try:
        data = request.get_json(silent=True) or {}
        cart = build_cart(data.get("lines") or [])
        settlement = cart.to_settlement_request(
            data.get("payment_method"),
            note=data.get("note"),
            currency=data.get("currency"),
        )

        sale_id = sales_service.settle_sale(
            settlement,
            gateway=get_gateway(),
            events=get_event_bus(),
            stock_source=current_app.config["FALLBACK_STOCK_SOURCE"],
            default_currency=current_app.config["PRIMARY_CURRENCY"],
        )

        payload = _sale_payload(sale_id)
        payload["lines"] = [
            {**line.to_dict(), "line_total_cents": cart.line_total_cents(line)}
            for line in cart.lines
        ]
        return jsonify(payload), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InsufficientComboStock as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except CartError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except SaleValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except SaleOutcomeUnknownError as e:
        current_app.logger.error("Sale settlement outcome unknown: %s", e)
        return jsonify({"error": str(e), "details": e.details, "outcome": "unknown"}), 504
    except SalePersistenceError as e:
        current_app.logger.warning("Sale settlement failed: %s", e)
        return jsonify({"error": str(e), "details": e.details}), 502
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    Query params:
    - start, end: ISO-8601 (default: today in KIOSCO_TIMEZONE)
    - active: "1" to leave out voided sales
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 datetimes"}), 400

    if start is None:
        start, default_end = today_bounds(get_zone(current_app.config["KIOSCO_TIMEZONE"]))
        end = end or default_end

    try:
        sales = sales_service.fetch_sales_by_range(
            start,
            end,
            gateway=get_gateway(),
            exclude_voided=request.args.get("active") in {"1", "true", "yes"},
        )
    except SaleValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"sales": [s.to_dict() for s in sales]}), 200


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify(_sale_payload(sale_id)), 200
    except SaleNotFoundError:
        return jsonify({"error": "Sale not found"}), 404


@sales_bp.post("/<int:sale_id>/cancel")
def cancel_sale_route(sale_id: int):
    """Void a sale and put its items back in stock."""
    try:
        restored = sales_service.cancel_sale(sale_id, gateway=get_gateway())
        payload = _sale_payload(sale_id)
        payload["restored"] = [
            {"product_id": pid, "quantity": qty} for pid, qty in sorted(restored.items())
        ]
        return jsonify(payload), 200

    except SaleNotFoundError:
        return jsonify({"error": "Sale not found"}), 404
    except SaleAlreadyVoidedError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except SaleOutcomeUnknownError as e:
        current_app.logger.error("Sale cancellation outcome unknown: %s", e)
        return jsonify({"error": str(e), "details": e.details, "outcome": "unknown"}), 504
    except SalePersistenceError as e:
        current_app.logger.warning("Sale cancellation failed: %s", e)
        return jsonify({"error": str(e), "details": e.details}), 502
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
