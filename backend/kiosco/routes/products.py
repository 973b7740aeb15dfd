# Overview: Flask API routes for catalog products; parses input and returns JSON responses.

# backend/kiosco/routes/products.py
"""Product catalog routes."""
from flask import Blueprint, request, current_app

from ..services import products_service
from ..services.products_service import ProductNotFoundError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
    ValidationError,
    ConflictError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "price_cents", "cost_cents", "stock", "min_stock", "is_active"},
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    Query params:
    - active: "1" to list only active products
    - category: filter by category
    """
    active_only = request.args.get("active") in {"1", "true", "yes"}
    category = request.args.get("category") or None
    products = products_service.list_products(active_only=active_only, category=category)
    return {"products": [p.to_dict() for p in products]}


@products_bp.get("/alerts")
def low_stock_alerts():
    return {"products": [p.to_dict() for p in products_service.low_stock_products()]}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict()
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.patch("/<int:product_id>")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(product_id, patch=patch)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404

    return updated.to_dict()


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return "", 204


@products_bp.post("/<int:product_id>/adjust")
def adjust_stock_route(product_id: int):
    """Body: {"delta": int, "reason": str?}"""
    payload = request.get_json(silent=True) or {}

    try:
        delta = coerce_int(payload.get("delta"), "delta")
        product = products_service.adjust_stock(product_id, delta, reason=payload.get("reason"))
    except ProductNotFoundError:
        return {"error": "Product not found"}, 404
    except ValidationError as e:
        return {"error": str(e)}, 400

    return product.to_dict()
