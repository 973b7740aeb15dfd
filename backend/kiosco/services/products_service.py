# backend/kiosco/services/products_service.py
"""
Catalog Store

Products carry price, cost, on-hand stock and a minimum-stock threshold.
Settlement and cancellation never go through here: they move stock through
the gateway. This module covers catalog maintenance and manual adjustments.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, SaleItem, ComboItem
from ..validation import ConflictError, ValidationError
from .ledger_service import append_ledger_event

PRODUCT_MUTABLE_FIELDS = {"name", "category", "price_cents", "cost_cents", "stock", "min_stock", "is_active"}


class ProductNotFoundError(LookupError):
    """Raised when a product id does not exist."""


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(*, active_only: bool = False, category: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def create_product(*, patch: dict) -> Product:
    p = Product(is_active=True)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    return p


def update_product(product_id: int, *, patch: dict) -> Product:
    p = get_product(product_id)
    apply_product_patch(p, patch)
    db.session.commit()
    return p


def delete_product(product_id: int) -> None:
    """
    Hard delete.

    Products referenced by sales or combos are kept for the audit trail;
    deactivate them instead.
    """
    p = get_product(product_id)

    sold = db.session.query(SaleItem.id).filter_by(product_id=product_id).first()
    if sold is not None:
        raise ConflictError("Product has sales history; deactivate it instead")

    in_combo = db.session.query(ComboItem.id).filter_by(product_id=product_id).first()
    if in_combo is not None:
        raise ConflictError("Product is part of a combo; remove it from the combo first")

    db.session.delete(p)
    db.session.commit()


def adjust_stock(product_id: int, delta: int, *, reason: str | None = None) -> Product:
    """Manual stock correction (count differences, breakage, gifts)."""
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    p = get_product(product_id)
    new_stock = p.stock + delta
    if new_stock < 0:
        raise ValidationError(f"Adjustment would leave {p.name} with negative stock ({new_stock})")

    p.stock = new_stock
    append_ledger_event(
        db.session,
        event_type="stock.adjusted",
        entity_type="product",
        entity_id=p.id,
        note=reason,
        payload=f"delta={delta},stock={new_stock}",
    )
    db.session.commit()
    return p


def low_stock_products() -> list[Product]:
    """Active products at or below their minimum stock, most urgent first."""
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(Product.stock <= Product.min_stock)
        .order_by((Product.stock - Product.min_stock).asc(), Product.name.asc())
        .all()
    )
