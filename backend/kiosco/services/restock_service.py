"""
Restock sources and purchases.

Sources are where a product can be bought (place, price, presentation).
Registering a purchase records it and adds the quantity to stock through the
increment_stock procedure, with a read-then-write fallback when the procedure
is not provisioned.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, RestockSource, RestockPurchase
from kiosco.time_utils import utcnow
from .gateway import Gateway, ProcedureNotFoundError

logger = logging.getLogger(__name__)


class RestockError(Exception):
    """Raised for restock operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class RestockNotFoundError(RestockError):
    pass


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise RestockNotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_sources(product_id: int) -> list[RestockSource]:
    return (
        db.session.query(RestockSource)
        .filter_by(product_id=product_id)
        .order_by(RestockSource.created_at.desc(), RestockSource.id.desc())
        .all()
    )


def create_source(
    *,
    product_id: int,
    place: str,
    purchase_price_cents: int,
    currency: str,
    presentation: str | None = None,
    contact: str | None = None,
    url: str | None = None,
    notes: str | None = None,
) -> RestockSource:
    _require_product(product_id)
    if not place or not place.strip():
        raise RestockError("place required")
    if purchase_price_cents is None or purchase_price_cents < 0:
        raise RestockError("purchase_price_cents must be >= 0")
    if not currency or not currency.strip():
        raise RestockError("currency required")

    source = RestockSource(
        product_id=product_id,
        place=place.strip(),
        purchase_price_cents=purchase_price_cents,
        currency=currency.strip().upper(),
        presentation=presentation,
        contact=contact,
        url=url,
        notes=notes,
    )
    db.session.add(source)
    db.session.commit()
    return source


def delete_source(source_id: int) -> None:
    source = db.session.get(RestockSource, source_id)
    if source is None:
        raise RestockNotFoundError("Restock source not found", details={"source_id": source_id})
    # Purchases keep their row; they just lose the link
    db.session.query(RestockPurchase).filter_by(source_id=source_id).update({RestockPurchase.source_id: None})
    db.session.delete(source)
    db.session.commit()


def register_purchase(
    *,
    gateway: Gateway,
    product_id: int,
    quantity: int,
    unit_price_cents: int,
    currency: str,
    source_id: int | None = None,
    total_cost_cents: int | None = None,
    notes: str | None = None,
) -> tuple[RestockPurchase, int]:
    """
    Record a purchase and add it to stock.

    Returns (purchase, new_stock). The purchase row is committed before the
    stock write, so a failing stock write leaves the purchase recorded.
    """
    _require_product(product_id)
    if quantity is None or quantity <= 0:
        raise RestockError("quantity must be positive")
    if unit_price_cents is None or unit_price_cents < 0:
        raise RestockError("unit_price_cents must be >= 0")
    if source_id is not None and db.session.get(RestockSource, source_id) is None:
        raise RestockNotFoundError("Restock source not found", details={"source_id": source_id})

    purchase = RestockPurchase(
        purchased_at=utcnow(),
        product_id=product_id,
        source_id=source_id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        currency=(currency or "").strip().upper(),
        total_cost_cents=quantity * unit_price_cents if total_cost_cents is None else total_cost_cents,
        notes=notes,
    )
    db.session.add(purchase)
    db.session.commit()

    try:
        new_stock = gateway.increment_product_stock(product_id, quantity)
    except ProcedureNotFoundError:
        logger.warning("increment_stock not provisioned; restocking product %s with read-then-write", product_id)
        new_stock = gateway.get_product_stock(product_id) + quantity
        gateway.update_product_stock(product_id, new_stock)

    return purchase, new_stock
