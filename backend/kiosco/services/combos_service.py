"""
Combo Store

WHY: Combos are bundles sold at their own price. They own an ordered list of
(product, quantity) components and have no stock: availability is whatever
the component products allow.

DESIGN:
- A combo needs at least one component when it is created.
- Updating components is a full replace (delete all, insert again).
- Deleting a combo is a soft delete (is_active = False) so past combo sales
  keep pointing at it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ..extensions import db
from ..models import Combo, ComboItem, Product
from kiosco.time_utils import utcnow


class ComboError(Exception):
    """Raised for combo operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ComboNotFoundError(ComboError):
    pass


class InsufficientComboStock(ComboError):
    """A component product does not have enough stock for one more combo."""


@dataclass(frozen=True)
class ComboComponent:
    product_id: int
    name: str
    quantity: int


def components_of(combo: Combo) -> tuple[ComboComponent, ...]:
    return tuple(
        ComboComponent(
            product_id=item.product_id,
            name=item.product.name if item.product else str(item.product_id),
            quantity=item.quantity,
        )
        for item in combo.items
    )


def _normalize_items(items: Iterable[Mapping] | None, *, allow_empty: bool) -> list[tuple[int, int]]:
    normalized: list[tuple[int, int]] = []
    for raw in items or []:
        try:
            product_id = int(raw["product_id"])
            quantity = int(raw["quantity"])
        except (KeyError, TypeError, ValueError):
            raise ComboError("Each combo item needs product_id and quantity")
        if quantity <= 0:
            raise ComboError("Combo item quantity must be positive", details={"product_id": product_id})
        normalized.append((product_id, quantity))

    if not normalized and not allow_empty:
        raise ComboError("A combo needs at least one product")

    product_ids = {pid for pid, _ in normalized}
    if product_ids:
        found = {
            pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(product_ids)).all()
        }
        missing = sorted(product_ids - found)
        if missing:
            raise ComboError("Unknown products in combo", details={"product_ids": missing})

    return normalized


def _replace_items(combo: Combo, items: list[tuple[int, int]]) -> None:
    combo.items.clear()
    db.session.flush()
    for position, (product_id, quantity) in enumerate(items):
        combo.items.append(ComboItem(product_id=product_id, quantity=quantity, position=position))


def list_combos(*, active_only: bool = True) -> list[Combo]:
    query = db.session.query(Combo)
    if active_only:
        query = query.filter(Combo.is_active.is_(True))
    return query.order_by(Combo.name.asc(), Combo.id.asc()).all()


def get_combo(combo_id: int) -> Combo:
    combo = db.session.get(Combo, combo_id)
    if combo is None:
        raise ComboNotFoundError("Combo not found")
    return combo


def create_combo(
    *,
    name: str,
    price_cents: int,
    items: Iterable[Mapping],
    description: str | None = None,
) -> Combo:
    if not name or not name.strip():
        raise ComboError("name required")
    if price_cents is None or price_cents < 0:
        raise ComboError("price_cents must be >= 0")

    normalized = _normalize_items(items, allow_empty=False)

    combo = Combo(
        name=name.strip(),
        description=description,
        price_cents=price_cents,
        is_active=True,
    )
    db.session.add(combo)
    _replace_items(combo, normalized)
    db.session.commit()
    return combo


def update_combo(
    combo_id: int,
    *,
    name: str,
    price_cents: int,
    is_active: bool,
    items: Iterable[Mapping],
    description: str | None = None,
) -> Combo:
    """Update header fields and replace every component."""
    combo = get_combo(combo_id)

    if not name or not name.strip():
        raise ComboError("name required")
    if price_cents is None or price_cents < 0:
        raise ComboError("price_cents must be >= 0")

    normalized = _normalize_items(items, allow_empty=True)

    combo.name = name.strip()
    combo.description = description
    combo.price_cents = price_cents
    combo.is_active = bool(is_active)
    combo.updated_at = utcnow()
    _replace_items(combo, normalized)

    db.session.commit()
    return combo


def deactivate_combo(combo_id: int) -> Combo:
    combo = get_combo(combo_id)
    combo.is_active = False
    combo.updated_at = utcnow()
    db.session.commit()
    return combo


def check_combo_stock(components: Iterable[ComboComponent], products: Mapping[int, object]) -> None:
    """
    Advisory availability check for one unit of a combo.

    `products` maps product id to anything with a `stock` attribute (ORM rows
    or cart snapshots). Raises InsufficientComboStock naming the first short
    component.
    """
    components = tuple(components)
    if not components:
        raise InsufficientComboStock("Combo has no products")

    for component in components:
        product = products.get(component.product_id)
        if product is None or product.stock < component.quantity:
            raise InsufficientComboStock(
                f'Stock insuficiente para "{component.name}"',
                details={
                    "product_id": component.product_id,
                    "required": component.quantity,
                    "available": 0 if product is None else product.stock,
                },
            )


def combo_unit_cost_cents(components: Iterable[ComboComponent], products: Mapping[int, object]) -> int:
    """Cost of one combo: sum of component cost x quantity. Unknown products cost 0."""
    total = 0
    for component in components:
        product = products.get(component.product_id)
        cost = getattr(product, "cost_cents", 0) if product is not None else 0
        total += cost * component.quantity
    return total
