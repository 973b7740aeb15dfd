"""
Stored procedures exposed through Gateway.call().

Each procedure receives the session and its named parameters, performs all of
its writes without committing, and lets the gateway commit them as a single
transaction. These are the only code paths that give cross-row consistency
between a sale and the stock it moves.

Stock rows are locked in product id order so two concurrent sales touching
the same products cannot deadlock each other.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Iterable, Mapping

from ..models import (
    Product,
    Sale,
    SaleItem,
    ComboSale,
    SALE_STATUS_ACTIVE,
    SALE_STATUS_VOIDED,
)
from kiosco.time_utils import utcnow
from .concurrency import lock_for_update
from .ledger_service import append_ledger_event


class ProcedureError(Exception):
    """Raised by a procedure body when its data is inconsistent."""


PROCEDURES: dict[str, Callable] = {}


def procedure(name: str):
    def register(func):
        PROCEDURES[name] = func
        return func
    return register


def _quantities_by_product(items: Iterable[Mapping]) -> dict[int, int]:
    totals: dict[int, int] = defaultdict(int)
    for item in items:
        totals[int(item["product_id"])] += int(item["quantity"])
    return dict(totals)


def _locked_product(session, product_id: int) -> Product:
    product = lock_for_update(session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise ProcedureError(f"Product {product_id} not found")
    return product


@procedure("create_sale_atomic")
def create_sale_atomic(
    session,
    *,
    payment_method: str,
    total_cents: int,
    note: str | None,
    currency: str,
    items: list[Mapping],
    combos: list[Mapping] | None = None,
) -> int:
    """Sale header + items + combo summaries + stock decrement, all or nothing."""
    sale = Sale(
        sold_at=utcnow(),
        payment_method=payment_method,
        total_cents=total_cents,
        note=note,
        currency=currency,
        status=SALE_STATUS_ACTIVE,
    )
    session.add(sale)
    session.flush()

    for item in items:
        session.add(SaleItem(
            sale_id=sale.id,
            product_id=item["product_id"],
            quantity=item["quantity"],
            unit_price_cents=item["unit_price_cents"],
            surcharge_cents=item.get("surcharge_cents", 0),
        ))

    for combo in combos or []:
        session.add(ComboSale(
            sale_id=sale.id,
            combo_id=combo.get("combo_id"),
            combo_name=combo["combo_name"],
            quantity=combo["quantity"],
            unit_price_cents=combo["unit_price_cents"],
            surcharge_cents=combo.get("surcharge_cents", 0),
            unit_cost_cents=combo.get("unit_cost_cents", 0),
        ))

    for product_id, quantity in sorted(_quantities_by_product(items).items()):
        product = _locked_product(session, product_id)
        # Never below zero; the sale itself is not blocked on short stock
        product.stock = max(0, product.stock - quantity)

    append_ledger_event(
        session,
        event_type="sale.settled",
        entity_type="sale",
        entity_id=sale.id,
        sale_id=sale.id,
        occurred_at=sale.sold_at,
        payload=f"items={len(items)},total_cents={total_cents}",
    )
    return sale.id


@procedure("cancel_sale_atomic")
def cancel_sale_atomic(session, *, sale_id: int) -> dict:
    """
    Void a sale and put its items back in stock.

    Returns an outcome instead of raising for precondition failures:
    {"status": "voided" | "not_found" | "already_voided"}.
    """
    sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        return {"status": "not_found", "sale_id": sale_id}
    if sale.status == SALE_STATUS_VOIDED:
        return {"status": "already_voided", "sale_id": sale_id}

    items = session.query(SaleItem).filter_by(sale_id=sale_id).all()

    sale.status = SALE_STATUS_VOIDED
    sale.voided_at = utcnow()

    restored = _quantities_by_product(
        {"product_id": it.product_id, "quantity": it.quantity} for it in items
    )
    for product_id, quantity in sorted(restored.items()):
        product = _locked_product(session, product_id)
        product.stock = product.stock + quantity

    append_ledger_event(
        session,
        event_type="sale.voided",
        entity_type="sale",
        entity_id=sale.id,
        sale_id=sale.id,
        occurred_at=sale.voided_at,
        payload=",".join(f"{pid}:{qty}" for pid, qty in sorted(restored.items())),
    )
    return {"status": "voided", "sale_id": sale_id, "restored": restored}


@procedure("increment_stock")
def increment_stock(session, *, product_id: int, quantity: int) -> int:
    """Atomic `stock = stock + quantity` on one product row. Returns the new stock."""
    product = _locked_product(session, product_id)
    product.stock = max(0, product.stock + quantity)
    return product.stock
