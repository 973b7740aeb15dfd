"""
Data-access gateway for the sale core.

The gateway is the one handle services use to reach the data store. Every
primitive is its own unit of work: it commits on success, and on failure rolls
back and raises GatewayError. That mirrors independent remote calls, so the
sequential (fallback) flows built on top of it get no cross-step atomicity.

Named procedures run through call(). A procedure that is not provisioned
raises ProcedureNotFoundError, which callers treat as "use the fallback"
rather than as a failure.

One Gateway is created per app by init_gateway() and fetched with
get_gateway(); services receive it as an argument.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Mapping

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..models import (
    Product,
    Sale,
    SaleItem,
    ComboSale,
    CashRegisterClosing,
    SALE_STATUS_ACTIVE,
    SALE_STATUS_VOIDED,
)
from kiosco.time_utils import utcnow
from .concurrency import is_timeout, run_with_retry
from .ledger_service import append_ledger_event
from .procedures import PROCEDURES, ProcedureError

logger = logging.getLogger(__name__)

EXTENSION_KEY = "kiosco_gateway"


class GatewayError(Exception):
    """Raised when the data store rejects or fails an operation."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProcedureNotFoundError(GatewayError):
    """The named procedure is not provisioned on the data store."""


class GatewayTimeoutError(GatewayError):
    """The data store did not answer in time. The write may or may not have landed."""


class Gateway:
    def __init__(self, session, procedures: Iterable[str] | None = None):
        self.session = session
        available = set(PROCEDURES) if procedures is None else set(procedures)
        self.procedures = frozenset(available & set(PROCEDURES))

    @contextmanager
    def _unit_of_work(self, operation: str):
        try:
            yield self.session
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            if is_timeout(exc):
                raise GatewayTimeoutError(f"{operation} timed out", details={"cause": exc.__class__.__name__}) from exc
            raise GatewayError(f"{operation} failed", details={"cause": exc.__class__.__name__}) from exc
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Procedures
    # ------------------------------------------------------------------

    def has_procedure(self, name: str) -> bool:
        return name in self.procedures

    def call(self, name: str, **params):
        if name not in self.procedures:
            raise ProcedureNotFoundError(f"function {name} does not exist", details={"procedure": name})

        body = PROCEDURES[name]

        def _op():
            result = body(self.session, **params)
            self.session.commit()
            return result

        try:
            return run_with_retry(_op, session=self.session)
        except ProcedureError as exc:
            self.session.rollback()
            raise GatewayError(str(exc), details={"procedure": name}) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            if is_timeout(exc):
                raise GatewayTimeoutError(f"{name} timed out", details={"procedure": name}) from exc
            raise GatewayError(f"{name} failed", details={"procedure": name, "cause": exc.__class__.__name__}) from exc
        except Exception:
            self.session.rollback()
            raise

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def insert_sale(self, payment_method: str, total_cents: int, note: str | None, currency: str) -> int:
        with self._unit_of_work("insert_sale") as session:
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
            return sale.id

    def insert_sale_items(self, sale_id: int, items: Iterable[Mapping]) -> None:
        with self._unit_of_work("insert_sale_items") as session:
            for item in items:
                session.add(SaleItem(
                    sale_id=sale_id,
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                    unit_price_cents=item["unit_price_cents"],
                    surcharge_cents=item.get("surcharge_cents", 0),
                ))

    def insert_combo_sales(self, sale_id: int, combos: Iterable[Mapping]) -> None:
        with self._unit_of_work("insert_combo_sales") as session:
            for combo in combos:
                session.add(ComboSale(
                    sale_id=sale_id,
                    combo_id=combo.get("combo_id"),
                    combo_name=combo["combo_name"],
                    quantity=combo["quantity"],
                    unit_price_cents=combo["unit_price_cents"],
                    surcharge_cents=combo.get("surcharge_cents", 0),
                    unit_cost_cents=combo.get("unit_cost_cents", 0),
                ))

    def delete_sale(self, sale_id: int) -> None:
        """Hard delete, used only to compensate a half-written sale."""
        with self._unit_of_work("delete_sale") as session:
            session.query(ComboSale).filter_by(sale_id=sale_id).delete()
            session.query(SaleItem).filter_by(sale_id=sale_id).delete()
            session.query(Sale).filter_by(id=sale_id).delete()

    def get_sale(self, sale_id: int) -> Sale | None:
        return self.session.get(Sale, sale_id)

    def set_sale_status(self, sale_id: int, status: str) -> None:
        with self._unit_of_work("set_sale_status") as session:
            sale = session.get(Sale, sale_id)
            if sale is None:
                raise GatewayError(f"Sale {sale_id} not found")
            sale.status = status
            sale.voided_at = utcnow() if status == SALE_STATUS_VOIDED else None

    def select_sale_items(self, sale_id: int) -> list[SaleItem]:
        return (
            self.session.query(SaleItem)
            .filter_by(sale_id=sale_id)
            .order_by(SaleItem.id.asc())
            .all()
        )

    def select_sales_in_range(
        self,
        start: datetime,
        end: datetime | None = None,
        *,
        exclude_voided: bool = False,
    ) -> list[Sale]:
        """Sales with start <= sold_at < end (end open when None), newest first."""
        query = self.session.query(Sale).filter(Sale.sold_at >= start)
        if end is not None:
            query = query.filter(Sale.sold_at < end)
        if exclude_voided:
            query = query.filter(Sale.status != SALE_STATUS_VOIDED)
        return query.order_by(Sale.sold_at.desc(), Sale.id.desc()).all()

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def get_product_stock(self, product_id: int) -> int:
        product = self.session.get(Product, product_id)
        if product is None:
            raise GatewayError(f"Product {product_id} not found")
        # Re-read from the database, not the identity map
        self.session.refresh(product)
        return product.stock

    def update_product_stock(self, product_id: int, new_stock: int) -> None:
        with self._unit_of_work("update_product_stock") as session:
            updated = session.query(Product).filter_by(id=product_id).update(
                {Product.stock: new_stock}, synchronize_session="fetch"
            )
            if not updated:
                raise GatewayError(f"Product {product_id} not found")

    def increment_product_stock(self, product_id: int, delta: int) -> int:
        """Atomic increment through the increment_stock procedure."""
        return self.call("increment_stock", product_id=product_id, quantity=delta)

    # ------------------------------------------------------------------
    # Register closings
    # ------------------------------------------------------------------

    def select_cash_register_closing_for_day(self, start: datetime, end: datetime) -> CashRegisterClosing | None:
        return (
            self.session.query(CashRegisterClosing)
            .filter(CashRegisterClosing.closed_at >= start)
            .filter(CashRegisterClosing.closed_at < end)
            .order_by(CashRegisterClosing.closed_at.desc())
            .first()
        )

    def insert_cash_register_closing(self, record: Mapping) -> CashRegisterClosing:
        with self._unit_of_work("insert_cash_register_closing") as session:
            closing = CashRegisterClosing(**record)
            session.add(closing)
            session.flush()
            append_ledger_event(
                session,
                event_type="register.closed",
                entity_type="cash_register_closing",
                entity_id=closing.id,
                occurred_at=closing.closed_at,
                note=closing.notes[:255] if closing.notes else None,
                payload=f"sales_count={closing.sales_count},total_cents={closing.total_cents}",
            )
            return closing

    def list_cash_register_closings(self, limit: int = 30) -> list[CashRegisterClosing]:
        return (
            self.session.query(CashRegisterClosing)
            .order_by(CashRegisterClosing.closed_at.desc())
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def record_event(self, **fields) -> None:
        with self._unit_of_work("record_event") as session:
            append_ledger_event(session, **fields)


def init_gateway(app, session) -> Gateway:
    gateway = Gateway(session, procedures=app.config.get("ATOMIC_PROCEDURES"))
    missing = sorted(set(PROCEDURES) - gateway.procedures)
    if missing:
        logger.warning("Procedures not provisioned, fallbacks active: %s", ", ".join(missing))
    app.extensions[EXTENSION_KEY] = gateway
    return gateway


def get_gateway() -> Gateway:
    return current_app.extensions[EXTENSION_KEY]
