"""
Cash-Register Closing

WHY: At the end of the day the register is closed once: sales are summed per
payment bucket and frozen into a CashRegisterClosing row.

DESIGN PRINCIPLES:
- One closing per local calendar day
- Closings are immutable once written
- A day without sales cannot be closed
- Secondary-currency sales are kept out of the payment buckets and the total
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime, tzinfo
from typing import Iterable

from ..models import CashRegisterClosing, Sale, SALE_STATUS_VOIDED
from kiosco.time_utils import utcnow, today_bounds
from .gateway import Gateway
from .sales_service import fold_accents


class RegisterError(Exception):
    """Raised for register operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class AlreadyClosedError(RegisterError):
    pass


class NothingToCloseError(RegisterError):
    pass


BUCKET_CASH = "cash"
BUCKET_DEBIT = "debit"
BUCKET_TRANSFER = "transfer"

# Anything not listed (credito, mercadopago, typos) is counted as cash
_BUCKETS = {
    "efectivo": BUCKET_CASH,
    "debito": BUCKET_DEBIT,
    "transferencia": BUCKET_TRANSFER,
}


def bucket_for(payment_method: str | None) -> str:
    return _BUCKETS.get(fold_accents(payment_method or ""), BUCKET_CASH)


@dataclass
class ClosingTotals:
    cash_cents: int = 0
    debit_cents: int = 0
    transfer_cents: int = 0
    secondary_currency_cents: int = 0
    sales_count: int = 0
    total_cents: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def summarize_sales(sales: Iterable[Sale], *, secondary_currency: str = "BRL") -> ClosingTotals:
    totals = ClosingTotals()
    secondary = secondary_currency.upper()

    for sale in sales:
        totals.sales_count += 1
        if (sale.currency or "").upper() == secondary:
            totals.secondary_currency_cents += sale.total_cents
            continue

        totals.total_cents += sale.total_cents
        bucket = bucket_for(sale.payment_method)
        if bucket == BUCKET_DEBIT:
            totals.debit_cents += sale.total_cents
        elif bucket == BUCKET_TRANSFER:
            totals.transfer_cents += sale.total_cents
        else:
            totals.cash_cents += sale.total_cents

    return totals


def _sales_for_day(gateway: Gateway, start: datetime, end: datetime, exclude_voided: bool) -> list[Sale]:
    sales = gateway.select_sales_in_range(start, end)
    if exclude_voided:
        sales = [s for s in sales if s.status != SALE_STATUS_VOIDED]
    return sales


def preview_closing(
    *,
    gateway: Gateway,
    zone: tzinfo,
    now: datetime | None = None,
    secondary_currency: str = "BRL",
    exclude_voided: bool = False,
) -> ClosingTotals:
    """Totals a closing would record right now, without writing anything."""
    start, end = today_bounds(zone, now)
    return summarize_sales(
        _sales_for_day(gateway, start, end, exclude_voided),
        secondary_currency=secondary_currency,
    )


def close_cash_register(
    note: str | None = None,
    *,
    gateway: Gateway,
    zone: tzinfo,
    now: datetime | None = None,
    secondary_currency: str = "BRL",
    exclude_voided: bool = False,
) -> CashRegisterClosing:
    """
    Close today's register.

    Raises AlreadyClosedError when today already has a closing and
    NothingToCloseError when there are no sales to close.
    """
    now = now or utcnow()
    start, end = today_bounds(zone, now)

    existing = gateway.select_cash_register_closing_for_day(start, end)
    if existing is not None:
        raise AlreadyClosedError(
            "La caja ya fue cerrada hoy",
            details={"closing_id": existing.id},
        )

    sales = _sales_for_day(gateway, start, end, exclude_voided)
    if not sales:
        raise NothingToCloseError("No hay ventas para cerrar hoy")

    totals = summarize_sales(sales, secondary_currency=secondary_currency)
    record = totals.to_dict()
    record["closed_at"] = now
    record["notes"] = (note or "").strip() or None

    return gateway.insert_cash_register_closing(record)


def get_today_closing(*, gateway: Gateway, zone: tzinfo, now: datetime | None = None) -> CashRegisterClosing | None:
    start, end = today_bounds(zone, now)
    return gateway.select_cash_register_closing_for_day(start, end)


def has_closing_today(*, gateway: Gateway, zone: tzinfo, now: datetime | None = None) -> bool:
    return get_today_closing(gateway=gateway, zone=zone, now=now) is not None


def list_closings(*, gateway: Gateway, limit: int = 30) -> list[CashRegisterClosing]:
    return gateway.list_cash_register_closings(limit=limit)
