# Overview: Read-only sales reports over local-day windows (today, last 7 days, month to date).

from __future__ import annotations

from datetime import datetime, timedelta, tzinfo

from sqlalchemy import func

from kiosco.extensions import db
from kiosco.models import Sale, SaleItem, ComboSale, Product, SALE_STATUS_ACTIVE, SALE_STATUS_VOIDED
from kiosco.time_utils import local_date, local_day_bounds, parse_iso_datetime, to_utc_z
from kiosco.services.products_service import low_stock_products


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def parse_range(start: str | None, end: str | None) -> tuple[datetime, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_iso_datetime(end)
    except ValueError:
        raise ReportError("start/end must be ISO-8601 datetimes")
    if start_dt is None:
        raise ReportError("start is required")
    if end_dt is not None and end_dt <= start_dt:
        raise ReportError("end must be after start")
    return start_dt, end_dt


def _in_range(query, start: datetime, end: datetime | None):
    query = query.filter(Sale.sold_at >= start)
    if end is not None:
        query = query.filter(Sale.sold_at < end)
    return query


def sales_by_range(
    start: datetime,
    end: datetime | None,
    *,
    secondary_currency: str = "BRL",
    top_n: int = 5,
) -> dict:
    """
    Totals for sales with start <= sold_at < end.

    Revenue and profit cover active primary-currency sales. Cost is taken
    from the products' current cost, so combo components (sold at price 0)
    carry their cost and the combo price carries the revenue.
    """
    secondary = secondary_currency.upper()

    active = _in_range(db.session.query(Sale), start, end).filter(Sale.status == SALE_STATUS_ACTIVE)
    primary = active.filter(Sale.currency != secondary)

    sales_count = active.count()
    voided_count = _in_range(db.session.query(Sale), start, end).filter(Sale.status == SALE_STATUS_VOIDED).count()
    revenue_cents = int(primary.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar() or 0)
    secondary_revenue_cents = int(
        active.filter(Sale.currency == secondary)
        .with_entities(func.coalesce(func.sum(Sale.total_cents), 0))
        .scalar() or 0
    )

    by_method_rows = (
        primary.with_entities(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method.asc())
        .all()
    )

    item_rows = (
        _in_range(
            db.session.query(
                Product.id,
                Product.name,
                func.coalesce(func.sum(SaleItem.quantity), 0).label("units"),
                func.coalesce(
                    func.sum(SaleItem.quantity * SaleItem.unit_price_cents + SaleItem.surcharge_cents), 0
                ).label("revenue"),
                func.coalesce(func.sum(SaleItem.quantity * Product.cost_cents), 0).label("cost"),
            )
            .join(Sale, Sale.id == SaleItem.sale_id)
            .join(Product, Product.id == SaleItem.product_id),
            start,
            end,
        )
        .filter(Sale.status == SALE_STATUS_ACTIVE, Sale.currency != secondary)
        .group_by(Product.id, Product.name)
        .all()
    )

    combo_rows = (
        _in_range(
            db.session.query(
                ComboSale.combo_name,
                func.coalesce(func.sum(ComboSale.quantity), 0).label("units"),
                func.coalesce(
                    func.sum(ComboSale.quantity * ComboSale.unit_price_cents + ComboSale.surcharge_cents), 0
                ).label("revenue"),
                func.coalesce(func.sum(ComboSale.quantity * ComboSale.unit_cost_cents), 0).label("cost"),
            ).join(Sale, Sale.id == ComboSale.sale_id),
            start,
            end,
        )
        .filter(Sale.status == SALE_STATUS_ACTIVE, Sale.currency != secondary)
        .group_by(ComboSale.combo_name)
        .order_by(func.sum(ComboSale.quantity).desc(), ComboSale.combo_name.asc())
        .all()
    )

    units_sold = sum(int(r.units) for r in item_rows)
    cost_cents = sum(int(r.cost) for r in item_rows)

    top = sorted(item_rows, key=lambda r: (-int(r.units), r.name))[:top_n]

    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end) if end else None,
        "sales_count": sales_count,
        "voided_count": voided_count,
        "revenue_cents": revenue_cents,
        "secondary_currency": secondary,
        "secondary_revenue_cents": secondary_revenue_cents,
        "average_ticket_cents": (
            revenue_cents // primary.count() if revenue_cents else 0
        ),
        "revenue_by_method": [
            {"payment_method": method, "sales_count": int(count), "total_cents": int(total)}
            for method, count, total in by_method_rows
        ],
        "units_sold": units_sold,
        "cost_cents": cost_cents,
        "gross_profit_cents": revenue_cents - cost_cents,
        "top_products": [
            {
                "product_id": r.id,
                "name": r.name,
                "units": int(r.units),
                "revenue_cents": int(r.revenue),
            }
            for r in top
        ],
        "combos": [
            {
                "combo_name": r.combo_name,
                "units": int(r.units),
                "revenue_cents": int(r.revenue),
                "cost_cents": int(r.cost),
                "profit_cents": int(r.revenue) - int(r.cost),
            }
            for r in combo_rows
        ],
    }


def today_report(*, zone: tzinfo, now: datetime | None = None, secondary_currency: str = "BRL") -> dict:
    """Today's totals plus each sale with its items and the low-stock alerts."""
    day = local_date(now, zone)
    start, end = local_day_bounds(day, zone)

    report = sales_by_range(start, end, secondary_currency=secondary_currency)
    report["period"] = "today"
    report["date"] = day.isoformat()

    sales = (
        _in_range(db.session.query(Sale), start, end)
        .order_by(Sale.sold_at.desc(), Sale.id.desc())
        .all()
    )
    report["sales"] = [
        {
            **sale.to_dict(),
            "items": [item.to_dict() for item in sale.items],
            "combos": [combo.to_dict() for combo in sale.combo_sales],
        }
        for sale in sales
    ]
    report["low_stock"] = [p.to_dict() for p in low_stock_products()]
    return report


def weekly_report(*, zone: tzinfo, now: datetime | None = None, secondary_currency: str = "BRL") -> dict:
    """Today and the seven days before it, from local midnight seven days ago."""
    today = local_date(now, zone)
    start, _ = local_day_bounds(today - timedelta(days=7), zone)
    _, end = local_day_bounds(today, zone)

    report = sales_by_range(start, end, secondary_currency=secondary_currency)
    report["period"] = "week"
    return report


def monthly_report(*, zone: tzinfo, now: datetime | None = None, secondary_currency: str = "BRL") -> dict:
    """From the 1st of the current local month to the end of today."""
    today = local_date(now, zone)
    start, _ = local_day_bounds(today.replace(day=1), zone)
    _, end = local_day_bounds(today, zone)

    report = sales_by_range(start, end, secondary_currency=secondary_currency)
    report["period"] = "month"
    return report
