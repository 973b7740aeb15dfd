"""Reporting aggregator tests."""

from datetime import timedelta, timezone

import pytest

from kiosco.models import Sale
from kiosco.services.cart import Cart
from kiosco.services.reporting_service import (
    ReportError,
    monthly_report,
    parse_range,
    sales_by_range,
    today_report,
    weekly_report,
)
from kiosco.services.sales_service import cancel_sale, settle_sale
from kiosco.time_utils import utcnow, today_bounds

UTC = timezone.utc


@pytest.fixture
def day_of_sales(gateway, make_product, make_combo):
    """Three sales today: efectivo 2 x Agua, debito 1 combo, BRL 1 x Agua; plus one voided."""
    agua = make_product("Agua", stock=20, price_cents=5000, cost_cents=2000, min_stock=2)
    vaso = make_product("Vaso", stock=10, price_cents=25000, cost_cents=9000)
    hielo = make_product("Hielo", stock=1, price_cents=7000, cost_cents=3000, min_stock=3)
    combo = make_combo("Previa", 40000, [(vaso, 1), (hielo, 1)])

    def sell(method, lines=(), combos=(), currency=None):
        cart = Cart.from_catalog([agua, vaso, hielo], [combo])
        for product, qty in lines:
            cart.set_quantity(cart.add_product(product.id).line_id, qty)
        for c in combos:
            cart.add_combo(c.id)
        return settle_sale(cart.to_settlement_request(method, currency=currency), gateway=gateway)

    sell("efectivo", lines=[(agua, 2)])
    sell("debito", combos=[combo])
    sell("efectivo", lines=[(agua, 1)], currency="BRL")
    voided = sell("efectivo", lines=[(agua, 5)])
    cancel_sale(voided, gateway=gateway)

    return {"agua": agua, "vaso": vaso, "hielo": hielo, "combo": combo}


class TestSalesByRange:
    def test_totals(self, day_of_sales):
        start, end = today_bounds(UTC)
        report = sales_by_range(start, end)

        assert report["sales_count"] == 3
        assert report["voided_count"] == 1
        assert report["revenue_cents"] == 2 * 5000 + 40000
        assert report["secondary_revenue_cents"] == 5000
        assert report["revenue_by_method"] == [
            {"payment_method": "debito", "sales_count": 1, "total_cents": 40000},
            {"payment_method": "efectivo", "sales_count": 1, "total_cents": 10000},
        ]

    def test_cost_and_profit_include_combo_components(self, day_of_sales):
        start, end = today_bounds(UTC)
        report = sales_by_range(start, end)

        # 2 Agua + (1 Vaso + 1 Hielo from the combo)
        assert report["units_sold"] == 4
        assert report["cost_cents"] == 2 * 2000 + 9000 + 3000
        assert report["gross_profit_cents"] == 50000 - 16000

    def test_combos_and_top_products(self, day_of_sales):
        start, end = today_bounds(UTC)
        report = sales_by_range(start, end)

        assert report["combos"] == [{
            "combo_name": "Previa",
            "units": 1,
            "revenue_cents": 40000,
            "cost_cents": 12000,
            "profit_cents": 28000,
        }]
        assert report["top_products"][0]["name"] == "Agua"
        assert report["top_products"][0]["units"] == 2

    def test_empty_range(self, db_session):
        start, end = today_bounds(UTC)
        report = sales_by_range(start, end)
        assert report["sales_count"] == 0
        assert report["average_ticket_cents"] == 0
        assert report["top_products"] == []


class TestPeriodReports:
    def test_today_lists_sales_and_alerts(self, day_of_sales):
        report = today_report(zone=UTC)

        assert report["period"] == "today"
        assert len(report["sales"]) == 4
        assert any(s["combos"] for s in report["sales"])
        assert [p["name"] for p in report["low_stock"]] == ["Hielo"]

    def test_week_includes_older_sales(self, day_of_sales, db_session):
        sale = db_session.query(Sale).filter_by(payment_method="debito").one()
        sale.sold_at = utcnow() - timedelta(days=3)
        db_session.commit()

        assert today_report(zone=UTC)["sales_count"] == 2
        assert weekly_report(zone=UTC)["sales_count"] == 3

    def test_week_excludes_older_than_seven_days(self, day_of_sales, db_session):
        sale = db_session.query(Sale).filter_by(payment_method="debito").one()
        sale.sold_at = utcnow() - timedelta(days=9)
        db_session.commit()

        assert weekly_report(zone=UTC)["sales_count"] == 2

    def test_week_starts_seven_days_before_today(self, day_of_sales, db_session):
        sale = db_session.query(Sale).filter_by(payment_method="debito").one()
        sale.sold_at = utcnow() - timedelta(days=7)
        db_session.commit()

        assert weekly_report(zone=UTC)["sales_count"] == 3

    def test_month(self, day_of_sales):
        assert monthly_report(zone=UTC)["sales_count"] == 3


class TestParseRange:
    def test_valid(self):
        start, end = parse_range("2026-01-01T00:00:00Z", "2026-01-02T00:00:00Z")
        assert end - start == timedelta(days=1)

    @pytest.mark.parametrize("start,end", [
        (None, None),
        ("garbage", None),
        ("2026-01-02T00:00:00Z", "2026-01-01T00:00:00Z"),
    ])
    def test_invalid(self, start, end):
        with pytest.raises(ReportError):
            parse_range(start, end)
