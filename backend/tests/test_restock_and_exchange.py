"""Restock sources/purchases and exchange rate tests."""

from decimal import Decimal

import pytest

from kiosco.models import RestockPurchase
from kiosco.services import restock_service
from kiosco.services.exchange_service import (
    ExchangeRateError,
    convert_to_primary,
    get_exchange_rate,
    update_exchange_rate,
)
from kiosco.services.restock_service import RestockError, RestockNotFoundError


class TestRestock:
    def test_sources_per_product(self, make_product):
        p = make_product("Agua")
        other = make_product("Hielo")
        restock_service.create_source(product_id=p.id, place="Mayorista", purchase_price_cents=2000, currency="uyu")
        restock_service.create_source(product_id=other.id, place="Super", purchase_price_cents=3000, currency="UYU")

        sources = restock_service.list_sources(p.id)

        assert [s.place for s in sources] == ["Mayorista"]
        assert sources[0].currency == "UYU"

    def test_source_validation(self, make_product):
        p = make_product("Agua")
        with pytest.raises(RestockError):
            restock_service.create_source(product_id=p.id, place=" ", purchase_price_cents=1, currency="UYU")
        with pytest.raises(RestockNotFoundError):
            restock_service.create_source(product_id=999, place="X", purchase_price_cents=1, currency="UYU")

    def test_delete_source_keeps_purchases(self, gateway, make_product, db_session):
        p = make_product("Agua")
        source = restock_service.create_source(product_id=p.id, place="X", purchase_price_cents=1, currency="UYU")
        purchase, _ = restock_service.register_purchase(
            gateway=gateway, product_id=p.id, source_id=source.id,
            quantity=1, unit_price_cents=1, currency="UYU",
        )

        restock_service.delete_source(source.id)

        assert restock_service.list_sources(p.id) == []
        assert db_session.get(RestockPurchase, purchase.id).source_id is None

    def test_purchase_increments_stock(self, gateway, make_product, stock_of):
        p = make_product("Agua", stock=4)

        purchase, new_stock = restock_service.register_purchase(
            gateway=gateway, product_id=p.id, quantity=12, unit_price_cents=2000, currency="UYU",
        )

        assert new_stock == 16
        assert stock_of(p) == 16
        assert purchase.total_cost_cents == 24000

    def test_purchase_without_increment_procedure(self, fallback_gateway, make_product, stock_of):
        p = make_product("Agua", stock=4)

        _, new_stock = restock_service.register_purchase(
            gateway=fallback_gateway, product_id=p.id, quantity=6, unit_price_cents=2000,
            currency="UYU", total_cost_cents=10000,
        )

        assert new_stock == 10
        assert stock_of(p) == 10

    def test_purchase_validation(self, gateway, make_product, db_session):
        p = make_product("Agua")
        with pytest.raises(RestockError):
            restock_service.register_purchase(
                gateway=gateway, product_id=p.id, quantity=0, unit_price_cents=1, currency="UYU",
            )
        with pytest.raises(RestockNotFoundError):
            restock_service.register_purchase(
                gateway=gateway, product_id=p.id, source_id=77, quantity=1, unit_price_cents=1, currency="UYU",
            )
        assert db_session.query(RestockPurchase).count() == 0


class TestExchangeRate:
    def test_upsert(self, db_session):
        assert get_exchange_rate() is None

        first = update_exchange_rate("7.5")
        second = update_exchange_rate(8)

        assert first.id == second.id
        assert get_exchange_rate().rate == Decimal("8.0000")

    @pytest.mark.parametrize("rate", [0, -1, "abc", "NaN"])
    def test_rejects_bad_rates(self, db_session, rate):
        with pytest.raises(ExchangeRateError):
            update_exchange_rate(rate)

    def test_convert_rounds_half_up(self):
        assert convert_to_primary(1000, "7.25") == 7250
        assert convert_to_primary(3, "0.5") == 2
