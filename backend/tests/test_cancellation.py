"""Sale cancellation tests (atomic procedure and sequential fallback)."""

import pytest

from kiosco.models import Sale, SaleItem, LedgerEvent, SALE_STATUS_VOIDED
from kiosco.services.cart import Cart
from kiosco.services.gateway import Gateway
from kiosco.services.sales_service import (
    SaleCancellationEngine,
    SaleAlreadyVoidedError,
    SaleNotFoundError,
    SaleOutcomeUnknownError,
    cancel_sale,
    settle_sale,
)


@pytest.fixture(params=["gateway", "fallback_gateway"])
def any_gateway(request):
    return request.getfixturevalue(request.param)


def _sell(gateway, lines, combos=()):
    """lines: [(product, qty)]; combos: [combo] sold once each."""
    products = [p for p, _ in lines]
    for combo in combos:
        products.extend(item.product for item in combo.items)
    cart = Cart.from_catalog(products, combos)
    for product, qty in lines:
        cart.set_quantity(cart.add_product(product.id).line_id, qty)
    for combo in combos:
        cart.add_combo(combo.id)
    return settle_sale(cart.to_settlement_request("efectivo"), gateway=gateway)


class TestCancelSale:
    def test_restores_exact_quantities(self, any_gateway, make_product, stock_of):
        x = make_product("X", stock=10)
        y = make_product("Y", stock=10)
        sale_id = _sell(any_gateway, [(x, 3), (y, 1)])
        assert (stock_of(x), stock_of(y)) == (7, 9)

        restored = cancel_sale(sale_id, gateway=any_gateway)

        assert restored == {x.id: 3, y.id: 1}
        assert (stock_of(x), stock_of(y)) == (10, 10)
        sale = any_gateway.get_sale(sale_id)
        assert sale.status == SALE_STATUS_VOIDED
        assert sale.voided_at is not None

    def test_restores_combo_components(self, any_gateway, make_product, make_combo, stock_of):
        a = make_product("A", stock=10)
        b = make_product("B", stock=10)
        combo = make_combo("AB", 2500, [(a, 2), (b, 1)])
        sale_id = _sell(any_gateway, [], combos=[combo])

        cancel_sale(sale_id, gateway=any_gateway)

        assert (stock_of(a), stock_of(b)) == (10, 10)

    def test_second_cancel_fails_without_double_restore(self, any_gateway, make_product, stock_of):
        x = make_product("X", stock=10)
        sale_id = _sell(any_gateway, [(x, 4)])
        cancel_sale(sale_id, gateway=any_gateway)

        with pytest.raises(SaleAlreadyVoidedError):
            cancel_sale(sale_id, gateway=any_gateway)

        assert stock_of(x) == 10
        assert any_gateway.get_sale(sale_id).status == SALE_STATUS_VOIDED

    def test_unknown_sale(self, any_gateway):
        with pytest.raises(SaleNotFoundError):
            cancel_sale(424242, gateway=any_gateway)

    def test_rows_are_kept(self, any_gateway, make_product, db_session):
        x = make_product("X", stock=10)
        sale_id = _sell(any_gateway, [(x, 2)])

        cancel_sale(sale_id, gateway=any_gateway)

        assert db_session.query(Sale).count() == 1
        assert db_session.query(SaleItem).filter_by(sale_id=sale_id).count() == 1

    def test_voided_event_is_recorded(self, any_gateway, make_product, db_session):
        x = make_product("X", stock=10)
        sale_id = _sell(any_gateway, [(x, 2)])

        cancel_sale(sale_id, gateway=any_gateway)

        event = db_session.query(LedgerEvent).filter_by(event_type="sale.voided", sale_id=sale_id).one()
        assert event.payload == f"{x.id}:2"


class TestSequentialCancellation:
    def test_without_increment_procedure_uses_read_then_write(self, db_session, make_product, stock_of):
        x = make_product("X", stock=10)
        gateway = Gateway(db_session, procedures=())
        sale_id = _sell(gateway, [(x, 3)])

        engine = SaleCancellationEngine(gateway)
        assert engine.strategy.name == "sequential"
        engine.cancel(sale_id)

        assert stock_of(x) == 10

    def test_with_increment_procedure_only(self, db_session, make_product, stock_of):
        x = make_product("X", stock=10)
        gateway = Gateway(db_session, procedures=("increment_stock",))
        sale_id = _sell(gateway, [(x, 3)])

        engine = SaleCancellationEngine(gateway)
        assert engine.strategy.name == "sequential"
        engine.cancel(sale_id)

        assert stock_of(x) == 10

    def test_missing_procedure_switches_to_fallback(self, db_session, make_product, stock_of):
        x = make_product("X", stock=10)
        gateway = Gateway(db_session)
        sale_id = _sell(gateway, [(x, 3)])

        engine = SaleCancellationEngine(gateway)
        assert engine.strategy.name == "atomic"
        gateway.procedures = frozenset()

        engine.cancel(sale_id)

        assert stock_of(x) == 10
        assert engine.strategy.name == "sequential"


class TestCancellationTimeout:
    def test_timed_out_cancel_is_reported_and_not_retried(self, gateway, make_product, stall_procedure, stock_of):
        x = make_product("X", stock=5)
        sale_id = _sell(gateway, [(x, 2)])
        calls = stall_procedure("cancel_sale_atomic")

        with pytest.raises(SaleOutcomeUnknownError) as exc:
            cancel_sale(sale_id, gateway=gateway)

        assert exc.value.details["sale_id"] == sale_id
        assert len(calls) == 1
        assert gateway.get_sale(sale_id).status == "ACTIVE"
        assert stock_of(x) == 3
