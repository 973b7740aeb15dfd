"""Observer bus and data-access gateway tests."""

import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from kiosco.extensions import db
from kiosco.models import Product, Sale, SaleItem
from kiosco.services.concurrency import is_timeout, run_with_retry
from kiosco.services.events import EventBus, SaleSettled, SoldItem
from kiosco.services.gateway import Gateway, GatewayError, GatewayTimeoutError, ProcedureNotFoundError
from kiosco.services.sales_service import SettlementItem, SettlementRequest, settle_sale


def _event(sale_id=1):
    return SaleSettled(
        sale_id=sale_id,
        total_cents=1000,
        payment_method="efectivo",
        currency="UYU",
        items=(SoldItem(product_id=1, quantity=1, unit_price_cents=1000),),
        occurred_at=datetime(2026, 1, 1, 12, 0),
    )


class TestEventBus:
    def test_sync_dispatch_isolates_failures(self):
        bus = EventBus(sync=True)
        seen = []

        @bus.subscribe
        def broken(event):
            raise ValueError("boom")

        bus.subscribe(seen.append)

        assert bus.publish(_event()) == []
        assert [e.sale_id for e in seen] == [1]

    def test_async_dispatch_runs_off_the_caller_thread(self):
        bus = EventBus(sync=False, max_workers=2)
        threads = []
        done = threading.Event()

        def record(event):
            threads.append(threading.current_thread().name)
            done.set()

        @bus.subscribe
        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(record)
        try:
            futures = bus.publish(_event())
            for future in futures:
                # Errors never escape the boundary
                assert future.result(timeout=5) is None
            assert done.wait(timeout=5)
            assert threads[0].startswith("kiosco-events")
        finally:
            bus.shutdown()

    def test_publish_after_shutdown_is_dropped(self):
        bus = EventBus(sync=False)
        bus.subscribe(lambda event: None)
        bus.shutdown()
        assert bus.publish(_event()) == []

    def test_unsubscribe(self):
        bus = EventBus(sync=True)
        seen = []

        def record(event):
            seen.append(event)

        bus.subscribe(record)
        bus.unsubscribe(record)
        bus.publish(_event())
        assert seen == []
        assert bus.handlers == ()

    def test_async_handler_can_use_the_database(self, app, gateway, make_product):
        x = make_product("X", stock=4)
        bus = EventBus(sync=False, app=app)
        seen = []
        done = threading.Event()

        @bus.subscribe
        def count_products(event):
            seen.append(db.session.query(Product).count())
            done.set()

        try:
            request = SettlementRequest(
                payment_method="efectivo",
                total_cents=1000,
                items=(SettlementItem(product_id=x.id, quantity=1, unit_price_cents=1000, captured_stock=4),),
            )
            settle_sale(request, gateway=gateway, events=bus)
            assert done.wait(timeout=5)
        finally:
            bus.shutdown()

        assert seen == [1]


class TestGateway:
    def test_unknown_procedure(self, fallback_gateway):
        assert fallback_gateway.has_procedure("create_sale_atomic") is False
        with pytest.raises(ProcedureNotFoundError) as exc:
            fallback_gateway.call("create_sale_atomic", payment_method="efectivo")
        assert "does not exist" in str(exc.value)

    def test_procedure_not_found_is_a_gateway_error(self):
        assert issubclass(ProcedureNotFoundError, GatewayError)

    def test_each_primitive_commits(self, fallback_gateway, make_product, db_session):
        p = make_product("Agua", stock=5)

        sale_id = fallback_gateway.insert_sale("efectivo", 1000, None, "UYU")
        fallback_gateway.insert_sale_items(sale_id, [
            {"product_id": p.id, "quantity": 1, "unit_price_cents": 1000},
        ])
        db_session.rollback()

        assert db_session.query(Sale).count() == 1
        assert db_session.query(SaleItem).count() == 1

    def test_failed_write_rolls_back(self, fallback_gateway, db_session):
        sale_id = fallback_gateway.insert_sale("efectivo", 1000, None, "UYU")

        with pytest.raises(GatewayError):
            # quantity > 0 check constraint
            fallback_gateway.insert_sale_items(sale_id, [
                {"product_id": 1, "quantity": 0, "unit_price_cents": 1000},
            ])

        assert db_session.query(SaleItem).count() == 0
        assert fallback_gateway.get_sale(sale_id) is not None

    def test_stock_primitives(self, gateway, make_product):
        p = make_product("Agua", stock=5)

        gateway.update_product_stock(p.id, 2)
        assert gateway.get_product_stock(p.id) == 2
        assert gateway.increment_product_stock(p.id, 3) == 5

        with pytest.raises(GatewayError):
            gateway.update_product_stock(999, 1)
        with pytest.raises(GatewayError):
            gateway.get_product_stock(999)

    def test_sales_in_range(self, gateway, db_session):
        first = gateway.insert_sale("efectivo", 1000, None, "UYU")
        second = gateway.insert_sale("efectivo", 2000, None, "UYU")
        gateway.set_sale_status(first, "VOIDED")
        start = db_session.get(Sale, first).sold_at

        assert [s.id for s in gateway.select_sales_in_range(start)] == [second, first]
        assert [s.id for s in gateway.select_sales_in_range(start, exclude_voided=True)] == [second]

    def test_timed_out_procedure(self, gateway, stall_procedure):
        calls = stall_procedure("increment_stock")
        with pytest.raises(GatewayTimeoutError):
            gateway.increment_product_stock(1, 1)
        assert len(calls) == 1

    def test_timed_out_write_rolls_back(self):
        session = _LockedSession()
        with pytest.raises(GatewayTimeoutError):
            Gateway(session, procedures=()).insert_sale("efectivo", 1000, None, "UYU")
        assert session.rolled_back


class _LockedSession:
    """Session stand-in whose flush waits out the busy timeout."""

    def __init__(self):
        self.rolled_back = False

    def add(self, obj):
        pass

    def flush(self):
        raise OperationalError("INSERT INTO sales", {}, Exception("database is locked"))

    def rollback(self):
        self.rolled_back = True


def _operational(message):
    return OperationalError("UPDATE products", {}, Exception(message))


class TestRetry:
    def test_deadlock_is_retried(self, db_session):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise _operational("deadlock detected")
            return "ok"

        assert run_with_retry(flaky, session=db_session, backoff_base=0) == "ok"
        assert len(attempts) == 3

    def test_timeout_is_not_retried(self, db_session):
        attempts = []

        def stalled():
            attempts.append(1)
            raise _operational("canceling statement due to lock timeout")

        with pytest.raises(OperationalError):
            run_with_retry(stalled, session=db_session, backoff_base=0)
        assert len(attempts) == 1

    @pytest.mark.parametrize("exc,expected", [
        (_operational("canceling statement due to statement timeout"), True),
        (_operational("database is locked"), True),
        (PoolTimeoutError("QueuePool limit reached"), True),
        (_operational("deadlock detected"), False),
        (ValueError("timed out"), False),
    ])
    def test_is_timeout(self, exc, expected):
        assert is_timeout(exc) is expected
