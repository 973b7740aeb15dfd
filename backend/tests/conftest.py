"""
Pytest fixtures for kiosk backend tests.

Provides the test database, catalog fixtures, gateways for both the atomic
and the fallback paths, and the test client.
"""

import pytest
from sqlalchemy.exc import OperationalError

from kiosco import create_app
from kiosco.extensions import db
from kiosco.models import Product, Combo, ComboItem
from kiosco.services.gateway import Gateway, get_gateway
from kiosco.services.events import get_event_bus
from kiosco.services.procedures import PROCEDURES


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'KIOSCO_TIMEZONE': 'UTC',
        'EVENTS_SYNC': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def gateway(db_session):
    """The app gateway: every atomic procedure provisioned."""
    return get_gateway()


@pytest.fixture(scope='function')
def fallback_gateway(db_session):
    """A gateway on a data store without any of the atomic procedures."""
    return Gateway(db_session, procedures=())


@pytest.fixture(scope='function')
def event_bus(app):
    return get_event_bus()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product("Agua", stock=10, price_cents=5000)."""
    def _make(name, *, stock=10, price_cents=1000, cost_cents=500, category=None, min_stock=0, is_active=True):
        product = Product(
            name=name,
            category=category,
            price_cents=price_cents,
            cost_cents=cost_cents,
            stock=stock,
            min_stock=min_stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def make_combo(db_session):
    """Factory: make_combo("Previa", 30000, [(product, qty), ...])."""
    def _make(name, price_cents, components):
        combo = Combo(name=name, price_cents=price_cents, is_active=True)
        for position, (product, quantity) in enumerate(components):
            combo.items.append(ComboItem(product_id=product.id, quantity=quantity, position=position))
        db_session.add(combo)
        db_session.commit()
        return combo
    return _make


@pytest.fixture(scope='function')
def stock_of(db_session):
    """stock_of(product) -> stock as stored in the database."""
    def _read(product):
        product_id = product if isinstance(product, int) else product.id
        return db_session.query(Product.stock).filter_by(id=product_id).scalar()
    return _read


def _statement_timeout(statement="CALL"):
    return OperationalError(statement, {}, Exception("canceling statement due to statement timeout"))


@pytest.fixture(scope='function')
def stall_procedure(monkeypatch):
    """stall_procedure("create_sale_atomic") -> list of calls; each call times out."""
    def _stall(name):
        calls = []

        def stalled(session, **params):
            calls.append(params)
            raise _statement_timeout(f"CALL {name}")

        monkeypatch.setitem(PROCEDURES, name, stalled)
        return calls
    return _stall
