"""CLI command tests."""

from kiosco.models import Combo, Product


def test_seed_demo_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "seed-demo"])
    second = runner.invoke(args=["system", "seed-demo"])

    assert first.exit_code == 0
    assert "Created combo" in first.output
    assert "Created 0 products" in second.output
    assert db_session.query(Product).count() == 8
    assert db_session.query(Combo).count() == 1


def test_catalog_list_low(app, make_product):
    make_product("Agua", stock=20, min_stock=5)
    make_product("Hielo", stock=1, min_stock=5)

    result = app.test_cli_runner().invoke(args=["catalog", "list", "--low"])

    assert result.exit_code == 0
    assert "Hielo" in result.output
    assert "Agua" not in result.output


def test_registers_close_without_sales(app, db_session):
    result = app.test_cli_runner().invoke(args=["registers", "close"])

    assert result.exit_code == 1
    assert "No hay ventas para cerrar hoy" in result.output


def test_registers_list_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["registers", "list"])
    assert "No closings found" in result.output
