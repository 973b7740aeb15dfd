# Overview: Flask CLI command groups for bootstrap, inspection, and the daily register closing.

# backend/kiosco/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create missing tables and report which atomic procedures are provisioned.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Load a small demo catalog (drinks, cups, snacks and one combo). Idempotent.
#
# Catalog inspection:
# - python -m flask catalog list [--low]
#   List products with stock; --low shows only products at or below minimum.
#
# Register closing:
# - python -m flask registers close [--note "..."]
#   Close today's register (same rules as POST /api/registers/close).
# - python -m flask registers list --limit 10
#   List recent closings.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Combo, ComboItem
from .services.gateway import get_gateway
from .services.procedures import PROCEDURES
from .time_utils import get_zone


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables that do not exist yet. Safe to run repeatedly."""
    click.echo("START Initializing kiosk database...")
    db.create_all()
    click.echo("PASS Tables ready")

    gateway = get_gateway()
    missing = sorted(set(PROCEDURES) - gateway.procedures)
    if missing:
        click.echo(f"WARN  Procedures not provisioned, fallbacks active: {', '.join(missing)}")
    else:
        click.echo("PASS All atomic procedures provisioned")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


DEMO_PRODUCTS = [
    # name, category, price, cost, stock, min_stock
    ("Coca-Cola 500ml", "Bebidas", 8000, 4500, 48, 12),
    ("Agua 600ml", "Bebidas", 5000, 2500, 36, 12),
    ("Energizante Monster", "Bebidas", 15000, 9000, 24, 6),
    ("Vaso Fernet", "Vasos", 25000, 9000, 30, 10),
    ("Vaso Gin Tonic", "Vasos", 30000, 11000, 30, 10),
    ("Alfajor", "Alimento", 4000, 2000, 60, 20),
    ("Papas fritas", "Alimento", 6000, 3000, 20, 8),
    ("Hielo 2kg", "Otros", 7000, 3500, 15, 5),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load a demo catalog. Existing products (by name) are left untouched."""
    created = 0
    by_name = {}
    for name, category, price, cost, stock, min_stock in DEMO_PRODUCTS:
        product = db.session.query(Product).filter_by(name=name).first()
        if product is None:
            product = Product(
                name=name,
                category=category,
                price_cents=price,
                cost_cents=cost,
                stock=stock,
                min_stock=min_stock,
                is_active=True,
            )
            db.session.add(product)
            created += 1
        by_name[name] = product
    db.session.flush()

    combo_name = "Previa (2 Fernet + Hielo)"
    if db.session.query(Combo).filter_by(name=combo_name).first() is None:
        combo = Combo(name=combo_name, price_cents=52000, is_active=True)
        combo.items.append(ComboItem(product_id=by_name["Vaso Fernet"].id, quantity=2, position=0))
        combo.items.append(ComboItem(product_id=by_name["Hielo 2kg"].id, quantity=1, position=1))
        db.session.add(combo)
        click.echo(f"PASS Created combo: {combo_name}")

    db.session.commit()
    click.echo(f"PASS Created {created} products ({len(DEMO_PRODUCTS) - created} already present)")


@click.group('catalog')
def catalog_group():
    """Catalog inspection commands."""


@catalog_group.command('list')
@click.option('--low', is_flag=True, help='Only products at or below minimum stock')
@with_appcontext
def list_catalog(low):
    from .services import products_service

    products = products_service.low_stock_products() if low else products_service.list_products()
    if not products:
        click.echo("No products found")
        return

    click.echo(f"{'ID':<5} {'Name':<28} {'Category':<10} {'Price':>10} {'Stock':>6} {'Min':>5}  Status")
    click.echo("-" * 80)
    for p in products:
        status = "ACTIVE" if p.is_active else "INACTIVE"
        flag = " LOW" if p.needs_restock else ""
        click.echo(
            f"{p.id:<5} {p.name[:28]:<28} {(p.category or '-'):<10} {_money(p.price_cents):>10} "
            f"{p.stock:>6} {p.min_stock:>5}  {status}{flag}"
        )


@click.group('registers')
def registers_group():
    """Register closing commands."""


@registers_group.command('close')
@click.option('--note', help='Free-text note stored with the closing')
@with_appcontext
def close_register_cli(note):
    """Close today's register."""
    from .services import register_service

    config = current_app.config
    try:
        closing = register_service.close_cash_register(
            note,
            gateway=get_gateway(),
            zone=get_zone(config["KIOSCO_TIMEZONE"]),
            secondary_currency=config["SECONDARY_CURRENCY"],
            exclude_voided=config["CLOSING_EXCLUDE_VOIDED"],
        )
    except register_service.RegisterError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Register closed (ID: {closing.id})")
    click.echo(f"   Sales:     {closing.sales_count}")
    click.echo(f"   Cash:      {_money(closing.cash_cents)}")
    click.echo(f"   Debit:     {_money(closing.debit_cents)}")
    click.echo(f"   Transfer:  {_money(closing.transfer_cents)}")
    click.echo(f"   {config['SECONDARY_CURRENCY']}:       {_money(closing.secondary_currency_cents)}")
    click.echo(f"   Total:     {_money(closing.total_cents)}")


@registers_group.command('list')
@click.option('--limit', type=int, default=10, help='Max closings to show')
@with_appcontext
def list_closings_cli(limit):
    from .services import register_service

    closings = register_service.list_closings(gateway=get_gateway(), limit=limit)
    if not closings:
        click.echo("No closings found")
        return

    click.echo(f"{'ID':<5} {'Closed at':<22} {'Sales':>6} {'Total':>12} {'Cash':>12} {'Debit':>12}")
    click.echo("-" * 76)
    for c in closings:
        closed_at = c.closed_at.strftime('%Y-%m-%d %H:%M') if c.closed_at else '-'
        click.echo(
            f"{c.id:<5} {closed_at:<22} {c.sales_count:>6} {_money(c.total_cents):>12} "
            f"{_money(c.cash_cents):>12} {_money(c.debit_cents):>12}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(registers_group)
