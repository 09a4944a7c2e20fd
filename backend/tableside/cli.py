# Overview: Flask CLI command groups for bootstrap, sample data, and maintenance.

# backend/tableside/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed --org demo-org
#   Create the sample tea-room products (skips names that already exist).
# - python -m flask catalog list --org demo-org
#   List active products with their base price.
#
# Payments:
# - python -m flask payments seed-samples --org demo-org
#   Create and process three demo payments through the simulated gateway.
# - python -m flask payments analytics --org demo-org --timeframe week
#   Print payment analytics for the trailing window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import entity_store, payment_service
from .services.results import to_jsonable
from .validation import AttributeValue


SAMPLE_PRODUCTS = [
    # name, code, base_price, category, preparation_time
    ("Earl Grey Tea", "TEA-EARL", "4.50", "tea", 4),
    ("Green Tea", "TEA-GREEN", "4.00", "tea", 4),
    ("Chai Latte", "TEA-CHAI", "5.25", "tea", 6),
    ("Butter Croissant", "PST-CROIS", "3.25", "pastry", 2),
    ("Blueberry Scone", "PST-SCONE", "3.75", "pastry", 2),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (idempotent)."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Product catalog commands."""


@catalog_group.command('seed')
@click.option('--org', 'org_id', required=True, help='Organization id')
@with_appcontext
def seed_products(org_id):
    """Create the sample products for an organization."""
    existing = {p.entity_name for p in entity_store.find_entities_by_type(org_id, "product")}
    created = 0
    for name, code, price, category, prep in SAMPLE_PRODUCTS:
        if name in existing:
            continue
        product = entity_store.create_entity(org_id, "product", name, code)
        entity_store.set_attributes_batch(
            product.id,
            {
                "base_price": AttributeValue.number(price),
                "category": AttributeValue.text(category),
                "preparation_time": AttributeValue.number(prep),
            },
        )
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} products for org {org_id}")


@catalog_group.command('list')
@click.option('--org', 'org_id', required=True, help='Organization id')
@with_appcontext
def list_products(org_id):
    """List active products."""
    products = entity_store.find_entities_by_type(org_id, "product")
    prices = entity_store.get_attribute_maps(p.id for p in products)
    for p in products:
        click.echo(f"{p.id}  {p.entity_code:<10}  {p.entity_name:<20}  {prices[p.id].get('base_price', 0)}")
    click.echo(f"{len(products)} products")


@click.group('payments')
def payments_group():
    """Payment sample data and reporting commands."""


@payments_group.command('seed-samples')
@click.option('--org', 'org_id', required=True, help='Organization id')
@with_appcontext
def seed_samples(org_id):
    """Create and process the demo payments (skipped if payments exist)."""
    results = payment_service.seed_sample_payments(org_id)
    if not results:
        click.echo("PASS Payment data already initialized")
        return
    for result in results:
        if result.success:
            click.echo(f"PASS {result.data.payment.transaction_number} completed")
        else:
            click.echo(f"WARN payment not completed: [{result.error_code}] {result.error}")


@payments_group.command('analytics')
@click.option('--org', 'org_id', required=True, help='Organization id')
@click.option('--timeframe', type=click.Choice(payment_service.TIMEFRAMES), default='day')
@with_appcontext
def analytics(org_id, timeframe):
    """Print payment analytics."""
    result = payment_service.get_payment_analytics(org_id, timeframe)
    if not result.success:
        click.echo(f"FAIL {result.error}")
        raise SystemExit(1)
    data = to_jsonable(result.data)
    for key in ("total_revenue", "total_transactions", "average_transaction_value", "success_rate",
                "fraud_rate", "processing_costs", "net_revenue"):
        click.echo(f"{key:<26} {data[key]}")
    for stats in data["payment_method_distribution"]:
        click.echo(f"  {stats['method']:<16} {stats['count']:>4}  {stats['total_revenue']}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(payments_group)
