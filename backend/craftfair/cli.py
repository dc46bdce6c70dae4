# Overview: Flask CLI command groups for bootstrap, event inspection, and stocking.

# backend/craftfair/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Database bootstrap:
# - python -m flask fair init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask fair reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Events:
# - python -m flask events list [--status ACTIVE]
#   List events with their derived phase.
# - python -m flask events close 3
#   Close an ACTIVE event now.
#
# Inventory:
# - python -m flask inventory stock 12
#   Print the ledger stock of a product.
# - python -m flask inventory receive 12 30 --reason "second batch"
#   Record an IN movement (event must still be SCHEDULED).

import click
from flask.cli import with_appcontext

from .errors import FairError
from .event_state import PHASES, resolve_event_phase
from .extensions import db
from .models.inventory import MOVEMENT_IN
from .services import event_service, inventory_service


@click.group('fair')
def fair_group():
    """Database bootstrap commands."""


@fair_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@fair_group.command('reset-db')
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

    click.echo("PASS Database reset complete.")


@click.group('events')
def events_group():
    """Event inspection and lifecycle commands."""


@events_group.command('list')
@click.option('--status', type=click.Choice(PHASES), default=None, help='Only events in this phase')
@with_appcontext
def list_events_cmd(status):
    events = event_service.list_events(status=status)
    if not events:
        click.echo("No events found.")
        return
    for event in events:
        click.echo(
            f"{event.id:>4}  {resolve_event_phase(event):<9}  {event.name}  "
            f"({event.start_date:%Y-%m-%d %H:%M} -> {event.end_date:%Y-%m-%d %H:%M})"
        )


@events_group.command('close')
@click.argument('event_id', type=int)
@with_appcontext
def close_event_cmd(event_id):
    try:
        event = event_service.close_event(event_id)
    except FairError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e
    click.echo(f"PASS Event {event.id} closed at {event.end_date:%Y-%m-%d %H:%M}.")


@click.group('inventory')
def inventory_group():
    """Ledger inspection and stocking commands."""


@inventory_group.command('stock')
@click.argument('product_id', type=int)
@with_appcontext
def stock_cmd(product_id):
    try:
        stock = inventory_service.stock_for_product(product_id)
    except FairError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e
    click.echo(f"Product {product_id}: {stock}")


@inventory_group.command('receive')
@click.argument('product_id', type=int)
@click.argument('quantity', type=int)
@click.option('--reason', default=None, help='Free-text reason stored on the movement')
@with_appcontext
def receive_cmd(product_id, quantity, reason):
    try:
        movement = inventory_service.create_inventory_movement(
            product_id=product_id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            reason=reason,
        )
    except FairError as e:
        raise click.ClickException(f"{e.code}: {e.message}") from e
    stock = inventory_service.stock_for_product(product_id)
    click.echo(f"PASS Movement {movement.id}: +{quantity} (stock now {stock}).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(fair_group)
    app.cli.add_command(events_group)
    app.cli.add_command(inventory_group)
