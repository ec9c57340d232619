# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/sitestock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--central-store "Central Store"]
#   Idempotent bootstrap: ensures at least one central store exists.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store inspection/bootstrap:
# - python -m flask stores list [--all]
#   List stores (use --all to include soft-deleted ones).
# - python -m flask stores create-project --name "Riverside Tower" [--location "Block C"]
#   Create a project together with its project store.
#
# Inventory audit:
# - python -m flask inventory balances --store-id 1
#   Print balances for a store.
# - python -m flask inventory reconcile [--fix]
#   Re-sum purchase/issue history and report (or repair) balances that drift.
# - python -m flask inventory audit-log [--store-id 1] [--limit 50]
#   Print the most recent audit events.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Store
from .services import audit_service, inventory_service, reporting_service, store_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--central-store', 'central_name', default='Central Store', help='Name of the default central store')
@with_appcontext
def init_system(central_name):
    """
    Initialize SiteStock.

    Creates a central store if none exists. Safe to run repeatedly.
    """
    click.echo("START Initializing SiteStock...")

    existing = Store.query.filter_by(type="central").filter(Store.deleted_at.is_(None)).first()
    if existing:
        click.echo(f"PASS Using existing central store: {existing.name} (ID: {existing.id})")
        return

    try:
        store = store_service.create_store(central_name, "central", actor_id="cli")
    except LedgerError as exc:
        db.session.rollback()
        raise click.ClickException(exc.message)
    click.echo(f"PASS Created central store: {store.name} (ID: {store.id})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('stores')
def stores_group():
    """Store inspection and bootstrap commands."""


@stores_group.command('list')
@click.option('--all', 'include_deleted', is_flag=True, help='Include soft-deleted stores')
@with_appcontext
def list_stores_cli(include_deleted):
    """List stores."""
    stores = store_service.list_stores(include_deleted=include_deleted)
    if not stores:
        click.echo("No stores found.")
        return

    for store in stores:
        flags = " [deleted]" if store.deleted_at else ""
        project = f" project={store.project_id}" if store.project_id else ""
        click.echo(f"{store.id:>4}  {store.type:<8} {store.name}{project}{flags}")


@stores_group.command('create-project')
@click.option('--name', required=True, help='Project name')
@click.option('--location', default=None, help='Site location')
@click.option('--description', default=None, help='Description')
@with_appcontext
def create_project_cli(name, location, description):
    """Create a project and its project store."""
    try:
        project = store_service.create_project(name, location=location, description=description, actor_id="cli")
    except LedgerError as exc:
        db.session.rollback()
        raise click.ClickException(exc.message)
    store = store_service.get_project_store(project.id)
    click.echo(f"PASS Created project {project.name} (ID: {project.id}) with store {store.name} (ID: {store.id})")


@click.group('inventory')
def inventory_group():
    """Inventory inspection and audit commands."""


@inventory_group.command('balances')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def balances_cli(store_id):
    """Print current balances for a store."""
    rows = reporting_service.list_balances(store_id=store_id)
    if not rows:
        click.echo("No balances recorded for this store.")
        return
    for row in rows:
        flag = "  RESTOCK" if row["needs_restock"] else ""
        click.echo(
            f"{row['product_id']:>5}  {row['product_name']:<40} {row['quantity']:>12} {row['unit']:<8}"
            f" avg={row['average_cost']}{flag}"
        )


@inventory_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Overwrite drifted balances with the value derived from history')
@with_appcontext
def reconcile_cli(fix):
    """
    Audit balances against purchase/issue history.

    Exits with status 1 when mismatches remain (unfixed).
    """
    result = inventory_service.reconcile(fix=fix, actor_id="cli")
    click.echo(f"CHECK {result['checked']} balance(s) checked")

    for m in result["mismatches"]:
        click.echo(
            f"FAIL store={m['store_id']} product={m['product_id']} "
            f"expected={m['expected']} actual={m['actual']}"
        )

    if not result["mismatches"]:
        click.echo("PASS All balances match history")
        return

    if fix:
        click.echo(f"PASS Fixed {result['fixed']} balance(s)")
        if result["fixed"] < len(result["mismatches"]):
            raise SystemExit(1)
    else:
        raise SystemExit(1)


@inventory_group.command('audit-log')
@click.option('--store-id', type=int, default=None, help='Only events for this store')
@click.option('--limit', type=int, default=50, show_default=True, help='Number of events')
@with_appcontext
def audit_log_cli(store_id, limit):
    """Print recent audit events, newest first."""
    events = audit_service.list_audit_events(store_id=store_id, limit=limit)
    if not events:
        click.echo("No audit events recorded.")
        return
    for ev in events:
        store = f" store={ev.store_id}" if ev.store_id else ""
        actor = f" by={ev.actor_id}" if ev.actor_id else ""
        click.echo(f"{ev.occurred_at:%Y-%m-%d %H:%M:%S}  {ev.event_type:<20} {ev.entity_type}#{ev.entity_id}{store}{actor}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(inventory_group)
