# Overview: Flask CLI commands for schema bootstrap and stock ledger maintenance.

# Commands (run from the backend directory, FLASK_APP=wsgi.py):
# - flask stock init-db
#   Create all tables (dev/test; production uses `flask db upgrade`).
# - flask stock verify [--store-id 1]
#   Replay the ledger and compare with cached stock. Exits 1 on drift.
# - flask stock reconcile [--store-id 1]
#   Rewrite drifted cached stock from the ledger.
# - flask stock reorders --store-id 1
#   Print reorder suggestions grouped by supplier.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import reorder_service, stock_ledger_service


@click.group("stock")
def stock_group():
    """Stock ledger maintenance commands."""


@stock_group.command("init-db")
@with_appcontext
def init_db():
    """Create all tables."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("Database tables created.")


@stock_group.command("verify")
@click.option("--store-id", type=int, help="Limit to one store")
@with_appcontext
def verify_stock_cli(store_id):
    """Compare cached stock with a full ledger replay."""
    checks = stock_ledger_service.verify_all_stock(store_id)
    drifted = [c for c in checks if not c.ok]

    click.echo(f"Checked {len(checks)} products.")
    for check in drifted:
        click.echo(f"  DRIFT product={check.product_id} cached={check.cached} ledger={check.derived}")

    if drifted:
        raise click.exceptions.Exit(1)
    click.echo("Ledger and cached stock agree.")


@stock_group.command("reconcile")
@click.option("--store-id", type=int, help="Limit to one store")
@with_appcontext
def reconcile_stock_cli(store_id):
    """Rebuild drifted cached stock from the ledger."""
    drifted = [c for c in stock_ledger_service.verify_all_stock(store_id) if not c.ok]
    if not drifted:
        click.echo("Nothing to reconcile.")
        return

    for check in drifted:
        stock_ledger_service.reconcile_stock(check.product_id)
        click.echo(f"  Reconciled product={check.product_id}: {check.cached} -> {check.derived}")
    click.echo(f"Reconciled {len(drifted)} products.")


@stock_group.command("reorders")
@click.option("--store-id", type=int, required=True, help="Store to analyse")
@with_appcontext
def reorders_cli(store_id):
    """Print reorder suggestions for a store."""
    plan = reorder_service.suggest_reorders(store_id)
    if not plan.suggestions:
        click.echo("No products at or below their reorder point.")
        return

    header = f"{'SKU':<16} {'Stock':>6} {'ROP':>5} {'Propose':>8} {'Cover':>6}"
    for group in plan.groups:
        click.echo(
            f"\n{group.supplier_name} (lead time {group.lead_time_days}d, "
            f"est. {group.estimated_cost_paise / 100:.2f})"
        )
        click.echo(header)
        for s in group.suggestions:
            click.echo(f"{s.sku:<16} {s.current_stock:>6} {s.reorder_point:>5} {s.proposed_qty:>8} {s.days_of_cover:>6.2f}")

    if plan.unassigned:
        click.echo("\nNo supplier assigned")
        click.echo(header)
        for s in plan.unassigned:
            click.echo(f"{s.sku:<16} {s.current_stock:>6} {s.reorder_point:>5} {s.proposed_qty:>8} {s.days_of_cover:>6.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
