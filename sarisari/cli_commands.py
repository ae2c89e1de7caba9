"""
Flask CLI commands for schema and stock maintenance.

Commands:
- flask init-db: Create every table
- flask reconcile-stock: Report products whose counter disagrees with their batches
"""

import sys

import click

from sarisari.database import get_store
from sarisari.services import get_services


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database schema."""
        get_store(app).create_all()
        click.echo(click.style('✅ Database schema created.', fg='green'))

    @app.cli.command('reconcile-stock')
    def reconcile_stock_command():
        """List products whose stock counter drifted from their batches."""
        drifted = get_services(app).inventory.reconcile_all()

        if not drifted:
            click.echo(click.style('✅ All product counters match their batches.', fg='green'))
            return

        click.echo(click.style(f'⚠️  {len(drifted)} product(s) out of sync:', fg='yellow', bold=True))
        for r in drifted:
            click.echo(
                f'   product {r.product_id}: stock={r.stock_quantity} '
                f'batches={r.batch_quantity} difference={r.difference:+d}'
            )
        sys.exit(1)
