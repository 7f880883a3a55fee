"""
Flask CLI commands for database setup and ledger integrity checks.

Commands:
- flask init-db: Create all tables
- flask check-payments --tenant <uuid>: Report sales whose payments or items do not add up
"""

import click
from flask import current_app
from app.database import create_all, get_session
from app.exceptions import TenantMismatchError
from app.services.sales_service import find_payment_mismatches, find_subtotal_mismatches
from app.services.tenant_guard import validate_tenant_id
from app.utils.number_format import to_money


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table of the ledger schema."""
        create_all()
        click.echo(click.style('✅ Tablas creadas', fg='green'))

    @app.cli.command('check-payments')
    @click.option('--tenant', 'tenant_id', required=True, help='Tenant UUID')
    @click.option('--tolerance', default=None, help='Tolerancia monetaria (default MONEY_TOLERANCE)')
    def check_payments(tenant_id, tolerance):
        """List sales failing the split-payment and subtotal checks."""
        try:
            validate_tenant_id(tenant_id)
        except TenantMismatchError as e:
            raise click.BadParameter(e.message, param_hint='--tenant')

        tolerance = to_money(tolerance or current_app.config.get('MONEY_TOLERANCE', '0.01'))
        session = get_session()

        payment_rows = find_payment_mismatches(session, tenant_id, tolerance)
        subtotal_rows = find_subtotal_mismatches(session, tenant_id, tolerance)

        if not payment_rows and not subtotal_rows:
            click.echo(click.style('✅ Todas las ventas cuadran', fg='green'))
            return

        for row in payment_rows:
            click.echo(click.style(
                f"❌ Venta #{row['sale_id']}: total ${row['total']}, "
                f"pagos ${row['payments_total']} (diferencia ${row['difference']})",
                fg='red'
            ))
        for row in subtotal_rows:
            click.echo(click.style(
                f"❌ Venta #{row['sale_id']}: subtotal ${row['subtotal']}, "
                f"items ${row['items_total']} (diferencia ${row['difference']})",
                fg='red'
            ))
        click.echo(f'\n{len(payment_rows)} con pagos descuadrados, {len(subtotal_rows)} con subtotal descuadrado')
