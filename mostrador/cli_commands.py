"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask invalidate-plan-cache: Drop a tenant's cached plan features
"""

import click
from mostrador.database import create_all
from mostrador.services.cache_service import get_cache


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table (idempotent)."""
        try:
            create_all()
        except Exception as e:
            click.echo(click.style(f'Error al crear las tablas: {e}', fg='red'))
            raise SystemExit(1)
        click.echo(click.style('Tablas creadas correctamente.', fg='green'))

    @app.cli.command('invalidate-plan-cache')
    @click.option('--tenant-id', type=int, required=True, help='Tenant ID')
    def invalidate_plan_cache(tenant_id):
        """Drop the cached plan features of a tenant."""
        if get_cache().invalidate(tenant_id):
            click.echo(click.style(f'Cache de plan invalidada para el tenant {tenant_id}.', fg='green'))
        else:
            click.echo(click.style('Cache no disponible; nada que invalidar.', fg='yellow'))
