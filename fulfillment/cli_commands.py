"""
Flask CLI commands.

Commands:
- flask init-db: Create the schema and the default store settings row
"""

import click

from fulfillment.database import create_schema, get_session
from fulfillment.repositories import SqlUnitOfWork
from fulfillment.services.settings_service import SettingsService


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables and the default StoreSettings row."""
        session = get_session()
        try:
            create_schema()
            settings = SettingsService(SqlUnitOfWork(session)).ensure_defaults()
            click.echo(click.style('Database schema created.', fg='green', bold=True))
            click.echo(f'   Store settings: {settings.id}')
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'Error initializing database: {str(e)}', fg='red'))
            raise click.Abort()
