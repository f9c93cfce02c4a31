"""
Flask CLI commands for checkout maintenance.

Commands:
- flask intents mark-abandoned: Flag stale unlinked order intents
"""

import click
from flask import current_app
from flask.cli import AppGroup
from storefront.database import db_session
from storefront.services.order_service import OrderBackend

intents_cli = AppGroup('intents', help='Order intent maintenance.')


@intents_cli.command('mark-abandoned')
@click.option('--hours', type=int, default=None, help='Age in hours after which an unlinked intent is abandoned')
def mark_abandoned(hours):
    """Mark unlinked order intents older than --hours as abandoned."""
    hours = hours if hours is not None else current_app.config.get('INTENT_ABANDON_HOURS', 24)
    if hours < 1:
        click.echo(click.style('❌ --hours must be at least 1.', fg='red'))
        return

    try:
        count = OrderBackend(db_session).mark_abandoned_intents(hours)
        click.echo(click.style(f'✅ {count} intent(s) older than {hours}h marked as abandoned.', fg='green'))
    except Exception as e:
        click.echo(click.style(f'❌ Error marking intents: {str(e)}', fg='red'))


def init_cli_commands(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(intents_cli)
