"""Flask CLI commands: `flask init-db` and `flask create-admin`."""

import click
from flask import current_app
from flask.cli import with_appcontext

from qr_checkin import db
from qr_checkin.errors import BackendError
from qr_checkin.models.staff import ROLE_ADMIN
from qr_checkin.services import get_backend


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo('Database tables created.')


@click.command('create-admin')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--full-name', default=None, help='Display name for the admin.')
@click.option('--setup-key', default=None, help='Must match ADMIN_SETUP_KEY when that is set.')
@with_appcontext
def create_admin_command(email, password, full_name, setup_key):
    """Create an admin account."""
    expected_key = current_app.config.get('ADMIN_SETUP_KEY')
    if expected_key and setup_key != expected_key:
        raise click.ClickException('Invalid setup key')

    backend = get_backend()
    if backend.get_staff_by_email(email):
        raise click.ClickException(f'A staff account for {email} already exists')

    try:
        user = backend.create_staff(email, password, full_name=full_name, role=ROLE_ADMIN)
    except BackendError as e:
        raise click.ClickException(str(e))

    current_app.logger.info(f"Admin account created: {user.id}")
    click.echo(f'Admin account created for {user.email}')


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
