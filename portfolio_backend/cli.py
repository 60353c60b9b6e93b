"""Flask CLI commands for setup, mail checks and scheduled newsletters."""

import click
from flask import current_app
from flask.cli import AppGroup, with_appcontext

from portfolio_backend.extensions import db

newsletter_cli = AppGroup('newsletter', help='Newsletter maintenance commands.')


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables and the bootstrap admin from ADMIN_EMAIL/ADMIN_PASSWORD."""
    from portfolio_backend.services.auth_service import ensure_admin_account
    db.create_all()
    click.echo('Database tables created.')
    email = current_app.config.get('ADMIN_EMAIL')
    password = current_app.config.get('ADMIN_PASSWORD')
    if email and password:
        user, created = ensure_admin_account(email, password)
        click.echo(f"Admin {user.email} {'created' if created else 'already present'}.")
    else:
        click.echo('ADMIN_EMAIL/ADMIN_PASSWORD not set; no admin created.')


@click.command('create-admin')
@with_appcontext
@click.option('--email', prompt='Email')
@click.option('--password', prompt='Password', hide_input=True, confirmation_prompt=True)
def create_admin_command(email, password):
    """Create an admin account, or promote an existing user to admin."""
    from portfolio_backend.services.auth_service import ensure_admin_account
    email = email.strip().lower()
    if not email or not password:
        raise click.UsageError('Email and password are required.')
    user, created = ensure_admin_account(email, password)
    if created:
        click.echo(f'Admin user created: {user.email}')
    else:
        click.echo(f'User {user.email} now has the admin role.')


@click.command('check-mail')
@with_appcontext
def check_mail_command():
    """Open an SMTP connection with the configured settings."""
    from portfolio_backend.services.email_service import email_service
    server = f"{current_app.config.get('MAIL_SERVER')}:{current_app.config.get('MAIL_PORT')}"
    if not email_service.test_connection():
        raise click.ClickException(f'SMTP connection to {server} failed.')
    click.echo(f'SMTP connection to {server} OK.')


@newsletter_cli.command('send-scheduled')
def send_scheduled_command():
    """Send every scheduled newsletter that is due. Meant for cron."""
    from portfolio_backend.services.newsletter_service import newsletter_service
    results = newsletter_service.process_scheduled_newsletters()
    if not results:
        click.echo('No scheduled newsletters due.')
        return
    for result in results:
        if result['success']:
            click.echo(f"Newsletter {result['templateId']}: {result['sentCount']} sent, "
                       f"{result['failedCount']} failed")
        else:
            click.echo(f"Newsletter {result['templateId']} failed: {result['error']}", err=True)


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(check_mail_command)
    app.cli.add_command(newsletter_cli)
