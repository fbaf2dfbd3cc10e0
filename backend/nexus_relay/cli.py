# Overview: Flask CLI commands for bootstrap, inspection, and maintenance.

# backend/nexus_relay/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to nexus_relay (PowerShell: $env:FLASK_APP="nexus_relay").
# - Use: python -m flask relay <command> [options]
#
# - python -m flask relay init-db
#   Create all tables (development; use `flask db upgrade` in production).
# - python -m flask relay seed-dealer --name "Acme Market" --key ABCD-EFGH-IJKL-MNOP [--expires-days 365]
#   Create a dealer and an active license for it.
# - python -m flask relay devices --dealer-id <id>
#   List a dealer's devices with derived presence status.
# - python -m flask relay cleanup-activity --retention-days 90
#   Delete activity log rows older than the retention window.
#   The transaction log itself is never cleaned up here.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Dealer, License
from .services import activity_service, device_service, transaction_log_service
from .time_utils import utcnow


@click.group('relay')
def relay_group():
    """Sync relay bootstrap and maintenance commands."""


@relay_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Tables created.")


@relay_group.command('seed-dealer')
@click.option('--name', required=True, help='Dealer display name')
@click.option('--key', 'license_key', required=True, help='License key to issue')
@click.option('--expires-days', type=int, default=None, help='License lifetime in days (omit for perpetual)')
@with_appcontext
def seed_dealer_command(name, license_key, expires_days):
    """Create a dealer with one active license."""
    if db.session.query(License).filter_by(license_key=license_key).first():
        raise click.ClickException(f"License key {license_key} already exists")

    dealer = Dealer(name=name, is_active=True)
    db.session.add(dealer)
    db.session.flush()

    expires_at = utcnow() + timedelta(days=expires_days) if expires_days else None
    lic = License(license_key=license_key, dealer_id=dealer.id, is_active=True, expires_at=expires_at)
    db.session.add(lic)
    db.session.commit()

    click.echo(f"Dealer {dealer.id} ({name}) created with license {license_key}")


@relay_group.command('devices')
@click.option('--dealer-id', required=True, help='Dealer id')
@with_appcontext
def devices_command(dealer_id):
    """List a dealer's devices."""
    devices = device_service.list_devices(dealer_id)
    total = transaction_log_service.count_transactions(dealer_id)
    click.echo(f"{len(devices)} device(s), {total} transaction(s) in log")
    for d in devices:
        click.echo(
            f"  {d['device_identifier']:<24} {d['status']:<8} "
            f"name={d['device_name'] or '-'} last_sync={d['last_sync_at'] or '-'} "
            f"pending={d['pending_transactions']} ip={d['last_ip'] or '-'}"
        )


@relay_group.command('cleanup-activity')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_activity_command(retention_days):
    """Delete old activity log rows."""
    try:
        deleted = activity_service.cleanup_activity(retention_days)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted {deleted} activity row(s).")


def register_commands(app):
    app.cli.add_command(relay_group)
