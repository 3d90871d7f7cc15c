# Overview: Flask CLI command groups for bootstrap, sync and inspection.

# backend/possync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create the remote tables if they do not exist (dev only; use migrations elsewhere).
#
# Sync:
# - python -m flask sync status
#   Show connectivity and pending offline work.
# - python -m flask sync products
#   Refresh the device cache from the remote store (reconciles first).
# - python -m flask sync reconcile
#   Push placeholder products and journaled product writes.
# - python -m flask sync sales
#   Finish half-completed sales from the sale journal.
#
# Credential backend:
# - python -m flask auth create-user --email cashier@possync.local --password "Password123"

import click
from flask.cli import with_appcontext

from . import get_engine
from .errors import PosSyncError
from .extensions import db


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all remote tables (idempotent)."""
    db.create_all()
    click.echo("PASS Remote tables created")


@click.group('sync')
def sync_group():
    """Offline sync commands."""


@sync_group.command('status')
@with_appcontext
def sync_status():
    engine = get_engine()
    online = engine.probe.is_online()
    click.echo(f"Connectivity:      {'online' if online else 'offline'}")
    click.echo(f"Cached products:   {len(engine.cache.get_products())}")
    click.echo(f"Pending products:  {engine.products.pending_count()}")
    click.echo(f"Pending sales:     {len(engine.checkout.pending_sales())}")
    session = engine.cache.get_session()
    user = (session or {}).get("user") or {}
    click.echo(f"Stored session:    {user.get('email') or 'none'}")


@sync_group.command('products')
@with_appcontext
def sync_products():
    engine = get_engine()
    if not engine.probe.is_online():
        click.echo("WARN Offline; showing cached catalog only")
    products = engine.products.list_products()
    click.echo(f"PASS {len(products)} products in local cache")
    for p in products:
        click.echo(f"  {p['id']:<34} {p['name'][:30]:<30} stock={p['stock']:<5} price={p['price']}")


@sync_group.command('reconcile')
@with_appcontext
def sync_reconcile():
    report = get_engine().products.reconcile()
    for old_id, new_id in report.promoted.items():
        click.echo(f"  promoted {old_id} -> {new_id}")
    click.echo(
        f"PASS replayed={report.replayed} dropped={report.dropped} pending={report.pending}"
    )


@sync_group.command('sales')
@with_appcontext
def sync_sales():
    try:
        report = get_engine().checkout.reconcile_pending_sales()
    except PosSyncError as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS completed={report['completed']} dropped={report['dropped']} pending={report['pending']}"
    )


@click.group('auth')
def auth_group():
    """Credential backend commands."""


@auth_group.command('create-user')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user(email, password):
    try:
        user = get_engine().auth_backend.create_user(email, password)
    except PosSyncError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user['email']} (ID: {user['id']})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sync_group)
    app.cli.add_command(auth_group)
