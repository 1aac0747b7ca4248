# Overview: Flask CLI command groups for bootstrap, user setup, and order maintenance.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create any missing tables (use `flask db upgrade` for managed schemas).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role seller]
#   List users with role and active status.
# - python -m flask users create-admin --phone 03001234567 --name "Ops Admin" --password "Password123!"
#   Create an admin account (admins cannot self-register).
# - python -m flask users approve-seller 12
#   Approve a pending seller.
#
# Orders:
# - python -m flask orders auto-complete
#   Complete delivered orders the buyer has not confirmed within
#   DELIVERY_CONFIRMATION_TIMEOUT_HOURS (schedule this, e.g. hourly cron).
# - python -m flask orders show ORD-1700000000000-1
#   Print one order with its status history.

import click
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Order, User
from .realtime import get_broadcaster
from .services import admin_service, auth_service, order_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()
    db.create_all()
    click.echo("PASS Schema recreated")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(['buyer', 'seller', 'driver', 'admin']), help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with their role."""
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Role':<8} {'Phone':<16} {'Name':<30} {'Active'}")
    click.echo("="*80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.role:<8} {user.phone_number:<16} {user.display_name[:30]:<30} {active_str}")
    click.echo("="*80 + "\n")


@users_group.command('create-admin')
@click.option('--phone', prompt=True, help='Mobile number (03xxxxxxxxx or +923xxxxxxxxx)')
@click.option('--name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--email', default=None, help='Email (optional)')
@with_appcontext
def create_admin(phone, name, password, email):
    """Create an admin account."""
    try:
        user = auth_service.create_user("admin", {
            "phone_number": phone,
            "full_name": name,
            "password": password,
            "email": email,
        })
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created admin {user.display_name} (ID: {user.id}, phone: {user.phone_number})")


@users_group.command('approve-seller')
@click.argument('seller_id', type=int)
@with_appcontext
def approve_seller(seller_id):
    """Approve a pending seller."""
    try:
        seller = admin_service.set_seller_status(seller_id, "approved", broadcaster=get_broadcaster())
    except DomainError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Seller {seller.business_name} (ID: {seller.id}) approved")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('auto-complete')
@with_appcontext
def auto_complete():
    """Complete delivered orders past the buyer confirmation window."""
    summary = order_service.complete_overdue_deliveries(broadcaster=get_broadcaster())
    for number in summary["completed"]:
        click.echo(f"PASS Completed {number}")
    for failure in summary["failed"]:
        click.echo(f"FAIL Order {failure['order_id']}: {failure['error']}")
    click.echo(f"DONE {len(summary['completed'])} completed, {len(summary['failed'])} failed")


@orders_group.command('show')
@click.argument('order_number')
@with_appcontext
def show_order(order_number):
    """Print one order with its status history."""
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if order is None:
        raise click.ClickException(f"Order {order_number} not found")

    click.echo(f"\n{order.order_number}  [{order.status}]  v{order.version_id}")
    click.echo(f"  type: {order.order_type}  size: {order.cylinder_size} x {order.quantity}")
    click.echo(f"  buyer: {order.buyer_id}  seller: {order.seller_id}  driver: {order.driver_id or '-'}")
    click.echo(f"  grand total: {order.grand_total_cents}  payment: {order.payment_method}/{order.payment_status}")
    click.echo("  history:")
    for entry in order.history:
        click.echo(f"    {entry.created_at}  {entry.from_status or '-':<16} -> {entry.status:<16} ({entry.event})")
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(orders_group)
