# Overview: Flask CLI command groups for bootstrap, counters, and payment repair.

# backend/confreg/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--seed-accommodations]
#   Create all tables and the registration counter; optionally add the partner hotels.
#
# Users:
# - python -m flask users create-admin --name "Desk Admin" --email admin@aoacon.local --phone 9000000000
#   Create an admin account (prompts for the password).
# - python -m flask users list [--admins]
#   List accounts with role and profile state.
#
# Registration numbers:
# - python -m flask counters show
#   Counter value, highest number in use, suggested next number.
# - python -m flask counters set 120
#   Move the counter (refused below the highest used number).
#
# Payments:
# - python -m flask payments reconcile order_ABC123
#   Ask the gateway about an order and capture it if paid.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Accommodation, User
from .services.auth_service import AuthError, PasswordValidationError, create_user
from .services import registration_number_service
from .services.registration_number_service import RegistrationNumberError
from .services import payment_service
from .services.payment_service import PaymentError
from .services.gateway_service import GatewayError


# Partner hotels for a fresh install (INR per night)
DEFAULT_ACCOMMODATIONS = [
    ("Conference Hotel (Twin Sharing)", "Venue campus", 6500, 40),
    ("City Business Hotel", "2 km from venue", 4800, 30),
    ("Guest House", "5 km from venue", 2500, 20),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--seed-accommodations', is_flag=True, help='Add the default partner hotels')
@with_appcontext
def init_system(seed_accommodations):
    """
    Create tables and the registration counter. Safe to re-run.

    Production schemas should come from `flask db upgrade`; this is for local
    setups and demos.
    """
    click.echo("START Initializing conference registration backend...")
    db.create_all()
    click.echo("PASS Tables ready")

    counter = registration_number_service.ensure_counter()
    db.session.commit()
    click.echo(f"PASS Registration counter at {counter}")

    if seed_accommodations:
        created = 0
        for name, location, price, rooms in DEFAULT_ACCOMMODATIONS:
            if db.session.query(Accommodation).filter_by(name=name).first():
                continue
            db.session.add(Accommodation(
                name=name,
                location=location,
                price_per_night=price,
                total_rooms=rooms,
                available_rooms=rooms,
                is_active=True,
            ))
            created += 1
        db.session.commit()
        click.echo(f"PASS Accommodations seeded: {created} new")

    click.echo("DONE")


@click.group('users')
def users_group():
    """Account inspection and bootstrap."""


@users_group.command('create-admin')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--phone', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(name, email, phone, password):
    """Create an admin account (password must meet strength rules)."""
    try:
        user = create_user(name, email, phone, password, is_admin=True)
    except (AuthError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin {user.email} (ID: {user.id})")


@users_group.command('list')
@click.option('--admins', is_flag=True, help='Only admin accounts')
@with_appcontext
def list_users(admins):
    query = db.session.query(User)
    if admins:
        query = query.filter(User.is_admin.is_(True))
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Admin':<7} {'Profile':<9} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.email:<35} {(user.role or '-'):<10} "
            f"{'Yes' if user.is_admin else 'No':<7} "
            f"{'Done' if user.is_profile_complete else 'Pending':<9} "
            f"{'Yes' if user.is_active else 'No'}"
        )


@click.group('counters')
def counters_group():
    """Registration number counter."""


@counters_group.command('show')
@with_appcontext
def show_counter():
    info = registration_number_service.get_counter_info()
    db.session.commit()
    click.echo(f"Counter:        {info['counter']}")
    click.echo(f"Highest used:   {info['max_used']}")
    click.echo(f"Suggested next: {info['suggested_next_number']}")


@counters_group.command('set')
@click.argument('seq', type=int)
@with_appcontext
def set_counter(seq):
    try:
        info = registration_number_service.set_counter(seq)
    except RegistrationNumberError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Counter set to {info['counter']} (next: {info['suggested_next_number']})")


@click.group('payments')
def payments_group():
    """Payment repair commands."""


@payments_group.command('reconcile')
@click.argument('order_id')
@with_appcontext
def reconcile(order_id):
    """Pull payment state for ORDER_ID from the gateway and capture it if paid."""
    try:
        result = payment_service.reconcile_order(order_id)
    except (PaymentError, GatewayError) as e:
        raise click.ClickException(str(e))
    click.echo(f"{order_id}: {result['status']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(counters_group)
    app.cli.add_command(payments_group)
