# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/rewards/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and one verified user per role.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role manager]
#   List users with role, balance and flags.
# - python -m flask users create-superuser UTORID EMAIL
#   Create a verified superuser (prompts for the password).
#
# Demo data:
# - python -m flask seed demo
#   Users of each role, one published event and one automatic promotion.
#
# Ledger maintenance:
# - python -m flask ledger verify [--fix]
#   Recompute every balance from the ledger and report (or repair) drift.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Event, EventOrganizer, Promotion, User
from .models.promotions import PROMOTION_TYPE_AUTOMATIC
from .permissions import ROLE_LABELS, Role
from .services.auth_service import create_superuser, hash_password, PasswordValidationError
from .services.ledger_service import compute_balance
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and default users.

    Creates (all verified, password "Password123!"):
    - super001 / super001@mail.utoronto.ca (superuser)
    - manager1 / manager1@mail.utoronto.ca (manager)
    - cashier1 / cashier1@mail.utoronto.ca (cashier)
    - regular1 / regular1@mail.utoronto.ca (regular)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing rewards system...")
    db.create_all()

    default_password = "Password123!"
    default_users = [
        ("super001", Role.SUPERUSER),
        ("manager1", Role.MANAGER),
        ("cashier1", Role.CASHIER),
        ("regular1", Role.REGULAR),
    ]

    for utorid, role in default_users:
        if db.session.query(User).filter_by(utorid=utorid).first():
            click.echo(f"WARN  User '{utorid}' already exists, skipping...")
            continue
        try:
            user = User(
                utorid=utorid,
                name=f"Default {role.label.title()}",
                email=f"{utorid}@mail.utoronto.ca",
                password_hash=hash_password(default_password),
                role=role.label,
                verified=True,
            )
            db.session.add(user)
            db.session.commit()
            click.echo(f"PASS Created user: {utorid} with role '{role.label}'")
        except PasswordValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL Password validation failed for '{utorid}': {str(e)}")

    click.echo("DONE Rewards system initialized. Default password: Password123!")


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

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-superuser')
@click.argument('utorid')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--name', default=None, help='Display name (defaults to utorid)')
@with_appcontext
def create_superuser_cli(utorid, email, password, name):
    """Create a verified superuser."""
    try:
        user = create_superuser(utorid, email, password, name=name)
        db.session.commit()
        click.echo(f"PASS Created superuser: {user.utorid} (ID: {user.id})")
    except (ValueError, PasswordValidationError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLE_LABELS), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with role, balance and flags."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'UTORid':<12} {'Email':<32} {'Role':<10} {'Points':<8} {'Verified':<9} {'Flagged'}")
    click.echo("="*90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.utorid:<12} {user.email:<32} {user.role:<10} {user.points:<8} "
            f"{'Yes' if user.verified else 'No':<9} {'Yes' if user.suspicious else 'No'}"
        )
    click.echo("="*90 + "\n")


@click.group('seed')
def seed_group():
    """Demo data commands."""


@seed_group.command('demo')
@with_appcontext
def seed_demo():
    """
    Create a small demo dataset on top of `system init`.

    Adds a published event next week (capacity 50, 500 points) organized by
    manager1 and an automatic promotion worth 1 extra point per dollar.
    """
    ctx = click.get_current_context()
    ctx.invoke(init_system)

    organizer = db.session.query(User).filter_by(utorid="manager1").one()
    start = utcnow() + timedelta(days=7)

    if not db.session.query(Event).filter_by(name="Welcome Week Mixer").first():
        event = Event(
            name="Welcome Week Mixer",
            description="Meet the campus clubs",
            location="Hart House",
            start_time=start,
            end_time=start + timedelta(hours=3),
            capacity=50,
            points_remain=500,
            points_awarded=0,
            published=True,
        )
        event.organizers.append(EventOrganizer(user_id=organizer.id))
        db.session.add(event)
        click.echo("PASS Created event: Welcome Week Mixer")

    if not db.session.query(Promotion).filter_by(name="Dollar Bonus").first():
        db.session.add(Promotion(
            name="Dollar Bonus",
            description="One extra point per dollar spent",
            type=PROMOTION_TYPE_AUTOMATIC,
            start_time=utcnow(),
            end_time=utcnow() + timedelta(days=30),
            rate=1.0,
        ))
        click.echo("PASS Created promotion: Dollar Bonus")

    db.session.commit()
    click.echo("DONE Demo data ready.")


@click.group('ledger')
def ledger_group():
    """Ledger maintenance commands."""


@ledger_group.command('verify')
@click.option('--fix', is_flag=True, help='Overwrite drifted balances with the ledger total')
@with_appcontext
def verify_balances(fix):
    """
    Recompute each user's balance from their applied transactions.

    Exits non-zero when drift is found and --fix is not given.
    """
    drifted = []
    for user in db.session.query(User).order_by(User.id.asc()).all():
        expected = compute_balance(user.id)
        if user.points != expected:
            drifted.append((user, expected))
            click.echo(f"DRIFT {user.utorid}: cached={user.points} ledger={expected}")

    if not drifted:
        click.echo("PASS All balances match the ledger.")
        return

    if not fix:
        raise click.ClickException(f"{len(drifted)} balance(s) drifted. Re-run with --fix to repair.")

    for user, expected in drifted:
        user.points = expected
    db.session.commit()
    click.echo(f"PASS Repaired {len(drifted)} balance(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(seed_group)
    app.cli.add_command(ledger_group)
