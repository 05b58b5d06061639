# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--outlet-name "Main Cafe"] [--outlet-code MAIN01]
#   Idempotent bootstrap: creates tables, the default outlet and the admin/manager users,
#   and seeds the default offline/online expense types.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role manager]
#   List all users with role, default outlet and active status.
# - python -m flask users create --username alice --email alice@cafe.local --password "secret1" --role manager [--outlet-id 1]
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask maintenance cleanup-audit-events --retention-days 90
#   Delete audit events older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import ApiError
from .extensions import db
from .models import Outlet, User
from .models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLES
from .services import audit_service, auth_service, expense_type_service, outlet_service


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--outlet-name', default='Main Cafe', show_default=True, help='Default outlet name')
@click.option('--outlet-code', default='MAIN01', show_default=True, help='Default outlet code')
@with_appcontext
def init_system(outlet_name, outlet_code):
    """
    Initialize the cafe backend: tables, default outlet and default users.

    Creates (skipping anything that already exists):
    - All tables
    - Default outlet
    - Users: admin/admin@cafe.local (admin), manager/manager@cafe.local (manager)
    - Both users are assigned to the default outlet
    - Default offline and online expense types
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing cafe backend...")
    db.create_all()

    outlet = db.session.query(Outlet).filter_by(code=outlet_code).first()
    if not outlet:
        outlet = outlet_service.create_outlet({"name": outlet_name, "code": outlet_code}, created_by="system")
        click.echo(f"PASS Created default outlet: {outlet.name} (ID: {outlet.id}, Code: {outlet.code})")
    else:
        click.echo(f"PASS Using existing outlet: {outlet.name} (ID: {outlet.id})")

    click.echo("\nUSERS Creating default users...")
    default_users = [
        ("admin", "admin@cafe.local", ROLE_ADMIN),
        ("manager", "manager@cafe.local", ROLE_MANAGER),
    ]
    for username, email, role in default_users:
        if auth_service.find_user(username):
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            user = auth_service.create_user(
                username, email, DEFAULT_PASSWORD, role=role, default_outlet_id=outlet.id
            )
        except ApiError as e:
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")
            continue
        outlet_service.set_user_outlets(user.id, [outlet.id], default_outlet_id=outlet.id)
        current_app.logger.info("Bootstrap created user %s (%s)", username, role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")

    click.echo("\nEXPENSE TYPES Seeding default expense types...")
    for source in ("Offline", "Online"):
        added = expense_type_service.initialize_defaults(source)
        click.echo(f"PASS {source}: added {added} expense types")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Cafe backend initialized")
    click.echo("=" * 60)
    click.echo(f"\nOutlet: {outlet.name} (ID: {outlet.id})")
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   admin   -> admin@cafe.local   / {DEFAULT_PASSWORD}")
    click.echo(f"   manager -> manager@cafe.local / {DEFAULT_PASSWORD}")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    current_app.logger.info("Database reset")
    click.echo("PASS Database reset. Run 'python -m flask system init' to bootstrap.")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--outlet-id', type=int, help='Assign to this outlet (and make it the default)')
@with_appcontext
def create_user_cli(username, email, password, role, outlet_id):
    """Create a new user; password must be at least 6 characters."""
    if outlet_id is not None and db.session.get(Outlet, outlet_id) is None:
        click.echo(f"FAIL Outlet ID {outlet_id} not found")
        return
    try:
        user = auth_service.create_user(username, email, password, role=role, default_outlet_id=outlet_id)
    except ApiError as e:
        click.echo(f"FAIL {e.message}")
        return
    if outlet_id is not None:
        outlet_service.set_user_outlets(user.id, [outlet_id], default_outlet_id=outlet_id)
    current_app.logger.info("CLI created user %s (%s)", user.username, user.role)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their role and outlets."""
    users = auth_service.list_users(role=role)
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<9} {'Active':<8} {'Outlets'}")
    click.echo("=" * 100)
    for user in users:
        outlets = sorted(outlet_service.get_assigned_outlet_ids(user.id))
        outlets_str = ", ".join(str(o) for o in outlets) if outlets else "-"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role:<9} {active_str:<8} {outlets_str}")
    click.echo("=" * 100 + "\n")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-audit-events')
@click.option('--retention-days', type=int, default=None, help='Defaults to AUDIT_RETENTION_DAYS')
@with_appcontext
def cleanup_audit_events_cli(retention_days):
    """Delete audit events older than the retention window."""
    if retention_days is None:
        retention_days = current_app.config.get("AUDIT_RETENTION_DAYS", 90)
    deleted = audit_service.cleanup_events(retention_days=retention_days)
    current_app.logger.info("Deleted %s audit events older than %s days", deleted, retention_days)
    click.echo(f"Deleted {deleted} audit events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
