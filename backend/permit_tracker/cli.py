# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to permit_tracker (PowerShell: $env:FLASK_APP="permit_tracker").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: regions, role capability vectors and the default admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username jdoe --email jdoe@example.com --role manager --region riyadh --region qassim
#
# Roles / regions:
# - python -m flask roles show [ROLE]
# - python -m flask roles capabilities
# - python -m flask roles reset --yes
#   Restore the seeded capability vectors.
# - python -m flask regions list
#
# CLI commands run outside any acting context: the row security guard is
# inactive, as for the database owner.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Region, User
from .permissions import (
    CAPABILITY_KEYS,
    DEFAULT_REGION,
    REGION_CODES,
    ROLE_NAMES,
    Role,
    get_capability_definition,
)
from .services import region_service, role_permission_service, session_service
from .services.auth_service import hash_password, PasswordValidationError

DEFAULT_ADMIN = {
    "username": "admin",
    "email": "admin@example.com",
    "password": "Admin123!",
    "first_name": "System",
    "last_name": "Administrator",
}


def ensure_default_admin() -> User | None:
    """Create the default admin with access to every region. Returns None if it exists."""
    existing = db.session.query(User).filter_by(username=DEFAULT_ADMIN["username"]).first()
    if existing:
        return None
    user = User(
        username=DEFAULT_ADMIN["username"],
        email=DEFAULT_ADMIN["email"],
        password=hash_password(DEFAULT_ADMIN["password"]),
        first_name=DEFAULT_ADMIN["first_name"],
        last_name=DEFAULT_ADMIN["last_name"],
        regions=list(REGION_CODES),
        role=Role.ADMIN.value,
    )
    db.session.add(user)
    db.session.commit()
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the permit tracker: regions, role capability vectors, default admin.

    Creates:
    - The 19 region codes
    - Capability vectors for admin, manager, security_officer, observer
    - User admin / admin@example.com with password "Admin123!" and every region

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing permit tracker...")

    created = region_service.initialize_regions()
    click.echo(f"PASS Regions: {created} created, {len(REGION_CODES)} expected")

    seeded = role_permission_service.initialize_role_permissions()
    click.echo(f"PASS Role capability vectors: {seeded} created")

    admin = ensure_default_admin()
    if admin:
        click.echo(f"PASS Created user: {admin.username} ({admin.email}) with role 'admin'")
    else:
        click.echo("WARN  User 'admin' already exists, skipping...")

    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   {DEFAULT_ADMIN['username']} / {DEFAULT_ADMIN['password']}")
    click.echo("")


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


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked session tokens older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session tokens")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and regions."""
    users = db.session.query(User).order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Username':<20} {'Email':<30} {'Role':<18} {'Regions'}")
    click.echo("="*100)

    for user in users:
        regions = ", ".join(user.regions or [])
        click.echo(f"{user.username:<20} {user.email:<30} {user.role:<18} {regions}")

    click.echo("="*100 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', default='', help='First name')
@click.option('--last-name', default='', help='Last name')
@click.option('--role', type=click.Choice(list(ROLE_NAMES)), default=Role.OBSERVER.value, show_default=True)
@click.option('--region', 'regions', multiple=True, help='Region code (repeatable)')
@with_appcontext
def create_user_cli(username, email, password, first_name, last_name, role, regions):
    """Create a user directly (bypasses the admin API)."""
    regions = list(regions) or [DEFAULT_REGION]
    unknown = [code for code in regions if not region_service.exists(code)]
    if unknown:
        click.echo(f"FAIL Unknown region(s): {', '.join(unknown)} (run 'flask system init' first?)")
        return

    if db.session.query(User).filter(db.or_(User.username == username, User.email == email)).first():
        click.echo("FAIL Username or email already exists")
        return

    try:
        password_hash = hash_password(password)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        return

    user = User(
        username=username,
        email=email,
        password=password_hash,
        first_name=first_name or username,
        last_name=last_name,
        regions=regions,
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {username} ({email}) role={role} regions={', '.join(regions)}")


@click.group('roles')
def roles_group():
    """Role capability inspection and repair."""


@roles_group.command('show')
@click.argument('role', required=False, type=click.Choice(list(ROLE_NAMES)))
@with_appcontext
def show_roles(role):
    """Print capability vectors (one role or all)."""
    roles = [role] if role else list(ROLE_NAMES)
    for name in roles:
        capabilities = role_permission_service.get_capabilities(name)
        enabled = [key for key in CAPABILITY_KEYS if capabilities[key]]
        click.echo(f"{name:<18} {len(enabled):>2}/{len(CAPABILITY_KEYS)}  {', '.join(enabled) or '-'}")


@roles_group.command('capabilities')
@with_appcontext
def list_capabilities():
    """Print the capability keys grouped by category."""
    grouped = {}
    for key in CAPABILITY_KEYS:
        definition = get_capability_definition(key)
        grouped.setdefault(definition["category"], []).append(definition)
    for category, definitions in grouped.items():
        click.echo(f"[{category}]")
        for definition in definitions:
            click.echo(f"  {definition['key']:<22} {definition['name']}: {definition['description']}")


@roles_group.command('reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_roles(yes):
    """Restore the seeded capability vectors for all four roles."""
    if not yes:
        click.confirm("WARN This overwrites every role's capabilities. Continue?", abort=True)
    touched = role_permission_service.initialize_role_permissions(reset=True)
    click.echo(f"PASS {touched} role capability vectors restored")


@click.group('regions')
def regions_group():
    """Region registry inspection."""


@regions_group.command('list')
@with_appcontext
def list_regions():
    """List region codes with English and Arabic names."""
    regions = db.session.query(Region).order_by(Region.code).all()
    if not regions:
        click.echo("No regions found. Run 'flask system init'.")
        return
    for region in regions:
        click.echo(f"{region.code:<18} {region.name_en:<24} {region.name_ar}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(regions_group)
