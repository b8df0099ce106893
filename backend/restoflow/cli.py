# Overview: Flask CLI command groups for bootstrap, inspection, and scheduled jobs.

# backend/restoflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--restaurant "Chez Mama"] [--slug chez-mama]
#   Idempotent bootstrap: demo restaurant, tables, owner + kitchen users, trial subscription.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Restaurant management:
# - python -m flask restaurants list
# - python -m flask restaurants create --name "Le Jardin" --slug le-jardin --email contact@lejardin.cm
#   Create a restaurant and start its trial.
#
# Users:
# - python -m flask users create --restaurant-id 1 --email chef@lejardin.cm --role kitchen
# - python -m flask users create-superadmin --email ops@restoflow.app
#
# Scheduled jobs (same code as the /api/cron routes):
# - python -m flask jobs list
# - python -m flask jobs run verify-stock-consistency
#
# Audit trail:
# - python -m flask logs stats

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .config import SweeperSettings
from .extensions import db
from .models import DiningTable, Restaurant, STAFF_ROLES, User
from .services import jobs, log_service, subscription_service
from .services.auth_service import PasswordValidationError, create_user
from .services.realtime_service import get_publisher
from .services.subscription_service import PLAN_CONFIGS, SubscriptionError


DEFAULT_PASSWORD = "Password123"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--restaurant', 'restaurant_name', default='Demo Restaurant', help='Restaurant name')
@click.option('--slug', default='demo', help='Public slug (QR menu URL)')
@with_appcontext
def init_system(restaurant_name, slug):
    """
    Initialize a demo restaurant with staff and a trial subscription.

    Creates (when missing):
    - Restaurant with 5 tables
    - Users: owner@<slug>.local, kitchen@<slug>.local (password "Password123")
    - Trial subscription (TRIAL_DAYS)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing RestoFlow...")

    restaurant = db.session.query(Restaurant).filter_by(slug=slug).first()
    if not restaurant:
        restaurant = Restaurant(name=restaurant_name, slug=slug, is_active=True)
        db.session.add(restaurant)
        db.session.commit()
        click.echo(f"PASS Created restaurant: {restaurant.name} (ID: {restaurant.id}, slug: {slug})")
    else:
        click.echo(f"PASS Using existing restaurant: {restaurant.name} (ID: {restaurant.id})")

    for number in range(1, 6):
        if not db.session.query(DiningTable).filter_by(restaurant_id=restaurant.id, number=number).first():
            db.session.add(DiningTable(restaurant_id=restaurant.id, number=number))
    db.session.commit()

    for role in ("owner", "kitchen"):
        email = f"{role}@{slug}.local"
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP User exists: {email}")
            continue
        create_user(email, DEFAULT_PASSWORD, restaurant_id=restaurant.id, role=role, full_name=role.title())
        click.echo(f"PASS Created user: {email} ({role})")

    if subscription_service.get_subscription(restaurant.id) is None:
        subscription = subscription_service.start_trial(
            restaurant.id, trial_days=current_app.config["TRIAL_DAYS"]
        )
        click.echo(f"PASS Trial started until {subscription.trial_ends_at:%Y-%m-%d}")

    click.echo("\nDONE Default password for created users: " + DEFAULT_PASSWORD)


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


@click.group('restaurants')
def restaurants_group():
    """Restaurant (tenant) management commands."""


@restaurants_group.command('list')
@with_appcontext
def list_restaurants():
    """List all restaurants with their subscription status."""
    restaurants = db.session.query(Restaurant).order_by(Restaurant.id).all()

    if not restaurants:
        click.echo("No restaurants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<28} {'Slug':<18} {'Active':<8} {'Subscription'}")
    click.echo("="*80)

    for r in restaurants:
        sub = r.subscription
        sub_str = f"{sub.plan}/{sub.status}" if sub else "-"
        active_str = "Yes" if r.is_active else f"No ({r.suspension_reason or 'manual'})"
        click.echo(f"{r.id:<5} {r.name:<28} {r.slug:<18} {active_str:<8} {sub_str}")

    click.echo("="*80 + "\n")


@restaurants_group.command('create')
@click.option('--name', required=True, help='Restaurant name')
@click.option('--slug', required=True, help='Public slug (unique)')
@click.option('--email', default=None, help='Contact email')
@click.option('--plan', type=click.Choice(list(PLAN_CONFIGS)), default='starter', help='Trial plan')
@with_appcontext
def create_restaurant_cli(name, slug, email, plan):
    """Create a restaurant and start its trial."""
    if db.session.query(Restaurant).filter_by(slug=slug).first():
        click.echo(f"FAIL Restaurant with slug '{slug}' already exists")
        return

    restaurant = Restaurant(name=name, slug=slug, email=email, is_active=True)
    db.session.add(restaurant)
    db.session.commit()

    try:
        subscription_service.start_trial(
            restaurant.id, plan=plan, trial_days=current_app.config["TRIAL_DAYS"]
        )
    except SubscriptionError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created restaurant: {restaurant.name} (ID: {restaurant.id}, slug: {slug})")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--restaurant-id', type=int, required=True, help='Restaurant ID')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(STAFF_ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(restaurant_id, email, password, role, full_name):
    """Create a staff user."""
    try:
        user = create_user(email, password, restaurant_id=restaurant_id, role=role, full_name=full_name)
    except (ValueError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('create-superadmin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_superadmin_cli(email, password):
    """Create a platform superadmin (no restaurant)."""
    try:
        user = create_user(email, password, role="owner", is_superadmin=True, full_name="Superadmin")
    except (ValueError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created superadmin: {user.email} (ID: {user.id})")


@click.group('jobs')
def jobs_group():
    """Run scheduled jobs in-process."""


@jobs_group.command('list')
def list_jobs():
    for name in jobs.JOBS:
        click.echo(name)


@jobs_group.command('run')
@click.argument('name', type=click.Choice(list(jobs.JOBS)))
@with_appcontext
def run_job_cli(name):
    """Run one job with the configured thresholds and print its summary."""
    settings = SweeperSettings.from_config(current_app.config)
    summary = jobs.run_job(name, settings, get_publisher())
    click.echo(json.dumps(summary, indent=2, default=str))


@click.group('logs')
def logs_group():
    """Audit trail inspection."""


@logs_group.command('stats')
@with_appcontext
def log_stats():
    stats = log_service.get_log_stats()
    click.echo(f"Total: {stats['total']} (last 24h: {stats['last_24h']})")
    for level, count in stats["by_level"].items():
        click.echo(f"  {level:<9} {count}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(restaurants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(jobs_group)
    app.cli.add_command(logs_group)
