# Overview: Flask CLI command groups for bootstrap, inspection, and the daily batch.

# backend/barbercore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Insert demo services, a commission override and a recurring expense.
#
# Cash sessions:
# - python -m flask cash sessions --status OPEN --location-id 1
#   List recent cash sessions with optional filters.
#
# Daily batch:
# - python -m flask cron recurring-expenses [--date 2025-01-15]
#   Run the recurring-expense batch; --date backfills a past day (same idempotency as the HTTP trigger).
# - python -m flask cron runs [--limit 10]
#   Show recent batch runs from the idempotency ledger.

from datetime import date
from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Service
from .services import cash_register_service, commission_service, idempotency_service, installment_service
from .services import recurring_expense_service
from .services.recurring_expense_service import BatchSetupError
from .time_utils import parse_iso_date
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' for sample data.")


@system_group.command('seed-demo')
@click.option('--location-id', type=int, default=1, help='Location to seed')
@with_appcontext
def seed_demo(location_id):
    """Insert demo services, one commission override and one recurring expense."""
    if db.session.query(Service).filter_by(location_id=location_id).count():
        click.echo(f"SKIP Location {location_id} already has services.")
        return

    haircut = Service(location_id=location_id, name="Haircut", price=Decimal("50.00"),
                      commission_percentage=Decimal("40.00"), duration_minutes=30)
    beard = Service(location_id=location_id, name="Beard trim", price=Decimal("30.00"),
                    commission_percentage=Decimal("35.00"), duration_minutes=20)
    db.session.add_all([haircut, beard])
    db.session.commit()

    commission_service.set_override(professional_id=1, service_id=haircut.id, percentage="50.00")

    installment_service.create_recurring_expense(
        location_id=location_id,
        description="Shop rent",
        amount="1200.00",
        start_date=date.today().replace(day=1),
        total_installments=12,
    )

    click.echo(f"PASS Seeded location {location_id}: 2 services, 1 override, 1 recurring expense.")


@click.group('cash')
def cash_group():
    """Cash register session inspection."""


@cash_group.command('sessions')
@click.option('--location-id', type=int, help='Filter by location ID')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(location_id, status, limit):
    """
    List cash sessions.

    Example:
        flask cash sessions
        flask cash sessions --location-id 1
        flask cash sessions --status OPEN
    """
    sessions = cash_register_service.list_sessions(location_id=location_id, status=status, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Location':<10} {'Status':<8} {'Opened':<20} {'Opening':<12} {'Expected':<12} {'Difference'}")
    click.echo("="*100)
    for s in sessions:
        opened = s.opened_at.strftime('%Y-%m-%d %H:%M') if s.opened_at else '-'
        expected = str(s.expected_balance) if s.expected_balance is not None else '-'
        difference = str(s.difference) if s.difference is not None else '-'
        click.echo(
            f"{s.id:<5} {s.location_id:<10} {s.status:<8} {opened:<20} "
            f"{str(s.opening_balance):<12} {expected:<12} {difference}"
        )
    click.echo("="*100 + "\n")


@click.group('cron')
def cron_group():
    """Scheduled batch jobs."""


@cron_group.command('recurring-expenses')
@click.option('--date', 'run_date', help='Business day to backfill (YYYY-MM-DD, not after today; default today)')
@with_appcontext
def recurring_expenses_cli(run_date):
    """Run the recurring-expense batch for one day."""
    try:
        day = parse_iso_date(run_date)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--date")

    try:
        result = recurring_expense_service.run_recurring_expenses(day, trigger_source="cli")
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--date")
    except BatchSetupError as e:
        raise click.ClickException(f"{e} (run {e.run_id}, correlation {e.correlation_id})")

    if result.skipped:
        click.echo(f"SKIP {result.message} (existing run {result.existing_run_id})")
        return

    click.echo(
        f"{result.status} processed={result.processed} generated={result.generated} recovered={result.recovered} "
        f"errors={result.errors} run={result.run_id}"
    )
    for error in result.errors_list:
        click.echo(f"  FAIL config {error['id']}: {error['error']}")


@cron_group.command('runs')
@click.option('--job-type', default=recurring_expense_service.JOB_TYPE, help='Job type to show')
@click.option('--limit', type=int, default=10, help='Max runs to show')
@with_appcontext
def list_runs_cli(job_type, limit):
    """Show recent batch runs."""
    runs = idempotency_service.list_runs(job_type, limit)
    if not runs:
        click.echo("No runs found.")
        return
    for run in runs:
        click.echo(f"{run.id:<5} {run.run_date.isoformat():<12} {run.status:<8} {run.trigger_source or '-'}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(cash_group)
    app.cli.add_command(cron_group)
