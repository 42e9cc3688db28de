# Overview: Flask CLI command groups for bootstrap, daily close and confirmation.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the default admin user and the cash target baseline.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Add a demo bank account, card, products and an opening balance for today.
#
# Ledger / closing balances:
# - python -m flask ledger snapshot --date 2026-01-05
#   Print the closing balance for a date (computes and caches it if missing).
# - python -m flask ledger recompute --date 2026-01-05
#   Drop and rebuild the snapshot for a date and every later stored one.
# - python -m flask ledger close-day [--date 2026-01-05]
#   Nightly job: rebuild yesterday from the ledger and seed today's snapshot.
#
# Daily confirmation:
# - python -m flask confirmations status [--date 2026-01-05]
# - python -m flask confirmations confirm --user-id 1 [--date 2026-01-05]

import click
from datetime import date
from decimal import Decimal
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import BankAccount, Card, Product, User
from .services import closing_balance_service, confirmation_service, opening_balance_service
from .time_utils import get_clock


def _echo_snapshot(snapshot) -> None:
    data = snapshot.to_dict()
    click.echo(f"DATE {data['date']} (stored: {data['stored']})")
    if not data["balances"]:
        click.echo("  (no balances)")
    for line in data["balances"]:
        ref = line.get("bank_account_id") or line.get("card_id") or ""
        click.echo(f"  {line['method']:<6} {str(ref):<4} {line['balance']:>14}")
    click.echo(f"  {'total':<11} {data['total']:>14}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='Default user name')
@with_appcontext
def init_system(username):
    """
    Initialize the back office: tables and a default user.

    Safe to run repeatedly.
    """
    click.echo("START Initializing back office...")
    db.create_all()

    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        user = User(username=username, name="Administrator", is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {user.username} (ID: {user.id})")
    else:
        click.echo(f"PASS Using existing user: {user.username} (ID: {user.id})")

    click.echo("PASS Back office initialized.")


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


@system_group.command('seed-demo')
@click.option('--cash', default='10000.00', help='Opening cash for today')
@with_appcontext
def seed_demo(cash):
    """Add demo bank account, card, products and today's opening balance."""
    user = db.session.query(User).order_by(User.id.asc()).first()
    if not user:
        raise click.ClickException("No users found. Run 'python -m flask system init' first.")

    account = db.session.query(BankAccount).filter_by(account_number="0001-DEMO").first()
    if not account:
        account = BankAccount(bank_name="Demo Bank", account_number="0001-DEMO", account_title="Shop")
        db.session.add(account)
    if not db.session.query(Card).filter_by(name="Demo Card").first():
        db.session.add(Card(name="Demo Card"))
    for name, price in (("Notebook", "120.00"), ("Pen (blue)", "25.00"), ("Marker", "60.00")):
        if not db.session.query(Product).filter_by(name=name).first():
            db.session.add(Product(name=name, sale_price=Decimal(price)))
    db.session.commit()
    click.echo("PASS Demo catalog ready.")

    try:
        opening_balance_service.set_opening_balance(
            lines=[
                {"method": "cash", "amount": cash},
                {"method": "bank", "bank_account_id": account.id, "amount": "0"},
            ],
            actor_id=user.id,
            notes="Demo opening balance",
        )
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Opening balance set for {get_clock().today().isoformat()}.")


@click.group('ledger')
def ledger_group():
    """Closing balance inspection and maintenance."""


@ledger_group.command('snapshot')
@click.option('--date', 'date_str', required=True, help='Local date (YYYY-MM-DD)')
@with_appcontext
def snapshot_cmd(date_str):
    """Print the closing balance for a date."""
    _echo_snapshot(closing_balance_service.snapshot(date.fromisoformat(date_str)))


@ledger_group.command('recompute')
@click.option('--date', 'date_str', required=True, help='Local date (YYYY-MM-DD)')
@with_appcontext
def recompute_cmd(date_str):
    """Drop and rebuild the snapshot for a date and every later one."""
    snapshot = closing_balance_service.recompute(date.fromisoformat(date_str))
    click.echo("PASS Recomputed.")
    _echo_snapshot(snapshot)


@ledger_group.command('close-day')
@click.option('--date', 'date_str', default=None, help='Business date to open (default: today)')
@with_appcontext
def close_day_cmd(date_str):
    """
    Nightly close: rebuild yesterday from the ledger and seed today.

    Schedule shortly after local midnight.
    """
    target = date.fromisoformat(date_str) if date_str else None
    yesterday, today = closing_balance_service.close_day(target)
    click.echo("PASS Closed previous day:")
    _echo_snapshot(yesterday)
    click.echo("PASS Opened:")
    _echo_snapshot(today)


@click.group('confirmations')
def confirmations_group():
    """Daily closing-balance confirmation."""


@confirmations_group.command('status')
@click.option('--date', 'date_str', default=None, help='Local date (default: today)')
@with_appcontext
def confirmation_status(date_str):
    """Show whether a date is confirmed or still needs confirmation."""
    status = confirmation_service.get_status(date_str)
    click.echo(f"DATE {status['date']}")
    click.echo(f"  confirmed:          {status['confirmed']}")
    click.echo(f"  needs confirmation: {status['needs_confirmation']}")
    if status["confirmed"]:
        click.echo(f"  confirmed by user {status['confirmed_by_user_id']} at {status['confirmed_at']}")


@confirmations_group.command('confirm')
@click.option('--user-id', required=True, type=int, help='Confirming user ID')
@click.option('--date', 'date_str', default=None, help='Local date (default: today)')
@with_appcontext
def confirm_cmd(user_id, date_str):
    """Confirm a date (idempotent)."""
    try:
        row, created = confirmation_service.confirm(date_str, actor_id=user_id)
    except LedgerError as e:
        raise click.ClickException(e.message)
    if created:
        click.echo(f"PASS Confirmed {row.confirmation_date.isoformat()}.")
    else:
        click.echo(f"PASS {row.confirmation_date.isoformat()} was already confirmed.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(confirmations_group)
