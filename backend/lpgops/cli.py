# Overview: Flask CLI command groups for database bootstrap and ledger maintenance.

# backend/lpgops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger maintenance:
# - python -m flask ledger reconcile [--customer-id 7] [--fix]
#   Replay the transaction log and compare with stored balances/due counters.
# - python -m flask ledger audit-cylinders
#   List cylinders with inconsistent holder bookkeeping.
# - python -m flask ledger void 42 --actor-id 1 [--reason "Entered twice"] [--b2c]
#   Void a transaction and reverse its effects.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Customer
from .services import ledger_service
from .services.b2c_transaction_service import reverse_b2c_transaction
from .services.inventory_service import audit_cylinder_holdings
from .services.transaction_service import reverse_transaction
from .validation import ConflictError, NotFoundError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


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

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Ledger reconciliation and reversal commands."""


@ledger_group.command('reconcile')
@click.option('--customer-id', type=int, help='Only this B2B customer')
@click.option('--fix', is_flag=True, help='Overwrite stored values with the replayed ones')
@click.option('--actor-id', type=int, help='User recorded as updated_by when fixing')
@with_appcontext
def reconcile(customer_id, fix, actor_id):
    """
    Replay every customer's non-voided transactions and compare the result
    with the stored balance and due counters.
    """
    if customer_id:
        customer_ids = [customer_id]
    else:
        customer_ids = [row.id for row in db.session.query(Customer.id).order_by(Customer.id).all()]

    mismatched = 0
    for cid in customer_ids:
        try:
            result = ledger_service.reconcile_customer_ledger(cid, fix=fix, actor_id=actor_id)
        except NotFoundError as e:
            raise click.ClickException(str(e))

        if result["consistent"]:
            click.echo(f"PASS Customer {cid}: consistent")
            continue

        mismatched += 1
        status = "FIXED" if result["fixed"] else "FAIL"
        click.echo(f"{status} Customer {cid}:")
        for key, diff in result["differences"].items():
            click.echo(f"   {key}: stored={diff['stored']} expected={diff['expected']}")

    click.echo(f"\n{len(customer_ids)} customer(s) checked, {mismatched} mismatched.")
    if mismatched and not fix:
        raise SystemExit(1)


@ledger_group.command('audit-cylinders')
@with_appcontext
def audit_cylinders():
    """List cylinders whose status, holder and location disagree."""
    problems = audit_cylinder_holdings()
    if not problems:
        click.echo("PASS No cylinder holder inconsistencies found.")
        return

    for entry in problems:
        cylinder = entry["cylinder"]
        click.echo(f"FAIL {cylinder['code']} ({cylinder['cylinder_type']}, {cylinder['current_status']}): {entry['problem']}")
    click.echo(f"\n{len(problems)} cylinder(s) need attention.")
    raise SystemExit(1)


@ledger_group.command('void')
@click.argument('transaction_id', type=int)
@click.option('--actor-id', type=int, required=True, help='User performing the reversal')
@click.option('--reason', help='Void reason')
@click.option('--b2c', is_flag=True, help='The id refers to a B2C transaction')
@with_appcontext
def void_transaction(transaction_id, actor_id, reason, b2c):
    """Void a transaction and reverse its ledger and inventory effects."""
    reverse = reverse_b2c_transaction if b2c else reverse_transaction
    try:
        outcome = reverse(transaction_id, actor_id=actor_id, reason=reason)
    except (NotFoundError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Voided {outcome.transaction.bill_sno}")
    for warning in outcome.warnings:
        click.echo(f"WARN {warning}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
