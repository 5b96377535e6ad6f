# Overview: Flask CLI command groups for inspecting the activity log, the inventory cache and closing shifts.

# backend/florapos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Activity log:
# - python -m flask activities list [--limit 20]
#   Show the current shift's activities, newest first.
# - python -m flask activities summary
#   Per-item sold / written off / delivered counters and the cash/card split.
# - python -m flask activities clear --yes
#   Empty the log without closing the shift.
#
# Inventory:
# - python -m flask inventory refresh
#   Refetch the item list from the content backend and print it.
#
# Shifts:
# - python -m flask shifts close --date 2024-05-01 --worker-id 3 [--worker-slug anna] [--cash 1500] [--comment "..."]
#   Close a shift (creates or updates the shift record, then clears the reconciled activities).

import click
from flask.cli import with_appcontext

from .services.activity_schemas import Sale, StockChange, VarietyChange, WriteOff
from .services.aggregation_service import aggregate, count_orders, split_by_payment_method
from .services.reconciliation_service import ReconciliationError
from .services.shift_schemas import ShiftKey
from .terminal import get_services
from .validation import ValidationError, to_decimal


def _describe(activity) -> str:
    if isinstance(activity, Sale):
        lines = ", ".join(f"{line.item_id} x{line.quantity}" for line in activity.items)
        return f"sale [{activity.payment_method or '?'}] {lines}"
    if isinstance(activity, WriteOff):
        return f"write-off {activity.item_id} x{activity.quantity_removed}"
    if isinstance(activity, StockChange):
        new = " (new)" if activity.is_new_item else ""
        return f"stock {activity.item_id} {activity.quantity_delta:+d}{new}"
    if isinstance(activity, VarietyChange):
        return f"variety {activity.change} {activity.variety_id}"
    return activity.kind


@click.group('activities')
def activities_group():
    """Activity log inspection commands."""


@activities_group.command('list')
@click.option('--limit', type=int, default=None, help='Show at most this many entries')
@with_appcontext
def list_activities(limit):
    """List activities, newest first."""
    activities = get_services().activity_log.read()
    if limit is not None:
        activities = activities[:limit]

    if not activities:
        click.echo("No activities recorded.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Timestamp':<28} {'Id':<38} {'Activity'}")
    click.echo("="*100)
    for activity in activities:
        click.echo(f"{activity.timestamp.isoformat(timespec='seconds'):<28} {activity.id:<38} {_describe(activity)}")
    click.echo("="*100 + "\n")


@activities_group.command('summary')
@with_appcontext
def summary():
    """Per-item counters for the current log."""
    activities = get_services().activity_log.read()
    counters = aggregate(activities)
    split = split_by_payment_method(activities)

    click.echo(f"Entries: {len(activities)}  Orders: {count_orders(activities)}")
    click.echo(f"Cash sales: {split.cash}  Card sales: {split.card}")
    if not counters:
        click.echo("No item activity.")
        return

    click.echo(f"\n{'Item':<30} {'Sold':>8} {'Written off':>12} {'Delivered':>10}")
    for item_id in sorted(counters):
        c = counters[item_id]
        click.echo(f"{item_id:<30} {c.sold:>8} {c.written_off:>12} {c.delivered:>10}")


@activities_group.command('clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear(yes):
    """Empty the activity log. Unreconciled activity is lost."""
    if not yes:
        click.confirm("WARN This discards activities not yet reconciled. Are you sure?", abort=True)
    get_services().activity_log.clear()
    click.echo("PASS Activity log cleared.")


@click.group('inventory')
def inventory_group():
    """Inventory cache commands."""


@inventory_group.command('refresh')
@with_appcontext
def refresh():
    """Refetch the item list from the content backend."""
    inventory = get_services().inventory
    if not inventory.refresh():
        raise click.ClickException(f"Inventory fetch failed: {inventory.last_error}")

    items = inventory.items
    click.echo(f"PASS Fetched {len(items)} items")
    for item in items:
        click.echo(f"  {item.id:<30} {item.name:<30} {item.on_hand_quantity:>6} @ {item.unit_price}")


@click.group('shifts')
def shifts_group():
    """Shift close commands."""


@shifts_group.command('close')
@click.option('--date', 'shift_date', type=click.DateTime(formats=['%Y-%m-%d']), required=True, help='Shift date (YYYY-MM-DD)')
@click.option('--worker-id', type=int, required=True, help='Worker ID in the content backend')
@click.option('--worker-slug', default=None, help='Worker slug')
@click.option('--cash', type=str, default=None, help='Cash total; computed from sales when omitted')
@click.option('--comment', default='', help='Shift comment')
@click.option('--refresh/--no-refresh', default=False, help='Refetch inventory before closing')
@with_appcontext
def close(shift_date, worker_id, worker_slug, cash, comment, refresh):
    """Close a shift and write its record to the content backend."""
    services = get_services()
    if refresh and not services.inventory.refresh():
        click.echo(f"WARN Inventory refresh failed, closing with cached items: {services.inventory.last_error}")

    try:
        cash_total = to_decimal(cash, "cash", minimum=0) if cash is not None else None
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="--cash")

    key = ShiftKey(date=shift_date.date(), worker_id=worker_id, worker_slug=worker_slug)
    try:
        result = services.reconciler.close_shift(
            key,
            cash=cash_total,
            comment=comment,
        )
    except ReconciliationError as e:
        raise click.ClickException(f"{e} (state: {e.state}, retryable: {e.retryable})")

    action = "Created" if result.created else "Updated"
    click.echo(f"PASS {action} shift record {result.record.document_id}")
    click.echo(f"  Cash total: {result.snapshot.cash_total}")
    click.echo(f"  Orders: {result.snapshot.orders_count}  Items: {len(result.snapshot.items)}")
    click.echo(f"  States: {' -> '.join(result.history)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(activities_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(shifts_group)
