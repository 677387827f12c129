# Overview: Flask CLI command groups for sync inspection and local data maintenance.

# backend/shopos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to shopos (PowerShell: $env:FLASK_APP="shopos").
# - Use: python -m flask <group> <command> [options]
#
# Sync inspection/repair:
# - python -m flask sync status
#   Show online/eligibility state, pending and dropped operation counts.
# - python -m flask sync drain
#   Replay queued operations against the remote store now.
# - python -m flask sync dropped
#   List operations dropped after exhausting their retries.
# - python -m flask sync clear-dropped
#   Forget the dropped-operation list.
#
# Local data:
# - python -m flask local reset --yes
#   DEV/TEST only: clear the local snapshot and the operation queue.

import click
from flask import current_app
from flask.cli import with_appcontext


def _runtime():
    return current_app.extensions["shopos"]


@click.group('sync')
def sync_group():
    """Sync queue inspection and repair commands."""


@sync_group.command('status')
@with_appcontext
def sync_status():
    """Show sync status."""
    status = _runtime().engine.status()
    for key, value in status.items():
        click.echo(f"{key:22} {value}")


@sync_group.command('drain')
@with_appcontext
def sync_drain():
    """Replay queued operations now."""
    runtime = _runtime()
    if not runtime.engine.is_eligible():
        click.echo("WARN Shop is not sync-eligible (offline or legacy shop id); nothing sent")
        return

    result = runtime.engine.drain()
    if result.skipped:
        click.echo("WARN A drain is already in progress")
        return
    click.echo(f"OK {result.succeeded} succeeded, {result.failed} failed, {result.dropped} dropped")
    click.echo(f"{runtime.queue.count()} operation(s) still pending")


@sync_group.command('dropped')
@with_appcontext
def sync_dropped():
    """List operations dropped after too many failures."""
    dropped = _runtime().queue.dropped()
    if not dropped:
        click.echo("No dropped operations")
        return

    for item in dropped:
        click.echo(
            f"{item.get('dropped_at')}  {item.get('type'):26} "
            f"target={item.get('target_entity_id')}  error={item.get('last_error')}"
        )


@sync_group.command('clear-dropped')
@with_appcontext
def sync_clear_dropped():
    """Forget the dropped-operation list."""
    count = _runtime().queue.clear_dropped()
    click.echo(f"OK Cleared {count} dropped operation(s)")


@click.group('local')
def local_group():
    """Local snapshot maintenance commands."""


@local_group.command('reset')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def local_reset(yes):
    """
    DANGER: Clear the local snapshot and the pending operation queue.

    Unsynced changes are lost.
    """
    runtime = _runtime()
    pending = runtime.queue.count()
    if not yes:
        click.confirm(f"WARN This deletes local data and {pending} unsynced operation(s). Are you sure?", abort=True)

    runtime.state.clear()
    runtime.queue.clear()
    click.echo("OK Local data cleared")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(sync_group)
    app.cli.add_command(local_group)
