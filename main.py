"""
Budgeteer Command-Line Entry Point.

Bootstraps the dependency graph via constructor injection, initialises
the local SQLite schema, and exposes the data layer as click commands.
Every subsystem is wired here; there are no module-level globals.

Usage::

    python main.py mode show
    python main.py --tenant t-1 recurrings process
    python main.py --tenant t-1 export backup.json
"""

from __future__ import annotations

import atexit
import datetime as dt
from pathlib import Path
from typing import Optional

import click

from budgeteer.config import get_config
from budgeteer.database import DatabaseManager
from budgeteer.errors import BudgeteerError
from budgeteer.logger import StructuredLogger, get_logger
from budgeteer.models.enums import StorageMode
from budgeteer.schema import initialize_schema
from budgeteer.services import ServiceContainer, create_services
from budgeteer.services.recurrence import next_occurrence_description
from budgeteer.storage.mode_validator import format_validation_report, validate_mode


@click.group()
@click.option(
    "--tenant",
    "tenant_id",
    default="default",
    envvar="BUDGETEER_TENANT",
    show_default=True,
    help="Tenant whose data the command reads and writes.",
)
@click.option(
    "--actor",
    "actor_id",
    default="cli",
    envvar="BUDGETEER_ACTOR",
    show_default=True,
    help="Actor id recorded in audit fields.",
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in StorageMode]),
    default=None,
    help="Storage mode for this run (overrides the saved preference).",
)
@click.pass_context
def cli(ctx: click.Context, tenant_id: str, actor_id: str, mode: Optional[str]) -> None:
    """Budgeteer - personal finance data layer."""
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand is None:
        return

    logger: StructuredLogger = get_logger("budgeteer.main")
    config = get_config()

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        sqlite_path=Path(config.SQLITE_PATH),
        logger=get_logger("budgeteer.database"),
    )
    # DatabaseManager.close() is idempotent; atexit covers hard exits.
    atexit.register(db.close)

    initialize_schema(db.sqlite, get_logger("budgeteer.schema"))

    requested = StorageMode(mode) if mode else None
    services = create_services(
        db,
        config,
        initial_mode=None if requested == StorageMode.DEMO else requested,
    )
    # The factory never starts in demo; enter it like an explicit switch so
    # the run gets a seeded in-memory store and nothing is persisted.
    if requested == StorageMode.DEMO:
        services["repository_factory"].switch_mode(StorageMode.DEMO, actor_id=actor_id)

    def _shutdown() -> None:
        services["repository_factory"].close()
        db.close()
        logger.info("Budgeteer shut down.")

    ctx.call_on_close(_shutdown)
    ctx.obj.update(
        config=config,
        db=db,
        services=services,
        tenant_id=tenant_id,
        actor_id=actor_id,
    )


def _services(ctx: click.Context) -> ServiceContainer:
    return ctx.obj["services"]


def _fail(ctx: click.Context, exc: BudgeteerError) -> None:
    click.echo(f"Error [{exc.code}]: {exc.message}", err=True)
    ctx.exit(1)


# ---------------------------------------------------------------------------
# mode
# ---------------------------------------------------------------------------

@cli.group()
def mode() -> None:
    """Show or change the storage mode."""


@mode.command("show")
@click.pass_context
def mode_show(ctx: click.Context) -> None:
    """Print the active mode and its readiness report."""
    factory = _services(ctx)["repository_factory"]
    click.echo(f"Active mode: {factory.mode.value}")
    report = validate_mode(factory.mode, ctx.obj["db"], ctx.obj["config"])
    click.echo(format_validation_report(report))


@mode.command("switch")
@click.argument("target", type=click.Choice([m.value for m in StorageMode]))
@click.pass_context
def mode_switch(ctx: click.Context, target: str) -> None:
    """Switch the storage mode (cloud, local or demo)."""
    factory = _services(ctx)["repository_factory"]
    result = factory.switch_mode(StorageMode(target), actor_id=ctx.obj["actor_id"])
    if not result.changed:
        click.echo(f"Already in {result.current.value} mode.")
        return
    click.echo(f"Switched {result.previous.value} -> {result.current.value}.")
    if result.warning:
        click.echo(f"Warning: {result.warning}", err=True)


# ---------------------------------------------------------------------------
# recurrings
# ---------------------------------------------------------------------------

@cli.group()
def recurrings() -> None:
    """Run or inspect the recurrence engine."""


@recurrings.command("process")
@click.option("--date", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Treat this day as today (default: now).")
@click.pass_context
def recurrings_process(ctx: click.Context, as_of: Optional[dt.datetime]) -> None:
    """Materialize every eligible due recurring."""
    engine = _services(ctx)["recurrence_engine"]
    now = as_of.replace(tzinfo=dt.timezone.utc) if as_of else dt.datetime.now(dt.timezone.utc)
    try:
        result = engine.process_due_recurrings(ctx.obj["tenant_id"], now)
    except BudgeteerError as exc:
        _fail(ctx, exc)
        return

    click.echo(
        f"Applied: {len(result.applied)}  Skipped: {len(result.skipped)}  "
        f"Failed: {len(result.failed)}"
    )
    for outcome in result.applied:
        click.echo(
            f"  + {outcome.name} ({outcome.occurrence_date}) -> next {outcome.next_occurrence_date}"
        )
    for outcome in result.skipped:
        click.echo(f"  - {outcome.name}: {outcome.reason}")
    for outcome in result.failed:
        click.echo(f"  ! {outcome.name}: {outcome.reason}", err=True)


@recurrings.command("pending")
@click.pass_context
def recurrings_pending(ctx: click.Context) -> None:
    """List due recurrings that need manual confirmation."""
    engine = _services(ctx)["recurrence_engine"]
    now = dt.datetime.now(dt.timezone.utc)
    pending = engine.list_pending_confirmation(ctx.obj["tenant_id"], now)
    if not pending:
        click.echo("Nothing awaiting confirmation.")
        return
    for item in pending:
        flag = " [overdue]" if item.is_overdue else ""
        when = next_occurrence_description(item.next_occurrence_date, now.date())
        click.echo(f"{item.recurring_id}  {item.name}  {when}{flag}  ({item.reason})")


@recurrings.command("apply")
@click.argument("recurring_id")
@click.option("--amount", type=float, default=None, help="Amount for flexible recurrings.")
@click.pass_context
def recurrings_apply(ctx: click.Context, recurring_id: str, amount: Optional[float]) -> None:
    """Confirm one pending occurrence by hand."""
    engine = _services(ctx)["recurrence_engine"]
    try:
        outcome = engine.apply_now(
            recurring_id,
            ctx.obj["tenant_id"],
            dt.datetime.now(dt.timezone.utc),
            actor_id=ctx.obj["actor_id"],
            amount=amount,
        )
    except BudgeteerError as exc:
        _fail(ctx, exc)
        return
    click.echo(f"{outcome.status.value}: {outcome.name} {outcome.reason or ''}".rstrip())


# ---------------------------------------------------------------------------
# export / import
# ---------------------------------------------------------------------------

@cli.command("export")
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--live-only", is_flag=True, help="Leave soft-deleted rows out.")
@click.pass_context
def export_cmd(ctx: click.Context, path: Path, live_only: bool) -> None:
    """Export the tenant's data to a JSON file."""
    service = _services(ctx)["export_service"]
    try:
        document = service.export_to_file(
            path, ctx.obj["tenant_id"], include_deleted=not live_only
        )
    except BudgeteerError as exc:
        _fail(ctx, exc)
        return
    for table, rows in document.tables.items():
        click.echo(f"  {table}: {len(rows)}")
    click.echo(f"Export written to {path}")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--validate-only", is_flag=True, help="Report without writing.")
@click.pass_context
def import_cmd(ctx: click.Context, path: Path, validate_only: bool) -> None:
    """Import a JSON export into the active store."""
    service = _services(ctx)["import_service"]
    try:
        summary = service.import_file(
            path,
            ctx.obj["tenant_id"],
            ctx.obj["actor_id"],
            validate_only=validate_only,
        )
    except BudgeteerError as exc:
        _fail(ctx, exc)
        return

    label = "Validation" if validate_only else "Import"
    click.echo(f"\n{label} complete:")
    click.echo(f"  Created: {summary.created}")
    click.echo(f"  Updated: {summary.updated}")
    click.echo(f"  Skipped: {summary.skipped}")
    for warning in summary.warnings:
        click.echo(f"  warning: {warning}")
    for error in summary.errors:
        click.echo(f"    {error.table}[{error.index}]: {'; '.join(error.errors)}", err=True)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
