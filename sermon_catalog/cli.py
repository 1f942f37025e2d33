"""Operator CLI for the sermon catalog."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from sermon_catalog.dependencies import (
    get_catalog_service,
    get_database,
    get_ingestion_service,
    get_reconciliation_service,
    get_settings,
)
from sermon_catalog.logging_config import configure_application_logging
from sermon_catalog.repositories.page_repository import PageRepository
from sermon_catalog.repositories.subcategory_repository import SubcategoryRepository
from sermon_catalog.repositories.video_repository import MODERATION_STATUS_NEEDS_REVIEW
from sermon_catalog.repositories.youtube_quota_repository import YouTubeQuotaRepository
from sermon_catalog.services.catalog_service import CatalogServiceError
from sermon_catalog.services.ingestion_service import IngestionRunResult
from sermon_catalog.services.seed_service import (
    DEFAULT_SEED_PATH,
    SeedFileError,
    apply_seed,
    load_seed_file,
)

console = Console()


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """Sermon catalog - YouTube sermon ingestion and moderation."""
    configure_application_logging(get_settings(), component="cli", console_stream=sys.stderr)


@main.command()
@click.option("--query", "-q", help="Ad-hoc search query (uses the default API key).")
@click.option("--subcategory", "-s", help="Ingest a single subcategory from the directory.")
def ingest(query: str | None, subcategory: str | None) -> None:
    """Discover videos from YouTube and store them for review."""
    if query is not None and subcategory is not None:
        raise click.UsageError("Use either --query or --subcategory, not both.")
    for option_name, value in (("--query", query), ("--subcategory", subcategory)):
        if value is not None and not value.strip():
            raise click.UsageError(f"{option_name} must not be blank.")

    ingestion = get_ingestion_service()
    if query is not None:
        result = ingestion.run_for_query(query)
    elif subcategory is not None:
        try:
            get_catalog_service().require_subcategory(subcategory)
        except CatalogServiceError as exc:
            raise click.ClickException(str(exc)) from exc
        result = ingestion.run_for_subcategory(subcategory)
    else:
        result = ingestion.run_for_all_subcategories()

    _print_ingestion_result(result)


@main.command()
def reconcile() -> None:
    """Refresh view, like and comment counts for stored videos."""
    result = get_reconciliation_service().run_once()
    if result.skipped_reason is not None:
        console.print(f"[yellow]Reconciliation skipped:[/yellow] {result.skipped_reason}")
        return
    console.print(
        f"[green]Refreshed {result.refreshed} of {result.external_ids} videos[/green] "
        f"({result.rows_updated} rows, {result.failed_batches} failed batches)"
    )


@main.command()
@click.option(
    "--file",
    "seed_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=DEFAULT_SEED_PATH,
    show_default=False,
    help="YAML seed file (defaults to the packaged catalog seed).",
)
def seed(seed_file: Path) -> None:
    """Load page configs and the subcategory directory."""
    try:
        catalog_seed = load_seed_file(seed_file)
    except SeedFileError as exc:
        raise click.ClickException(str(exc)) from exc

    database = get_database()
    result = apply_seed(
        catalog_seed,
        page_repository=PageRepository(database),
        subcategory_repository=SubcategoryRepository(database),
    )
    console.print(
        f"[green]Seeded {result.pages} pages and {result.subcategories} subcategories[/green]"
    )


@main.command()
@click.option("--date", "date_utc", default=None, help="UTC day as YYYY-MM-DD (default: today).")
def quota(date_utc: str | None) -> None:
    """Show estimated YouTube quota usage per credential."""
    settings = get_settings()
    usage = YouTubeQuotaRepository(get_database()).list_usage(date_utc=date_utc)
    if not usage:
        console.print("[yellow]No quota recorded for that day[/yellow]")
        return

    table = Table(title=f"YouTube quota {usage[0].date_utc}")
    table.add_column("Credential")
    table.add_column("Units", justify="right")
    table.add_column("Calls", justify="right")
    for row in usage:
        style = "red" if row.units_used >= settings.youtube_daily_quota_limit else None
        table.add_row(row.credential_name, str(row.units_used), str(row.calls), style=style)
    console.print(table)


@main.group()
def videos() -> None:
    """Inspect and maintain stored videos."""


@videos.command(name="list")
@click.option("--status", default=MODERATION_STATUS_NEEDS_REVIEW, show_default=True)
@click.option("--limit", default=20, show_default=True, type=click.IntRange(min=1))
def list_videos(status: str, limit: int) -> None:
    """List videos by moderation status."""
    try:
        page = get_catalog_service().list_admin_videos(status=status, limit=limit)
    except CatalogServiceError as exc:
        raise click.ClickException(str(exc)) from exc

    if not page.items:
        console.print(f"[yellow]No videos with status {status}[/yellow]")
        return

    table = Table(title=f"{status} ({page.total} total)")
    table.add_column("ID")
    table.add_column("YouTube ID")
    table.add_column("Strategy")
    table.add_column("Views", justify="right")
    table.add_column("Title")
    for record in page.items:
        table.add_row(
            record.video_id,
            record.external_id,
            record.sort_strategy,
            str(record.view_count),
            record.title,
        )
    console.print(table)


@videos.command()
@click.option("--all", "include_all", is_flag=True, help="Delete every video, not only soft-deleted ones.")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
def purge(include_all: bool, yes: bool) -> None:
    """Hard-delete videos marked for deletion."""
    scope = "ALL videos" if include_all else "videos pending deletion"
    if not yes and not click.confirm(f"Permanently delete {scope}?"):
        console.print("[yellow]Aborted[/yellow]")
        return
    removed = get_catalog_service().purge_videos(include_all=include_all)
    console.print(f"[green]Deleted {removed} videos[/green]")


def _print_ingestion_result(result: IngestionRunResult) -> None:
    if not result.targets:
        console.print("[yellow]Nothing to ingest; seed the subcategory directory first[/yellow]")
        return

    table = Table(title=f"Ingestion {result.run_id}")
    table.add_column("Target")
    table.add_column("Credential")
    table.add_column("Upserted", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Notes")
    for target in result.targets:
        errors = [outcome.sort_strategy for outcome in target.strategies if outcome.error]
        if target.skipped_reason is not None:
            notes = f"skipped: {target.skipped_reason}"
        elif errors:
            notes = "errors: " + ", ".join(errors)
        else:
            notes = ""
        table.add_row(
            target.label,
            target.credential_name or "-",
            str(target.upserted),
            str(target.failed),
            notes,
        )
    console.print(table)
    console.print(
        f"[green]{result.upserted} upserted[/green], {result.failed} failed, "
        f"{result.skipped_targets} targets skipped"
    )


if __name__ == "__main__":
    main()
