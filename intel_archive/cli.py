"""Intel Archive - command line manager."""

import asyncio
import json
import mimetypes
from pathlib import Path

import click

from intel_archive.config import get_settings
from intel_archive.database import get_archive_store, get_state_store
from intel_archive.logs import configure_logging
from intel_archive.models import EventCategory, SourceType
from intel_archive.services.ingestion import ScanDepth, ScanReport, ScanState, get_orchestrator
from intel_archive.services.query import TimeRange, filter_events, time_range_start


def _echo_report(report: ScanReport) -> None:
    icon = {ScanState.FAILED: "❌", ScanState.ABORTED: "⏹"}.get(report.state, "✅")
    click.echo(f"{icon} {report.message}")
    click.echo(
        f"   Pages: {report.pages} | Candidates: {report.candidates} | "
        f"New: {report.inserted} | Merged: {report.merged} | Extraction errors: {report.extraction_errors}"
    )


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    """Intel Archive - ingestion and archive manager"""
    configure_logging(log_level)


@cli.command()
@click.argument("url")
@click.option(
    "--depth",
    type=click.Choice([depth.value for depth in ScanDepth]),
    default=ScanDepth.LATEST.value,
    show_default=True,
    help="How far back to read (RESUME continues from the saved cursor)",
)
@click.option("--region", help="Focus region for extraction")
def scan(url, depth, region):
    """Scan a channel or web page and merge its events."""
    report = asyncio.run(get_orchestrator().scan_source(url, depth=ScanDepth(depth), region=region))
    _echo_report(report)
    if report.state is ScanState.FAILED:
        raise SystemExit(1)


@cli.command()
def sync():
    """Scan every monitored source once (latest page)."""
    reports = asyncio.run(get_orchestrator().sync_all())
    if not reports:
        click.echo("Nothing synced (no sources, or a sync is already running)")
    for report in reports:
        _echo_report(report)


@cli.command("ingest-text")
@click.argument("file", type=click.File("r", encoding="utf-8"))
@click.option("--region", help="Focus region for extraction")
def ingest_text(file, region):
    """Extract events from a text file ('-' for stdin) as manual intel."""
    report = asyncio.run(get_orchestrator().ingest_text(file.read(), region=region))
    _echo_report(report)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--context", default="", help="Post text or notes about the media")
@click.option("--origin-url", help="Post URL; omit for an operator upload (overrides position and count)")
def crowd(file, context, origin_url):
    """Crowd-analyze a photo or video and merge the estimate."""
    mime_type = mimetypes.guess_type(file.name)[0] or "image/jpeg"
    report = asyncio.run(
        get_orchestrator().ingest_crowd_media(file.read_bytes(), mime_type, context=context, origin_url=origin_url)
    )
    _echo_report(report)


@cli.command("crowd-channel")
@click.argument("url")
@click.option("--limit", type=int, help="Analyze at most this many posts with media")
def crowd_channel(url, limit):
    """Crowd-analyze the photos and videos of a channel's latest posts."""
    report = asyncio.run(get_orchestrator().scan_crowd_channel(url, limit=limit))
    _echo_report(report)


@cli.command("remove-source")
@click.argument("url")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def remove_source(url, yes):
    """Stop monitoring a source and purge its events."""
    url = url.strip()
    count = sum(1 for event in get_archive_store().all() if event.origin_url == url)
    if not yes:
        click.confirm(f"Remove {url} and its {count} archived events?", abort=True)
    removed = asyncio.run(get_orchestrator().remove_source(url))
    click.echo(f"✅ Removed {url} ({removed} events purged)")


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
def export(path):
    """Write the full archive to a JSON file."""
    store = get_archive_store()
    path.write_text(store.export_json(), encoding="utf-8")
    click.echo(f"✅ Exported {len(store)} events to {path}")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def import_archive(path):
    """Merge an exported archive JSON file into the archive."""
    records = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(records, list):
        raise click.ClickException("Archive file must contain a JSON array")
    result = get_archive_store().import_events(records)
    click.echo(f"✅ Imported: {result.inserted} new, {result.merged} merged")


@cli.command("list")
@click.option("--category", type=click.Choice([category.value for category in EventCategory]))
@click.option("--search", help="Search title, location and summary")
@click.option(
    "--range",
    "time_range",
    type=click.Choice([preset.value for preset in TimeRange]),
    default=TimeRange.ALL.value,
    show_default=True,
)
@click.option("--limit", type=int, default=50, show_default=True)
def list_events(category, search, time_range, limit):
    """List archived events, newest first."""
    events = filter_events(
        get_archive_store().all(),
        search=search,
        category=EventCategory(category) if category else None,
        start=time_range_start(TimeRange(time_range)),
    )
    for event in events[:limit]:
        crowd = f" | crowd {event.crowd_count}" if event.crowd_count else ""
        click.echo(
            f"{event.event_date} [{event.category.value}] {event.title} - {event.location_name} "
            f"({event.lat:.4f}, {event.lng:.4f}) rel {event.reliability_score}{crowd}"
        )
    click.echo(f"\n{len(events)} events")


@cli.group()
def sources():
    """Monitored sources."""


@sources.command("list")
def sources_list():
    """Show monitored sources and their cursors."""
    state = get_state_store()
    config = state.sync_config
    metadata = state.all_metadata()

    click.echo(f"Sync {'enabled' if config.enabled else 'disabled'}, every {config.interval_minutes} min")
    click.echo(f"Last sync: {config.last_sync_at or 'never'}")
    for source in config.monitored_sources:
        meta = metadata.get(source.url)
        details = f"{meta.total_events} events, cursor {meta.last_cursor}" if meta else "never scanned"
        click.echo(f"  • {source.url} [{source.source_type.value}] - {details}")


@sources.command("add")
@click.argument("url")
@click.option(
    "--type",
    "source_type",
    type=click.Choice([source_type.value for source_type in SourceType]),
    default=SourceType.TELEGRAM.value,
    show_default=True,
)
def sources_add(url, source_type):
    """Start monitoring a source."""
    if get_state_store().add_source(url, SourceType(source_type)):
        click.echo(f"✅ Monitoring {url.strip()}")
    else:
        click.echo(f"{url.strip()} is already monitored")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True)
@click.option("--reload", is_flag=True)
def serve(host, port, reload):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("intel_archive.main:app", host=host, port=port, reload=reload or get_settings().debug)


if __name__ == "__main__":
    cli()
