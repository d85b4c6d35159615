"""Command-line interface for tiered event photo storage."""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from event_photo_storage.archiver import JsonPhotoSource
from event_photo_storage.config import Settings, get_settings
from event_photo_storage.exceptions import AllTiersFailed, ProviderUnavailable, StorageError
from event_photo_storage.factory import (
    build_accountant,
    build_adapters,
    build_archiver,
    build_router,
)
from event_photo_storage.local_store import LocalStore
from event_photo_storage.models import (
    TIER_ORDER,
    BackupJob,
    BackupStatus,
    PhotoMetadata,
    Tier,
    UploadResult,
)
from event_photo_storage.selector import select_tier
from event_photo_storage.utils import content_type_for, format_bytes, scan_photos

app = typer.Typer(
    name="event-photo-storage",
    help="Route event photos across storage tiers and back up finished events",
    add_completion=False,
)
console = Console()

STATUS_STYLES = {"good": "green", "warning": "yellow", "critical": "red"}


def setup_logging(verbose: bool, level_name: str = "INFO") -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: Enable verbose (DEBUG) logging
        level_name: Level used when not verbose
    """
    level = logging.DEBUG if verbose else logging.getLevelName(level_name.upper())
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging",
    ),
) -> None:
    """Tiered storage routing and event backup tools."""
    setup_logging(verbose, get_settings().LOG_LEVEL)


async def async_status(settings: Settings, live: bool) -> int:
    """Render the storage report.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logging.getLogger(__name__).debug(f"Configuration: {settings.safe_summary()}")
    adapters = build_adapters(settings)
    report = build_accountant(settings).report()

    table = Table(title="Storage Tiers")
    table.add_column("Tier")
    table.add_column("Provider")
    table.add_column("Used", justify="right")
    table.add_column("Capacity", justify="right")
    table.add_column("Usage", justify="right")
    table.add_column("Status")

    for tier in TIER_ORDER:
        adapter = adapters.get(tier)
        if adapter is None:
            table.add_row(tier.value, "-", "-", "-", "-", "[red]unavailable[/red]")
            continue

        entry = report[tier.value]
        used, capacity = entry["used_bytes"], entry["capacity_bytes"]
        percent, health = entry["usage_percent"], entry["status"]

        if live:
            async with adapter:
                try:
                    state = await adapter.usage_snapshot()
                except StorageError as e:
                    logging.getLogger(__name__).error(f"Usage lookup failed for {tier.value}: {e}")
                    table.add_row(tier.value, adapter.provider, "?", "?", "?", "[red]error[/red]")
                    continue
            used, capacity = state.used_bytes, state.capacity_bytes
            percent, health = round(state.usage_percent, 1), state.health

        style = STATUS_STYLES[health]
        table.add_row(
            tier.value,
            adapter.provider,
            format_bytes(used),
            format_bytes(capacity),
            f"{percent}%",
            f"[{style}]{health}[/{style}]",
        )

    console.print(table)
    return 0


@app.command()
def status(
    live: bool = typer.Option(
        False,
        "--live",
        help="Ask each provider for its actual usage",
    ),
) -> None:
    """Show per-tier usage against the configured ceilings."""
    raise typer.Exit(asyncio.run(async_status(get_settings(), live)))


@app.command("select-tier")
def select_tier_command(
    size: int = typer.Option(..., "--size", min=1, help="File size in bytes"),
    premium: bool = typer.Option(False, "--premium", help="Mark the photo as premium"),
    homepage: bool = typer.Option(False, "--homepage", help="Mark the photo as a homepage photo"),
    featured: bool = typer.Option(False, "--featured", help="Mark the photo as featured"),
) -> None:
    """Show which tier and compression class a photo would get."""
    settings = get_settings()
    adapters = build_adapters(settings)
    metadata = PhotoMetadata(
        album_name="debug",
        uploader_name="cli",
        file_size_bytes=size,
        is_premium=premium,
        is_homepage=homepage,
        is_featured=featured,
    )

    decision = select_tier(metadata, build_accountant(settings).snapshot(), set(adapters))
    console.print(f"Tier: [bold]{decision.tier.value}[/bold]")
    console.print(f"Compression: [bold]{decision.compression_class.value}[/bold]")


async def async_upload(
    settings: Settings,
    directory: Path,
    metadata_template: dict[str, object],
    max_concurrent: int,
) -> int:
    """Route every photo in a directory.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger = logging.getLogger(__name__)

    try:
        photos = scan_photos(directory)
    except (FileNotFoundError, NotADirectoryError) as e:
        logger.error(f"Upload failed: {e}")
        return 1

    if not photos:
        logger.warning("No photos found to upload")
        return 0

    semaphore = asyncio.Semaphore(max_concurrent)
    results: list[tuple[Path, UploadResult | None, str | None]] = []

    async with build_router(settings) as router:

        async def upload_one(photo: Path) -> None:
            async with semaphore:
                data = await asyncio.to_thread(photo.read_bytes)
                metadata = PhotoMetadata(
                    file_size_bytes=len(data),
                    file_type=content_type_for(photo),
                    original_name=photo.name,
                    **metadata_template,
                )
                try:
                    result = await router.route(data, metadata)
                except (AllTiersFailed, ValueError) as e:
                    logger.error(f"Failed to upload {photo.name}: {e}")
                    results.append((photo, None, str(e)))
                    return
                results.append((photo, result, None))

        await asyncio.gather(*(upload_one(photo) for photo in photos))
        report = router.storage_report()

    failed = [(photo, error) for photo, result, error in results if result is None]
    per_tier = {tier: 0 for tier in Tier}
    for _, result, _ in results:
        if result is not None:
            per_tier[result.tier] += 1

    console.print("\n[bold]Upload Summary:[/bold]")
    console.print(f"  Total photos: {len(results)}")
    console.print(f"  [green]Successful: {len(results) - len(failed)}[/green]")
    console.print(f"  [red]Failed: {len(failed)}[/red]")
    for tier in TIER_ORDER:
        entry = report[tier.value]
        console.print(
            f"  {tier.value}: {per_tier[tier]} photo(s), "
            f"{format_bytes(entry['used_bytes'])} used ({entry['usage_percent']}%)"
        )

    if failed:
        console.print("\n[bold red]Failed uploads:[/bold red]")
        for photo, error in failed:
            console.print(f"  - {photo.name}: {error}")
        return 1

    return 0


@app.command()
def upload(
    directory: Path = typer.Argument(
        ...,
        help="Directory containing photos to upload",
        exists=True,
        file_okay=False,
        dir_okay=True,
        readable=True,
    ),
    event_id: str = typer.Option(..., "--event", "-e", help="Event the photos belong to"),
    album: str = typer.Option("Official", "--album", "-a", help="Album name"),
    uploader: str = typer.Option("DSLR", "--uploader", "-u", help="Uploader name"),
    premium: bool = typer.Option(False, "--premium", help="Store with premium compression"),
    max_concurrent: int = typer.Option(
        3,
        "--max-concurrent",
        "-c",
        min=1,
        max=50,
        help="Maximum number of concurrent uploads",
    ),
) -> None:
    """Upload every photo in DIRECTORY through the tiered router."""
    template: dict[str, object] = {
        "event_id": event_id,
        "album_name": album,
        "uploader_name": uploader,
        "is_premium": premium,
    }
    raise typer.Exit(asyncio.run(async_upload(get_settings(), directory, template, max_concurrent)))


def _print_progress(job: BackupJob) -> None:
    console.print(f"  Progress: {job.processed_photos}/{job.total_photos} photos processed")


async def async_backup(
    settings: Settings,
    manifest: Path,
    event_id: str,
    max_concurrent: int | None,
    delay: float | None,
) -> int:
    """Back up an event listed in a manifest.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    async with build_router(settings) as router:
        archiver = build_archiver(settings, router.adapters, JsonPhotoSource(manifest))
        if max_concurrent is not None:
            archiver.max_concurrent_uploads = max_concurrent
        if delay is not None:
            archiver.batch_delay = delay

        job = await archiver.backup_event(event_id, progress_callback=_print_progress)

    console.print("\n[bold]Backup Summary:[/bold]")
    console.print(f"  Backup ID: {job.backup_id}")
    console.print(f"  Status: {job.status.value}")

    if job.status is BackupStatus.FAILED:
        console.print(f"  [red]Error: {job.error}[/red]")
        return 1

    console.print(f"  Total photos: {job.total_photos}")
    console.print(f"  [green]Successful: {job.successful_uploads}[/green]")
    console.print(f"  [red]Failed: {job.failed_uploads}[/red]")
    if job.destination_url:
        console.print(f"  Destination: {job.destination_url}")

    if job.errors:
        console.print("\n[bold red]Failed photos:[/bold red]")
        for error in job.errors:
            console.print(f"  - {error.photo_id}: {error.error}")
        return 1

    return 0


@app.command()
def backup(
    manifest: Path = typer.Argument(
        ...,
        help="JSON file listing the event's photo records",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    event_id: str = typer.Option(..., "--event", "-e", help="Event to back up"),
    max_concurrent: int = typer.Option(
        None,
        "--max-concurrent",
        "-c",
        min=1,
        max=50,
        help="Photos uploaded per batch (defaults to BACKUP_MAX_CONCURRENT_UPLOADS)",
    ),
    delay: float = typer.Option(
        None,
        "--delay",
        min=0,
        help="Seconds between batches (defaults to BACKUP_BATCH_DELAY_SECONDS)",
    ),
) -> None:
    """Copy every photo of an event into the archival tier."""
    raise typer.Exit(
        asyncio.run(async_backup(get_settings(), manifest, event_id, max_concurrent, delay))
    )


@app.command()
def cleanup(
    days: int = typer.Option(
        None,
        "--days",
        "-d",
        min=1,
        help="Retention threshold in days (defaults to RETENTION_DAYS)",
    ),
) -> None:
    """Delete local backup files older than the retention threshold."""
    settings = get_settings()
    try:
        store = LocalStore(settings.LOCAL_BACKUP_PATH, settings.capacity_bytes(Tier.LOCAL))
    except ProviderUnavailable as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    removed = asyncio.run(store.cleanup_older_than(days or settings.RETENTION_DAYS))
    console.print(f"Removed {removed} file(s) from {store.root_dir}")


async def async_test(settings: Settings) -> int:
    adapters = build_adapters(settings)
    exit_code = 0

    for tier in TIER_ORDER:
        adapter = adapters.get(tier)
        if adapter is None:
            console.print(f"  {tier.value}: [yellow]not configured[/yellow]")
            continue
        async with adapter:
            ok = await adapter.test_connection()
        if ok:
            console.print(f"  {tier.value} ({adapter.provider}): [green]ok[/green]")
        else:
            console.print(f"  {tier.value} ({adapter.provider}): [red]failed[/red]")
            exit_code = 1

    return exit_code


@app.command()
def test() -> None:
    """Check connectivity to every configured provider."""
    raise typer.Exit(asyncio.run(async_test(get_settings())))


if __name__ == "__main__":
    app()
