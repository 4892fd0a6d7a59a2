"""CLI entry point for the Courier file transfer pipeline.

Commands:
    courier poll: move new files through the pipeline once
    courier reconcile: redrive files stuck in loading/ once
    courier run: poll and reconcile on their intervals until stopped
    courier status: files per state and recent outcomes
"""

import asyncio
import logging
import sys
from collections import Counter

import click

from courier.config import (
    AUDIT_LOG_PATH,
    OUTBOX_DIR,
    PUBLISHER,
    PUBLISHER_TOKEN,
    PUBLISHER_URL,
    SOURCE_DIRECTORIES,
    load_settings,
)
from courier.schemas.transfer import LoaderSettings, TransferOutcome, TransferRecord

logger = logging.getLogger("courier")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Courier: moves files from watched directories into an event stream."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# ------------------------------------------------------------------
# Shared setup
# ------------------------------------------------------------------


def _transfer_options(fn):
    fn = click.option(
        "--outbox-dir",
        default=OUTBOX_DIR,
        show_default=True,
        help="Outbox directory for the jsonl publisher.",
    )(fn)
    fn = click.option(
        "--publisher",
        type=click.Choice(["jsonl", "http"], case_sensitive=False),
        default=PUBLISHER,
        show_default=True,
        help="Where notifications go: jsonl outbox files or an HTTP endpoint.",
    )(fn)
    fn = click.option(
        "--sources",
        default=SOURCE_DIRECTORIES,
        show_default=True,
        help="Comma-separated base directories and channels (e.g. '/data/a=orders').",
    )(fn)
    return fn


def _load_settings_or_exit(sources: str, publisher: str) -> LoaderSettings:
    """Fail loudly if the transfer config is invalid."""
    try:
        settings = load_settings(sources)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if not settings.source_directories:
        click.echo(
            "Error: --sources is required (or set COURIER_SOURCE_DIRECTORIES).", err=True
        )
        sys.exit(1)
    if publisher == "http" and not PUBLISHER_URL:
        click.echo("Error: COURIER_PUBLISHER_URL is required for the http publisher.", err=True)
        sys.exit(1)
    return settings


def _make_publisher(kind: str, outbox_dir: str):
    if kind == "http":
        from courier.integrations.publishers import HttpPublisher

        return HttpPublisher(PUBLISHER_URL, PUBLISHER_TOKEN)

    from courier.integrations.publishers import JsonlPublisher

    return JsonlPublisher(outbox_dir)


async def _close_publisher(publisher) -> None:
    close = getattr(publisher, "close", None)
    if close is not None:
        await close()


def _build(settings: LoaderSettings, publisher):
    from courier.transfer.audit import TransferAuditLog
    from courier.transfer.notifier import NotificationPublisher
    from courier.transfer.orchestrator import TransferOrchestrator
    from courier.transfer.reconciler import StuckFileReconciler

    audit_log = TransferAuditLog(AUDIT_LOG_PATH)
    notifier = NotificationPublisher(
        publisher, settings.source_directories, error_channel=settings.error_channel
    )
    orchestrator = TransferOrchestrator(settings, notifier, audit_log=audit_log)
    reconciler = StuckFileReconciler(settings, notifier, audit_log=audit_log)
    return orchestrator, reconciler


def _count(records: list[TransferRecord]) -> Counter:
    return Counter(record.outcome for record in records)


# ------------------------------------------------------------------
# courier poll
# ------------------------------------------------------------------


@cli.command()
@_transfer_options
@click.option(
    "--stability-delay",
    type=float,
    default=None,
    help="Seconds between the two size samples (overrides config).",
)
def poll(sources: str, publisher: str, outbox_dir: str, stability_delay: float | None) -> None:
    """Move stable files from new/ through loading/ to loaded/ once."""
    settings = _load_settings_or_exit(sources, publisher)
    if stability_delay is not None:
        settings = settings.model_copy(update={"stability_delay": stability_delay})
    asyncio.run(_poll_async(settings, publisher, outbox_dir))


async def _poll_async(settings: LoaderSettings, publisher_kind: str, outbox_dir: str) -> None:
    publisher = _make_publisher(publisher_kind, outbox_dir)
    try:
        orchestrator, _reconciler = _build(settings, publisher)
        records = await orchestrator.process_new_files()
    finally:
        await _close_publisher(publisher)

    counts = _count(records)
    click.echo(
        f"Done. Files: {len(records)}, "
        f"Delivered: {counts[TransferOutcome.DELIVERED]}, "
        f"Reverted: {counts[TransferOutcome.REVERTED]}, "
        f"Stranded: {counts[TransferOutcome.STRANDED]}, "
        f"Skipped: {counts[TransferOutcome.SKIPPED]}"
    )


# ------------------------------------------------------------------
# courier reconcile
# ------------------------------------------------------------------


@cli.command()
@_transfer_options
@click.option(
    "--stuck-threshold",
    type=float,
    default=None,
    help="Seconds a file may sit in loading/ before it is redriven (overrides config).",
)
def reconcile(sources: str, publisher: str, outbox_dir: str, stuck_threshold: float | None) -> None:
    """Resend notifications for files stuck in loading/ once."""
    settings = _load_settings_or_exit(sources, publisher)
    if stuck_threshold is not None:
        settings = settings.model_copy(update={"stuck_threshold": stuck_threshold})
    asyncio.run(_reconcile_async(settings, publisher, outbox_dir))


async def _reconcile_async(settings: LoaderSettings, publisher_kind: str, outbox_dir: str) -> None:
    publisher = _make_publisher(publisher_kind, outbox_dir)
    try:
        _orchestrator, reconciler = _build(settings, publisher)
        records = await reconciler.reconcile_all()
    finally:
        await _close_publisher(publisher)

    counts = _count(records)
    click.echo(
        f"Done. Recovered: {counts[TransferOutcome.RECOVERED]}, "
        f"Pending: {counts[TransferOutcome.PENDING]}"
    )


# ------------------------------------------------------------------
# courier run
# ------------------------------------------------------------------


@cli.command()
@_transfer_options
@click.option(
    "--max-cycles",
    default=0,
    show_default=True,
    help="Stop after this many polling cycles (0=run until interrupted).",
)
def run(sources: str, publisher: str, outbox_dir: str, max_cycles: int) -> None:
    """Poll and reconcile on the configured intervals until stopped."""
    settings = _load_settings_or_exit(sources, publisher)
    click.echo(f"Watching {len(settings.source_directories)} base directory(ies) (Ctrl+C to stop)…")
    click.echo(f"  Polling every {settings.polling_interval:g}s")
    click.echo(f"  Reconciling every {settings.cleaning_interval:g}s")
    try:
        asyncio.run(_run_async(settings, publisher, outbox_dir, max_cycles))
    except KeyboardInterrupt:
        pass
    click.echo("Stopped.")


async def _run_async(
    settings: LoaderSettings, publisher_kind: str, outbox_dir: str, max_cycles: int
) -> None:
    loop = asyncio.get_running_loop()
    publisher = _make_publisher(publisher_kind, outbox_dir)
    try:
        orchestrator, reconciler = _build(settings, publisher)
        next_clean = loop.time()
        cycles = 0
        while True:
            try:
                await orchestrator.process_new_files()
                if loop.time() >= next_clean:
                    await reconciler.reconcile_all()
                    next_clean = loop.time() + settings.cleaning_interval
            except Exception:
                logger.exception("Error during transfer cycle")

            cycles += 1
            if max_cycles and cycles >= max_cycles:
                break
            await asyncio.sleep(settings.polling_interval)
    finally:
        await _close_publisher(publisher)


# ------------------------------------------------------------------
# courier status
# ------------------------------------------------------------------


@cli.command()
@click.option(
    "--sources",
    default=SOURCE_DIRECTORIES,
    show_default=True,
    help="Comma-separated base directories and channels.",
)
@click.option("--hours", default=24, show_default=True, help="Lookback period for outcomes.")
def status(sources: str, hours: int) -> None:
    """Files per lifecycle state and recent transfer outcomes."""
    from datetime import UTC, datetime, timedelta

    from courier.schemas.transfer import TransferState
    from courier.transfer.audit import TransferAuditLog
    from courier.transfer.layout import DirectoryLayout

    settings = _load_settings_or_exit(sources, "jsonl")
    audit_log = TransferAuditLog(AUDIT_LOG_PATH)
    since = datetime.now(UTC) - timedelta(hours=hours)

    click.echo("Courier Status")
    for base_directory, channel in settings.source_directories.items():
        snapshot = DirectoryLayout.for_base(base_directory, settings).snapshot()
        click.echo(f"  {base_directory} -> {channel}")
        click.echo(f"    New:       {len(snapshot[TransferState.DISCOVERED])}")
        click.echo(f"    In flight: {len(snapshot[TransferState.IN_FLIGHT])}")
        click.echo(f"    Loaded:    {len(snapshot[TransferState.DELIVERED])}")

        counts = audit_log.outcome_counts(since=since, base_directory=base_directory)
        click.echo(f"    Outcomes ({hours}h):")
        for outcome in TransferOutcome:
            click.echo(f"      {outcome.value + ':':<11}{counts[outcome]}")
