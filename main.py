import signal
import sys
import threading

import click
from loguru import logger

from docsync.config import SyncSettings
from docsync.errors import FatalSyncError
from docsync.index_state import load_index_state
from docsync.indexing import run_delete_document, run_index_document, run_sync
from docsync.logging_setup import configure_logging
from docsync.models import ItemOutcome
from docsync.vector_index import QdrantIndex


def _settings(**overrides) -> SyncSettings:
    try:
        settings = SyncSettings.from_env(**overrides)
    except FatalSyncError as e:
        raise click.ClickException(str(e))
    configure_logging(settings.log_level, log_file=settings.log_file)
    return settings


def _interrupt_handler(cancel: threading.Event):
    def handler(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupted: finishing items in flight, press Ctrl-C again to abort")
        cancel.set()

    return handler


def _execute(settings: SyncSettings, dry_run: bool, report_csv: str | None) -> None:
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, _interrupt_handler(cancel))
    try:
        report = run_sync(settings, dry_run=dry_run, cancel=cancel)
    except FatalSyncError as e:
        raise click.ClickException(str(e))
    finally:
        signal.signal(signal.SIGINT, previous)

    for warning in report.warnings:
        click.echo(f"  warning: {warning}")
    for line in report.summary_lines():
        click.echo(line)
    if report_csv:
        path = report.write_csv(report_csv)
        click.echo(f"Report written to {path}")
    sys.exit(report.exit_code)


def _finish(outcome: ItemOutcome) -> None:
    if not outcome.ok:
        click.echo(f"FAILED {outcome.action.value} {outcome.name}: {outcome.reason}")
        sys.exit(1)
    click.echo(
        f"{outcome.action.value} {outcome.name}: "
        f"{outcome.chunks_written} chunks written, {outcome.chunks_deleted} deleted"
    )


root_option = click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=None,
    help="Repository root folder (defaults to DOCSYNC_ROOT).",
)
report_option = click.option("--report-csv", type=click.Path(dir_okay=False), default=None,
                             help="Write one row per item to this CSV file.")


@click.group()
def cli() -> None:
    """Keep a Qdrant collection of document chunks in sync with a document repository."""


@cli.command()
@root_option
@click.option("--dry-run", is_flag=True, default=False, help="Classify only, do not touch the index.")
@report_option
@click.option("--workers", type=int, default=None, help="Items processed in parallel.")
@click.option("--cutoff-mode", type=click.Choice(["global", "per_document"]), default=None)
@click.option("--log-level", default=None)
def sync(
    root: str | None,
    dry_run: bool,
    report_csv: str | None,
    workers: int | None,
    cutoff_mode: str | None,
    log_level: str | None,
) -> None:
    """Reconcile the index with the repository."""
    settings = _settings(root=root, workers=workers, cutoff_mode=cutoff_mode, log_level=log_level)
    _execute(settings, dry_run, report_csv)


@cli.command()
@root_option
@report_option
@click.option("--log-level", default=None)
def plan(root: str | None, report_csv: str | None, log_level: str | None) -> None:
    """Show what a sync would do without changing the index."""
    settings = _settings(root=root, log_level=log_level)
    _execute(settings, True, report_csv)


@cli.command("index")
@click.argument("name")
@root_option
@click.option("--log-level", default=None)
def index_one(name: str, root: str | None, log_level: str | None) -> None:
    """Index or reindex the single document called NAME."""
    settings = _settings(root=root, log_level=log_level)
    try:
        outcome = run_index_document(settings, name)
    except FatalSyncError as e:
        raise click.ClickException(str(e))
    _finish(outcome)


@cli.command()
@click.argument("name")
@click.option("--log-level", default=None)
def delete(name: str, log_level: str | None) -> None:
    """Remove every chunk of the indexed document called NAME (or with that id)."""
    settings = _settings(log_level=log_level)
    try:
        outcome = run_delete_document(settings, name)
    except FatalSyncError as e:
        raise click.ClickException(str(e))
    _finish(outcome)


@cli.command()
@click.option("--qdrant-url", default=None)
@click.option("--collection", default=None)
def stats(qdrant_url: str | None, collection: str | None) -> None:
    """Summarize what the index currently holds."""
    settings = _settings(qdrant_url=qdrant_url, collection=collection)
    try:
        index = QdrantIndex.connect(settings.qdrant_url, settings.collection, settings.timeout)
        state = load_index_state(index, retries=settings.retries)
        points = index.describe_stats()["points"]
    except FatalSyncError as e:
        raise click.ClickException(str(e))
    except Exception as e:
        raise click.ClickException(f"Cannot read collection '{settings.collection}' at {settings.qdrant_url}: {e}")

    documents = state.documents
    click.echo(f"Collection: {settings.collection}")
    click.echo(f"Chunks: {points}")
    click.echo(f"Documents: {len(documents)}")
    click.echo(f"  without id (legacy): {sum(1 for d in documents if d.is_legacy)}")
    click.echo(f"  with inconsistent metadata: {sum(1 for d in documents if d.inconsistent)}")
    last = state.latest_synced_at.isoformat() if state.latest_synced_at else "never"
    click.echo(f"Last synced: {last}")


if __name__ == "__main__":
    cli()
