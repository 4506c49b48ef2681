"""Command line entry point.

Commands:
    index VAULT     Bring the vector store up to date with the vault
    status VAULT    Show what an index run would do, without doing it

Exit status is 1 when a run fails outright (vault unreadable, version record
not saved). Per-file failures are reported but do not change the exit status.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

import rich.console
import rich.panel
import rich.table
import typer

from vault_index.errors import VaultIndexError
from vault_index.paths import CONFIG_PATH, version_file_path
from vault_index.repositories.version_store import VersionStore
from vault_index.schemas.changes import IndexingStatus
from vault_index.schemas.config import VaultIndexConfig, load_config
from vault_index.schemas.indexing import IndexingProgress, IndexRunResult
from vault_index.services.indexing import create_indexing_service

__all__ = [
    'app',
    'main',
]

logger = logging.getLogger(__name__)

app = typer.Typer(help='Incremental vault indexer.', add_completion=False)


@app.callback()
def _app_main(verbose: bool = typer.Option(False, '--verbose', '-v', help='Debug logging')) -> None:
    """Configure logging before any command."""
    _configure_logging(logging.DEBUG if verbose else logging.INFO)


@app.command('index')
def cli_index(
    vault: Path = typer.Argument(..., help='Vault root directory'),
    config_path: Path = typer.Option(CONFIG_PATH, '--config', help='Config JSON file'),
    dry_run: bool = typer.Option(False, '--dry-run', help='Compute changes only; write nothing'),
    full: bool = typer.Option(False, '--full', help='Reindex every file'),
    files: str | None = typer.Option(None, '--files', help='Comma-separated relative paths to reindex'),
    batch_size: int | None = typer.Option(None, '--batch-size', min=1, help='Files per batch'),
    concurrency: int | None = typer.Option(None, '--concurrency', min=1, help='Files in flight per batch'),
    as_json: bool = typer.Option(False, '--json', help='Print the result as JSON'),
) -> None:
    """Index new, modified, renamed and deleted files."""
    config = _load(config_path)
    overrides: dict[str, object] = {}
    if full:
        overrides['force_full_reindex'] = True
    if batch_size is not None:
        overrides['batch_size'] = batch_size
    if concurrency is not None:
        overrides['concurrency'] = concurrency
    if overrides:
        config = config.model_copy(update={'indexer': config.indexer.model_copy(update=overrides)})

    paths = [p.strip() for p in files.split(',') if p.strip()] if files else None
    try:
        result = asyncio.run(_index(config, vault, dry_run=dry_run, paths=paths))
    except VaultIndexError as e:
        _error(f'{type(e).__name__}: {e}')
        raise SystemExit(1) from e

    if as_json:
        print(json.dumps(result.model_dump(mode='json'), indent=2))
    else:
        _print_result(result)
    if not result.succeeded:
        raise SystemExit(1)


@app.command('status')
def cli_status(
    vault: Path = typer.Argument(..., help='Vault root directory'),
    config_path: Path = typer.Option(CONFIG_PATH, '--config', help='Config JSON file'),
    as_json: bool = typer.Option(False, '--json', help='Print the status as JSON'),
) -> None:
    """Show pending changes and the version record. Read-only."""
    config = _load(config_path)
    try:
        status = asyncio.run(_status(config, vault))
    except VaultIndexError as e:
        _error(f'{type(e).__name__}: {e}')
        raise SystemExit(1) from e

    database_dir = Path(config.database_dir).expanduser() if config.database_dir else None
    record = VersionStore(version_file_path(vault.expanduser().absolute(), database_dir)).load()
    if as_json:
        payload = {
            'status': status.model_dump(mode='json'),
            'version': record.model_dump(mode='json', by_alias=True) if record is not None else None,
        }
        print(json.dumps(payload, indent=2))
        return

    _print_status(status)
    if record is not None:
        rich.console.Console().print(
            f'Last indexed {record.indexed_at:%Y-%m-%d %H:%M:%S}: '
            f'{record.total_documents} documents, {record.total_chunks} chunks'
        )


def main() -> None:
    app()


async def _index(
    config: VaultIndexConfig,
    vault: Path,
    *,
    dry_run: bool,
    paths: Sequence[str] | None,
) -> IndexRunResult:
    service = await create_indexing_service(config, vault)
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    # First Ctrl-C finishes the current batch and persists; the second one kills
    loop.add_signal_handler(signal.SIGINT, _cancel, cancel_event, loop)
    try:
        if paths is not None:
            return await service.index_files(paths)
        return await service.run(dry_run=dry_run, cancel_event=cancel_event, on_progress=_log_progress)
    finally:
        loop.remove_signal_handler(signal.SIGINT)
        await service.close()


async def _status(config: VaultIndexConfig, vault: Path) -> IndexingStatus:
    service = await create_indexing_service(config, vault)
    try:
        return await service.status()
    finally:
        await service.close()


def _cancel(cancel_event: asyncio.Event, loop: asyncio.AbstractEventLoop) -> None:
    logger.warning('[RUN] Interrupted, finishing the current batch')
    cancel_event.set()
    loop.remove_signal_handler(signal.SIGINT)


def _log_progress(progress: IndexingProgress) -> None:
    logger.info(
        f'[RUN] Batch {progress.batch_index}/{progress.batch_count}: '
        f'{progress.files_processed + progress.files_failed}/{progress.files_total} files '
        f'({progress.percent_complete:.0f}%), {progress.chunks_upserted} chunks'
    )


def _load(config_path: Path) -> VaultIndexConfig:
    try:
        return load_config(config_path)
    except ValueError as e:
        _error(str(e))
        raise SystemExit(1) from e


def _print_result(result: IndexRunResult) -> None:
    console = rich.console.Console()
    table = rich.table.Table(title='Index run', show_header=False)
    table.add_column('Field', style='bold')
    table.add_column('Value')
    summary = result.changes_summary
    table.add_row('State', result.state + (' (dry run)' if result.dry_run else ''))
    table.add_row('Added', str(summary.added))
    table.add_row('Modified', str(summary.modified))
    table.add_row('Deleted', str(summary.deleted))
    table.add_row('Renamed', str(summary.renamed))
    table.add_row('Processed', f'{result.processed_count}/{result.attempted_count}')
    table.add_row('Chunks upserted', str(result.chunks_upserted))
    table.add_row('Sources removed', str(result.sources_deleted))
    table.add_row('Documents', str(result.total_documents))
    table.add_row('Chunks', str(result.total_chunks))
    if result.cancelled:
        table.add_row('Cancelled', 'yes')
    table.add_row('Elapsed', f'{result.elapsed_seconds:.1f}s')
    console.print(table)

    if not result.errors:
        return
    errors = rich.table.Table(title=f'{len(result.errors)} errors')
    errors.add_column('File')
    errors.add_column('Kind')
    errors.add_column('Reason')
    for err in result.errors:
        errors.add_row(err.file_path, err.error_kind, err.reason)
    console.print(errors)
    for category in result.errors_by_category():
        console.print(f'[bold]{category.error_kind}[/bold] ({category.count}): {category.action}')


def _print_status(status: IndexingStatus) -> None:
    table = rich.table.Table(title='Index status', show_header=False)
    table.add_column('Field', style='bold')
    table.add_column('Value')
    table.add_row('Recommendation', status.recommendation)
    table.add_row('Reason', status.reason)
    table.add_row('Added', str(status.changes.added))
    table.add_row('Modified', str(status.changes.modified))
    table.add_row('Deleted', str(status.changes.deleted))
    table.add_row('Renamed', str(status.changes.renamed))
    table.add_row('Git repository', 'yes' if status.is_repository else 'no')
    table.add_row('Current revision', status.current_revision or '-')
    table.add_row('Last indexed revision', status.last_indexed_revision or '-')
    rich.console.Console().print(table)


def _error(message: str) -> None:
    console = rich.console.Console(stderr=True)
    console.print(rich.panel.Panel(message, border_style='red', title='Error', title_align='left'))


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S',
        stream=sys.stderr,
    )
    # Silence noisy third-party loggers
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('git').setLevel(logging.WARNING)
