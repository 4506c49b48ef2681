"""Indexing service - orchestrates the incremental vault indexing run.

Coordinates: discover → detect changes → delete → (read → extract → chunk →
embed → upsert) → persist version record.

Architecture:
- Deletes (deleted paths, rename sources) run first, in fixed-size groups
- Files processed in sequential batches; up to `concurrency` files in flight per batch
- A file's failure at any stage is recorded and never cancels its siblings
- Cancellation is honoured between batches only, so no file is half-upserted
- The version record reflects only what actually reached the vector store
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import pydantic

from vault_index.clients import GitFacade, create_embedding_client
from vault_index.clients.protocols import EmbeddingClient, VectorStore
from vault_index.clients.qdrant import QdrantClient
from vault_index.errors import (
    ChunkingError,
    EmbeddingError,
    ReadError,
    StorageError,
    VaultIndexError,
    VersionPersistError,
)
from vault_index.paths import version_file_path
from vault_index.repositories.vector_store import QdrantVectorStore
from vault_index.repositories.version_store import VersionStore
from vault_index.schemas.changes import ChangeSet, IndexingStatus
from vault_index.schemas.config import IndexerConfig, VaultIndexConfig
from vault_index.schemas.discovery import DiscoveryResult, FileRecord
from vault_index.schemas.indexing import (
    FileProcessingError,
    IndexingProgress,
    IndexRunResult,
    ProgressCallback,
    RunState,
)
from vault_index.schemas.vectors import VectorPoint
from vault_index.schemas.version import VersionRecord
from vault_index.services.changes import ChangeDetector
from vault_index.services.chunking import ChunkingEngine
from vault_index.services.discovery import FileDiscovery
from vault_index.services.extraction import LinkTagExtractor
from vault_index.services.frontmatter import parse_frontmatter

__all__ = [
    'IndexingService',
    'create_indexing_service',
]

logger = logging.getLogger(__name__)

# Per-file failures the run records and survives
_FILE_ERRORS = (ReadError, ChunkingError, EmbeddingError, StorageError)

# Whether a file's existing chunks must be removed before upserting
type _ReplacePolicy = Callable[[str], bool]


@dataclass
class _RunTally:
    """Results shared by the file pipelines of one run.

    Mutated only under `lock`.
    """

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    processed: set[str] = field(default_factory=set)
    removed: set[str] = field(default_factory=set)
    errors: list[FileProcessingError] = field(default_factory=list)
    failed_files: set[str] = field(default_factory=set)
    chunks_upserted: int = 0
    chunks_removed: int = 0

    async def record_file(self, path: str, chunks_written: int, chunks_removed: int) -> None:
        async with self.lock:
            self.processed.add(path)
            self.chunks_upserted += chunks_written
            self.chunks_removed += chunks_removed

    async def record_removal(self, path: str, chunks_removed: int) -> None:
        async with self.lock:
            self.removed.add(path)
            self.chunks_removed += chunks_removed

    async def record_error(self, path: str, error: VaultIndexError) -> None:
        async with self.lock:
            self.failed_files.add(path)
            self.errors.append(_file_error(path, error))


class IndexingService:
    """Orchestrates one vault's indexing runs.

    Coordinates discovery, change detection, chunking, embedding, and storage with:
    - Incremental runs driven by the version record
    - Bounded per-batch concurrency
    - Progress reporting via callbacks
    - Error collection per file, categorized by kind
    """

    def __init__(
        self,
        *,
        discovery: FileDiscovery,
        detector: ChangeDetector,
        version_store: VersionStore,
        vector_store: VectorStore,
        embedding_client: EmbeddingClient,
        chunker: ChunkingEngine,
        extractor: LinkTagExtractor,
        config: IndexerConfig,
    ) -> None:
        self._discovery = discovery
        self._detector = detector
        self._version_store = version_store
        self._vector_store = vector_store
        self._embedder = embedding_client
        self._chunker = chunker
        self._extractor = extractor
        self._config = config
        self._state: RunState = 'idle'

    @property
    def state(self) -> RunState:
        """Current run state. Observable while a run is in progress."""
        return self._state

    @property
    def config(self) -> IndexerConfig:
        return self._config

    async def run(
        self,
        *,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexRunResult:
        """Bring the vector store and version record up to date with the vault.

        Args:
            dry_run: Compute the change set and plan only. No vector store or version file writes.
            cancel_event: When set, batches not yet started are skipped. Completed work is still persisted.
            on_progress: Called after each batch.

        Returns:
            Run outcome. Per-file failures are in `errors`; the run still succeeds partially.

        Raises:
            DiscoveryError: Vault root missing or unreadable.
        """
        started = time.perf_counter()
        self._state = 'detecting_changes'
        try:
            snapshot = await asyncio.to_thread(self._discovery.discover)
        except VaultIndexError:
            self._state = 'failed'
            raise
        prior = await asyncio.to_thread(self._version_store.load)
        changes = self._plan(await self._detector.detect(snapshot, prior), snapshot, prior)

        if changes.is_empty and not changes.needs_full_reindex:
            self._state = 'no_changes'
            logger.info(f'[RUN] No changes in {self._discovery.root}')
            self._state = 'done'
            return IndexRunResult(
                state='done',
                processed_count=0,
                attempted_count=0,
                total_documents=prior.total_documents if prior is not None else 0,
                total_chunks=prior.total_chunks if prior is not None else 0,
                dry_run=dry_run,
                elapsed_seconds=time.perf_counter() - started,
            )

        to_index = list(changes.paths_to_index)
        to_remove = list(changes.paths_to_remove)
        if dry_run:
            logger.info(
                f'[RUN] Dry run: would index {len(to_index)} files and remove {len(to_remove)} sources '
                f'({changes.source})'
            )
            self._state = 'done'
            return IndexRunResult(
                state='done',
                processed_count=0,
                attempted_count=len(to_index),
                changes_summary=changes.summary(),
                total_documents=prior.total_documents if prior is not None else 0,
                total_chunks=prior.total_chunks if prior is not None else 0,
                full_reindex=changes.needs_full_reindex,
                dry_run=True,
                elapsed_seconds=time.perf_counter() - started,
            )

        self._state = 'processing_changes'
        logger.info(
            f'[RUN] Indexing {len(to_index)} files, removing {len(to_remove)} sources '
            f'({changes.source}{", full reindex" if changes.needs_full_reindex else ""})'
        )
        await self._initialize_store()

        tally = _RunTally()
        cancelled = await self._remove_sources(to_remove, tally, cancel_event)
        if not cancelled:
            # Fresh paths have no prior chunks; everything else is replaced
            fresh = set() if changes.needs_full_reindex else set(changes.added)
            records = snapshot.by_path()
            cancelled = await self._process_batches(
                [records[p] for p in to_index],
                tally,
                replace=lambda path: path not in fresh,
                cancel_event=cancel_event,
                on_progress=on_progress,
                started=started,
            )

        if tally.errors:
            self._state = 'partially_failed'
            logger.warning(f'[RUN] {len(tally.errors)} failures, persisting what succeeded')

        revision = changes.current_revision
        if tally.errors or cancelled:
            # A clean tree at HEAD would otherwise hide failed and skipped files from the next run
            revision = prior.last_indexed_revision if prior is not None else ''
        record = _next_record(prior, snapshot, tally, revision)
        self._state = 'persisting_version'
        errors = list(tally.errors)
        version_saved = True
        try:
            await asyncio.to_thread(self._version_store.save, record)
        except VersionPersistError as e:
            logger.error(f'[RUN] Version record not saved: {e}')
            errors.append(_file_error(str(self._version_store.path), e, recoverable=False))
            version_saved = False

        final_state: RunState = 'failed' if not version_saved else 'partially_failed' if tally.errors else 'done'
        self._state = final_state
        result = IndexRunResult(
            state=final_state,
            processed_count=len(tally.processed),
            attempted_count=len(tally.processed) + len(tally.failed_files & set(to_index)),
            errors=errors,
            changes_summary=changes.summary(),
            chunks_upserted=tally.chunks_upserted,
            sources_deleted=len(tally.removed),
            total_documents=record.total_documents,
            total_chunks=record.total_chunks,
            version_saved=version_saved,
            full_reindex=changes.needs_full_reindex,
            cancelled=cancelled,
            elapsed_seconds=time.perf_counter() - started,
        )
        logger.info(
            f'[RUN] {result.state}: {result.processed_count}/{result.attempted_count} files, '
            f'{result.chunks_upserted} chunks upserted, {result.sources_deleted} sources removed, '
            f'{len(result.errors)} errors in {result.elapsed_seconds:.1f}s'
        )
        return result

    async def index_files(self, relative_paths: Sequence[str]) -> IndexRunResult:
        """Re-index specific files without touching the version record.

        Paths that are not indexable files of the vault are reported as read errors.
        """
        started = time.perf_counter()
        snapshot = await asyncio.to_thread(self._discovery.discover)
        records = snapshot.by_path()
        tally = _RunTally()

        known: list[FileRecord] = []
        for path in dict.fromkeys(relative_paths):
            if path in records:
                known.append(records[path])
            else:
                await tally.record_error(path, ReadError(f'{path} is not an indexable file in the vault'))

        await self._initialize_store()
        await self._process_batches(known, tally, replace=lambda _: True, cancel_event=None, on_progress=None)
        return IndexRunResult(
            state='partially_failed' if tally.errors else 'done',
            processed_count=len(tally.processed),
            attempted_count=len(dict.fromkeys(relative_paths)),
            errors=tally.errors,
            chunks_upserted=tally.chunks_upserted,
            elapsed_seconds=time.perf_counter() - started,
        )

    async def status(self) -> IndexingStatus:
        """What a run would do now. Read-only."""
        snapshot = await asyncio.to_thread(self._discovery.discover)
        prior = await asyncio.to_thread(self._version_store.load)
        return await self._detector.indexing_status(snapshot, prior, self._config)

    async def close(self) -> None:
        await self._embedder.close()
        await self._vector_store.close()

    def _plan(self, changes: ChangeSet, snapshot: DiscoveryResult, prior: VersionRecord | None) -> ChangeSet:
        """Upgrade to a full reindex when forced or when too much changed."""
        if changes.needs_full_reindex or prior is None:
            return changes
        if self._config.force_full_reindex:
            logger.info('[RUN] Full reindex forced')
        elif changes.change_count > self._config.max_changed_files:
            logger.info(
                f'[RUN] {changes.change_count} changes exceed {self._config.max_changed_files}, reindexing everything'
            )
        else:
            return changes

        current = {r.relative_path for r in snapshot.records}
        previous = set(prior.file_hashes)
        return ChangeSet(
            added=sorted(current - previous),
            modified=sorted(current & previous),
            deleted=sorted(previous - current),
            needs_full_reindex=True,
            source='forced',
            current_revision=changes.current_revision,
        )

    async def _initialize_store(self) -> None:
        try:
            await self._vector_store.initialize()
        except StorageError as e:
            # Every upsert will fail and be recorded per file
            logger.warning(f'[RUN] Vector store initialization failed: {e}')

    async def _remove_sources(
        self,
        paths: Sequence[str],
        tally: _RunTally,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Delete chunks of removed sources in groups. Returns True if cancelled."""
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def remove(path: str) -> None:
            async with semaphore:
                try:
                    removed = await self._vector_store.delete_by_source(path)
                except StorageError as e:
                    logger.warning(f'[DELETE] Failed {path}: {e}')
                    await tally.record_error(path, e)
                    return
                await tally.record_removal(path, removed)

        for group in _batched(paths, self._config.delete_batch_size):
            if cancel_event is not None and cancel_event.is_set():
                logger.info('[RUN] Cancelled during deletes')
                return True
            await asyncio.gather(*(remove(path) for path in group))
        if paths:
            logger.info(f'[DELETE] Removed {len(tally.removed)}/{len(paths)} sources')
        return False

    async def _process_batches(
        self,
        records: Sequence[FileRecord],
        tally: _RunTally,
        *,
        replace: _ReplacePolicy,
        cancel_event: asyncio.Event | None,
        on_progress: ProgressCallback | None,
        started: float | None = None,
    ) -> bool:
        """Run file pipelines batch by batch. Returns True if cancelled."""
        started = started if started is not None else time.perf_counter()
        batches = list(_batched(records, self._config.batch_size))
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def process(record: FileRecord) -> None:
            async with semaphore:
                path = record.relative_path
                try:
                    written, removed = await self._index_file(record, replace=replace(path))
                except _FILE_ERRORS as e:
                    logger.warning(f'[RUN] Failed {path}: {type(e).__name__}: {e}')
                    await tally.record_error(path, e)
                    return
                await tally.record_file(path, written, removed)

        for index, batch in enumerate(batches, start=1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f'[RUN] Cancelled before batch {index}/{len(batches)}')
                return True
            await asyncio.gather(*(process(record) for record in batch))
            logger.debug(f'[RUN] Batch {index}/{len(batches)} done')
            if on_progress is not None:
                on_progress(
                    IndexingProgress(
                        state=self._state,
                        batch_index=index,
                        batch_count=len(batches),
                        files_total=len(records),
                        files_processed=len(tally.processed),
                        files_failed=len(tally.failed_files),
                        chunks_upserted=tally.chunks_upserted,
                        elapsed_seconds=time.perf_counter() - started,
                    )
                )
        return False

    async def _index_file(self, record: FileRecord, *, replace: bool) -> tuple[int, int]:
        """Read, chunk, embed and store one file.

        Returns:
            (chunks written, prior chunks removed).
        """
        path = record.relative_path
        text = await asyncio.to_thread(_read_text, Path(record.absolute_path))
        frontmatter = parse_frontmatter(text)
        extraction = self._extractor.extract(text)
        chunks = await asyncio.to_thread(
            self._chunker.chunk, text, path, extraction=extraction, frontmatter=frontmatter
        )

        vectors = await self._embedder.embed([chunk.text for chunk in chunks]) if chunks else []
        if len(vectors) != len(chunks):
            raise EmbeddingError(f'Expected {len(chunks)} embeddings for {path}, got {len(vectors)}')
        try:
            points = [VectorPoint.from_chunk(chunk, vector) for chunk, vector in zip(chunks, vectors, strict=True)]
        except pydantic.ValidationError as e:
            raise EmbeddingError(f'Unusable embedding for {path}: {e.error_count()} invalid values') from e

        # Shrinking files would otherwise leave stale chunks past the new end
        removed = await self._vector_store.delete_by_source(path) if replace else 0
        written = await self._vector_store.upsert_many(points) if points else 0
        logger.debug(f'[UPSERT] {path}: {written} chunks')
        return written, removed


async def create_indexing_service(
    config: VaultIndexConfig,
    vault_root: Path,
    *,
    embedding_client: EmbeddingClient | None = None,
    vector_store: VectorStore | None = None,
) -> IndexingService:
    """Factory function to create IndexingService with default dependencies.

    Must be called from async context - ensures semaphores are bound correctly.

    Args:
        config: Full configuration for the vault.
        vault_root: Root directory of the vault.
        embedding_client: Override for the configured HTTP embedding client.
        vector_store: Override for the configured Qdrant store.

    Returns:
        Configured IndexingService.
    """
    vault_root = vault_root.expanduser().absolute()
    database_dir = Path(config.database_dir).expanduser() if config.database_dir else None

    if embedding_client is None:
        embedding_client = create_embedding_client(config.embedding)
    if vector_store is None:
        vector_store = QdrantVectorStore(
            QdrantClient.from_config(config.qdrant),
            config.qdrant.collection_name,
            config.embedding.dimensions,
        )

    return IndexingService(
        discovery=FileDiscovery(vault_root, config.discovery),
        detector=ChangeDetector(vault_root, GitFacade(vault_root)),
        version_store=VersionStore(version_file_path(vault_root, database_dir)),
        vector_store=vector_store,
        embedding_client=embedding_client,
        chunker=ChunkingEngine(config.chunking),
        extractor=LinkTagExtractor(),
        config=config.indexer,
    )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise ReadError(f'{type(e).__name__}: {e}') from e


def _next_record(
    prior: VersionRecord | None,
    snapshot: DiscoveryResult,
    tally: _RunTally,
    revision: str,
) -> VersionRecord:
    """Prior entries, minus removed sources, plus files that reached the store.

    Failed files keep their prior hash (or stay absent), so the next run retries them.
    """
    hashes = dict(prior.file_hashes) if prior is not None else {}
    for path in tally.removed:
        hashes.pop(path, None)
    current = snapshot.hashes()
    for path in tally.processed:
        hashes[path] = current[path]

    if prior is None:
        # Anything removed was never counted
        total_chunks = tally.chunks_upserted
    else:
        total_chunks = max(0, prior.total_chunks + tally.chunks_upserted - tally.chunks_removed)
    return VersionRecord(
        last_indexed_revision=revision,
        indexed_at=datetime.now(UTC),
        file_hashes=hashes,
        total_documents=len(hashes),
        total_chunks=total_chunks,
    )


def _file_error(path: str, error: VaultIndexError, *, recoverable: bool = True) -> FileProcessingError:
    cause = error.__cause__
    return FileProcessingError(
        file_path=path,
        error_kind=error.kind,
        error_type=type(cause).__name__ if cause is not None else type(error).__name__,
        message=str(error),
        recoverable=recoverable,
    )


def _batched[T](items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]
