"""Change detection between a discovery snapshot and the last version record.

Strategy, in order:
1. No prior record: everything is added (first run).
2. Git clean at the recorded revision: nothing changed.
3. Git available: committed changes since the recorded revision plus
   uncommitted working-tree changes, checked against content hashes.
4. Otherwise, or when git fails: full hash comparison.

Deleted/added pairs with identical content are folded into renames.
Any unexpected failure degrades to first-run behaviour: reindexing
everything is always correct, only slower.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from vault_index.clients.protocols import RevisionControl
from vault_index.errors import ChangeDetectionError
from vault_index.schemas.changes import ChangeSet, ChangeSource, FileChange, IndexingStatus, RenamedPath
from vault_index.schemas.config import IndexerConfig
from vault_index.schemas.discovery import DiscoveryResult
from vault_index.schemas.version import VersionRecord

__all__ = [
    'ChangeDetector',
    'fold_renames',
]

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Computes the ChangeSet for one vault."""

    def __init__(self, vault_root: Path, revision_control: RevisionControl | None = None) -> None:
        self._vault_root = vault_root
        self._git = revision_control

    async def detect(self, snapshot: DiscoveryResult, prior: VersionRecord | None) -> ChangeSet:
        """Classify every snapshot and prior path. Never raises."""
        if prior is None:
            logger.info(f'[CHANGES] No version record, indexing all {len(snapshot.records)} files')
            return _first_run(snapshot, await self._revision_or_empty())

        try:
            changes = await self._detect_incremental(snapshot, prior)
        except Exception as e:
            logger.warning(
                f'[CHANGES] Detection failed, reindexing everything: {type(e).__name__}: {e}',
                exc_info=True,
            )
            return _first_run(snapshot, await self._revision_or_empty())

        logger.info(
            f'[CHANGES] {changes.source}: {len(changes.added)} added, {len(changes.modified)} modified, '
            f'{len(changes.deleted)} deleted, {len(changes.renamed)} renamed'
        )
        return changes

    async def indexing_status(
        self,
        snapshot: DiscoveryResult,
        prior: VersionRecord | None,
        config: IndexerConfig,
    ) -> IndexingStatus:
        """What a run would do now. Read-only."""
        changes = await self.detect(snapshot, prior)
        is_repository = await self._is_repository()

        if prior is None:
            recommendation, reason = 'full', 'No version record found; the first run indexes every file'
        elif config.force_full_reindex:
            recommendation, reason = 'full', 'Full reindex forced by configuration'
        elif changes.change_count > config.max_changed_files:
            recommendation = 'full'
            reason = f'{changes.change_count} changed files exceed the limit of {config.max_changed_files}'
        elif changes.is_empty:
            recommendation, reason = 'none', 'Index is up to date'
        else:
            recommendation, reason = 'incremental', f'{changes.change_count} files changed since the last run'

        return IndexingStatus(
            recommendation=recommendation,
            reason=reason,
            change_count=changes.change_count,
            changes=changes.summary(),
            is_repository=is_repository,
            current_revision=changes.current_revision,
            last_indexed_revision=prior.last_indexed_revision if prior is not None else None,
            has_version_record=prior is not None,
        )

    async def _detect_incremental(self, snapshot: DiscoveryResult, prior: VersionRecord) -> ChangeSet:
        source: ChangeSource = 'hash_comparison'
        revision = ''
        git = self._git
        if git is not None and await asyncio.to_thread(git.is_repository):
            try:
                revision = await asyncio.to_thread(git.current_revision)
                changes = await self._revision_changes(git, snapshot, prior, revision)
                if changes is not None:
                    return changes
            except ChangeDetectionError as e:
                logger.warning(f'[CHANGES] Revision control failed, falling back to hash comparison: {e}')
                source = 'fallback'

        added, modified, deleted = _classify(snapshot.hashes(), prior.file_hashes, _all_paths(snapshot, prior))
        return _build(snapshot, prior, added, modified, deleted, source=source, revision=revision)

    async def _revision_changes(
        self,
        git: RevisionControl,
        snapshot: DiscoveryResult,
        prior: VersionRecord,
        revision: str,
    ) -> ChangeSet | None:
        """Changes from git history. None when the record has no revision to diff from."""
        last = prior.last_indexed_revision
        if not last:
            return None

        if last == revision and await asyncio.to_thread(git.is_clean):
            logger.debug(f'[CHANGES] Clean at {revision[:8]}, nothing to do')
            return ChangeSet(source='clean', current_revision=revision)

        committed: Sequence[FileChange] = ()
        if last != revision:
            committed = await asyncio.to_thread(git.changes_between, last, revision)
        uncommitted = await asyncio.to_thread(git.uncommitted_changes)
        work_dir = Path(git.working_dir).resolve()

        # Git selects candidate paths; content hashes decide the category, so a
        # file modified in history and reverted in the working tree is unchanged
        candidates: set[str] = set()
        for change in [*committed, *uncommitted]:
            for repo_path in (change.path, change.old_path):
                if repo_path is not None and (path := self._rebase(work_dir, repo_path)) is not None:
                    candidates.add(path)

        current = snapshot.hashes()
        # Files git doesn't see (untracked-and-ignored, or outside history)
        candidates.update(p for p in current if p not in prior.file_hashes)
        candidates.update(p for p in prior.file_hashes if p not in current)

        added, modified, deleted = _classify(current, prior.file_hashes, candidates)
        return _build(snapshot, prior, added, modified, deleted, source='revision_control', revision=revision)

    def _rebase(self, work_dir: Path, repo_path: str) -> str | None:
        """Repository-relative path to vault-relative. None when outside the vault."""
        try:
            return (work_dir / repo_path).relative_to(self._vault_root.resolve()).as_posix()
        except ValueError:
            return None

    async def _is_repository(self) -> bool:
        if self._git is None:
            return False
        return await asyncio.to_thread(self._git.is_repository)

    async def _revision_or_empty(self) -> str:
        git = self._git
        if git is None or not await asyncio.to_thread(git.is_repository):
            return ''
        try:
            return await asyncio.to_thread(git.current_revision)
        except ChangeDetectionError as e:
            logger.debug(f'[CHANGES] No current revision: {e}')
            return ''


def fold_renames(
    added: Iterable[str],
    deleted: Iterable[str],
    added_hashes: Mapping[str, str],
    deleted_hashes: Mapping[str, str],
) -> tuple[Sequence[str], Sequence[str], Sequence[RenamedPath]]:
    """Pair deleted and added paths with identical content hashes.

    Per hash, both sides are sorted and paired in order; any surplus stays
    a plain add or delete.

    Returns:
        (remaining added, remaining deleted, renames), each sorted.
    """
    added_by_hash: dict[str, list[str]] = {}
    for path in added:
        added_by_hash.setdefault(added_hashes[path], []).append(path)
    deleted_by_hash: dict[str, list[str]] = {}
    for path in deleted:
        deleted_by_hash.setdefault(deleted_hashes[path], []).append(path)

    renamed: list[RenamedPath] = []
    paired: set[str] = set()
    for file_hash in deleted_by_hash.keys() & added_by_hash.keys():
        for from_path, to_path in zip(sorted(deleted_by_hash[file_hash]), sorted(added_by_hash[file_hash])):
            renamed.append(RenamedPath(from_path=from_path, to_path=to_path))
            paired.update((from_path, to_path))

    remaining_added = sorted(p for paths in added_by_hash.values() for p in paths if p not in paired)
    remaining_deleted = sorted(p for paths in deleted_by_hash.values() for p in paths if p not in paired)
    return remaining_added, remaining_deleted, sorted(renamed, key=lambda r: r.from_path)


def _classify(
    current: Mapping[str, str],
    prior: Mapping[str, str],
    paths: Iterable[str],
) -> tuple[list[str], list[str], list[str]]:
    """Split paths into added, modified and deleted by presence and hash. Unchanged paths are dropped."""
    added: list[str] = []
    modified: list[str] = []
    deleted: list[str] = []
    for path in paths:
        in_current = path in current
        in_prior = path in prior
        if in_current and not in_prior:
            added.append(path)
        elif in_prior and not in_current:
            deleted.append(path)
        elif in_current and current[path] != prior[path]:
            modified.append(path)
    return added, modified, deleted


def _build(
    snapshot: DiscoveryResult,
    prior: VersionRecord,
    added: Sequence[str],
    modified: Sequence[str],
    deleted: Sequence[str],
    *,
    source: ChangeSource,
    revision: str,
) -> ChangeSet:
    remaining_added, remaining_deleted, renamed = fold_renames(
        added, deleted, snapshot.hashes(), prior.file_hashes
    )
    return ChangeSet(
        added=remaining_added,
        modified=sorted(modified),
        deleted=remaining_deleted,
        renamed=renamed,
        source=source,
        current_revision=revision,
    )


def _first_run(snapshot: DiscoveryResult, revision: str) -> ChangeSet:
    return ChangeSet(
        added=sorted(r.relative_path for r in snapshot.records),
        needs_full_reindex=True,
        source='first_run',
        current_revision=revision,
    )


def _all_paths(snapshot: DiscoveryResult, prior: VersionRecord) -> set[str]:
    return {r.relative_path for r in snapshot.records} | set(prior.file_hashes)
