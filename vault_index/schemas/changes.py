"""Change detection schemas.

A ChangeSet is the categorized diff between the current discovery snapshot
and the last version record. Each path appears in at most one category.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

import pydantic

from vault_index.schemas.base import StrictModel

__all__ = [
    'ChangeSet',
    'ChangeSource',
    'ChangesSummary',
    'FileChange',
    'FileStatus',
    'IndexingStatus',
    'Recommendation',
    'RenamedPath',
]

# Where a ChangeSet came from
type ChangeSource = Literal[
    'first_run',  # No prior record
    'clean',  # Revision control clean at the recorded revision
    'revision_control',  # History + working tree
    'hash_comparison',  # No revision control, full re-hash
    'fallback',  # Revision control failed, full re-hash
    'forced',  # Full reindex requested or threshold exceeded
]

type FileStatus = Literal['added', 'modified', 'deleted', 'renamed']

type Recommendation = Literal['none', 'incremental', 'full']


class FileChange(StrictModel):
    """One path-level status reported by revision control.

    Paths are relative to the repository working tree.
    """

    path: str
    status: FileStatus
    old_path: str | None = None  # Set for renames


class RenamedPath(StrictModel):
    """A deleted path and an added path with identical content."""

    from_path: str
    to_path: str


class ChangesSummary(StrictModel):
    """Per-category counts."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    renamed: int = 0

    @property
    def total(self) -> int:
        return self.added + self.modified + self.deleted + self.renamed


class ChangeSet(StrictModel):
    """Categorized changes since the last indexed state."""

    added: Sequence[str] = ()
    modified: Sequence[str] = ()
    deleted: Sequence[str] = ()
    renamed: Sequence[RenamedPath] = ()
    needs_full_reindex: bool = False
    source: ChangeSource = 'hash_comparison'
    current_revision: str = ''

    @pydantic.model_validator(mode='after')
    def _categories_disjoint(self) -> ChangeSet:
        seen: set[str] = set()
        paths = [
            *self.added,
            *self.modified,
            *self.deleted,
            *(r.from_path for r in self.renamed),
            *(r.to_path for r in self.renamed),
        ]
        for path in paths:
            if path in seen:
                raise ValueError(f'Path appears in more than one change category: {path}')
            seen.add(path)
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted or self.renamed)

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted) + len(self.renamed)

    @property
    def paths_to_index(self) -> Sequence[str]:
        """Paths whose content must be (re)embedded, in stable order."""
        return sorted([*self.added, *self.modified, *(r.to_path for r in self.renamed)])

    @property
    def paths_to_remove(self) -> Sequence[str]:
        """Sources whose chunks must be deleted from the vector store."""
        return sorted([*self.deleted, *(r.from_path for r in self.renamed)])

    def summary(self) -> ChangesSummary:
        return ChangesSummary(
            added=len(self.added),
            modified=len(self.modified),
            deleted=len(self.deleted),
            renamed=len(self.renamed),
        )


class IndexingStatus(StrictModel):
    """What an index run would do right now, without doing it."""

    recommendation: Recommendation
    reason: str
    change_count: int
    changes: ChangesSummary
    is_repository: bool
    current_revision: str = ''
    last_indexed_revision: str | None = None
    has_version_record: bool
