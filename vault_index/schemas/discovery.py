"""File discovery schemas.

A snapshot of the vault taken at the start of each run. Records are
ephemeral and recomputed on every scan.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import PurePosixPath
from typing import Literal

from vault_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'DiscoveryResult',
    'FileRecord',
    'SkipReason',
    'SkippedEntry',
]

type SkipReason = Literal['too_large', 'unreadable']


class FileRecord(StrictModel):
    """One indexable file found under the vault root."""

    relative_path: str  # POSIX separators, relative to the vault root
    absolute_path: str
    extension: str  # Lowercase, with leading dot
    size_bytes: int
    modified_at: JsonDatetime
    content_hash: str  # SHA-1 of file bytes
    is_indexable: bool = True

    @property
    def name(self) -> str:
        """File name without extension (the note title fallback)."""
        return PurePosixPath(self.relative_path).stem

    @property
    def category(self) -> str:
        """Top-level directory, or 'root' for files at the vault root."""
        parts = PurePosixPath(self.relative_path).parts
        return parts[0] if len(parts) > 1 else 'root'


class SkippedEntry(StrictModel):
    """A path discovery saw but did not turn into a record."""

    relative_path: str
    reason: SkipReason
    detail: str | None = None


class DiscoveryResult(StrictModel):
    """Snapshot of the vault at scan time."""

    root: str
    records: Sequence[FileRecord]  # Sorted by relative_path
    skipped: Sequence[SkippedEntry] = ()

    def by_path(self) -> Mapping[str, FileRecord]:
        """Index records by relative path."""
        return {record.relative_path: record for record in self.records}

    def hashes(self) -> Mapping[str, str]:
        """Map relative path to content hash."""
        return {record.relative_path: record.content_hash for record in self.records}
