"""Indexing run schemas.

Models for tracking run state, progress, and results. Results are returned
to the caller and never persisted.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Literal

from vault_index.errors import ErrorKind
from vault_index.schemas.base import StrictModel
from vault_index.schemas.changes import ChangesSummary

__all__ = [
    'ErrorCategory',
    'FileProcessingError',
    'IndexRunResult',
    'IndexingProgress',
    'ProgressCallback',
    'RunState',
]

# Orchestrator state machine
type RunState = Literal[
    'idle',
    'detecting_changes',
    'no_changes',
    'processing_changes',
    'partially_failed',
    'persisting_version',
    'done',
    'failed',
]


class FileProcessingError(StrictModel):
    """Single file (or delete operation) failure with actionable context."""

    file_path: str
    error_kind: ErrorKind
    error_type: str  # Exception class name, e.g. "UnicodeDecodeError"
    message: str
    recoverable: bool = True  # Retried automatically on the next run

    @property
    def reason(self) -> str:
        return f'{self.error_type}: {self.message}'


class ErrorCategory(StrictModel):
    """Errors grouped by kind with a suggested action."""

    error_kind: ErrorKind
    count: int
    action: str
    files: Sequence[str]


# Suggested fixes per error kind
_ERROR_ACTIONS: dict[ErrorKind, str] = {
    'read': 'Check file permissions and that the file is UTF-8',
    'chunking': 'Inspect the file for malformed markdown',
    'embedding': 'Check the embedding endpoint and API key, then rerun',
    'storage': 'Check that the vector store is reachable, then rerun',
    'version_persist': 'Check that the version file directory is writable, then rerun',
    'discovery': 'Check that the vault path exists and is a readable directory',
    'change_detection': 'Revision control failed; a full comparison was used',
}


class IndexRunResult(StrictModel):
    """Outcome of one indexing run."""

    state: RunState
    processed_count: int  # Files embedded and stored
    attempted_count: int  # Files the run tried to index
    errors: Sequence[FileProcessingError] = ()
    changes_summary: ChangesSummary = ChangesSummary()

    # Vector store operations
    chunks_upserted: int = 0
    sources_deleted: int = 0

    # Version record after the run
    total_documents: int = 0
    total_chunks: int = 0
    version_saved: bool = False

    # Run control
    full_reindex: bool = False
    dry_run: bool = False
    cancelled: bool = False
    elapsed_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        """True unless the run failed outright. Partial success counts."""
        return self.state != 'failed'

    @property
    def success_rate(self) -> float:
        """Fraction of attempted files processed without error."""
        return self.processed_count / self.attempted_count if self.attempted_count else 1.0

    @property
    def error_summary(self) -> str:
        """Human-readable error summary."""
        if not self.errors:
            return 'All files indexed successfully'

        grouped: dict[str, int] = {}
        for err in self.errors:
            grouped[err.error_kind] = grouped.get(err.error_kind, 0) + 1

        lines = [f'{len(self.errors)} errors:']
        for kind, count in sorted(grouped.items()):
            lines.append(f'  {kind}: {count}')
        return '\n'.join(lines)

    def errors_by_category(self) -> Sequence[ErrorCategory]:
        """Group errors with actionable guidance."""
        grouped: dict[ErrorKind, list[str]] = {}
        for err in self.errors:
            grouped.setdefault(err.error_kind, []).append(err.file_path)

        return [
            ErrorCategory(
                error_kind=kind,
                count=len(files),
                action=_ERROR_ACTIONS[kind],
                files=files,
            )
            for kind, files in grouped.items()
        ]


class IndexingProgress(StrictModel):
    """Progress update emitted after each batch."""

    state: RunState
    batch_index: int  # 1-based
    batch_count: int
    files_total: int
    files_processed: int
    files_failed: int
    chunks_upserted: int
    elapsed_seconds: float = 0.0

    @property
    def percent_complete(self) -> float:
        """Completion percentage (0-100)."""
        if self.files_total == 0:
            return 100.0
        return (self.files_processed + self.files_failed) / self.files_total * 100


# Type alias for progress callback
type ProgressCallback = Callable[[IndexingProgress], None]
