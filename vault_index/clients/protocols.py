"""Protocol definitions for external collaborators.

The indexing service depends only on these interfaces. Concrete clients
(HTTP embedding endpoint, Qdrant, git) and test fakes all satisfy them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol
from uuid import UUID

from vault_index.schemas.changes import FileChange
from vault_index.schemas.vectors import IndexInfo, SearchHit, StorageStats, VectorPoint

__all__ = [
    'EmbeddingClient',
    'RevisionControl',
    'VectorStore',
]


class EmbeddingClient(Protocol):
    """Turns texts into fixed-length vectors.

    Implementations raise EmbeddingError on provider failure.
    """

    @property
    def dimensions(self) -> int: ...

    async def initialize(self) -> None:
        """Prepare connections. Safe to call more than once."""
        ...

    async def embed(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        """Embed texts into vectors, one per input, same order."""
        ...

    async def close(self) -> None:
        """Release resources. No-op for clients without external connections."""
        ...


class VectorStore(Protocol):
    """Stores chunk vectors keyed by stable chunk id.

    Implementations raise StorageError on failure.
    """

    async def initialize(self) -> None:
        """Create the collection and payload indexes if missing."""
        ...

    async def database_exists(self) -> bool: ...

    async def upsert(self, point_id: UUID, vector: Sequence[float], metadata: Mapping[str, Any]) -> None: ...

    async def upsert_many(self, points: Sequence[VectorPoint]) -> int:
        """Upsert a batch of points. Returns the number written."""
        ...

    async def delete_by_source(self, source_file: str) -> int:
        """Remove every chunk whose source_file matches. Idempotent.

        Returns the number of chunks removed.
        """
        ...

    async def query(
        self,
        vector: Sequence[float],
        *,
        limit: int = 10,
        filters: Mapping[str, str] | None = None,
    ) -> Sequence[SearchHit]: ...

    async def get_stats(self) -> StorageStats: ...

    async def list_indices(self) -> Sequence[IndexInfo]: ...

    async def close(self) -> None: ...


class RevisionControl(Protocol):
    """Revision-control queries used for change detection.

    Paths are relative to the repository working tree. Implementations raise
    ChangeDetectionError on failure; callers treat that as "unavailable".
    """

    def is_repository(self) -> bool: ...

    @property
    def working_dir(self) -> str: ...

    def current_revision(self) -> str: ...

    def is_clean(self) -> bool: ...

    def changes_between(self, rev_a: str, rev_b: str) -> Sequence[FileChange]: ...

    def uncommitted_changes(self) -> Sequence[FileChange]: ...

    def content_hash(self, content: bytes) -> str: ...
