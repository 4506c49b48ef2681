"""In-memory stand-ins for the embedding provider and vector store.

Both satisfy the protocols in vault_index.clients.protocols and support
failure injection by source file, so orchestrator tests run without a
network or a Qdrant server.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from vault_index.errors import EmbeddingError, StorageError
from vault_index.schemas.vectors import IndexInfo, SearchHit, StorageStats, VectorPoint

DIMENSIONS = 8


class FakeEmbeddingClient:
    """Deterministic vectors derived from the text hash."""

    def __init__(self, dimensions: int = DIMENSIONS) -> None:
        self._dimensions = dimensions
        self.fail_when_containing: set[str] = set()
        # Inputs containing these markers get vectors of nulls, as a broken provider might return
        self.corrupt_when_containing: set[str] = set()
        self.calls: list[Sequence[str]] = []
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0
        self.initialized = False
        self.closed = False

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def initialize(self) -> None:
        self.initialized = True

    async def embed(self, texts: Sequence[str]) -> Sequence[Sequence[float]]:
        self.calls.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for text in texts:
                for marker in self.fail_when_containing:
                    if marker in text:
                        raise EmbeddingError(f'provider rejected input containing {marker!r}')
            return [self._corrupt_vector() if self._is_corrupt(text) else self._vector(text) for text in texts]
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True

    def _is_corrupt(self, text: str) -> bool:
        return any(marker in text for marker in self.corrupt_when_containing)

    def _corrupt_vector(self) -> Sequence[float]:
        return [None] * self._dimensions  # type: ignore[list-item]

    def _vector(self, text: str) -> Sequence[float]:
        digest = hashlib.sha256(text.encode()).digest()
        return [b / 255 for b in digest[: self._dimensions]]


class FakeVectorStore:
    """Dict-backed vector store keyed by chunk id."""

    def __init__(self, dimensions: int = DIMENSIONS) -> None:
        self._dimensions = dimensions
        self.points: dict[UUID, VectorPoint] = {}
        self.fail_upsert_for: set[str] = set()
        self.fail_delete_for: set[str] = set()
        self.fail_initialize = False
        self.initialized = False
        self.closed = False
        self.deleted_sources: list[str] = []
        self.mutations = 0

    async def initialize(self) -> None:
        if self.fail_initialize:
            raise StorageError('collection unavailable')
        self.initialized = True

    async def database_exists(self) -> bool:
        return self.initialized

    async def upsert(self, point_id: UUID, vector: Sequence[float], metadata: Mapping[str, Any]) -> None:
        await self.upsert_many([VectorPoint(id=point_id, vector=vector, payload=metadata)])

    async def upsert_many(self, points: Sequence[VectorPoint]) -> int:
        for point in points:
            if point.payload['source_file'] in self.fail_upsert_for:
                raise StorageError(f'upsert rejected for {point.payload["source_file"]}')
        self.mutations += 1
        for point in points:
            self.points[point.id] = point
        return len(points)

    async def delete_by_source(self, source_file: str) -> int:
        if source_file in self.fail_delete_for:
            raise StorageError(f'delete rejected for {source_file}')
        self.mutations += 1
        self.deleted_sources.append(source_file)
        doomed = [pid for pid, p in self.points.items() if p.payload['source_file'] == source_file]
        for pid in doomed:
            del self.points[pid]
        return len(doomed)

    async def query(
        self,
        vector: Sequence[float],
        *,
        limit: int = 10,
        filters: Mapping[str, str] | None = None,
    ) -> Sequence[SearchHit]:
        candidates = [
            p for p in self.points.values() if all(p.payload.get(k) == v for k, v in (filters or {}).items())
        ]
        scored = sorted(
            ((sum(a * b for a, b in zip(vector, p.vector, strict=True)), p) for p in candidates),
            key=lambda pair: -pair[0],
        )
        return [
            SearchHit(
                id=str(p.id),
                score=score,
                source_file=p.payload['source_file'],
                chunk_index=p.payload['chunk_index'],
                text=p.payload['text'],
            )
            for score, p in scored[:limit]
        ]

    async def get_stats(self) -> StorageStats:
        return StorageStats(
            total_vectors=len(self.points),
            vector_dimension=self._dimensions,
            status='green',
            collection_name='fake',
        )

    async def list_indices(self) -> Sequence[IndexInfo]:
        return [IndexInfo(field_name='source_file', field_type='keyword')]

    async def close(self) -> None:
        self.closed = True

    def sources(self) -> set[str]:
        return {p.payload['source_file'] for p in self.points.values()}

    def chunks_for(self, source_file: str) -> Sequence[VectorPoint]:
        return sorted(
            (p for p in self.points.values() if p.payload['source_file'] == source_file),
            key=lambda p: p.payload['chunk_index'],
        )
