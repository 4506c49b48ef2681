"""Chunk vector repository backed by Qdrant.

Typed interface over the low-level Qdrant client. All public methods accept
and return strict Pydantic models from schemas.vectors, and raise
StorageError for any client or transport failure.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from vault_index.boundary import LibraryBoundary
from vault_index.clients.qdrant import QdrantClient
from vault_index.errors import StorageError
from vault_index.schemas.vectors import IndexInfo, SearchHit, SearchQuery, StorageStats, VectorPoint

__all__ = [
    'QdrantVectorStore',
]

logger = logging.getLogger(__name__)

# Payload fields with keyword indexes (filtering and delete-by-source)
KEYWORD_FIELDS = ('source_file', 'category', 'tags', 'links')

# Points per upsert request
UPSERT_BATCH_SIZE = 64


class QdrantVectorStore:
    """Vector store for one collection.

    Chunk ids are deterministic per (source_file, chunk_index), so an upsert
    overwrites the previous version of a chunk in place.
    """

    def __init__(self, client: QdrantClient, collection_name: str, vector_dimension: int) -> None:
        self._client = client
        self._collection_name = collection_name
        self._vector_dimension = vector_dimension

    @property
    def collection_name(self) -> str:
        return self._collection_name

    @LibraryBoundary(StorageError, context='qdrant initialize')
    async def initialize(self) -> None:
        """Create the collection and keyword indexes if missing."""
        await self._client.ensure_collection(self._collection_name, self._vector_dimension, KEYWORD_FIELDS)

    @LibraryBoundary(StorageError, context='qdrant collection_exists')
    async def database_exists(self) -> bool:
        return await self._client.collection_exists(self._collection_name)

    async def upsert(self, point_id: UUID, vector: Sequence[float], metadata: Mapping[str, Any]) -> None:
        await self.upsert_many([VectorPoint(id=point_id, vector=vector, payload=metadata)])

    @LibraryBoundary(StorageError, context='qdrant upsert')
    async def upsert_many(self, points: Sequence[VectorPoint]) -> int:
        """Upsert points in fixed-size requests. Returns the number written."""
        written = 0
        for i in range(0, len(points), UPSERT_BATCH_SIZE):
            batch = points[i : i + UPSERT_BATCH_SIZE]
            written += await self._client.upsert(
                self._collection_name,
                [(p.id, p.vector, p.payload) for p in batch],
            )
        logger.debug(f'[UPSERT] {written} points into {self._collection_name}')
        return written

    @LibraryBoundary(StorageError, context='qdrant delete')
    async def delete_by_source(self, source_file: str) -> int:
        """Remove every chunk of a source file. Returns how many were removed."""
        removed = await self._client.count(self._collection_name, {'source_file': source_file})
        if removed:
            await self._client.delete_by_field(self._collection_name, 'source_file', source_file)
        logger.debug(f'[DELETE] {source_file}: {removed} chunks')
        return removed

    @LibraryBoundary(StorageError, context='qdrant query')
    async def query(
        self,
        vector: Sequence[float],
        *,
        limit: int = 10,
        filters: Mapping[str, str] | None = None,
    ) -> Sequence[SearchHit]:
        return await self.search(SearchQuery(vector=vector, limit=limit, filters=filters or {}))

    @LibraryBoundary(StorageError, context='qdrant search')
    async def search(self, query: SearchQuery) -> Sequence[SearchHit]:
        """Ranked hits for a similarity query."""
        filters = dict(query.filters)
        if query.source_file is not None:
            filters['source_file'] = query.source_file
        results = await self._client.search(
            self._collection_name,
            query.vector,
            limit=query.limit,
            score_threshold=query.score_threshold,
            filters=filters,
        )
        return [
            SearchHit(
                id=r['id'],
                score=r['score'],
                source_file=r['payload']['source_file'],
                chunk_index=r['payload']['chunk_index'],
                text=r['payload']['text'],
                header_path=r['payload'].get('header_path', ()),
                title=r['payload'].get('title'),
            )
            for r in results
        ]

    @LibraryBoundary(StorageError, context='qdrant stats')
    async def get_stats(self) -> StorageStats:
        info = await self._client.get_collection_info(self._collection_name)
        if info is None:
            return StorageStats(
                total_vectors=0,
                vector_dimension=self._vector_dimension,
                status='missing',
                collection_name=self._collection_name,
            )
        return StorageStats(
            total_vectors=info['points_count'],
            vector_dimension=info['vector_dimension'],
            status=info['status'],
            collection_name=self._collection_name,
        )

    @LibraryBoundary(StorageError, context='qdrant list indices')
    async def list_indices(self) -> Sequence[IndexInfo]:
        indexes = await self._client.payload_indexes(self._collection_name)
        return [IndexInfo(field_name=name, field_type=kind) for name, kind in sorted(indexes.items())]

    async def close(self) -> None:
        await self._client.close()
