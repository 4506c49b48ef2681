"""Low-level Qdrant vector database client.

Thin wrapper around qdrant-client. Handles API calls only - no business logic.
Type translation happens in the repository layer.

Uses AsyncQdrantClient for non-blocking I/O in async contexts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypedDict
from uuid import UUID

import httpx
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from vault_index.clients import _retry
from vault_index.schemas.config import QdrantConfig

__all__ = [
    'CollectionInfoDict',
    'QdrantClient',
    'SearchResultDict',
]

logger = logging.getLogger(__name__)


class CollectionInfoDict(TypedDict):
    """Raw collection metadata from Qdrant."""

    name: str
    vector_dimension: int
    points_count: int
    status: str


class SearchResultDict(TypedDict):
    """Raw search result from Qdrant."""

    id: str
    score: float
    payload: Mapping[str, Any]


class QdrantClient:
    """Low-level async Qdrant client for vector operations.

    Collection name is passed explicitly to each method - no default collection.
    """

    DEFAULT_URL = 'http://localhost:6333'

    # Max concurrent upsert operations
    DEFAULT_MAX_CONCURRENT_UPSERTS = 8

    DEFAULT_TIMEOUT = 10
    DEFAULT_POOL_SIZE = 16

    def __init__(
        self,
        url: str = DEFAULT_URL,
        max_concurrent_upserts: int = DEFAULT_MAX_CONCURRENT_UPSERTS,
        timeout: int = DEFAULT_TIMEOUT,
        pool_size: int = DEFAULT_POOL_SIZE,
        retry_policy: _retry.QdrantRetryPolicy | None = None,
    ) -> None:
        """Initialize client.

        Args:
            url: Qdrant server URL.
            max_concurrent_upserts: Max concurrent upsert API calls.
            timeout: HTTP timeout in seconds.
            pool_size: HTTP connection pool size.
            retry_policy: Retry and circuit breaker settings for writes.
        """
        self._url = url
        # Explicit limits: qdrant-client's localhost defaults disable keep-alive
        limits = httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size)
        self._client = AsyncQdrantClient(url=url, timeout=timeout, limits=limits)
        self._upsert_semaphore = asyncio.Semaphore(max_concurrent_upserts)
        policy = retry_policy or _retry.QdrantRetryPolicy()
        self._upsert_with_retry = policy.wrap(self._upsert_once, 'upsert')
        self._delete_with_retry = policy.wrap(self._delete_once, 'delete')

    @classmethod
    def from_config(cls, config: QdrantConfig) -> QdrantClient:
        return cls(url=config.url, retry_policy=_retry.QdrantRetryPolicy.from_config(config))

    async def ensure_collection(
        self,
        collection_name: str,
        vector_dimension: int,
        keyword_fields: Sequence[str] = (),
    ) -> bool:
        """Create collection if it doesn't exist, plus keyword payload indexes.

        Returns:
            True if the collection was created.
        """
        created = False
        if not await self.collection_exists(collection_name):
            await self._client.create_collection(
                collection_name=collection_name,
                vectors_config=VectorParams(size=vector_dimension, distance=Distance.COSINE),
            )
            logger.info(f'Created collection {collection_name} ({vector_dimension} dims)')
            created = True

        existing = await self.payload_indexes(collection_name)
        for field in keyword_fields:
            if field in existing:
                continue
            await self._client.create_payload_index(
                collection_name=collection_name,
                field_name=field,
                field_schema=PayloadSchemaType.KEYWORD,
            )
            logger.debug(f'Created {field} keyword index')
        return created

    async def upsert(
        self,
        collection_name: str,
        points: Sequence[tuple[UUID, Sequence[float], Mapping[str, Any]]],
    ) -> int:
        """Insert or update points.

        Args:
            collection_name: Collection name.
            points: Sequence of (id, vector, payload) tuples.

        Returns:
            Number of points upserted.
        """
        return await self._upsert_with_retry(collection_name, points)

    async def _upsert_once(
        self,
        collection_name: str,
        points: Sequence[tuple[UUID, Sequence[float], Mapping[str, Any]]],
    ) -> int:
        point_structs = [
            PointStruct(id=str(point_id), vector=list(vector), payload=dict(payload))
            for point_id, vector, payload in points
        ]
        async with self._upsert_semaphore:
            await self._client.upsert(collection_name=collection_name, points=point_structs)
        return len(point_structs)

    async def delete_by_field(self, collection_name: str, key: str, value: str) -> None:
        """Delete every point whose payload `key` equals `value`. Idempotent."""
        await self._delete_with_retry(collection_name, key, value)

    async def _delete_once(self, collection_name: str, key: str, value: str) -> None:
        await self._client.delete(
            collection_name=collection_name,
            points_selector=FilterSelector(
                filter=Filter(must=[FieldCondition(key=key, match=MatchValue(value=value))]),
            ),
        )

    async def search(
        self,
        collection_name: str,
        vector: Sequence[float],
        limit: int = 10,
        score_threshold: float | None = None,
        filters: Mapping[str, str] | None = None,
    ) -> Sequence[SearchResultDict]:
        """Dense similarity search with optional exact-match payload filters."""
        conditions = [
            FieldCondition(key=key, match=MatchValue(value=value)) for key, value in (filters or {}).items()
        ]
        results = await self._client.query_points(
            collection_name=collection_name,
            query=list(vector),
            limit=limit,
            score_threshold=score_threshold,
            query_filter=Filter(must=conditions) if conditions else None,
            with_payload=True,
        )
        return [
            SearchResultDict(id=str(hit.id), score=hit.score, payload=hit.payload)
            for hit in results.points
            if hit.payload is not None
        ]

    async def count(self, collection_name: str, filters: Mapping[str, str] | None = None) -> int:
        """Exact point count, optionally restricted by exact-match payload filters."""
        conditions = [
            FieldCondition(key=key, match=MatchValue(value=value)) for key, value in (filters or {}).items()
        ]
        result = await self._client.count(
            collection_name=collection_name,
            count_filter=Filter(must=conditions) if conditions else None,
            exact=True,
        )
        return result.count

    async def collection_exists(self, collection_name: str) -> bool:
        return await self._client.collection_exists(collection_name)

    async def get_collection_info(self, collection_name: str) -> CollectionInfoDict | None:
        """Get collection metadata. None if the collection doesn't exist."""
        if not await self.collection_exists(collection_name):
            return None

        info = await self._client.get_collection(collection_name)
        vectors_config = info.config.params.vectors
        if isinstance(vectors_config, dict):
            # Named vectors: report the first one
            first = next(iter(vectors_config.values()), None)
            vector_dimension = first.size if first else 0
        elif vectors_config is not None:
            vector_dimension = vectors_config.size
        else:
            vector_dimension = 0

        return CollectionInfoDict(
            name=collection_name,
            vector_dimension=vector_dimension,
            points_count=info.points_count or 0,
            status=str(info.status),
        )

    async def payload_indexes(self, collection_name: str) -> Mapping[str, str]:
        """Field name to payload index type."""
        info = await self._client.get_collection(collection_name)
        schema = getattr(info, 'payload_schema', {}) or {}
        return {field: str(getattr(value.data_type, 'value', value.data_type)) for field, value in schema.items()}

    async def close(self) -> None:
        await self._client.close()
