"""Vector storage schemas.

Typed models at the boundary between the indexing service and the vector
store. The chunk's payload is flattened so the store can filter on it.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Annotated, Any
from uuid import UUID

import pydantic

from vault_index.schemas.base import StrictModel
from vault_index.schemas.chunking import Chunk

__all__ = [
    'IndexInfo',
    'SearchHit',
    'SearchQuery',
    'StorageStats',
    'VectorPoint',
]


class VectorPoint(StrictModel):
    """A point to store: id, vector, and filterable payload."""

    id: UUID
    vector: Sequence[float]
    payload: Mapping[str, Any]

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: Sequence[float]) -> VectorPoint:
        """Create VectorPoint from Chunk and its embedding."""
        meta = chunk.metadata
        return cls(
            id=chunk.id,
            vector=vector,
            payload={
                'source_file': chunk.source_file,
                'chunk_index': chunk.chunk_index,
                'total_chunks': chunk.total_chunks,
                'text': chunk.text,
                'approx_token_count': chunk.approx_token_count,
                'header_path': list(chunk.header_path),
                'contains_preserved_block': chunk.contains_preserved_block,
                'links': sorted({link.target_id for link in chunk.links}),
                'tags': sorted({path for tag in chunk.tags for path in tag.lineage}),
                'chunk_type': meta.chunk_type,
                'title': meta.title,
                'section': meta.section,
                'category': meta.category,
                'note_tags': list(meta.note_tags),
                'has_code_blocks': meta.has_code_blocks,
                'has_tables': meta.has_tables,
                'has_callouts': meta.has_callouts,
                'has_wiki_links': meta.has_wiki_links,
                'start_char': meta.start_char,
                'end_char': meta.end_char,
                'previous_chunk_id': str(meta.previous_chunk_id) if meta.previous_chunk_id else None,
                'next_chunk_id': str(meta.next_chunk_id) if meta.next_chunk_id else None,
            },
        )


class SearchQuery(StrictModel):
    """Vector similarity query."""

    vector: Sequence[float]
    limit: Annotated[int, pydantic.Field(ge=1, le=100)] = 10
    score_threshold: float | None = None
    # Exact-match payload filters, e.g. {'category': 'projects'}
    filters: Mapping[str, str] = {}
    source_file: str | None = None


class SearchHit(StrictModel):
    """Single ranked result."""

    id: str
    score: float
    source_file: str
    chunk_index: int
    text: str
    header_path: Sequence[str] = ()
    title: str | None = None


class StorageStats(StrictModel):
    """Vector store health and size."""

    total_vectors: int
    vector_dimension: int
    status: str
    collection_name: str


class IndexInfo(StrictModel):
    """A payload index on the collection."""

    field_name: str
    field_type: str
