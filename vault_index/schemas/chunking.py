"""Chunking operation schemas.

A chunk is a contiguous slice of one document plus optional overlap carried
over from the previous chunk. `metadata.overlap_chars` marks how much of
`text` is carried-over context, so stripping it from every chunk and
concatenating reproduces the document.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from typing import Literal
from uuid import UUID

from vault_index.schemas.base import StrictModel
from vault_index.schemas.extraction import Link, Tag

__all__ = [
    'Chunk',
    'ChunkMetadata',
    'ChunkType',
    'chunk_id',
]

type ChunkType = Literal['heading', 'code', 'table', 'callout', 'list', 'quote', 'paragraph']


class ChunkMetadata(StrictModel):
    """Structural context for a chunk."""

    chunk_type: ChunkType = 'paragraph'
    title: str
    section: str | None = None  # Innermost heading
    category: str = 'root'  # Top-level directory of the source file
    note_tags: Sequence[str] = ()  # From frontmatter
    has_code_blocks: bool = False
    has_tables: bool = False
    has_callouts: bool = False
    has_wiki_links: bool = False
    # Document offsets of the non-overlap content
    start_char: int
    end_char: int
    overlap_chars: int = 0
    previous_chunk_id: UUID | None = None
    next_chunk_id: UUID | None = None


class Chunk(StrictModel):
    """Bounded text unit ready for embedding."""

    id: UUID
    source_file: str
    chunk_index: int  # 0-based, contiguous per file
    total_chunks: int
    text: str
    approx_token_count: int
    header_path: Sequence[str] = ()
    contains_preserved_block: bool = False
    links: Sequence[Link] = ()
    tags: Sequence[Tag] = ()
    metadata: ChunkMetadata

    @property
    def content(self) -> str:
        """Chunk text without the carried-over overlap."""
        return self.text[self.metadata.overlap_chars :]


def chunk_id(source_file: str, chunk_index: int) -> UUID:
    """Deterministic chunk id from its position.

    Same file + chunk index = same UUID, so reindexing overwrites in place.
    """
    key = f'{source_file}|{chunk_index}'
    return UUID(bytes=hashlib.sha256(key.encode()).digest()[:16])
