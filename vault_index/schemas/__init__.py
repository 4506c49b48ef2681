"""Typed models for vault indexing."""

from __future__ import annotations

from vault_index.schemas.base import JsonDatetime, StrictModel
from vault_index.schemas.changes import (
    ChangeSet,
    ChangeSource,
    ChangesSummary,
    FileChange,
    FileStatus,
    IndexingStatus,
    Recommendation,
    RenamedPath,
)
from vault_index.schemas.chunking import (
    Chunk,
    ChunkMetadata,
    ChunkType,
    chunk_id,
)
from vault_index.schemas.config import (
    ChunkStrategy,
    DiscoveryOptions,
    EmbeddingConfig,
    IndexerConfig,
    QdrantConfig,
    TokenStrategy,
    VaultIndexConfig,
    load_config,
    save_config,
)
from vault_index.schemas.discovery import (
    DiscoveryResult,
    FileRecord,
    SkippedEntry,
    SkipReason,
)
from vault_index.schemas.extraction import (
    ExtractionResult,
    Frontmatter,
    Link,
    Tag,
)
from vault_index.schemas.indexing import (
    ErrorCategory,
    FileProcessingError,
    IndexingProgress,
    IndexRunResult,
    ProgressCallback,
    RunState,
)
from vault_index.schemas.vectors import (
    IndexInfo,
    SearchHit,
    SearchQuery,
    StorageStats,
    VectorPoint,
)
from vault_index.schemas.version import VersionRecord

__all__ = [
    # Base
    'JsonDatetime',
    'StrictModel',
    # Config
    'ChunkStrategy',
    'DiscoveryOptions',
    'EmbeddingConfig',
    'IndexerConfig',
    'QdrantConfig',
    'TokenStrategy',
    'VaultIndexConfig',
    'load_config',
    'save_config',
    # Discovery
    'DiscoveryResult',
    'FileRecord',
    'SkipReason',
    'SkippedEntry',
    # Extraction
    'ExtractionResult',
    'Frontmatter',
    'Link',
    'Tag',
    # Chunking
    'Chunk',
    'ChunkMetadata',
    'ChunkType',
    'chunk_id',
    # Changes
    'ChangeSet',
    'ChangeSource',
    'ChangesSummary',
    'FileChange',
    'FileStatus',
    'IndexingStatus',
    'Recommendation',
    'RenamedPath',
    # Version
    'VersionRecord',
    # Indexing
    'ErrorCategory',
    'FileProcessingError',
    'IndexRunResult',
    'IndexingProgress',
    'ProgressCallback',
    'RunState',
    # Vectors
    'IndexInfo',
    'SearchHit',
    'SearchQuery',
    'StorageStats',
    'VectorPoint',
]
