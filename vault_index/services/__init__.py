"""Domain services for vault indexing."""

from __future__ import annotations

from vault_index.services.changes import ChangeDetector
from vault_index.services.chunking import ChunkingEngine
from vault_index.services.discovery import FileDiscovery
from vault_index.services.extraction import LinkTagExtractor
from vault_index.services.indexing import IndexingService, create_indexing_service
from vault_index.services.tokens import TokenCounter

__all__ = [
    'ChangeDetector',
    'ChunkingEngine',
    'FileDiscovery',
    'IndexingService',
    'LinkTagExtractor',
    'TokenCounter',
    'create_indexing_service',
]
