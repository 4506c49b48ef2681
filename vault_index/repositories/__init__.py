"""Repositories for data persistence."""

from __future__ import annotations

from vault_index.repositories.vector_store import QdrantVectorStore
from vault_index.repositories.version_store import VersionStore

__all__ = [
    'QdrantVectorStore',
    'VersionStore',
]
