"""Clients for external services."""

from __future__ import annotations

from vault_index.clients.embedding import HttpEmbeddingClient
from vault_index.clients.git import GitFacade
from vault_index.clients.protocols import EmbeddingClient, RevisionControl, VectorStore
from vault_index.clients.qdrant import QdrantClient
from vault_index.schemas.config import EmbeddingConfig

__all__ = [
    'EmbeddingClient',
    'GitFacade',
    'HttpEmbeddingClient',
    'QdrantClient',
    'RevisionControl',
    'VectorStore',
    'create_embedding_client',
]


def create_embedding_client(config: EmbeddingConfig, *, api_key: str | None = None) -> EmbeddingClient:
    """Create embedding client based on configuration.

    Args:
        config: Embedding configuration.
        api_key: Explicit key. Loaded lazily from the environment or secrets dir when None.

    Returns:
        Configured embedding client.
    """
    match config.provider:
        case 'openai_compatible':
            return HttpEmbeddingClient(config, api_key=api_key)

    raise TypeError(f'Unknown embedding provider: {config.provider}')
