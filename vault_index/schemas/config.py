"""Indexing configuration schema.

Every component receives its slice of configuration explicitly; there is no
process-wide config object. The aggregate `VaultIndexConfig` is persisted as
JSON and can be overridden per command.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Annotated, Literal, Self

import pydantic
from pydantic import Field

from vault_index.paths import CONFIG_PATH
from vault_index.schemas.base import StrictModel

__all__ = [
    'ChunkStrategy',
    'DiscoveryOptions',
    'EmbeddingConfig',
    'IndexerConfig',
    'QdrantConfig',
    'TokenStrategy',
    'VaultIndexConfig',
    'load_config',
    'save_config',
]

logger = logging.getLogger(__name__)

# Token estimation strategies (see services.tokens)
type TokenStrategy = Literal['chars', 'whitespace', 'words']

# 10 MiB
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


class DiscoveryOptions(StrictModel):
    """Which files under the vault root are indexable.

    Exclude patterns and ignore paths win over include patterns.
    Include patterns apply to files only; directories are pruned by excludes.
    """

    include_patterns: Sequence[str] = ('**/*.md',)
    exclude_patterns: Sequence[str] = (
        'node_modules/**',
        '.git/**',
        'dist/**',
        'build/**',
        '.obsidian/**',
    )
    file_extensions: Sequence[str] = ('.md', '.markdown')
    include_hidden: bool = False
    # Substring match against the relative path (legacy behaviour)
    ignore_paths: Sequence[str] = ('node_modules', '.git', 'dist', 'build', '.obsidian')
    max_file_size: Annotated[int, Field(ge=0)] | None = DEFAULT_MAX_FILE_SIZE

    @pydantic.field_validator('file_extensions')
    @classmethod
    def _normalize_extensions(cls, value: Sequence[str]) -> Sequence[str]:
        return tuple(ext.lower() if ext.startswith('.') else f'.{ext.lower()}' for ext in value)


class ChunkStrategy(StrictModel):
    """How documents are split into chunks."""

    max_tokens: Annotated[int, Field(ge=1)] = 512
    overlap_tokens: Annotated[int, Field(ge=0)] = 50
    split_by_headers: bool = True
    split_by_paragraphs: bool = True
    include_headers: bool = True
    preserve_code_blocks: bool = True
    preserve_tables: bool = True
    preserve_callouts: bool = True
    token_strategy: TokenStrategy = 'chars'

    @pydantic.model_validator(mode='after')
    def _overlap_below_budget(self) -> Self:
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError(
                f'overlap_tokens ({self.overlap_tokens}) must be smaller than max_tokens ({self.max_tokens})'
            )
        return self


class IndexerConfig(StrictModel):
    """Batch orchestration settings."""

    batch_size: Annotated[int, Field(ge=1)] = 10
    concurrency: Annotated[int, Field(ge=1)] = 3
    # Above this many changed paths, reindex everything
    max_changed_files: Annotated[int, Field(ge=0)] = 100
    delete_batch_size: Annotated[int, Field(ge=1)] = 50
    force_full_reindex: bool = False


class EmbeddingConfig(StrictModel):
    """OpenAI-compatible embedding endpoint configuration."""

    provider: Literal['openai_compatible'] = 'openai_compatible'
    base_url: str = 'https://openrouter.ai/api/v1'
    model: str = 'qwen/qwen3-embedding-8b'
    dimensions: Annotated[int, Field(ge=1)] = 768
    # Max texts per API call
    batch_size: Annotated[int, Field(ge=1)] = 100
    max_concurrent: Annotated[int, Field(ge=1)] = 16
    # Environment variable holding the API key (falls back to the secrets dir)
    api_key_env: str = 'VAULT_INDEX_EMBEDDING_API_KEY'


class QdrantConfig(StrictModel):
    """Vector store location and write retry policy."""

    url: str = 'http://localhost:6333'
    collection_name: str = 'vault'
    # 500 is left out: Qdrant returns it for malformed requests too
    retry_status_codes: Sequence[int] = (408, 502, 503, 504)
    max_attempts: Annotated[int, Field(ge=1)] = 3
    # Consecutive transient failures before the circuit opens, and seconds until it half-opens
    failure_threshold: Annotated[int, Field(ge=1)] = 5
    recovery_timeout: Annotated[int, Field(ge=1)] = 30


class VaultIndexConfig(StrictModel):
    """Aggregate configuration for one vault."""

    discovery: DiscoveryOptions = DiscoveryOptions()
    chunking: ChunkStrategy = ChunkStrategy()
    indexer: IndexerConfig = IndexerConfig()
    embedding: EmbeddingConfig = EmbeddingConfig()
    qdrant: QdrantConfig = QdrantConfig()
    # Where the version record lives. None keeps it in the vault root.
    database_dir: str | None = None


def load_config(path: Path = CONFIG_PATH) -> VaultIndexConfig:
    """Load config from file, or defaults if it doesn't exist.

    Raises:
        ValueError: If the config file exists but is invalid.
    """
    if not path.exists():
        logger.debug(f'No config at {path}, using defaults')
        return VaultIndexConfig()

    try:
        return VaultIndexConfig.model_validate_json(path.read_text())
    except (json.JSONDecodeError, pydantic.ValidationError) as e:
        raise ValueError(f'Invalid config file at {path}: {e}') from e


def save_config(config: VaultIndexConfig, path: Path = CONFIG_PATH) -> None:
    """Save config to file, creating parent directories if needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.model_dump(mode='json'), indent=2) + '\n')
    logger.info(f'Saved config to {path}')
