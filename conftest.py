"""Shared fixtures for vault_index tests.

Vaults are real directory trees under tmp_path; git-backed vaults are real
repositories created with GitPython. External services are replaced by the
in-memory fakes in tests/vault_index/fakes.py.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from pathlib import Path

import git
import pytest

from tests.vault_index.fakes import FakeEmbeddingClient, FakeVectorStore
from vault_index.clients.git import GitFacade
from vault_index.paths import version_file_path
from vault_index.repositories.version_store import VersionStore
from vault_index.schemas.config import ChunkStrategy, DiscoveryOptions, IndexerConfig
from vault_index.services.changes import ChangeDetector
from vault_index.services.chunking import ChunkingEngine
from vault_index.services.discovery import FileDiscovery
from vault_index.services.extraction import LinkTagExtractor
from vault_index.services.indexing import IndexingService

type VaultFactory = Callable[[Mapping[str, str | bytes]], Path]


def write_files(root: Path, files: Mapping[str, str | bytes]) -> None:
    """Write relative path -> content under root, creating directories."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding='utf-8')


@pytest.fixture
def make_vault(tmp_path: Path) -> VaultFactory:
    """Factory: write a file tree and return its root."""

    def factory(files: Mapping[str, str | bytes]) -> Path:
        root = tmp_path / 'vault'
        root.mkdir(exist_ok=True)
        write_files(root, files)
        return root

    return factory


@pytest.fixture
def git_vault(tmp_path: Path) -> Callable[[Mapping[str, str]], git.Repo]:
    """Factory: a vault that is a git repository with one initial commit."""

    def factory(files: Mapping[str, str]) -> git.Repo:
        root = tmp_path / 'repo'
        root.mkdir(exist_ok=True)
        repo = git.Repo.init(root)
        with repo.config_writer() as config:
            config.set_value('user', 'name', 'Test')
            config.set_value('user', 'email', 'test@example.com')
            config.set_value('commit', 'gpgsign', 'false')
        write_files(root, files)
        repo.index.add(list(files))
        repo.index.commit('initial')
        return repo

    return factory


@pytest.fixture
def embedding_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def vector_store() -> FakeVectorStore:
    return FakeVectorStore()


@pytest.fixture
def make_service(
    embedding_client: FakeEmbeddingClient,
    vector_store: FakeVectorStore,
) -> Callable[..., IndexingService]:
    """Factory: IndexingService over a vault root with fake external services.

    Revision control is off unless `use_git=True`.
    """

    def factory(
        root: Path,
        *,
        use_git: bool = False,
        indexer: IndexerConfig | None = None,
        chunking: ChunkStrategy | None = None,
        discovery: DiscoveryOptions | None = None,
        database_dir: Path | None = None,
    ) -> IndexingService:
        return IndexingService(
            discovery=FileDiscovery(root, discovery),
            detector=ChangeDetector(root, GitFacade(root) if use_git else None),
            version_store=VersionStore(version_file_path(root, database_dir)),
            vector_store=vector_store,
            embedding_client=embedding_client,
            chunker=ChunkingEngine(chunking),
            extractor=LinkTagExtractor(),
            config=indexer or IndexerConfig(),
        )

    return factory
