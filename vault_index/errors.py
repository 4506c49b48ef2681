"""Domain exception hierarchy.

Each error kind maps to one failure class of an indexing run. Per-file kinds
(read, chunking, embedding, storage) are recorded and the run continues.
Discovery and version-persist failures end the run. Change-detection failures
degrade to a full comparison and are never surfaced to callers.
"""

from __future__ import annotations

from typing import ClassVar, Literal

__all__ = [
    'ChangeDetectionError',
    'ChunkingError',
    'DiscoveryError',
    'EmbeddingError',
    'ErrorKind',
    'ReadError',
    'StorageError',
    'VaultIndexError',
    'VersionPersistError',
]

type ErrorKind = Literal[
    'discovery',
    'read',
    'chunking',
    'embedding',
    'storage',
    'version_persist',
    'change_detection',
]


class VaultIndexError(Exception):
    """Base for all vault indexing failures."""

    kind: ClassVar[ErrorKind]
    fatal: ClassVar[bool] = False


class DiscoveryError(VaultIndexError):
    """Vault root is missing, unreadable, or not a directory."""

    kind = 'discovery'
    fatal = True


class ReadError(VaultIndexError):
    """A single file could not be read or decoded."""

    kind = 'read'


class ChunkingError(VaultIndexError):
    """A document could not be split into chunks."""

    kind = 'chunking'


class EmbeddingError(VaultIndexError):
    """The embedding provider failed or returned an unusable response."""

    kind = 'embedding'


class StorageError(VaultIndexError):
    """A vector store upsert or delete failed."""

    kind = 'storage'


class VersionPersistError(VaultIndexError):
    """The version record could not be written atomically."""

    kind = 'version_persist'
    fatal = True


class ChangeDetectionError(VaultIndexError):
    """Revision-control queries failed. Callers fall back to hash comparison."""

    kind = 'change_detection'
