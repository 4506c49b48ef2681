"""Content hashing shared by discovery and revision control.

Both sides must agree byte for byte, or every file looks modified.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

__all__ = [
    'HASH_CHUNK_SIZE',
    'hash_bytes',
    'hash_file',
]

# Streamed read size for hashing
HASH_CHUNK_SIZE = 64 * 1024


def hash_file(path: Path) -> str:
    """SHA-1 hex digest of file bytes, streamed."""
    digest = hashlib.sha1()
    with path.open('rb') as f:
        while block := f.read(HASH_CHUNK_SIZE):
            digest.update(block)
    return digest.hexdigest()


def hash_bytes(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()
