"""Version record persistence with file locking.

One JSON file per vault (or database directory). Writes go to a sibling temp
file that is fsynced and renamed over the target, so readers only ever see
the old record or the new one.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import filelock
import pydantic

from vault_index.errors import VersionPersistError
from vault_index.paths import version_lock_path
from vault_index.schemas.version import VersionRecord

__all__ = [
    'VersionStore',
]

logger = logging.getLogger(__name__)

# Seconds to wait for a concurrent writer before giving up
LOCK_TIMEOUT = 30


class VersionStore:
    """Loads and atomically replaces the version record."""

    def __init__(self, path: Path, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self._path = path
        self._lock = filelock.FileLock(version_lock_path(path), timeout=lock_timeout)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """Whether a record file is present. Does not parse it."""
        return self._path.is_file()

    def load(self) -> VersionRecord | None:
        """Load the record. None when missing or corrupt (treated as a first run)."""
        if not self._path.exists():
            return None
        try:
            return VersionRecord.model_validate(json.loads(self._path.read_text(encoding='utf-8')))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, pydantic.ValidationError) as e:
            logger.warning(f'[VERSION] corrupt record at {self._path}, ignoring: {type(e).__name__}: {e}')
            return None

    def save(self, record: VersionRecord) -> None:
        """Replace the record atomically.

        Raises:
            VersionPersistError: Lock, write, fsync or rename failed. The previous
                record, if any, is left untouched.
        """
        temp_path = self._path.with_name(self._path.name + '.tmp')
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with temp_path.open('w', encoding='utf-8') as f:
                    f.write(record.to_json())
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, self._path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise VersionPersistError(f'Failed to write version record {self._path}: {e}') from e
        logger.info(
            f'[VERSION] Saved {self._path.name}: {record.total_documents} documents, '
            f'{record.total_chunks} chunks, revision {record.last_indexed_revision or "-"}'
        )

    def clear(self) -> bool:
        """Delete the record. Returns True if a record was removed."""
        try:
            with self._lock:
                if not self._path.exists():
                    return False
                self._path.unlink()
        except OSError as e:
            raise VersionPersistError(f'Failed to remove version record {self._path}: {e}') from e
        logger.info(f'[VERSION] Cleared {self._path}')
        return True
