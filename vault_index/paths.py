"""Centralized file paths for vault indexing.

All persistent file locations in one place for consistency.
The version record lives beside the vault unless a database directory is configured.
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    'CONFIG_PATH',
    'SECRETS_DIR',
    'VERSION_FILE_NAME',
    'VERSION_LOCK_SUFFIX',
    'WORKSPACE_DIR',
    'version_file_path',
    'version_lock_path',
]

# Base directories
WORKSPACE_DIR = Path.home() / '.vault-index'
SECRETS_DIR = WORKSPACE_DIR / 'secrets'

# Default configuration file (overridable per command)
CONFIG_PATH = WORKSPACE_DIR / 'config.json'

# Version record, one per vault or database directory
VERSION_FILE_NAME = 'vault-index-version.json'
VERSION_LOCK_SUFFIX = '.lock'


def version_file_path(vault_root: Path, database_dir: Path | None = None) -> Path:
    """Get the version record location for a vault.

    Args:
        vault_root: Root directory of the vault.
        database_dir: Optional database directory. Takes precedence over the vault root.
    """
    base = database_dir if database_dir is not None else vault_root
    return base / VERSION_FILE_NAME


def version_lock_path(version_path: Path) -> Path:
    """Get the lock file guarding writes to a version record."""
    return version_path.with_name(version_path.name + VERSION_LOCK_SUFFIX)
