"""File discovery.

Walks the vault root and returns the set of indexable files with content
hashes. Filtering order, per entry:

1. Hidden entries (leading '.') unless include_hidden.
2. Exclude patterns and ignore paths. Directories that match are pruned.
3. File extension allow-list.
4. Include patterns (files only).
5. Size limit. Oversized files are reported as skipped, never read.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath

from vault_index.errors import DiscoveryError
from vault_index.hashing import hash_file
from vault_index.schemas.config import DiscoveryOptions
from vault_index.schemas.discovery import DiscoveryResult, FileRecord, SkippedEntry

__all__ = [
    'FileDiscovery',
    'compile_glob',
]

logger = logging.getLogger(__name__)


class FileDiscovery:
    """Enumerates indexable files under one vault root."""

    def __init__(self, root: Path, options: DiscoveryOptions | None = None) -> None:
        self._root = root.expanduser().absolute()
        self._options = options or DiscoveryOptions()
        self._include = [compile_glob(p) for p in self._options.include_patterns]
        self._exclude = [compile_glob(p) for p in self._options.exclude_patterns]
        self._extensions = frozenset(self._options.file_extensions)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def options(self) -> DiscoveryOptions:
        return self._options

    def discover(self) -> DiscoveryResult:
        """Scan the vault. Blocking; run in a thread from async code.

        Raises:
            DiscoveryError: Root is missing, not a directory, or unreadable.
        """
        if not self._root.exists():
            raise DiscoveryError(f'Vault root does not exist: {self._root}')
        if not self._root.is_dir():
            raise DiscoveryError(f'Vault root is not a directory: {self._root}')

        records: list[FileRecord] = []
        skipped: list[SkippedEntry] = []

        def on_error(error: OSError) -> None:
            if error.filename is not None and Path(error.filename) == self._root:
                raise DiscoveryError(f'Cannot read vault root {self._root}: {error}') from error
            rel = self.relative_path(Path(error.filename)) if error.filename is not None else '?'
            logger.warning(f'[SCAN] Unreadable directory {rel}: {error}')
            skipped.append(SkippedEntry(relative_path=rel, reason='unreadable', detail=str(error)))

        for dirpath, dirnames, filenames in os.walk(self._root, onerror=on_error, followlinks=False):
            base = Path(dirpath)
            # Prune in place so os.walk never descends
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not (base / name).is_symlink() and self._keep_directory(self.relative_path(base / name))
            )
            for filename in filenames:
                path = base / filename
                rel = self.relative_path(path)
                if not self.is_indexable_path(rel):
                    continue
                record = self._build_record(path, rel, skipped)
                if record is not None:
                    records.append(record)

        records.sort(key=lambda r: r.relative_path)
        skipped.sort(key=lambda s: s.relative_path)
        logger.info(f'[SCAN] {len(records)} indexable files under {self._root} ({len(skipped)} skipped)')
        return DiscoveryResult(root=str(self._root), records=records, skipped=skipped)

    def is_indexable_path(self, relative: str) -> bool:
        """Path-only filter: hidden policy, excludes, extension, includes.

        Does not touch the filesystem, so it also applies to deleted paths.
        """
        parts = PurePosixPath(relative).parts
        if not parts:
            return False
        if not self._options.include_hidden and any(part.startswith('.') for part in parts):
            return False
        if self._is_excluded(relative):
            return False
        if PurePosixPath(relative).suffix.lower() not in self._extensions:
            return False
        if not self._include:
            return True
        return any(pattern.match(relative) for pattern in self._include)

    def is_within_vault(self, path: Path) -> bool:
        """True when path resolves inside the vault root."""
        try:
            path.expanduser().absolute().relative_to(self._root)
        except ValueError:
            return False
        return True

    def relative_path(self, path: Path) -> str:
        """POSIX relative path of an absolute path under the root."""
        return path.absolute().relative_to(self._root).as_posix()

    def absolute_path(self, relative: str) -> Path:
        return self._root / PurePosixPath(relative)

    def needs_reindex(self, record: FileRecord, prior_hashes: Mapping[str, str]) -> bool:
        """True when the file is new or its content hash changed."""
        return prior_hashes.get(record.relative_path) != record.content_hash

    def _keep_directory(self, relative: str) -> bool:
        name = PurePosixPath(relative).name
        if not self._options.include_hidden and name.startswith('.'):
            return False
        return not self._is_excluded(relative)

    def _is_excluded(self, relative: str) -> bool:
        if any(pattern.match(relative) for pattern in self._exclude):
            return True
        # Legacy substring match
        return any(ignored and ignored in relative for ignored in self._options.ignore_paths)

    def _build_record(self, path: Path, rel: str, skipped: list[SkippedEntry]) -> FileRecord | None:
        try:
            stat = path.stat()
            limit = self._options.max_file_size
            if limit is not None and stat.st_size > limit:
                logger.warning(f'[SCAN] Skipping large file: {rel} ({stat.st_size} bytes > {limit})')
                skipped.append(
                    SkippedEntry(relative_path=rel, reason='too_large', detail=f'{stat.st_size} bytes')
                )
                return None
            content_hash = hash_file(path)
        except OSError as e:
            logger.warning(f'[SCAN] Unreadable file {rel}: {e}')
            skipped.append(SkippedEntry(relative_path=rel, reason='unreadable', detail=str(e)))
            return None

        return FileRecord(
            relative_path=rel,
            absolute_path=str(path),
            extension=path.suffix.lower(),
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
            content_hash=content_hash,
        )


def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a minimatch-style glob to an anchored regex.

    - `*` and `?` match within one path segment.
    - `**` as a whole segment matches zero or more segments.
    - `dir/**` also matches `dir` itself.
    - `[abc]`, `[!abc]` and `{a,b}` are supported.
    """
    pattern = pattern.removeprefix('./')
    return re.compile(_translate(pattern) + r'\Z')


def _translate(pattern: str) -> str:
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == '*':
            j = i
            while j < n and pattern[j] == '*':
                j += 1
            whole_segment = (i == 0 or pattern[i - 1] == '/') and (j == n or pattern[j] == '/')
            if j - i >= 2 and whole_segment:
                if j == n:
                    if out and out[-1] == '/':
                        out[-1] = '(?:/.*)?'
                    else:
                        out.append('.*')
                    i = j
                else:
                    out.append('(?:.*/)?')
                    i = j + 1
                continue
            out.append('[^/]*')
            i = j
        elif c == '?':
            out.append('[^/]')
            i += 1
        elif c == '[' and (close := pattern.find(']', i + 2)) > 0:
            body = pattern[i + 1 : close]
            negate = body[0] in '!^'
            if negate:
                body = body[1:]
            body = body.replace('\\', '\\\\')
            out.append(f'[^/{body}]' if negate else f'[{body}]')
            i = close + 1
        elif c == '{' and (close := pattern.find('}', i + 1)) > 0 and ',' in pattern[i:close]:
            options = pattern[i + 1 : close].split(',')
            out.append('(?:' + '|'.join(_translate(o) for o in options) + ')')
            i = close + 1
        else:
            out.append(re.escape(c))
            i += 1
    return ''.join(out)

