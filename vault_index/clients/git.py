"""Git facade for change detection.

Thin wrapper around GitPython. Every public call translates library errors
into ChangeDetectionError; callers treat that as "revision control
unavailable" and fall back to hash comparison.

All calls block on a git subprocess. Run them in a thread from async code.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import git

from vault_index.boundary import LibraryBoundary
from vault_index.errors import ChangeDetectionError
from vault_index.hashing import hash_bytes
from vault_index.schemas.changes import FileChange, FileStatus

__all__ = [
    'GitFacade',
    'parse_name_status',
    'parse_porcelain_status',
]

logger = logging.getLogger(__name__)

_git_call = LibraryBoundary(ChangeDetectionError, context='git')


class GitFacade:
    """Revision-control queries for the repository containing a vault.

    The repository is discovered by walking up from the vault root, so a
    vault may be a subdirectory of a larger repository.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._repo: git.Repo | None = None

    def is_repository(self) -> bool:
        """True when the path is inside a git working tree. Never raises."""
        try:
            self._open()
        except (git.InvalidGitRepositoryError, git.NoSuchPathError):
            return False
        return True

    @property
    @_git_call
    def working_dir(self) -> str:
        """Absolute path of the repository working tree."""
        repo = self._open()
        if repo.working_tree_dir is None:
            raise ChangeDetectionError(f'Bare repository at {repo.git_dir}')
        return str(repo.working_tree_dir)

    @_git_call
    def current_revision(self) -> str:
        """Commit id of HEAD. Fails on a repository without commits."""
        return self._open().head.commit.hexsha

    @_git_call
    def is_clean(self) -> bool:
        """No staged, unstaged or untracked changes."""
        return not self._open().is_dirty(untracked_files=True)

    @_git_call
    def changes_between(self, rev_a: str, rev_b: str) -> Sequence[FileChange]:
        """File-level changes from rev_a to rev_b, with rename detection."""
        output = self._open().git.diff('--name-status', '-M', '-z', f'{rev_a}..{rev_b}')
        changes = parse_name_status(output)
        logger.debug(f'[GIT] {len(changes)} changes between {rev_a[:8]}..{rev_b[:8]}')
        return changes

    @_git_call
    def uncommitted_changes(self) -> Sequence[FileChange]:
        """Working tree and index changes relative to HEAD, untracked files included."""
        output = self._open().git.status('--porcelain', '-z', '--untracked-files=all')
        changes = parse_porcelain_status(output)
        logger.debug(f'[GIT] {len(changes)} uncommitted changes')
        return changes

    def content_hash(self, content: bytes) -> str:
        """Hash used to compare file contents. Matches discovery hashes."""
        return hash_bytes(content)

    def _open(self) -> git.Repo:
        if self._repo is None:
            self._repo = git.Repo(self._path, search_parent_directories=True)
        return self._repo


def parse_name_status(output: str) -> Sequence[FileChange]:
    """Parse `git diff --name-status -z` output.

    Records are NUL separated: a status code, then one path (two for
    renames and copies, old path first).
    """
    fields = output.split('\0')
    changes: list[FileChange] = []
    i = 0
    while i < len(fields):
        code = fields[i]
        if not code:
            i += 1
            continue
        kind = code[0]
        if kind in 'RC':
            old_path, new_path = fields[i + 1], fields[i + 2]
            i += 3
            if kind == 'R':
                changes.append(FileChange(path=new_path, status='renamed', old_path=old_path))
            else:
                changes.append(FileChange(path=new_path, status='added'))
            continue
        path = fields[i + 1]
        i += 2
        changes.append(FileChange(path=path, status=_diff_status(kind)))
    return changes


def parse_porcelain_status(output: str) -> Sequence[FileChange]:
    """Parse `git status --porcelain -z` output.

    Each entry is `XY path`. Renames and copies are followed by the original
    path as a separate field.
    """
    fields = output.split('\0')
    changes: list[FileChange] = []
    i = 0
    while i < len(fields):
        entry = fields[i]
        i += 1
        if len(entry) < 4:
            continue
        code, path = entry[:2], entry[3:]
        if 'R' in code or 'C' in code:
            old_path = fields[i]
            i += 1
            if 'R' in code:
                changes.append(FileChange(path=path, status='renamed', old_path=old_path))
            else:
                changes.append(FileChange(path=path, status='added'))
            continue
        changes.append(FileChange(path=path, status=_porcelain_status(code)))
    return changes


def _diff_status(kind: str) -> FileStatus:
    match kind:
        case 'A':
            return 'added'
        case 'D':
            return 'deleted'
        case _:
            # M, T (type change), U (unmerged), X (unknown)
            return 'modified'


def _porcelain_status(code: str) -> FileStatus:
    if code == '??':
        return 'added'
    if 'D' in code:
        return 'deleted'
    if 'A' in code:
        return 'added'
    return 'modified'
