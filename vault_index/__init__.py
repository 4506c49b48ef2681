"""Incremental vault indexing.

Discovers markdown files in a vault, detects what changed since the last run,
chunks and embeds changed documents, and writes them to a vector store.
A version record next to the vault (or in a database directory) makes the
next run incremental.
"""

from __future__ import annotations

__version__ = '0.3.0'
