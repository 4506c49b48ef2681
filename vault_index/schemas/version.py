"""Version record schema.

The persisted snapshot of what was indexed last. Serialized with camelCase
keys; `fileHashes` is written as a list of [path, hash] pairs sorted by path
so the file is byte-stable for the same content.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic
from pydantic.alias_generators import to_camel

from vault_index.schemas.base import JsonDatetime, StrictModel

__all__ = [
    'VersionRecord',
]


class VersionRecord(StrictModel):
    """Single persisted record per vault.

    Replaced as a whole on every save; never partially updated.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    last_indexed_revision: str = ''  # Empty when the vault isn't under revision control
    indexed_at: JsonDatetime
    file_hashes: Mapping[str, str] = {}  # Relative path -> content hash
    total_documents: int = 0
    total_chunks: int = 0

    @pydantic.field_validator('file_hashes', mode='before')
    @classmethod
    def _pairs_to_mapping(cls, value: Any) -> Any:
        """Accept the persisted pair-list form. Duplicate paths are corruption."""
        if not isinstance(value, list):
            return value
        mapping: dict[str, str] = {}
        for pair in value:
            if not isinstance(pair, list | tuple) or len(pair) != 2:
                raise ValueError(f'fileHashes entry must be a [path, hash] pair, got {pair!r}')
            path, file_hash = pair
            if not isinstance(path, str) or not isinstance(file_hash, str):
                raise ValueError(f'fileHashes entry must hold strings, got {pair!r}')
            if path in mapping:
                raise ValueError(f'Duplicate path in fileHashes: {path}')
            mapping[path] = file_hash
        return mapping

    @pydantic.field_serializer('file_hashes')
    def _mapping_to_pairs(self, value: Mapping[str, str]) -> list[list[str]]:
        return [[path, value[path]] for path in sorted(value)]

    def to_json(self) -> str:
        """Serialize in the persisted on-disk format."""
        return self.model_dump_json(by_alias=True, indent=2) + '\n'
