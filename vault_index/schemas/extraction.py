"""Link, tag and frontmatter schemas.

Spans are character offsets into the original document text (end exclusive).
"""

from __future__ import annotations

from collections.abc import Sequence

from vault_index.schemas.base import StrictModel

__all__ = [
    'ExtractionResult',
    'Frontmatter',
    'Link',
    'Tag',
]


class Link(StrictModel):
    """A [[wiki link]] or ![[embed]] occurrence."""

    original_text: str  # Full marker, including brackets and embed prefix
    target_id: str  # Without anchor or display decorations
    display_text: str | None = None
    anchor: str | None = None
    span_start: int
    span_end: int
    is_embed: bool = False


class Tag(StrictModel):
    """A #tag occurrence. Nested tags use '/' for hierarchy."""

    original_text: str  # Including the leading '#'
    path: str
    span_start: int
    span_end: int
    is_nested: bool = False
    parent_paths: Sequence[str] = ()  # Root-to-immediate-parent

    @property
    def lineage(self) -> Sequence[str]:
        """Ancestors followed by the tag itself."""
        return (*self.parent_paths, self.path)


class ExtractionResult(StrictModel):
    """Links and tags found in one document."""

    links: Sequence[Link] = ()
    tags: Sequence[Tag] = ()


class Frontmatter(StrictModel):
    """Selected YAML frontmatter fields of a note."""

    title: str | None = None
    tags: Sequence[str] = ()
    aliases: Sequence[str] = ()
    # Offset of the first body character (0 when there is no frontmatter)
    body_offset: int = 0
