"""Chunking engine - splits notes into embeddable chunks.

Structure-aware splitting for markdown notes:
- Sections: ATX headings (outside fenced code) open a new section.
- Units: blank-line separated blocks, or single lines when paragraph
  splitting is off. Fenced code, tables and callouts are always grouped.
- Packing: units are accumulated greedily up to the token budget. The next
  chunk re-includes the tail of the last unit as overlap, except across a
  section boundary or out of a preserved block.

Every chunk's text is an exact slice of the source. `overlap_chars` marks
the carried-over prefix, so the non-overlap parts of all chunks concatenate
back to the document.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import PurePosixPath

from vault_index.errors import ChunkingError
from vault_index.schemas.chunking import Chunk, ChunkMetadata, ChunkType, chunk_id
from vault_index.schemas.config import ChunkStrategy
from vault_index.schemas.extraction import ExtractionResult, Frontmatter
from vault_index.services.extraction import LinkTagExtractor
from vault_index.services.frontmatter import parse_frontmatter
from vault_index.services.tokens import TokenCounter

__all__ = [
    'ChunkingEngine',
]

logger = logging.getLogger(__name__)

# ATX heading; the closing #-run must be preceded by whitespace
_HEADING = re.compile(r'(#{1,6})[ \t]+(.*?)(?:[ \t]+#+)?[ \t]*\r?')
_TABLE_SEPARATOR = re.compile(r'\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?\s*')
_CALLOUT = re.compile(r'>\s*\[![\w-]+\]')
_LIST_ITEM = re.compile(r'([-*+]|\d+[.)])\s')

# Oversized units split at sentence ends (or line breaks), then at words
_SENTENCE_BREAK = re.compile(r'[.!?]+["\')\]]*[ \t]+|\n[ \t]*')
_WORD_START = re.compile(r'(?<=\s)\S')


@dataclass
class _Block:
    """A run of source lines forming one structural element."""

    start: int
    end: int  # End of the last content line, excluding the newline
    kind: ChunkType
    heading_level: int = 0
    heading_title: str = ''


@dataclass
class _Unit:
    """A packing candidate: a block plus the whitespace that follows it."""

    start: int
    end: int
    kind: ChunkType
    preserved: bool
    header_path: tuple[str, ...]
    section_index: int


class ChunkingEngine:
    """Splits one document into ordered, contiguous chunks."""

    def __init__(self, strategy: ChunkStrategy | None = None) -> None:
        self._strategy = strategy or ChunkStrategy()
        self._counter = TokenCounter(self._strategy.token_strategy)
        self._extractor = LinkTagExtractor()

    @property
    def strategy(self) -> ChunkStrategy:
        return self._strategy

    @property
    def counter(self) -> TokenCounter:
        return self._counter

    def chunk(
        self,
        text: str,
        source_file: str,
        *,
        extraction: ExtractionResult | None = None,
        frontmatter: Frontmatter | None = None,
    ) -> Sequence[Chunk]:
        """Chunk a document.

        Args:
            text: Full document text.
            source_file: Relative path of the note, used for chunk ids.
            extraction: Links and tags of the whole document. Computed when omitted.
            frontmatter: Parsed frontmatter. Computed when omitted.

        Raises:
            ChunkingError: The text is not a text document (contains NUL bytes).
        """
        if '\x00' in text:
            raise ChunkingError(f'{source_file} contains NUL characters, not a text document')
        if not text.strip():
            return []

        frontmatter = frontmatter if frontmatter is not None else parse_frontmatter(text)
        extraction = extraction if extraction is not None else self._extractor.extract(text)

        blocks = self._scan_blocks(text, frontmatter.body_offset)
        units = self._build_units(text, blocks)
        ranges = self._pack(text, units)

        title = frontmatter.title or _first_h1(blocks) or PurePosixPath(source_file).stem
        parts = PurePosixPath(source_file).parts
        category = parts[0] if len(parts) > 1 else 'root'
        ids = [chunk_id(source_file, i) for i in range(len(ranges))]

        chunks: list[Chunk] = []
        for index, (overlap_start, start, end, members) in enumerate(ranges):
            kinds = {u.kind for u in members}
            links = [link for link in extraction.links if start <= link.span_start < end]
            tags = [tag for tag in extraction.tags if start <= tag.span_start < end]
            section_path = members[0].header_path
            chunk_text = text[overlap_start:end]
            chunks.append(
                Chunk(
                    id=ids[index],
                    source_file=source_file,
                    chunk_index=index,
                    total_chunks=len(ranges),
                    text=chunk_text,
                    approx_token_count=self._counter.count(chunk_text),
                    header_path=section_path if self._strategy.include_headers else (),
                    contains_preserved_block=any(u.preserved for u in members),
                    links=links,
                    tags=tags,
                    metadata=ChunkMetadata(
                        chunk_type=_chunk_type(members),
                        title=title,
                        section=section_path[-1] if section_path else None,
                        category=category,
                        note_tags=frontmatter.tags,
                        has_code_blocks='code' in kinds,
                        has_tables='table' in kinds,
                        has_callouts='callout' in kinds,
                        has_wiki_links=bool(links),
                        start_char=start,
                        end_char=end,
                        overlap_chars=start - overlap_start,
                        previous_chunk_id=ids[index - 1] if index > 0 else None,
                        next_chunk_id=ids[index + 1] if index + 1 < len(ranges) else None,
                    ),
                )
            )

        logger.debug(f'[CHUNK] {source_file}: {len(chunks)} chunks from {len(units)} units')
        return chunks

    def _scan_blocks(self, text: str, body_offset: int) -> Sequence[_Block]:
        """Group source lines into structural blocks. Blank lines belong to no block."""
        lines = _lines(text, body_offset)
        blocks: list[_Block] = []
        if body_offset > 0:
            # Frontmatter is one opaque block; '#' comments in YAML are not headings
            blocks.append(_Block(0, body_offset, 'paragraph'))

        i = 0
        while i < len(lines):
            start, end = lines[i]
            line = text[start:end]
            stripped = line.strip()
            if not stripped:
                i += 1
                continue

            fence = _fence_length(line)
            if fence:
                j = i + 1
                while j < len(lines) and not _closes_fence(text[lines[j][0] : lines[j][1]], fence):
                    j += 1
                last = min(j, len(lines) - 1)
                blocks.append(_Block(start, lines[last][1], 'code'))
                i = last + 1
                continue

            heading = _HEADING.fullmatch(line)
            if heading and heading.group(2).strip():
                blocks.append(
                    _Block(start, end, 'heading', len(heading.group(1)), heading.group(2).strip())
                )
                i += 1
                continue

            if _is_table_start(text, lines, i):
                j = i + 1
                while j < len(lines) and text[lines[j][0] : lines[j][1]].lstrip().startswith('|'):
                    j += 1
                blocks.append(_Block(start, lines[j - 1][1], 'table'))
                i = j
                continue

            if _CALLOUT.match(stripped):
                j = i + 1
                while j < len(lines) and text[lines[j][0] : lines[j][1]].lstrip().startswith('>'):
                    j += 1
                blocks.append(_Block(start, lines[j - 1][1], 'callout'))
                i = j
                continue

            kind: ChunkType = 'paragraph'
            if stripped.startswith('>'):
                kind = 'quote'
            elif _LIST_ITEM.match(stripped):
                kind = 'list'
            j = i + 1
            if self._strategy.split_by_paragraphs:
                while j < len(lines) and not _ends_paragraph(text, lines, j):
                    j += 1
            blocks.append(_Block(start, lines[j - 1][1], kind))
            i = j
        return blocks

    def _build_units(self, text: str, blocks: Sequence[_Block]) -> Sequence[_Unit]:
        """Attach trailing whitespace to blocks, assign sections, split oversized units."""
        units: list[_Unit] = []
        stack: list[tuple[int, str]] = []
        section_index = 0
        for idx, block in enumerate(blocks):
            start = 0 if idx == 0 else block.start
            end = blocks[idx + 1].start if idx + 1 < len(blocks) else len(text)
            if block.kind == 'heading':
                while stack and stack[-1][0] >= block.heading_level:
                    stack.pop()
                stack.append((block.heading_level, block.heading_title))
                if self._strategy.split_by_headers and idx > 0:
                    section_index += 1

            header_path = tuple(title for _, title in stack)
            preserved = self._is_preserved(block.kind)
            if preserved or self._counter.fits(text[start:end], self._strategy.max_tokens):
                units.append(_Unit(start, end, block.kind, preserved, header_path, section_index))
                continue
            for piece_start, piece_end in self._split_oversized(text, start, end):
                units.append(_Unit(piece_start, piece_end, block.kind, False, header_path, section_index))
        return units

    def _is_preserved(self, kind: ChunkType) -> bool:
        match kind:
            case 'code':
                return self._strategy.preserve_code_blocks
            case 'table':
                return self._strategy.preserve_tables
            case 'callout':
                return self._strategy.preserve_callouts
            case _:
                return False

    def _split_oversized(self, text: str, start: int, end: int) -> Sequence[tuple[int, int]]:
        """Split [start, end) into pieces within budget: sentences, then words, then characters."""
        budget = self._strategy.max_tokens
        pieces: list[tuple[int, int]] = []
        sentence_breaks = [m.end() for m in _SENTENCE_BREAK.finditer(text, start, end)]
        for s_start, s_end in _segments(start, end, sentence_breaks):
            if self._counter.fits(text[s_start:s_end], budget):
                pieces.append((s_start, s_end))
                continue
            word_starts = [m.start() for m in _WORD_START.finditer(text, s_start, s_end)]
            for w_start, w_end in _segments(s_start, s_end, word_starts):
                if self._counter.fits(text[w_start:w_end], budget):
                    pieces.append((w_start, w_end))
                else:
                    pieces.extend(self._split_characters(text, w_start, w_end))
        return pieces

    def _split_characters(self, text: str, start: int, end: int) -> Sequence[tuple[int, int]]:
        """Largest prefixes within budget. Always advances at least one character."""
        pieces: list[tuple[int, int]] = []
        pos = start
        while pos < end:
            lo, hi = pos + 1, end
            while lo < hi:
                mid = (lo + hi + 1) // 2
                if self._counter.fits(text[pos:mid], self._strategy.max_tokens):
                    lo = mid
                else:
                    hi = mid - 1
            pieces.append((pos, lo))
            pos = lo
        return pieces

    def _pack(self, text: str, units: Sequence[_Unit]) -> Sequence[tuple[int, int, int, Sequence[_Unit]]]:
        """Greedy accumulation. Returns (overlap_start, start, end, units) per chunk."""
        budget = self._strategy.max_tokens
        ranges: list[tuple[int, int, int, Sequence[_Unit]]] = []
        current: list[_Unit] = []
        overlap_start = 0

        for unit in units:
            if not current:
                current = [unit]
                overlap_start = unit.start
                continue
            same_section = unit.section_index == current[-1].section_index
            if same_section and self._counter.fits(text[overlap_start : unit.end], budget):
                current.append(unit)
                continue

            ranges.append((overlap_start, current[0].start, current[-1].end, current))
            overlap_start = self._overlap_start(text, current[-1], unit) if same_section else unit.start
            current = [unit]

        if current:
            ranges.append((overlap_start, current[0].start, current[-1].end, current))
        return ranges

    def _overlap_start(self, text: str, previous: _Unit, unit: _Unit) -> int:
        """Where the next chunk's text begins, reaching back into the previous unit."""
        if previous.preserved or self._strategy.overlap_tokens == 0:
            return unit.start
        content = text[previous.start : previous.end].rstrip()
        content_end = previous.start + len(content)
        room = self._strategy.max_tokens - self._counter.count(text[unit.start : unit.end])
        budget = min(self._strategy.overlap_tokens, room)
        carried = self._counter.tail(content, budget)
        if not carried:
            return unit.start
        start = content_end - len(carried)
        if not self._counter.fits(text[start : unit.end], self._strategy.max_tokens):
            return unit.start
        return start


def _lines(text: str, offset: int) -> Sequence[tuple[int, int]]:
    """(start, end) of each line from offset, end excluding the newline."""
    lines: list[tuple[int, int]] = []
    pos = offset
    while pos < len(text):
        newline = text.find('\n', pos)
        end = len(text) if newline < 0 else newline
        lines.append((pos, end))
        pos = end + 1
    return lines


def _fence_length(line: str) -> int:
    """Backtick count of an opening fence line, else 0."""
    indent = len(line) - len(line.lstrip(' '))
    if indent > 3:
        return 0
    body = line[indent:]
    run = len(body) - len(body.lstrip('`'))
    if run < 3 or '`' in body[run:]:
        return 0
    return run


def _closes_fence(line: str, length: int) -> bool:
    indent = len(line) - len(line.lstrip(' '))
    body = line[indent:].rstrip()
    return indent <= 3 and len(body) >= length and set(body) == {'`'}


def _is_table_start(text: str, lines: Sequence[tuple[int, int]], i: int) -> bool:
    if i + 1 >= len(lines):
        return False
    first = text[lines[i][0] : lines[i][1]].strip()
    second = text[lines[i + 1][0] : lines[i + 1][1]].strip()
    return first.startswith('|') and '-' in second and _TABLE_SEPARATOR.fullmatch(second) is not None


def _ends_paragraph(text: str, lines: Sequence[tuple[int, int]], j: int) -> bool:
    """True when line j cannot continue the paragraph above it."""
    line = text[lines[j][0] : lines[j][1]]
    stripped = line.strip()
    if not stripped:
        return True
    if _fence_length(line) or _CALLOUT.match(stripped) or _is_table_start(text, lines, j):
        return True
    heading = _HEADING.fullmatch(line)
    return heading is not None and bool(heading.group(2).strip())


def _segments(start: int, end: int, boundaries: Sequence[int]) -> Sequence[tuple[int, int]]:
    """Cut [start, end) at the given positions."""
    cuts = [start, *(b for b in boundaries if start < b < end), end]
    return [(a, b) for a, b in zip(cuts, cuts[1:]) if a < b]


def _first_h1(blocks: Sequence[_Block]) -> str | None:
    return next((b.heading_title for b in blocks if b.kind == 'heading' and b.heading_level == 1), None)


def _chunk_type(units: Sequence[_Unit]) -> ChunkType:
    """Kind of the first non-heading unit, or 'heading' for heading-only chunks."""
    return next((u.kind for u in units if u.kind != 'heading'), 'heading')
