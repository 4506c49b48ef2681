"""Link and tag extraction.

Scans raw note text for [[wiki links]], ![[embeds]] and #tags and reports
them with character spans on the original text. The text is never rewritten.

Both scans are single forward passes:

1. Code regions (``` fences and `inline` spans) are located first. Fences
   follow line structure; inline spans pair backtick runs of equal length
   within a paragraph.
2. Links are matched outside code regions.
3. Tags are matched outside code regions and outside link markers (the `#`
   in [[Note#Heading]] is an anchor separator, not a tag).

Every scan advances monotonically, so run time is linear in the text length
regardless of how many unmatched brackets or backticks the text contains.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable, Mapping, Sequence

from vault_index.schemas.extraction import ExtractionResult, Link, Tag

__all__ = [
    'LinkTagExtractor',
    'build_backlinks',
    'code_spans',
    'resolve_wiki_link',
]

logger = logging.getLogger(__name__)

type Span = tuple[int, int]

# ASCII letters, digits, '_', '-', '/'
TAG_CHARS = frozenset('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-/')

# Extensions tried when resolving a link target to a file
LINK_EXTENSIONS = ('.md', '.markdown')

FENCE_MIN_LENGTH = 3
FENCE_MAX_INDENT = 3


class LinkTagExtractor:
    """Extracts links and tags from note text, skipping code."""

    def extract(self, text: str) -> ExtractionResult:
        """Scan for links and tags in one pass over the code regions."""
        code = code_spans(text)
        links = _scan_links(text, code)
        tags = _scan_tags(text, _merge_spans(code, [(link.span_start, link.span_end) for link in links]))
        return ExtractionResult(links=links, tags=tags)

    def extract_links(self, text: str) -> Sequence[Link]:
        return _scan_links(text, code_spans(text))

    def extract_tags(self, text: str) -> Sequence[Tag]:
        return self.extract(text).tags

    def wiki_link_targets(self, text: str) -> Sequence[str]:
        """Unique link targets in first-seen order. Same-note anchors ([[#x]]) are skipped."""
        return _unique(link.target_id for link in self.extract_links(text) if link.target_id)

    def all_tags(self, text: str) -> Sequence[str]:
        """Every tag and each of its ancestors, de-duplicated in first-seen order."""
        return _unique(path for tag in self.extract_tags(text) for path in (tag.path, *tag.parent_paths))


def code_spans(text: str) -> Sequence[Span]:
    """Locate fenced code blocks and inline code spans.

    Returns sorted, non-overlapping (start, end) spans. An unclosed fence runs
    to the end of the text. Unmatched backtick runs are literal text.
    """
    spans: list[Span] = []
    paragraph_runs: list[Span] = []  # (start, length) of backtick runs
    fence_start = -1
    fence_length = 0

    pos = 0
    length = len(text)
    while pos < length:
        newline = text.find('\n', pos)
        line_end = length if newline < 0 else newline
        next_pos = length if newline < 0 else newline + 1
        indent = _indent(text, pos, line_end)
        run = _run_length(text, pos + indent, line_end, '`') if indent <= FENCE_MAX_INDENT else 0

        if fence_start >= 0:
            # Closing fence: at least as many backticks, nothing else but whitespace
            if run >= fence_length and not text[pos + indent + run : line_end].strip():
                spans.append((fence_start, line_end))
                fence_start = -1
        elif run >= FENCE_MIN_LENGTH and '`' not in text[pos + indent + run : line_end]:
            spans.extend(_pair_backtick_runs(paragraph_runs))
            paragraph_runs = []
            fence_start = pos
            fence_length = run
        elif not text[pos:line_end].strip():
            spans.extend(_pair_backtick_runs(paragraph_runs))
            paragraph_runs = []
        else:
            paragraph_runs.extend(_backtick_runs(text, pos, line_end))
        pos = next_pos

    if fence_start >= 0:
        spans.append((fence_start, length))
    spans.extend(_pair_backtick_runs(paragraph_runs))
    spans.sort()
    return spans


def resolve_wiki_link(target: str, known_paths: Iterable[str]) -> str | None:
    """Resolve a link target to one known relative path.

    Tries, in order: exact path, path plus a markdown extension, the same
    two case-insensitively, then a unique file-stem match. Returns None when
    nothing matches or the stem is ambiguous.
    """
    clean = target.partition('#')[0].strip()
    if not clean:
        return None

    paths = sorted(set(known_paths))
    candidates = [clean, *(clean + ext for ext in LINK_EXTENSIONS)]

    path_set = set(paths)
    for candidate in candidates:
        if candidate in path_set:
            return candidate

    lowered = {p.lower(): p for p in paths}
    for candidate in candidates:
        if candidate.lower() in lowered:
            return lowered[candidate.lower()]

    stem = posixpath.basename(clean).lower()
    matches = [p for p in paths if _stem(p).lower() == stem and _has_link_extension(p)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        logger.debug(f'[LINKS] Ambiguous target {target!r}: {len(matches)} candidates')
    return None


def build_backlinks(links_by_source: Mapping[str, Sequence[Link]]) -> Mapping[str, Sequence[str]]:
    """Invert outgoing links into {target path: sorted source paths}.

    Targets resolve against the sources' own paths; unresolved targets are
    keyed by their raw target id. Self-links are dropped.
    """
    known = list(links_by_source)
    backlinks: dict[str, set[str]] = {}
    for source, links in links_by_source.items():
        for link in links:
            if not link.target_id:
                continue
            target = resolve_wiki_link(link.target_id, known) or link.target_id
            if target == source:
                continue
            backlinks.setdefault(target, set()).add(source)
    return {target: sorted(sources) for target, sources in sorted(backlinks.items())}


def _scan_links(text: str, masked: Sequence[Span]) -> Sequence[Link]:
    """Match (!?)[[content]] where content has no ']' or newline and no code."""
    links: list[Link] = []
    length = len(text)
    span_idx = 0
    pos = 0
    while True:
        pos = text.find('[[', pos)
        if pos < 0:
            break
        while span_idx < len(masked) and masked[span_idx][1] <= pos:
            span_idx += 1
        if span_idx < len(masked) and masked[span_idx][0] <= pos:
            pos = masked[span_idx][1]
            continue

        # Content may not run into the next code region
        limit = masked[span_idx][0] if span_idx < len(masked) else length
        end = pos + 2
        while end < limit and text[end] != ']' and text[end] != '\n':
            end += 1

        closed = end + 1 < limit and text[end] == ']' and text[end + 1] == ']'
        if not closed or end == pos + 2:
            # Every '[[' before `end` would stop at the same character
            pos = max(end, pos + 1)
            continue

        is_embed = pos > 0 and text[pos - 1] == '!'
        start = pos - 1 if is_embed else pos
        links.append(_build_link(text, start, pos + 2, end, is_embed))
        pos = end + 2
    return links


def _build_link(text: str, start: int, content_start: int, content_end: int, is_embed: bool) -> Link:
    target_part, pipe, display = text[content_start:content_end].partition('|')
    target, _, anchor = target_part.partition('#')
    return Link(
        original_text=text[start : content_end + 2],
        target_id=target.strip(),
        display_text=(display.strip() or None) if pipe else None,
        anchor=anchor.strip() or None,
        span_start=start,
        span_end=content_end + 2,
        is_embed=is_embed,
    )


def _scan_tags(text: str, masked: Sequence[Span]) -> Sequence[Tag]:
    """Match #[A-Za-z0-9_/-]+ outside masked spans."""
    tags: list[Tag] = []
    length = len(text)
    span_idx = 0
    pos = 0
    while True:
        pos = text.find('#', pos)
        if pos < 0:
            break
        while span_idx < len(masked) and masked[span_idx][1] <= pos:
            span_idx += 1
        if span_idx < len(masked) and masked[span_idx][0] <= pos:
            pos = masked[span_idx][1]
            continue

        limit = masked[span_idx][0] if span_idx < len(masked) else length
        end = pos + 1
        while end < limit and text[end] in TAG_CHARS:
            end += 1
        if end == pos + 1:
            pos += 1
            continue

        path = text[pos + 1 : end]
        tags.append(
            Tag(
                original_text=text[pos:end],
                path=path,
                span_start=pos,
                span_end=end,
                is_nested='/' in path,
                parent_paths=_tag_parents(path),
            )
        )
        pos = end
    return tags


def _tag_parents(path: str) -> Sequence[str]:
    """Every prefix ending at a '/' boundary, shallowest first: a/b/c -> [a, a/b]."""
    parents: list[str] = []
    idx = path.find('/')
    while idx >= 0:
        if idx > 0:
            parents.append(path[:idx])
        idx = path.find('/', idx + 1)
    return _unique(parents)


def _backtick_runs(text: str, start: int, end: int) -> Iterable[Span]:
    pos = text.find('`', start, end)
    while pos >= 0:
        run = _run_length(text, pos, end, '`')
        yield pos, run
        pos = text.find('`', pos + run, end)


def _pair_backtick_runs(runs: Sequence[Span]) -> Sequence[Span]:
    """Pair each opening run with the next run of the same length.

    Runs in between become code content. Per-length cursors only move
    forward, keeping the pairing linear.
    """
    by_length: dict[int, list[int]] = {}
    for idx, (_, run) in enumerate(runs):
        by_length.setdefault(run, []).append(idx)
    cursor = dict.fromkeys(by_length, 0)

    spans: list[Span] = []
    idx = 0
    while idx < len(runs):
        start, run = runs[idx]
        same = by_length[run]
        c = cursor[run]
        while c < len(same) and same[c] <= idx:
            c += 1
        cursor[run] = c
        if c == len(same):
            idx += 1
            continue
        closing = same[c]
        spans.append((start, runs[closing][0] + run))
        idx = closing + 1
    return spans


def _merge_spans(a: Sequence[Span], b: Sequence[Span]) -> Sequence[Span]:
    """Merge two sorted span lists into one sorted, non-overlapping list."""
    merged: list[Span] = []
    i = j = 0
    while i < len(a) or j < len(b):
        if j >= len(b) or (i < len(a) and a[i] <= b[j]):
            span = a[i]
            i += 1
        else:
            span = b[j]
            j += 1
        if merged and span[0] <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], span[1]))
        else:
            merged.append(span)
    return merged


def _indent(text: str, start: int, end: int) -> int:
    return _run_length(text, start, end, ' ')


def _run_length(text: str, start: int, end: int, char: str) -> int:
    pos = start
    while pos < end and text[pos] == char:
        pos += 1
    return pos - start


def _unique(values: Iterable[str]) -> Sequence[str]:
    return tuple(dict.fromkeys(values))


def _stem(path: str) -> str:
    return posixpath.splitext(posixpath.basename(path))[0]


def _has_link_extension(path: str) -> bool:
    return posixpath.splitext(path)[1].lower() in LINK_EXTENSIONS
