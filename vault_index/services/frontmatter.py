"""YAML frontmatter parsing.

Reads the `---` delimited block at the top of a note. Only the fields the
indexer uses are kept: title, tags, aliases, and where the body starts.
Malformed YAML is treated as "no frontmatter" rather than an error, since
the note body is still indexable.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

import yaml

from vault_index.schemas.extraction import Frontmatter

__all__ = [
    'parse_frontmatter',
]

logger = logging.getLogger(__name__)

# Opening fence, YAML body, closing fence (--- or ...), each on its own line
_FRONTMATTER = re.compile(r'\A---[ \t]*\r?\n(.*?\r?\n)?(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)', re.DOTALL)

_TITLE_KEYS = ('title', 'name')
_TAG_KEYS = ('tags', 'tag', 'categories', 'category')
_ALIAS_KEYS = ('aliases', 'alias')


def parse_frontmatter(text: str) -> Frontmatter:
    """Parse frontmatter from the start of a document."""
    match = _FRONTMATTER.match(text)
    if match is None:
        return Frontmatter()

    try:
        data = yaml.safe_load(match.group(1) or '')
    except yaml.YAMLError as e:
        logger.debug(f'[FRONTMATTER] Ignoring malformed YAML: {e}')
        return Frontmatter()

    if not isinstance(data, dict):
        return Frontmatter(body_offset=match.end())

    title = next((str(data[k]).strip() for k in _TITLE_KEYS if data.get(k) not in (None, '')), None)
    return Frontmatter(
        title=title or None,
        tags=_collect(data, _TAG_KEYS, strip_hash=True),
        aliases=_collect(data, _ALIAS_KEYS, strip_hash=False),
        body_offset=match.end(),
    )


def _collect(data: dict[object, object], keys: Sequence[str], *, strip_hash: bool) -> Sequence[str]:
    """Gather string values from several keys, deduplicated in order.

    Values may be a list or a comma/space separated string.
    """
    values: list[str] = []
    for key in keys:
        raw = data.get(key)
        if raw is None:
            continue
        items: Sequence[object]
        if isinstance(raw, list):
            items = raw
        elif strip_hash:
            items = re.split(r'[,\s]+', str(raw))  # "tags: a, b" or "tags: a b"
        else:
            items = [raw]
        for item in items:
            if item is None:
                continue
            value = str(item).strip()
            if strip_hash:
                value = value.lstrip('#')
            if value and value not in values:
                values.append(value)
    return tuple(values)
