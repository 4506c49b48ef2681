"""Tests for link and tag extraction."""

from __future__ import annotations

import time

import pytest

from vault_index.schemas.extraction import Link
from vault_index.services.extraction import LinkTagExtractor, build_backlinks, code_spans, resolve_wiki_link


@pytest.fixture
def extractor() -> LinkTagExtractor:
    return LinkTagExtractor()


class TestLinks:
    def test_deduplicated_targets(self, extractor: LinkTagExtractor) -> None:
        text = 'See [[Note A|Shown]] and [[Note A]] again.'
        assert len(extractor.extract_links(text)) == 2
        assert list(extractor.wiki_link_targets(text)) == ['Note A']

    def test_link_fields(self, extractor: LinkTagExtractor) -> None:
        text = 'x [[Folder/Note#Heading|Alias]] y'
        (link,) = extractor.extract_links(text)
        assert link.target_id == 'Folder/Note'
        assert link.anchor == 'Heading'
        assert link.display_text == 'Alias'
        assert link.original_text == '[[Folder/Note#Heading|Alias]]'
        assert text[link.span_start : link.span_end] == link.original_text
        assert not link.is_embed

    def test_embed(self, extractor: LinkTagExtractor) -> None:
        text = 'Image: ![[diagram.png]]'
        (link,) = extractor.extract_links(text)
        assert link.is_embed
        assert link.original_text == '![[diagram.png]]'
        assert link.span_start == text.index('!')

    def test_same_note_anchor_kept_but_not_a_target(self, extractor: LinkTagExtractor) -> None:
        text = 'Jump to [[#Section]]'
        (link,) = extractor.extract_links(text)
        assert link.target_id == ''
        assert link.anchor == 'Section'
        assert list(extractor.wiki_link_targets(text)) == []

    @pytest.mark.parametrize(
        'text',
        [
            '[[]]',
            '[[unclosed',
            '[[broken\nacross lines]]',
            '[[single]',
        ],
    )
    def test_not_links(self, extractor: LinkTagExtractor, text: str) -> None:
        assert list(extractor.extract_links(text)) == []

    def test_links_in_code_ignored(self, extractor: LinkTagExtractor) -> None:
        text = '`[[inline]]`\n\n```\n[[fenced]]\n```\n\n[[real]]'
        assert list(extractor.wiki_link_targets(text)) == ['real']

    def test_link_cannot_run_into_code(self, extractor: LinkTagExtractor) -> None:
        text = '[[a `b]]`'
        assert list(extractor.extract_links(text)) == []

    def test_targets_first_seen_order(self, extractor: LinkTagExtractor) -> None:
        text = '[[B]] [[A]] [[B]] [[C]]'
        assert list(extractor.wiki_link_targets(text)) == ['B', 'A', 'C']


class TestTags:
    def test_real_tag_outside_code_only(self, extractor: LinkTagExtractor) -> None:
        text = '#real-tag here\n\n```\n#real-tag\n```\n\nand `#real-tag` inline'
        tags = extractor.extract_tags(text)
        assert [t.path for t in tags] == ['real-tag']
        assert tags[0].span_start == 0

    def test_nested_tag(self, extractor: LinkTagExtractor) -> None:
        (tag,) = extractor.extract_tags('about #project/alpha/beta today')
        assert tag.path == 'project/alpha/beta'
        assert tag.is_nested
        assert list(tag.parent_paths) == ['project', 'project/alpha']
        assert list(tag.lineage) == ['project', 'project/alpha', 'project/alpha/beta']
        assert tag.original_text == '#project/alpha/beta'

    def test_heading_is_not_a_tag(self, extractor: LinkTagExtractor) -> None:
        assert list(extractor.extract_tags('# Heading\n\n## Sub')) == []

    def test_link_anchor_is_not_a_tag(self, extractor: LinkTagExtractor) -> None:
        result = extractor.extract('[[Note#Heading]] #tag')
        assert [t.path for t in result.tags] == ['tag']
        assert len(result.links) == 1

    def test_tag_stops_at_punctuation(self, extractor: LinkTagExtractor) -> None:
        (tag,) = extractor.extract_tags('done (#todo).')
        assert tag.path == 'todo'

    def test_all_tags_include_ancestors(self, extractor: LinkTagExtractor) -> None:
        text = '#a/b #c #a/b'
        assert list(extractor.all_tags(text)) == ['a/b', 'a', 'c']

    def test_unclosed_fence_hides_rest(self, extractor: LinkTagExtractor) -> None:
        text = '#before\n```\n#inside\n[[inside]]'
        result = extractor.extract(text)
        assert [t.path for t in result.tags] == ['before']
        assert list(result.links) == []


class TestCodeSpans:
    def test_fence_and_inline(self) -> None:
        text = 'a `b` c\n\n```py\ncode\n```\n'
        spans = code_spans(text)
        assert [text[s:e] for s, e in spans] == ['`b`', '```py\ncode\n```']

    def test_longer_closing_fence(self) -> None:
        text = '````\n```\nstill code\n`````\nafter'
        (span,) = code_spans(text)
        assert text[span[0] : span[1]] == '````\n```\nstill code\n`````'

    def test_indented_four_spaces_is_not_a_fence(self) -> None:
        assert code_spans('    ```\nx\n') == []

    def test_double_backtick_inline(self) -> None:
        text = 'use ``a ` b`` here'
        (span,) = code_spans(text)
        assert text[span[0] : span[1]] == '``a ` b``'

    def test_inline_does_not_cross_paragraphs(self) -> None:
        assert code_spans('open `here\n\nclose` there') == []

    def test_unmatched_backticks_literal(self) -> None:
        assert code_spans('a ` b `` c') == []


class TestLinearTime:
    def test_pathological_brackets_and_backticks(self, extractor: LinkTagExtractor) -> None:
        text = ('[[' * 20000) + ('`' * 5000) + ('#' * 20000) + ('![[x' * 10000)
        started = time.perf_counter()
        extractor.extract(text)
        assert time.perf_counter() - started < 5


class TestResolveWikiLink:
    PATHS = ['Projects/Plan.md', 'notes/Meeting.md', 'archive/Meeting.md', 'Readme.markdown']

    @pytest.mark.parametrize(
        'target, expected',
        [
            ('Projects/Plan.md', 'Projects/Plan.md'),
            ('Projects/Plan', 'Projects/Plan.md'),
            ('projects/plan', 'Projects/Plan.md'),
            ('Plan', 'Projects/Plan.md'),
            ('Plan#Goals', 'Projects/Plan.md'),
            ('Readme', 'Readme.markdown'),
            ('Meeting', None),
            ('Missing', None),
            ('#only-anchor', None),
        ],
    )
    def test_resolution(self, target: str, expected: str | None) -> None:
        assert resolve_wiki_link(target, self.PATHS) == expected


class TestBacklinks:
    def test_inverts_and_drops_self_links(self, extractor: LinkTagExtractor) -> None:
        links: dict[str, list[Link]] = {
            'a.md': list(extractor.extract_links('[[b]] [[a]] [[Elsewhere]]')),
            'b.md': list(extractor.extract_links('[[a]]')),
            'c.md': list(extractor.extract_links('[[b]] [[#local]]')),
        }
        assert build_backlinks(links) == {
            'Elsewhere': ['a.md'],
            'a.md': ['b.md'],
            'b.md': ['a.md', 'c.md'],
        }
