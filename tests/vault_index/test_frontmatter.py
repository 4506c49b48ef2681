"""Tests for YAML frontmatter parsing."""

from __future__ import annotations

from vault_index.services.frontmatter import parse_frontmatter


class TestParseFrontmatter:
    def test_fields(self) -> None:
        text = '---\ntitle: My Note\ntags: [a, "#b"]\naliases:\n  - Other\n---\nBody'
        fm = parse_frontmatter(text)
        assert fm.title == 'My Note'
        assert list(fm.tags) == ['a', 'b']
        assert list(fm.aliases) == ['Other']
        assert text[fm.body_offset :] == 'Body'

    def test_string_tags(self) -> None:
        fm = parse_frontmatter('---\ntags: one, two three\n---\n')
        assert list(fm.tags) == ['one', 'two', 'three']

    def test_no_frontmatter(self) -> None:
        fm = parse_frontmatter('# Just a heading\n')
        assert fm.title is None
        assert fm.body_offset == 0

    def test_must_start_at_first_line(self) -> None:
        assert parse_frontmatter('\n---\ntitle: x\n---\n').body_offset == 0

    def test_malformed_yaml_ignored(self) -> None:
        fm = parse_frontmatter('---\ntitle: [unclosed\n---\nBody')
        assert fm.title is None
        assert fm.body_offset == 0

    def test_non_mapping_keeps_offset(self) -> None:
        text = '---\n- a\n- b\n---\nBody'
        fm = parse_frontmatter(text)
        assert fm.title is None
        assert text[fm.body_offset :] == 'Body'

    def test_empty_block(self) -> None:
        text = '---\n---\nBody'
        assert text[parse_frontmatter(text).body_offset :] == 'Body'

    def test_dots_terminator(self) -> None:
        text = '---\ntitle: T\n...\nBody'
        fm = parse_frontmatter(text)
        assert fm.title == 'T'
        assert text[fm.body_offset :] == 'Body'
