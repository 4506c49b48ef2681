"""Tests for ChunkingEngine."""

from __future__ import annotations

import pytest

from vault_index.errors import ChunkingError
from vault_index.schemas.chunking import Chunk, chunk_id
from vault_index.schemas.config import ChunkStrategy
from vault_index.services.chunking import ChunkingEngine

PARAGRAPHS = '\n\n'.join(
    [
        'Alpha beta gamma delta epsilon.',
        'Zeta eta theta iota kappa lambda.',
        'Mu nu xi omicron pi rho sigma.',
        'Tau upsilon phi chi psi omega.',
    ]
)


def reassemble(chunks: list[Chunk]) -> str:
    return ''.join(chunk.content for chunk in chunks)


class TestHeaders:
    def test_two_sections(self) -> None:
        text = '# H1\n\nPara one.\n\n# H2\n\nPara two.'
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=1000)).chunk(text, 'doc.md')
        assert len(chunks) == 2
        assert list(chunks[0].header_path) == ['H1']
        assert list(chunks[1].header_path) == ['H2']
        assert chunks[1].text == '# H2\n\nPara two.'

    def test_nested_header_path(self) -> None:
        text = '# Top\n\n## Child\n\nBody.\n\n### Grandchild\n\nMore.\n\n## Sibling\n\nEnd.'
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=1000)).chunk(text, 'doc.md')
        assert [list(c.header_path) for c in chunks] == [
            ['Top'],
            ['Top', 'Child'],
            ['Top', 'Child', 'Grandchild'],
            ['Top', 'Sibling'],
        ]
        assert chunks[2].metadata.section == 'Grandchild'

    def test_no_header_split(self) -> None:
        text = '# H1\n\nPara one.\n\n# H2\n\nPara two.'
        strategy = ChunkStrategy(max_tokens=1000, split_by_headers=False)
        (chunk,) = ChunkingEngine(strategy).chunk(text, 'doc.md')
        assert chunk.text == text

    def test_include_headers_off(self) -> None:
        text = '# H1\n\nPara one.'
        strategy = ChunkStrategy(max_tokens=1000, include_headers=False)
        (chunk,) = ChunkingEngine(strategy).chunk(text, 'doc.md')
        assert list(chunk.header_path) == []
        assert chunk.metadata.section == 'H1'

    def test_heading_inside_code_is_not_a_section(self) -> None:
        text = 'Intro.\n\n```\n# not a heading\n```\n\nAfter.'
        (chunk,) = ChunkingEngine(ChunkStrategy(max_tokens=1000)).chunk(text, 'doc.md')
        assert list(chunk.header_path) == []
        assert chunk.metadata.has_code_blocks


class TestCoverage:
    @pytest.mark.parametrize('max_tokens', [5, 12, 20, 40, 1000])
    @pytest.mark.parametrize('overlap_tokens', [0, 3])
    def test_content_reassembles_document(self, max_tokens: int, overlap_tokens: int) -> None:
        text = '---\ntitle: Doc\n---\n# Title\n\n' + PARAGRAPHS + '\n\n| a | b |\n|---|---|\n| 1 | 2 |\n'
        strategy = ChunkStrategy(max_tokens=max_tokens, overlap_tokens=min(overlap_tokens, max_tokens - 1))
        chunks = list(ChunkingEngine(strategy).chunk(text, 'doc.md'))
        assert reassemble(chunks) == text
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert {c.total_chunks for c in chunks} == {len(chunks)}

    def test_offsets_and_exact_slices(self) -> None:
        text = PARAGRAPHS
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=5)).chunk(text, 'doc.md')
        for chunk in chunks:
            meta = chunk.metadata
            assert chunk.text == text[meta.start_char - meta.overlap_chars : meta.end_char]
        assert chunks[0].metadata.start_char == 0
        assert chunks[-1].metadata.end_char == len(text)

    def test_single_long_line_split_by_characters(self) -> None:
        text = 'x' * 1000
        chunks = list(ChunkingEngine(ChunkStrategy(max_tokens=10, overlap_tokens=0)).chunk(text, 'doc.md'))
        assert reassemble(chunks) == text
        assert all(c.approx_token_count <= 10 for c in chunks)

    def test_long_paragraph_split_at_sentences(self) -> None:
        text = ' '.join(f'Sentence number {i} is here.' for i in range(30))
        chunks = list(ChunkingEngine(ChunkStrategy(max_tokens=30, overlap_tokens=0)).chunk(text, 'doc.md'))
        assert len(chunks) > 1
        assert reassemble(chunks) == text
        assert all(c.approx_token_count <= 30 for c in chunks)
        assert chunks[0].text.rstrip().endswith('.')


class TestPreservedBlocks:
    def test_oversized_code_block_is_one_chunk(self) -> None:
        code = '```python\n' + '\n'.join(f'print({i})' for i in range(200)) + '\n```'
        text = f'Before.\n\n{code}\n\nAfter.'
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=5)).chunk(text, 'doc.md')
        containing = [c for c in chunks if '```python' in c.text]
        assert len(containing) == 1
        assert code in containing[0].text
        assert containing[0].contains_preserved_block
        assert containing[0].metadata.chunk_type == 'code'
        assert reassemble(list(chunks)) == text

    def test_unclosed_fence_runs_to_end(self) -> None:
        text = 'Intro.\n\n```\n' + 'line\n' * 100
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=10, overlap_tokens=0)).chunk(text, 'doc.md')
        assert chunks[-1].contains_preserved_block
        assert chunks[-1].text.endswith('line\n' * 100)

    def test_table_preserved(self) -> None:
        rows = '\n'.join(f'| row {i} | value {i} |' for i in range(50))
        text = f'| a | b |\n|---|---|\n{rows}'
        (chunk,) = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=0)).chunk(text, 'doc.md')
        assert chunk.metadata.has_tables
        assert chunk.metadata.chunk_type == 'table'

    def test_callout_preserved(self) -> None:
        text = '> [!note] Title\n' + '\n'.join(f'> line {i} of the callout body' for i in range(30))
        (chunk,) = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=0)).chunk(text, 'doc.md')
        assert chunk.metadata.has_callouts
        assert chunk.metadata.chunk_type == 'callout'

    def test_preservation_off_splits_code(self) -> None:
        code = '```\n' + '\n'.join(f'print({i})' for i in range(200)) + '\n```'
        strategy = ChunkStrategy(max_tokens=20, overlap_tokens=0, preserve_code_blocks=False)
        chunks = list(ChunkingEngine(strategy).chunk(code, 'doc.md'))
        assert len(chunks) > 1
        assert reassemble(chunks) == code


class TestOverlap:
    def test_next_chunk_starts_with_tail_of_previous(self) -> None:
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=5)).chunk(PARAGRAPHS, 'doc.md')
        assert len(chunks) > 1
        second = chunks[1]
        assert second.metadata.overlap_chars > 0
        carried = second.text[: second.metadata.overlap_chars]
        assert carried.strip() in chunks[0].text
        assert not carried[0].isspace()

    def test_no_overlap_when_disabled(self) -> None:
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=0)).chunk(PARAGRAPHS, 'doc.md')
        assert all(c.metadata.overlap_chars == 0 for c in chunks)

    def test_no_overlap_across_sections(self) -> None:
        text = '# A\n\n' + PARAGRAPHS + '\n\n# B\n\nShort.'
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=5)).chunk(text, 'doc.md')
        first_b = next(c for c in chunks if list(c.header_path) == ['B'])
        assert first_b.metadata.overlap_chars == 0

    def test_chunks_respect_budget(self) -> None:
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=5)).chunk(PARAGRAPHS, 'doc.md')
        assert all(c.approx_token_count <= 20 for c in chunks)


class TestMetadata:
    def test_ids_and_neighbours(self) -> None:
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=20, overlap_tokens=0)).chunk(PARAGRAPHS, 'a/b.md')
        assert [c.id for c in chunks] == [chunk_id('a/b.md', i) for i in range(len(chunks))]
        assert chunks[0].metadata.previous_chunk_id is None
        assert chunks[0].metadata.next_chunk_id == chunks[1].id
        assert chunks[-1].metadata.next_chunk_id is None
        assert chunks[-1].metadata.previous_chunk_id == chunks[-2].id

    def test_chunk_ids_are_stable(self) -> None:
        assert chunk_id('a.md', 0) == chunk_id('a.md', 0)
        assert chunk_id('a.md', 0) != chunk_id('a.md', 1)
        assert chunk_id('a.md', 0) != chunk_id('b.md', 0)

    @pytest.mark.parametrize(
        'text, expected',
        [
            ('---\ntitle: From Frontmatter\n---\n# Heading\n\nBody', 'From Frontmatter'),
            ('Intro\n\n# First H1\n\n# Second H1', 'First H1'),
            ('## Only H2\n\nBody', 'note'),
        ],
    )
    def test_title(self, text: str, expected: str) -> None:
        (chunk, *_) = ChunkingEngine().chunk(text, 'folder/note.md')
        assert chunk.metadata.title == expected

    def test_category_and_note_tags(self) -> None:
        text = '---\ntags: [alpha, "#beta"]\n---\nBody'
        (chunk,) = ChunkingEngine().chunk(text, 'projects/x.md')
        assert chunk.metadata.category == 'projects'
        assert list(chunk.metadata.note_tags) == ['alpha', 'beta']

    def test_frontmatter_comment_is_not_a_heading(self) -> None:
        text = '---\n# yaml comment\ntitle: T\n---\nBody'
        (chunk,) = ChunkingEngine().chunk(text, 'x.md')
        assert list(chunk.header_path) == []

    def test_links_and_tags_assigned_by_position(self) -> None:
        text = 'First [[A]] #one\n\n# Next\n\nSecond [[B]] #two'
        chunks = ChunkingEngine(ChunkStrategy(max_tokens=1000)).chunk(text, 'x.md')
        assert [link.target_id for link in chunks[0].links] == ['A']
        assert [tag.path for tag in chunks[0].tags] == ['one']
        assert [link.target_id for link in chunks[1].links] == ['B']
        assert [tag.path for tag in chunks[1].tags] == ['two']
        assert chunks[1].metadata.has_wiki_links

    def test_chunk_type_skips_heading(self) -> None:
        text = '# H\n\n- item one\n- item two'
        (chunk,) = ChunkingEngine(ChunkStrategy(max_tokens=1000)).chunk(text, 'x.md')
        assert chunk.metadata.chunk_type == 'list'


class TestEdgeCases:
    def test_empty_and_whitespace(self) -> None:
        engine = ChunkingEngine()
        assert list(engine.chunk('', 'x.md')) == []
        assert list(engine.chunk('  \n\n\t', 'x.md')) == []

    def test_nul_rejected(self) -> None:
        with pytest.raises(ChunkingError, match='NUL'):
            ChunkingEngine().chunk('abc\x00def', 'x.md')

    def test_crlf_heading(self) -> None:
        text = '# Title\r\n\r\nBody\r\n'
        (chunk,) = ChunkingEngine().chunk(text, 'x.md')
        assert list(chunk.header_path) == ['Title']
        assert chunk.text == text

    def test_closing_hashes_stripped(self) -> None:
        (chunk,) = ChunkingEngine().chunk('## Title ##\n\nBody', 'x.md')
        assert list(chunk.header_path) == ['Title']

    def test_strategy_validation(self) -> None:
        with pytest.raises(ValueError, match='overlap_tokens'):
            ChunkStrategy(max_tokens=10, overlap_tokens=10)
