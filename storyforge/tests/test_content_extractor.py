"""Tests for block flattening and the word-count gate."""

from storyforge.pipeline.content_extractor import (
    MIN_WORD_COUNT,
    count_words,
    extract_text,
    flatten_blocks,
    has_sufficient_content,
)

from conftest import paragraph, words


class TestFlattenBlocks:
    def test_paragraphs_and_headings_kept_in_order(self):
        blocks = [
            paragraph("Weekly sync", "heading_1"),
            paragraph("We talked about exports."),
            paragraph("Next steps", "heading_3"),
        ]
        assert flatten_blocks(blocks) == "Weekly sync\nWe talked about exports.\nNext steps\n"

    def test_other_block_types_skipped(self):
        blocks = [
            paragraph("kept"),
            {"type": "bulleted_list_item", "bulleted_list_item": {"rich_text": [{"plain_text": "dropped"}]}},
            {"type": "image", "image": {}},
        ]
        assert flatten_blocks(blocks) == "kept\n"

    def test_multiple_runs_concatenated(self):
        block = {"type": "paragraph", "paragraph": {"rich_text": [
            {"plain_text": "Hello "}, {"plain_text": "world"},
        ]}}
        assert flatten_blocks([block]) == "Hello world\n"

    def test_empty_inputs(self):
        assert flatten_blocks([]) == ""
        assert flatten_blocks(None) == ""
        assert flatten_blocks([{"type": "paragraph", "paragraph": {}}]) == "\n"


class TestWordGate:
    def test_count_words_splits_on_whitespace(self):
        assert count_words("  one\ttwo\n\nthree  ") == 3
        assert count_words("") == 0

    def test_boundary(self):
        assert MIN_WORD_COUNT == 50
        assert not has_sufficient_content(50)
        assert has_sufficient_content(51)

    def test_exactly_fifty_words_insufficient(self):
        extracted = extract_text("doc-1", [paragraph(words(50))])
        assert extracted.word_count == 50
        assert not extracted.is_sufficient

    def test_fifty_one_words_sufficient(self):
        extracted = extract_text("doc-1", [paragraph(words(25)), paragraph(words(26))])
        assert extracted.word_count == 51
        assert extracted.is_sufficient


class TestShareLinks:
    def test_share_link_found(self):
        blocks = [paragraph("Recording: https://fathom.video/share/AbC123xyz thanks")]
        extracted = extract_text("doc-1", blocks)
        assert extracted.share_url == "https://fathom.video/share/AbC123xyz"

    def test_no_share_link(self):
        assert extract_text("doc-1", [paragraph("nothing here")]).share_url == ""

    def test_text_is_trimmed(self):
        assert extract_text("doc-1", [paragraph("  hi  ")]).text == "hi"
