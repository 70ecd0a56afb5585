"""Tests for LLM story extraction and response parsing."""

import json
import pytest
from unittest.mock import MagicMock

from storyforge.common.errors import MalformedModelOutput, TransientExternalError
from storyforge.pipeline.story_extractor import (
    GENERIC_PRODUCT_CONTEXT,
    StoryExtractor,
    load_product_context,
)

from conftest import CUTOFF, words

TRANSCRIPT = words(60, "export")

STORY = {
    "title": "Add CSV export to reports",
    "userStory": "As an analyst, I want CSV export so that I can share reports",
    "problemStatement": "Reports cannot leave the app.",
    "type": "Feature",
    "priority": "High",
    "effort": "3",
    "epic": "Reporting",
    "description": "Add an export button.",
    "acceptanceCriteria": ["Button visible", "File downloads"],
    "technicalRequirements": ["Stream rows"],
    "businessValue": "Unblocks enterprise deals",
    "risks": [],
    "confidence": 0.85,
    "discussionContext": "Dana asked for exports",
}


def _extractor(response):
    llm = MagicMock()
    llm.is_available = True
    if isinstance(response, Exception):
        llm.generate.side_effect = response
    else:
        llm.generate.return_value = response
    return StoryExtractor(llm, product_context="ACME analytics", clock=lambda: CUTOFF), llm


class TestExtract:
    def test_happy_path_stamps_items(self):
        extractor, llm = _extractor(json.dumps({"stories": [STORY]}))

        outcome = extractor.extract(TRANSCRIPT, "Weekly sync", "doc-1", "https://fathom.video/share/x1")

        assert outcome.error is None
        assert outcome.count == 1
        item = outcome.stories[0]
        assert item.id.startswith("story-")
        assert item.title == "Add CSV export to reports"
        assert item.acceptance_criteria == ["Button visible", "File downloads"]
        assert item.source_document_id == "doc-1"
        assert item.source_title == "Weekly sync"
        assert item.source_timestamp == CUTOFF
        assert item.share_url == "https://fathom.video/share/x1"
        assert item.confidence == 0.85
        assert not item.confidence_out_of_range

    def test_request_parameters(self):
        extractor, llm = _extractor('{"stories": []}')

        extractor.extract(TRANSCRIPT, "Weekly sync")

        args, kwargs = llm.generate.call_args
        assert "Meeting: Weekly sync" in args[0]
        assert TRANSCRIPT in args[0]
        assert "ACME analytics" in kwargs["system"]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 4000

    def test_short_transcript_skips_backend(self):
        extractor, llm = _extractor('{"stories": []}')

        outcome = extractor.extract("too short", "Standup")

        assert outcome.stories == []
        assert "too short" in outcome.skipped_reason
        llm.generate.assert_not_called()

    def test_fenced_response_parsed(self):
        extractor, _ = _extractor("```json\n" + json.dumps({"stories": [STORY]}) + "\n```")
        assert extractor.extract(TRANSCRIPT, "Weekly sync").count == 1

    def test_malformed_response_yields_error_not_exception(self, caplog):
        extractor, _ = _extractor("I could not find any stories, sorry!")

        outcome = extractor.extract(TRANSCRIPT, "Weekly sync")

        assert outcome.stories == []
        assert outcome.error.startswith("MalformedModelOutput")
        assert outcome.raw_response == "I could not find any stories, sorry!"
        assert "Raw response" in caplog.text

    def test_empty_stories_is_not_an_error(self):
        extractor, _ = _extractor('{"stories": []}')
        outcome = extractor.extract(TRANSCRIPT, "Weekly sync")
        assert outcome.stories == []
        assert outcome.error is None

    def test_backend_error_propagates(self):
        extractor, _ = _extractor(TransientExternalError("llm", "timeout"))
        with pytest.raises(TransientExternalError):
            extractor.extract(TRANSCRIPT, "Weekly sync")


class TestParseResponse:
    def test_missing_stories_key_is_empty(self):
        extractor, _ = _extractor("")
        assert extractor.parse_response('{"items": []}') == []

    def test_non_list_stories_rejected(self):
        extractor, _ = _extractor("")
        with pytest.raises(MalformedModelOutput, match="not a list"):
            extractor.parse_response('{"stories": "none"}')

    def test_non_object_entries_ignored(self):
        extractor, _ = _extractor("")
        items = extractor.parse_response(json.dumps({"stories": ["junk", STORY]}))
        assert len(items) == 1

    def test_confidence_clamped_and_flagged(self):
        extractor, _ = _extractor("")
        raw = json.dumps({"stories": [dict(STORY, confidence=1.7), dict(STORY, confidence=-2)]})
        high, low = extractor.parse_response(raw)
        assert (high.confidence, high.confidence_out_of_range) == (1.0, True)
        assert (low.confidence, low.confidence_out_of_range) == (0.0, True)

    def test_missing_fields_defaulted(self):
        extractor, _ = _extractor("")
        (item,) = extractor.parse_response('{"stories": [{"title": "Fix login"}]}')
        assert item.priority == "Medium"
        assert item.type == "Feature"
        assert item.acceptance_criteria == []
        assert item.confidence_out_of_range

    def test_ids_unique(self):
        extractor, _ = _extractor("")
        items = extractor.parse_response(json.dumps({"stories": [STORY, STORY]}))
        assert items[0].id != items[1].id


class TestProductContext:
    def test_reads_file(self, tmp_path):
        path = tmp_path / "PRODUCT_CONTEXT.md"
        path.write_text("We build analytics.")
        assert load_product_context(str(path)) == "We build analytics."

    def test_missing_file_uses_generic(self, tmp_path):
        assert load_product_context(str(tmp_path / "nope.md")) == GENERIC_PRODUCT_CONTEXT
        assert load_product_context(None) == GENERIC_PRODUCT_CONTEXT
