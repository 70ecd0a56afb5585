"""Shared fixtures for the transcript pipeline tests."""

from datetime import datetime, timezone

import pytest

CUTOFF = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def paragraph(text, block_type="paragraph"):
    """A Notion block with one rich_text run"""
    return {
        "type": block_type,
        block_type: {"rich_text": [{"plain_text": text}]},
    }


def words(n, word="alpha"):
    return " ".join([word] * n)


@pytest.fixture
def fixed_clock():
    return lambda: CUTOFF


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "processed_transcripts.json"
