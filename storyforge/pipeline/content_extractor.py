"""
Content Extractor

Flattens a transcript's Notion blocks into plain text and decides whether
there is enough content to be worth a generative-model call.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

# Block types whose rich_text is kept; everything else is skipped
TEXT_BLOCK_TYPES = ("paragraph", "heading_1", "heading_2", "heading_3")

# Documents at or below this word count are never sent for extraction
MIN_WORD_COUNT = 50

# Meeting-recording share link, kept on each story for traceability
SHARE_URL_PATTERN = re.compile(r"https://fathom\.video/share/[A-Za-z0-9]+")


@dataclass
class ExtractedText:
    """Plain-text view of one document, recomputed on every run"""
    document_id: str
    text: str
    word_count: int
    embedded_links: List[str] = field(default_factory=list)

    @property
    def is_sufficient(self) -> bool:
        return has_sufficient_content(self.word_count)

    @property
    def share_url(self) -> str:
        return self.embedded_links[0] if self.embedded_links else ""


def has_sufficient_content(word_count: int) -> bool:
    return word_count > MIN_WORD_COUNT


def flatten_blocks(blocks: List[Dict[str, Any]]) -> str:
    """Concatenate paragraph and heading text, one line per block"""
    parts: List[str] = []
    for block in blocks or []:
        block_type = block.get("type", "")
        if block_type not in TEXT_BLOCK_TYPES:
            continue
        rich_text = block.get(block_type, {}).get("rich_text") or []
        parts.append("".join(t.get("plain_text", "") for t in rich_text) + "\n")
    return "".join(parts)


def count_words(text: str) -> int:
    return len(text.split())


def find_share_links(text: str) -> List[str]:
    return SHARE_URL_PATTERN.findall(text or "")


def extract_text(document_id: str, blocks: List[Dict[str, Any]]) -> ExtractedText:
    """Build the ExtractedText for a document's blocks"""
    text = flatten_blocks(blocks).strip()
    return ExtractedText(
        document_id=document_id,
        text=text,
        word_count=count_words(text),
        embedded_links=find_share_links(text),
    )
