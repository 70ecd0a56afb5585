"""
LLM-based Story Extractor

Turns a meeting transcript into development stories (work items) using a
generative text backend and a fixed JSON extraction contract.

The backend is asked for JSON only, but its output is parsed defensively
(see common.llm_utils). Unparseable output yields zero stories rather than
an exception; callers see the failure in ExtractionOutcome.error.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from ..common.errors import MalformedModelOutput
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import WorkItem, clamp_confidence, generate_work_item_id

logger = logging.getLogger("storyforge.pipeline.story_extractor")

# Transcripts shorter than this (in characters) are never sent to the backend
MIN_TRANSCRIPT_CHARS = 100

GENERIC_PRODUCT_CONTEXT = """Generic product context. For better stories, create context/PRODUCT_CONTEXT.md with your specific:
- Products and features
- User personas
- Technical architecture
- Business priorities
- Domain knowledge"""


SYSTEM_PROMPT = """You are Storyforge, an autonomous system for extracting clear, actionable development stories from meeting transcripts.

PRODUCT CONTEXT:
{product_context}

CRITICAL INSTRUCTION: You MUST respond with ONLY valid JSON. No other text, no markdown, no code blocks, no explanations. Start your response with {{ and end with }}.

Required JSON structure:
{{
  "stories": [
    {{
      "title": "Clear, actionable story title starting with a verb",
      "userStory": "As a [specific user role], I want [specific capability] so that [clear benefit]",
      "problemStatement": "What problem or opportunity this addresses in 1-3 sentences",
      "type": "Feature | Bug | Technical Debt | UX | Infrastructure | Performance | API | Database",
      "priority": "High | Medium | Low",
      "effort": "1 | 2 | 3 | 5 | 8 story points",
      "epic": "Epic category this belongs to",
      "description": "Detailed description of what needs to be built or changed",
      "acceptanceCriteria": ["specific testable condition 1", "specific testable condition 2"],
      "technicalRequirements": ["implementation detail 1", "implementation detail 2"],
      "businessValue": "Why this matters to the business",
      "risks": ["potential risk 1", "potential risk 2"],
      "confidence": 0.0-1.0,
      "discussionContext": "Brief excerpt from meeting where this was discussed"
    }}
  ]
}}

Extraction Rules:
- Extract EVERY distinct development item discussed
- Create separate stories for each deliverable
- Use realistic user personas from the product context above
- Make titles action-oriented (Add, Fix, Implement, Create, Update)
- Use Fibonacci sequence for effort (1, 2, 3, 5, 8)
- Base priority on business impact discussed in meeting

REMEMBER: Respond with ONLY the JSON object. No other text."""


USER_PROMPT = """Extract development stories from this meeting transcript:

Meeting: {title}

Transcript: {transcript}

Return ONLY the JSON object with the stories array."""


def load_product_context(path: Optional[str]) -> str:
    """Read the product context document, falling back to a generic one"""
    if path:
        context_path = Path(path)
        try:
            if context_path.exists():
                logger.info("Product context loaded from %s", context_path)
                return context_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Failed to read product context %s: %s", context_path, e)
            return GENERIC_PRODUCT_CONTEXT
    logger.info("No product context found - using generic context. "
                "Create context/PRODUCT_CONTEXT.md for better stories")
    return GENERIC_PRODUCT_CONTEXT


@dataclass
class ExtractionOutcome:
    """Result of one extraction call: stories, or why there are none"""
    stories: List[WorkItem] = field(default_factory=list)
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    raw_response: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.stories)


def _str_list(value) -> List[str]:
    if not isinstance(value, list):
        return [str(value)] if value else []
    return [str(v) for v in value if v]


def _opt_str(value) -> Optional[str]:
    return str(value) if value else None


class StoryExtractor:
    """Extracts development stories from transcripts with an LLM.

    Args:
        llm: Provider-agnostic LLM client
        product_context: Text embedded in the system prompt
        temperature: Sampling temperature for extraction
        max_tokens: Completion budget
        clock: Returns the stamping time (injectable for tests)
    """

    def __init__(
        self,
        llm: LLMClient,
        product_context: str = GENERIC_PRODUCT_CONTEXT,
        temperature: float = 0.2,
        max_tokens: int = 4000,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._llm = llm
        self._product_context = product_context
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def is_available(self) -> bool:
        return self._llm is not None and self._llm.is_available

    @property
    def system_prompt(self) -> str:
        return SYSTEM_PROMPT.format(product_context=self._product_context)

    def extract(
        self,
        transcript: str,
        title: str,
        document_id: Optional[str] = None,
        share_url: str = "",
    ) -> ExtractionOutcome:
        """Extract stories from a transcript.

        Backend errors (TransientExternalError, ConfigurationError) propagate
        to the caller; malformed output does not.
        """
        if not transcript or len(transcript) < MIN_TRANSCRIPT_CHARS:
            length = len(transcript or "")
            logger.info("Skipping extraction: transcript too short (%d chars)", length)
            return ExtractionOutcome(skipped_reason=f"transcript too short ({length} chars)")

        logger.info("Extracting stories from: %s (%d chars)", title, len(transcript))
        raw = self._llm.generate(
            USER_PROMPT.format(title=title, transcript=transcript),
            system=self.system_prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

        try:
            stories = self.parse_response(raw, title, document_id, share_url)
        except MalformedModelOutput as e:
            logger.error("Extraction failed - invalid model response for %s: %s", title, e)
            logger.error("Raw response (first 500 chars): %s", (e.raw or "")[:500])
            return ExtractionOutcome(error=f"MalformedModelOutput: {e}", raw_response=raw)

        if not stories:
            logger.info("No stories found in transcript: %s", title)
        else:
            logger.info("Generated %d stories from: %s", len(stories), title)
        return ExtractionOutcome(stories=stories, raw_response=raw)

    def parse_response(
        self,
        raw: str,
        title: str = "",
        document_id: Optional[str] = None,
        share_url: str = "",
    ) -> List[WorkItem]:
        """Parse a raw backend response into stamped WorkItems.

        Raises:
            MalformedModelOutput: if the payload is not a JSON object with
                a ``stories`` list
        """
        data = parse_llm_json(raw)
        stories_data = data.get("stories")
        if stories_data is None:
            return []
        if not isinstance(stories_data, list):
            raise MalformedModelOutput("'stories' is not a list", raw=raw)

        stamped_at = self._clock()
        items = []
        for entry in stories_data:
            if not isinstance(entry, dict):
                logger.warning("Ignoring non-object story entry: %r", entry)
                continue
            items.append(self._build_item(entry, title, document_id, share_url, stamped_at))
        return items

    def _build_item(
        self,
        data: dict,
        title: str,
        document_id: Optional[str],
        share_url: str,
        stamped_at: datetime,
    ) -> WorkItem:
        confidence, out_of_range = clamp_confidence(data.get("confidence"))
        if out_of_range:
            logger.warning("Story %r reported confidence %r; clamped to %.2f",
                           data.get("title"), data.get("confidence"), confidence)

        return WorkItem(
            id=generate_work_item_id(),
            title=str(data.get("title") or "Untitled story"),
            user_story=_opt_str(data.get("userStory")),
            problem_statement=_opt_str(data.get("problemStatement")),
            type=str(data.get("type") or "Feature"),
            priority=str(data.get("priority") or "Medium"),
            effort=str(data.get("effort") or ""),
            epic=str(data.get("epic") or ""),
            description=str(data.get("description") or ""),
            acceptance_criteria=_str_list(data.get("acceptanceCriteria")),
            technical_requirements=_str_list(data.get("technicalRequirements")),
            business_value=str(data.get("businessValue") or ""),
            risks=_str_list(data.get("risks")),
            confidence=confidence,
            confidence_out_of_range=out_of_range,
            discussion_context=_opt_str(data.get("discussionContext")),
            source_document_id=document_id,
            source_title=title,
            source_timestamp=stamped_at,
            share_url=share_url,
        )
