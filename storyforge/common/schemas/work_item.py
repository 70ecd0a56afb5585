"""
Work Item Schema

A work item (story) is one actionable development task extracted from a
meeting transcript. It is created by the story extractor, annotated with
its notification status by the notifier, and frozen once deployed to the
issue tracker.

JSON field names follow the extraction contract (camelCase); Python
attributes are snake_case.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import ValidationError


# ============================================================================
# Enums
# ============================================================================

class Priority(str, Enum):
    """Priorities the issue tracker understands"""
    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Priority"]:
        """Return the matching Priority, or None for anything unrecognized"""
        for member in cls:
            if member.value == value:
                return member
        return None


# ============================================================================
# Sub-models
# ============================================================================

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NotificationResult(_CamelModel):
    """Outcome of one (work item, webhook) delivery attempt"""
    success: bool
    error_detail: Optional[str] = None
    status_code: Optional[int] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    latency_ms: Optional[int] = None


# ============================================================================
# Main Schema
# ============================================================================

class WorkItem(_CamelModel):
    """Structured, actionable development task extracted from a transcript"""
    id: str = Field(..., description="Unique ID: story-<hex>")
    title: str
    user_story: Optional[str] = None
    problem_statement: Optional[str] = None
    type: str = "Feature"
    priority: str = "Medium"
    effort: str = ""
    epic: str = ""
    description: str = ""
    acceptance_criteria: List[str] = Field(default_factory=list)
    technical_requirements: List[str] = Field(default_factory=list)
    business_value: str = ""
    risks: List[str] = Field(default_factory=list)
    confidence: float = 0.0
    confidence_out_of_range: bool = Field(
        default=False, description="Model reported a confidence outside [0, 1]; value was clamped"
    )
    discussion_context: Optional[str] = None

    source_document_id: Optional[str] = None
    source_title: str = ""
    source_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    share_url: str = ""

    notification_status: Optional[NotificationResult] = None
    deployed_issue_key: Optional[str] = None

    @property
    def is_deployed(self) -> bool:
        return self.deployed_issue_key is not None

    def attach_notification(self, result: NotificationResult) -> None:
        self._ensure_mutable()
        self.notification_status = result

    def mark_deployed(self, issue_key: str) -> None:
        self._ensure_mutable()
        self.deployed_issue_key = issue_key

    def _ensure_mutable(self) -> None:
        if self.is_deployed:
            raise ValidationError(
                f"Work item {self.id} is already deployed as {self.deployed_issue_key}"
            )


def generate_work_item_id() -> str:
    """Generate a unique ID for a work item"""
    return f"story-{uuid.uuid4().hex[:12]}"


def clamp_confidence(value) -> tuple:
    """Clamp a model-reported confidence into [0, 1].

    Returns:
        (clamped value, True if the input was missing or out of range)
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0, True
    if number != number:  # NaN
        return 0.0, True
    if number < 0.0:
        return 0.0, True
    if number > 1.0:
        return 1.0, True
    return number, False
