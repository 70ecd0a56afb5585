"""
Storyforge Work Item Schemas
"""

from .work_item import (
    WorkItem,
    NotificationResult,
    Priority,
    generate_work_item_id,
    clamp_confidence,
)
from .templates import render_description_text, render_confidence

__all__ = [
    "WorkItem",
    "NotificationResult",
    "Priority",
    "generate_work_item_id",
    "clamp_confidence",
    "render_description_text",
    "render_confidence",
]
