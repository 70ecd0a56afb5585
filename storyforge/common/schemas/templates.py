"""
Work Item Text Templates

Renders a WorkItem to the plain-text description posted to the issue
tracker. Section headings start with the marker glyphs that the ADF
converter renders bold.
"""

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .work_item import WorkItem


def _bullets(items: List[str]) -> List[str]:
    if not items:
        return ["• (none documented)"]
    return [f"• {item}" for item in items]


def render_confidence(item: "WorkItem") -> str:
    return f"{round(item.confidence * 100)}%"


def render_description_text(item: "WorkItem") -> str:
    """Render the issue description for a work item"""
    lines = [
        "👤 User Story:",
        item.user_story or "Not specified",
        "",
        "🎯 Problem/Opportunity:",
        item.problem_statement or "Not specified",
        "",
        "📋 Description:",
        item.description or "Not specified",
        "",
        "💰 Business Value:",
        item.business_value or "Not specified",
        "",
        "✅ Acceptance Criteria:",
        *_bullets(item.acceptance_criteria),
        "",
        "⚙️ Technical Requirements:",
        *_bullets(item.technical_requirements),
        "",
        "⚠️ Risks:",
        *_bullets(item.risks),
        "",
        f"🤖 Generated by Storyforge from: {item.source_title or item.source_document_id or 'unknown'}",
        f"Confidence: {render_confidence(item)} | Date: {item.source_timestamp.date().isoformat()}",
    ]
    if item.share_url:
        lines.append(f"Recording: {item.share_url}")
    return "\n".join(lines)
