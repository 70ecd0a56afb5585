"""
Plain text -> Atlassian Document Format (ADF).

The issue tracker only accepts descriptions as ADF documents. Each
non-empty line becomes one paragraph; lines starting with a section
marker glyph are rendered bold.
"""

from typing import Any, Dict, List

# Section markers that render as bold headings
HEADING_MARKERS = ("🎯 ", "✅ ", "⚙️ ", "⚠️ ", "🤖 ")


def is_heading_line(line: str) -> bool:
    return line.startswith(HEADING_MARKERS)


def _paragraph(text: str, bold: bool = False) -> Dict[str, Any]:
    node: Dict[str, Any] = {"type": "text", "text": text}
    if bold:
        node["marks"] = [{"type": "strong"}]
    return {"type": "paragraph", "content": [node]}


def text_to_adf(text: str) -> Dict[str, Any]:
    """Convert plain text with newlines to an ADF document.

    Blank lines are dropped; the document always holds at least one
    (possibly empty) paragraph.
    """
    content: List[Dict[str, Any]] = []

    for line in (text or "").split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        content.append(_paragraph(stripped, bold=is_heading_line(stripped)))

    if not content:
        content.append({"type": "paragraph", "content": []})

    return {"type": "doc", "version": 1, "content": content}
