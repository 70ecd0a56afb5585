"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json
import re
from typing import Callable, List, Optional, Tuple

from .errors import MalformedModelOutput

_OPENING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(raw: str) -> str:
    """Remove a leading ```/```json fence and a trailing ``` fence, if present."""
    text = raw.strip()
    if not text.startswith("```"):
        return text
    text = _OPENING_FENCE.sub("", text, count=1)
    return _CLOSING_FENCE.sub("", text, count=1)


def slice_braces(raw: str) -> Optional[str]:
    """Return the substring from the first '{' to the last '}', or None."""
    start = raw.find("{")
    end = raw.rfind("}")
    if start < 0 or end <= start:
        return None
    return raw[start:end + 1]


def _strict(raw: str) -> Optional[str]:
    return raw.strip()


def _fence_stripped(raw: str) -> Optional[str]:
    return strip_code_fences(raw)


def _brace_sliced(raw: str) -> Optional[str]:
    return slice_braces(strip_code_fences(raw))


# Tried in order; the first stage that yields a JSON object wins.
PARSE_STAGES: List[Tuple[str, Callable[[str], Optional[str]]]] = [
    ("strict", _strict),
    ("fence_stripped", _fence_stripped),
    ("brace_sliced", _brace_sliced),
]


def parse_llm_json_staged(raw: str) -> Tuple[dict, str]:
    """Parse a JSON object from an LLM response and report which stage succeeded.

    Raises:
        MalformedModelOutput: if no stage produces a JSON object
    """
    if not raw or not raw.strip():
        raise MalformedModelOutput("Empty model response", raw=raw or "")

    last_error = "no JSON object found"
    for name, stage in PARSE_STAGES:
        candidate = stage(raw)
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = str(e)
            continue
        if isinstance(data, dict):
            return data, name
        last_error = f"expected a JSON object, got {type(data).__name__}"

    raise MalformedModelOutput(f"Could not parse model output: {last_error}", raw=raw)


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Direct json.loads on the raw string
    2. Strip markdown code fences, then json.loads
    3. Extract substring between first '{' and last '}', then json.loads
    4. Raise MalformedModelOutput
    """
    data, _ = parse_llm_json_staged(raw)
    return data
