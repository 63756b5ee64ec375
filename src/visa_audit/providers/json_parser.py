"""Lenient JSON extraction from model replies.

Replies arrive wrapped in fences, preceded by prose, or with trailing commas.
Strategies are tried in order: ```json fence, generic fence, full text,
then a brace scan for the first balanced object or array.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from visa_audit.exceptions import JSONParseError

log = logging.getLogger(__name__)

_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _try_parse(s: str) -> Any | None:
    """Attempt JSON parse, then retry with common fixups."""
    s = s.strip()
    if not s:
        return None
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        pass
    fixed = _TRAILING_COMMA.sub(r"\1", s.replace(": None", ": null"))
    try:
        return json.loads(fixed)
    except json.JSONDecodeError:
        return None


def _fenced(content: str, marker: str) -> str | None:
    start = content.find(marker)
    if start == -1:
        return None
    inner = content[start + len(marker):]
    end = inner.find("```")
    if end == -1:
        return None
    return inner[:end]


def _balanced(content: str, open_ch: str, close_ch: str) -> str | None:
    """Return the first balanced ``open_ch ... close_ch`` span, honoring strings."""
    idx = content.find(open_ch)
    if idx == -1:
        return None
    depth = 0
    in_string = False
    escape = False
    for i in range(idx, len(content)):
        ch = content[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return content[idx : i + 1]
    return None


def extract_json(content: str) -> Any:
    """Parse JSON from a model reply.

    Raises:
        JSONParseError: No strategy produced valid JSON.
    """
    for marker in ("```json", "```"):
        inner = _fenced(content, marker)
        if inner is not None:
            result = _try_parse(inner)
            if result is not None:
                return result

    result = _try_parse(content)
    if result is not None:
        return result

    for open_ch, close_ch in (("{", "}"), ("[", "]")):
        span = _balanced(content, open_ch, close_ch)
        if span is not None:
            result = _try_parse(span)
            if result is not None:
                return result

    log.warning("Failed to parse JSON from model reply (length=%d): %.200s", len(content), content)
    raise JSONParseError("No valid JSON found in model reply", raw_response=content)


def extract_json_object(content: str) -> dict[str, Any]:
    """Like :func:`extract_json` but the top-level value must be an object."""
    result = extract_json(content)
    if not isinstance(result, dict):
        raise JSONParseError(
            f"Expected a JSON object, got {type(result).__name__}", raw_response=content
        )
    return result
