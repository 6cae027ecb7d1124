"""Parsing of JSON returned by LLM calls.

Models often wrap JSON in markdown fences or cut it off at the token
limit. These helpers strip the wrapping and, where a caller opts in,
attempt a best-effort repair of truncated output.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_STRAY_FENCE = re.compile(r"```(?:json|JSON)?")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_DANGLING_KEY = re.compile(r'[,{]\s*"(?:[^"\\]|\\.)*"\s*:?\s*$')


def strip_code_fences(text: str) -> str:
    """Return the JSON payload inside a ```json fence (or the text itself)."""
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    # Unclosed fence from a truncated response
    return _STRAY_FENCE.sub("", text).strip()


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse an LLM response into a JSON object.

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        # Prose before or after the object
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise
        parsed = json.loads(cleaned[start:end + 1])

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def repair_json(text: str) -> str:
    """Best-effort repair of truncated or sloppy JSON.

    Handles trailing commas, an unterminated final string, a dangling
    key without a value and unbalanced braces/brackets.
    """
    repaired = _TRAILING_COMMA.sub(r"\1", text.strip())

    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in repaired:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    # A key with no value (`{"a": 1, "b"` or `{"a": 1, "b":`) cannot be kept
    if stack and stack[-1] == "{":
        dangling = _DANGLING_KEY.search(repaired)
        if dangling:
            cut = dangling.start()
            keep_brace = repaired[cut] == "{"
            repaired = repaired[:cut + 1] if keep_brace else repaired[:cut]

    repaired = repaired.rstrip()
    while repaired.endswith((",", ":")):
        repaired = repaired[:-1].rstrip()

    closers = {"{": "}", "[": "]"}
    repaired += "".join(closers[opener] for opener in reversed(stack))
    return repaired


def parse_json_object_with_repair(text: str) -> dict[str, Any]:
    """Like parse_json_object, but tries repair_json once before failing."""
    try:
        return parse_json_object(text)
    except ValueError:
        repaired = repair_json(strip_code_fences(text))
        parsed = json.loads(repaired)
        if not isinstance(parsed, dict):
            raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
        return parsed
