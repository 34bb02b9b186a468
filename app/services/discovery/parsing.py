"""Best-effort extraction of JSON values embedded in free-form model output."""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

_CLOSERS = {"[": "]", "{": "}"}


def iter_json_arrays(raw_text: str | None) -> Iterator[list[Any]]:
    """Yield every balanced, decodable JSON array in ``raw_text`` in order of appearance."""
    for candidate in _balanced_candidates(raw_text or "", "["):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, list):
            yield value


def extract_json_object(raw_text: str | None) -> dict[str, Any] | None:
    """Return the first balanced, decodable JSON object in ``raw_text``."""
    for candidate in _balanced_candidates(raw_text or "", "{"):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
    return None


def _balanced_candidates(text: str, opener: str) -> Iterator[str]:
    start = text.find(opener)
    while start != -1:
        end = _matching_close(text, start)
        if end is not None:
            yield text[start : end + 1]
        start = text.find(opener, start + 1)


def _matching_close(text: str, start: int) -> int | None:
    """Index of the bracket closing ``text[start]``; string literals are skipped."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("]", "}"):
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return index
    return None


def optional_text(value: Any) -> str | None:
    """Coerce a loosely-typed field into a trimmed string or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed and trimmed.lower() not in {"null", "none", "unknown", "n/a"}:
            return trimmed
    return None
