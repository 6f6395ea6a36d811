from __future__ import annotations

import json
import re
from typing import Any

from briefing_pipeline.errors import ContentFailure

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*\s*\n?(.*?)```", re.DOTALL)


def strip_code_fences(s: str) -> str:
    """
    Return the body of the first fenced block, or the trimmed text when there is none.
    An unterminated opening fence is dropped as well.
    """
    t = str(s or "").strip()
    m = _FENCE_RE.search(t)
    if m:
        return m.group(1).strip()
    if t.startswith("```"):
        t = t.split("\n", 1)[1] if "\n" in t else ""
    return t.strip()


def _balanced_spans(text: str) -> list[tuple[int, int]]:
    """
    Candidate (start, end) spans of top-level {...} / [...] blocks, string-literal aware.
    """
    spans: list[tuple[int, int]] = []
    stack: list[str] = []
    start = -1
    in_str = False
    escaped = False
    pairs = {"{": "}", "[": "]"}
    for i, ch in enumerate(text):
        if in_str:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"' and stack:
            in_str = True
        elif ch in pairs:
            if not stack:
                start = i
            stack.append(pairs[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
            if not stack:
                spans.append((start, i + 1))
        elif stack and ch in "]}":
            # mismatched closer: abandon this candidate
            stack.clear()
    return spans


def extract_json_payload(text: str) -> Any:
    """
    Extract the structured payload from a free-text model reply.

    Accepts a bare JSON document, a fenced ```json block, or prose around one JSON
    object/array (the first one that parses wins). Raises ContentFailure when no
    valid payload is found.
    """
    body = strip_code_fences(text)
    if not body:
        raise ContentFailure("empty reply where a JSON payload was expected")
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        pass
    for start, end in _balanced_spans(body):
        try:
            return json.loads(body[start:end])
        except json.JSONDecodeError:
            continue
    raise ContentFailure(f"no valid JSON payload in reply (first 120 chars: {body[:120]!r})")
