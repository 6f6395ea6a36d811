from __future__ import annotations

import pytest

from briefing_pipeline.errors import ContentFailure
from briefing_pipeline.utils.payload import extract_json_payload, strip_code_fences


def test_bare_json_object() -> None:
    assert extract_json_payload('{"a": 1, "b": [1, 2]}') == {"a": 1, "b": [1, 2]}


def test_fenced_json_block() -> None:
    text = 'Here you go:\n```json\n{"industry_sector": "Retail", "trends": ["AI"]}\n```\nThanks!'
    assert extract_json_payload(text) == {"industry_sector": "Retail", "trends": ["AI"]}


def test_json_inside_prose() -> None:
    text = 'Sure. The answer is {"trends": ["x", "y"], "note": "braces } in strings"} as requested.'
    assert extract_json_payload(text)["note"] == "braces } in strings"


def test_first_parseable_span_wins() -> None:
    text = "set {not json} then [1, 2, 3] and {\"k\": true}"
    assert extract_json_payload(text) == [1, 2, 3]


def test_unterminated_fence_is_tolerated() -> None:
    assert strip_code_fences('```json\n{"a": 1}') == '{"a": 1}'
    assert extract_json_payload('```json\n{"a": 1}') == {"a": 1}


@pytest.mark.parametrize("text", ["", "   ", "```\n```", "no structure here", '{"a": 1'])
def test_no_payload_is_content_failure(text: str) -> None:
    with pytest.raises(ContentFailure):
        extract_json_payload(text)
