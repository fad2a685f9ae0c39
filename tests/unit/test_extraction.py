from __future__ import annotations

import json
from datetime import date
from unittest.mock import MagicMock

import pytest

from issue_autofill.models import ExtractionMethod, FieldDescriptor, FieldType
from issue_autofill.pipeline.extraction import (
    FieldExtractor,
    build_prompt,
    parse_ai_response,
    suggest_values,
)

TEXT = "This is urgent, needed by Q3 2025, about 5 story points"


@pytest.fixture
def fields():
    return [
        FieldDescriptor(id="summary", name="Summary", required=True),
        FieldDescriptor(
            id="priority",
            name="Priority",
            type=FieldType.PRIORITY,
            allowed_values=[{"id": str(i), "name": n} for i, n in enumerate(["Highest", "High", "Medium", "Low"], 1)],
        ),
        FieldDescriptor(
            id="customfield_26362",
            name="Delivery Quarter",
            type=FieldType.SELECT,
            required=True,
            allowed_values=[f"Q{q} {y}" for y in (2025, 2026) for q in range(1, 5)],
        ),
        FieldDescriptor(id="customfield_10016", name="Story Points", type=FieldType.NUMBER),
    ]


@pytest.fixture
def extractor():
    return FieldExtractor(today=lambda: date(2025, 8, 1))


def _provider(reply):
    provider = MagicMock()
    provider.complete.return_value = reply if isinstance(reply, str) else json.dumps(reply)
    return provider


def test_pattern_tier_on_reference_sentence(extractor, fields):
    res = extractor.extract(TEXT, fields)

    got = {e.field_id: (e.value, e.confidence, e.method) for e in res.extracted_fields}
    assert got["priority"] == ("High", 0.8, ExtractionMethod.PATTERN)
    assert got["customfield_26362"] == ("Q3 2025", 0.8, ExtractionMethod.PATTERN)
    assert got["customfield_10016"] == (5, 0.9, ExtractionMethod.PATTERN)
    assert res.missing_fields == ["summary"]


def test_missing_and_extracted_are_disjoint(extractor, fields):
    res = extractor.extract("nothing useful here", fields)
    extracted = {e.field_id for e in res.extracted_fields}
    assert not extracted & set(res.missing_fields)
    # Quarter falls back to the current quarter at low confidence
    assert res.get("customfield_26362").confidence == 0.4
    assert res.missing_fields == ["summary"]


def test_ai_tier_threshold_and_pattern_fill(extractor, fields):
    provider = _provider(
        {
            "extractions": [
                {"fieldId": "priority", "value": "Highest", "confidence": 0.9},
                {"fieldId": "customfield_26362", "value": "Q4 2025", "confidence": 0.5},
                {"fieldId": "customfield_10016", "value": None, "confidence": 0.99},
                {"fieldId": "customfield_404", "value": "x", "confidence": 0.99},
            ]
        }
    )
    res = extractor.extract(TEXT, fields, completion_provider=provider)

    assert res.get("priority").value == "Highest"
    assert res.get("priority").method is ExtractionMethod.AI
    # At-threshold AI answer is discarded; patterns fill the gap
    assert res.get("customfield_26362").value == "Q3 2025"
    assert res.get("customfield_26362").method is ExtractionMethod.PATTERN
    assert res.get("customfield_10016").value == 5
    assert res.get("customfield_404") is None
    assert all(e.confidence > 0.5 for e in res.extracted_fields if e.method is ExtractionMethod.AI)
    provider.complete.assert_called_once()


def test_provider_failure_falls_back_to_patterns(fields):
    provider = MagicMock()
    provider.complete.side_effect = TimeoutError("llm timed out")
    extractor = FieldExtractor(provider, today=lambda: date(2025, 8, 1))

    res = extractor.extract(TEXT, fields)
    assert {e.method for e in res.extracted_fields} == {ExtractionMethod.PATTERN}
    assert res.get("priority").value == "High"


def test_parse_ai_response_handles_fences_and_garbage(fields):
    fenced = "```json\n" + json.dumps([{"fieldId": "priority", "value": "Low", "confidence": 0.7}]) + "\n```"
    out = parse_ai_response(fenced, fields)
    assert [(e.field_id, e.value) for e in out] == [("priority", "Low")]

    assert parse_ai_response("I could not find anything", fields) == []
    assert parse_ai_response('{"extractions": "none"}', fields) == []
    assert parse_ai_response("", fields) == []


def test_parse_ai_response_one_entry_per_field(fields):
    reply = json.dumps(
        {
            "extractions": [
                {"fieldId": "priority", "value": "Low", "confidence": 0.6},
                {"fieldId": "priority", "value": "High", "confidence": 1.7},
                {"fieldId": "priority", "value": "Medium", "confidence": "n/a"},
            ]
        }
    )
    out = parse_ai_response(reply, fields)
    assert len(out) == 1
    assert out[0].value == "High"
    assert out[0].confidence == 1.0


def test_prompt_lists_fields_and_caps_allowed_values():
    many = FieldDescriptor(id="customfield_1", name="Team", type=FieldType.SELECT, allowed_values=[f"T{i}" for i in range(25)])
    prompt = build_prompt("Build the thing", [many])
    assert "Build the thing" in prompt
    assert '"T9"' in prompt
    assert '"T10"' not in prompt
    assert '"extractions"' in prompt


def test_suggestions_rank_positive_scores_only(fields):
    priority = fields[1]
    assert suggest_values(priority, TEXT) == ["Highest", "High"]
    assert suggest_values(priority, "no hints") == []

    quarter = fields[2]
    ranked = suggest_values(quarter, TEXT)
    # Only quarters sharing the year score at all
    assert ranked == ["Q3 2025", "Q1 2025", "Q2 2025", "Q4 2025"]


def test_suggestions_reported_for_fields_with_options(extractor, fields):
    res = extractor.extract(TEXT, fields)
    assert set(res.suggestions) == {"priority", "customfield_26362"}
