from __future__ import annotations

from datetime import date
from unittest.mock import MagicMock

import requests

from issue_autofill.services.field_service import FieldResolutionService

TEXT = "This is urgent, needed by Q3 2025, about 5 story points"


def _service(tracker, connection, **kw):
    return FieldResolutionService(connection, client=tracker, today=lambda: date(2025, 8, 1), **kw)


def test_resolve_extracts_and_formats(make_tracker, connection, epic_metadata):
    svc = _service(make_tracker(metadata=epic_metadata), connection)
    report = svc.resolve(TEXT, "epic", summary="Checkout revamp")

    assert report.mapping.issue_type_name == "Epic"
    assert report.formatted_fields["priority"] == {"name": "High"}
    assert report.formatted_fields["customfield_26362"] == {"id": "302", "value": "Q3 2025"}
    assert report.formatted_fields["customfield_10016"] == 5
    assert "summary" not in report.formatted_fields
    assert report.gaps == []


def test_resolve_reports_gaps_with_proposals(make_tracker, connection):
    metadata = {
        "summary": {"name": "Summary", "required": True, "schema": {"type": "string"}},
        "customfield_77": {"name": "Target Quarter", "required": True, "schema": {"type": "option"}},
    }
    svc = _service(make_tracker(metadata=metadata), connection)
    report = svc.resolve("nothing to see", "story")

    assert [f.id for f in report.gaps] == ["customfield_77"]
    assert report.proposals == {"customfield_77": "Q3 2025"}


def test_resolve_reports_bad_input_as_failure(make_tracker, connection):
    svc = _service(make_tracker(), connection)

    report = svc.resolve(TEXT, "spike")
    assert report.ok is False
    assert "spike" in report.error
    assert report.mapping is None

    report = svc.resolve(TEXT, "")
    assert report.ok is False
    assert report.error == "Missing work item category"


def test_build_issue_payload(make_tracker, connection, epic_metadata):
    svc = _service(make_tracker(metadata=epic_metadata), connection)
    mapping = svc.get_mapping("epic").mapping
    payload = svc.build_issue_payload(
        mapping,
        "Checkout revamp",
        "First para\n\nSecond para",
        {"customfield_10016": 5, "summary": "ignored", "customfield_1": ""},
        ["web"],
    )["fields"]

    assert payload["project"] == {"key": "PROJ"}
    assert payload["issuetype"] == {"name": "Epic"}
    assert payload["summary"] == "Checkout revamp"
    assert len(payload["description"]["content"]) == 2
    assert payload["labels"] == ["web"]
    assert payload["customfield_10016"] == 5
    assert "customfield_1" not in payload


def test_create_issue_success(make_tracker, connection, epic_metadata):
    tracker = make_tracker(metadata=epic_metadata, create_responses=[(201, {"id": "100", "key": "PROJ-7"})])
    res = _service(tracker, connection).create_issue("epic", "Checkout revamp", TEXT, {"customfield_10016": 5})

    assert res.ok
    assert res.key == "PROJ-7"
    assert res.url == "https://example.atlassian.net/browse/PROJ-7"
    assert tracker.created[-1]["fields"]["customfield_10016"] == 5


def test_create_issue_retries_with_basic_fields(make_tracker, connection, epic_metadata):
    tracker = make_tracker(
        metadata=epic_metadata,
        create_responses=[
            (400, {"errors": {"customfield_26362": "Option id '302' is not valid"}}),
            (201, {"id": "101", "key": "PROJ-8"}),
        ],
    )
    res = _service(tracker, connection).create_issue(
        "epic",
        "Checkout revamp",
        TEXT,
        {"customfield_26362": {"id": "302"}, "priority": {"name": "High"}},
        ["web"],
    )

    assert res.ok
    assert res.key == "PROJ-8"
    assert sorted(res.dropped_fields) == ["customfield_26362", "priority"]
    retry = tracker.created[-1]["fields"]
    assert set(retry) == {"project", "issuetype", "summary", "description", "labels"}


def test_create_issue_maps_error_statuses(make_tracker, connection, epic_metadata):
    tracker = make_tracker(
        metadata=epic_metadata,
        create_responses=[
            (400, {"errors": {"summary": "Summary is too long"}}),
            (401, {}),
            (403, {}),
            (500, {}),
        ],
    )
    svc = _service(tracker, connection)

    bad = svc.create_issue("epic", "x" * 300, TEXT)
    assert not bad.ok
    assert bad.error == "Bad request: Summary is too long"
    assert svc.create_issue("epic", "s", TEXT).error.startswith("Authentication failed")
    assert svc.create_issue("epic", "s", TEXT).error.startswith("Permission denied")
    assert svc.create_issue("epic", "s", TEXT).error == "Jira API error: 500"


def test_create_issue_requires_summary_and_handles_network(connection):
    tracker = MagicMock()
    tracker.list_issue_types.return_value = [{"id": "1", "name": "Story"}]
    tracker.get_create_metadata_fields.return_value = {
        "summary": {"name": "Summary", "required": True, "schema": {"type": "string"}}
    }
    tracker.create_issue.side_effect = requests.ConnectionError("reset")
    svc = _service(tracker, connection)

    assert svc.create_issue("story", "  ", TEXT).error == "Summary is required"
    res = svc.create_issue("story", "Checkout revamp", TEXT)
    assert not res.ok
    assert res.error.startswith("Network error")


def test_format_info_for(make_tracker, connection):
    tracker = make_tracker(
        fields=[{"id": "customfield_26360", "name": "Include on Roadmap", "schema": {"type": "array", "items": "option"}}],
        options={"customfield_26360": [{"id": "1", "value": "Internal"}, {"id": "2", "value": "External"}]},
    )
    svc = _service(tracker, connection)
    info = svc.format_info_for("customfield_26360")

    assert info.is_array
    assert svc.formatter.format(info, "external") == [{"id": "2", "value": "External"}]
    assert svc.format_info_for("customfield_404") is None
