from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pytest

from issue_autofill.models import JiraConnection
from issue_autofill.observability import tracing


class FakeTracker:
    """In-memory stand-in for JiraClient recording every call."""

    def __init__(
        self,
        issue_types: Optional[List[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Dict[str, Any]]] = None,
        options: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        create_responses: Optional[List[Tuple[int, Dict[str, Any]]]] = None,
        delete_ok: bool = True,
        fields: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.issue_types = issue_types if issue_types is not None else [
            {"id": "10001", "name": "Epic", "subtask": False},
            {"id": "10002", "name": "Story", "subtask": False},
            {"id": "10003", "name": "Task", "subtask": False},
            {"id": "10004", "name": "Sub-task", "subtask": True},
        ]
        self.metadata = metadata or {}
        self.options = options or {}
        self.create_responses = list(create_responses or [])
        self.delete_ok = delete_ok
        self.fields = fields or []
        self.created: List[Dict[str, Any]] = []
        self.deleted: List[str] = []
        self.calls: List[str] = []

    def list_issue_types(self) -> List[Dict[str, Any]]:
        self.calls.append("list_issue_types")
        return list(self.issue_types)

    def get_create_metadata_fields(self, issue_type_id: str) -> Dict[str, Dict[str, Any]]:
        self.calls.append(f"metadata:{issue_type_id}")
        return dict(self.metadata)

    def get_field(self, field_id: str) -> Optional[Dict[str, Any]]:
        for f in self.fields:
            if f.get("id") == field_id:
                return f
        return None

    def get_field_options(self, field_id: str) -> List[Dict[str, Any]]:
        self.calls.append(f"options:{field_id}")
        return list(self.options.get(field_id, []))

    def create_issue(self, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        self.created.append(payload)
        if self.create_responses:
            return self.create_responses.pop(0)
        return 201, {"id": "20001", "key": "PROJ-1"}

    def delete_issue(self, issue_key: str) -> bool:
        self.deleted.append(issue_key)
        return self.delete_ok

    def browse_url(self, issue_key: str) -> str:
        return f"https://example.atlassian.net/browse/{issue_key}"


@pytest.fixture(autouse=True)
def _no_tracing(monkeypatch):
    monkeypatch.setenv("LANGFUSE_ENABLED", "0")
    tracing.reset_tracer()
    yield
    tracing.reset_tracer()


@pytest.fixture
def connection() -> JiraConnection:
    return JiraConnection(
        url="https://example.atlassian.net",
        email="dev@example.com",
        api_token="token",
        project_key="PROJ",
    )


@pytest.fixture
def today() -> date:
    return date(2025, 8, 1)


@pytest.fixture
def epic_metadata() -> Dict[str, Dict[str, Any]]:
    return {
        "summary": {"name": "Summary", "required": True, "schema": {"type": "string", "system": "summary"}},
        "priority": {
            "name": "Priority",
            "required": False,
            "schema": {"type": "priority", "system": "priority"},
            "allowedValues": [
                {"id": "1", "name": "Highest"},
                {"id": "2", "name": "High"},
                {"id": "3", "name": "Medium"},
                {"id": "4", "name": "Low"},
            ],
        },
        "customfield_26362": {
            "name": "Delivery Quarter",
            "required": True,
            "schema": {"type": "option", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:select"},
            "allowedValues": [{"id": "301", "value": "Q2 2025"}, {"id": "302", "value": "Q3 2025"}],
        },
        "customfield_10016": {
            "name": "Story Points",
            "required": False,
            "schema": {"type": "number", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:float"},
        },
        "customfield_10050": {
            "name": "Team",
            "required": False,
            "schema": {"type": "option", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:select"},
        },
    }


@pytest.fixture
def make_tracker():
    return FakeTracker
