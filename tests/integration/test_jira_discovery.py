"""
Live discovery against a real Jira project. Skipped unless JIRA_* credentials are set.
Only reads metadata unless discovery falls through to the probe tier.
"""
from __future__ import annotations

import os

import pytest
from dotenv import load_dotenv

load_dotenv()

from issue_autofill.shared.config_loader import JiraConfig
from issue_autofill.services.field_service import FieldResolutionService

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not all(os.getenv(k) for k in ("JIRA_EMAIL", "JIRA_API_TOKEN", "JIRA_PROJECT_KEY"))
        or not (os.getenv("JIRA_BASE_URL") or os.getenv("JIRA_URL")),
        reason="Jira credentials not configured",
    ),
]


@pytest.fixture(scope="module")
def service():
    return FieldResolutionService(JiraConfig.load().connection())


def test_access(service):
    assert service.client.check_access()["ok"]


def test_story_mapping_is_well_formed(service):
    res = service.get_mapping("story", refresh=True)
    assert res.ok
    ids = [f.id for f in res.mapping.fields]
    assert ids
    assert len(ids) == len(set(ids))
    required = [f.required for f in res.mapping.fields]
    assert required == sorted(required, reverse=True)
