from __future__ import annotations

from typing import Optional

from issue_autofill.clients.completion import make_completion_provider
from issue_autofill.models import JiraConnection
from issue_autofill.services.field_service import FieldResolutionService
from issue_autofill.shared.config_loader import ExtractorSettings, JiraConfig, cache_path
from issue_autofill.state.mapping_cache import JsonMappingCache


def make_service(connection: Optional[JiraConnection] = None) -> FieldResolutionService:
    """Factory returning the field resolution service wired from the environment."""
    conn = connection or JiraConfig.load().connection()
    return FieldResolutionService(
        conn,
        cache=JsonMappingCache(cache_path()),
        completion_provider=make_completion_provider(),
        settings=ExtractorSettings.load(),
    )
