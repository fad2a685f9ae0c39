from __future__ import annotations

"""
Field discovery for a work-item category.

Tiers (each attempted only when the previous one produced zero fields):
1. metadata   - resolve the issue type, read its create metadata
2. probe      - create a disposable summary+description issue, then delete it
3. error      - mine the probe's rejection payload for required fields
   default    - hardcoded minimal field set when nothing is parseable

Network/auth/parse failures inside a tier count as "zero fields". Only caller-input
problems (connection details, category) are reported, as DiscoveryResult(ok=False).
"""

from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from issue_autofill.clients.base import TrackerClient
from issue_autofill.clients.jira_client import JiraClient, description_adf
from issue_autofill.models import (
    DiscoveryResult,
    FieldDescriptor,
    FieldMapping,
    FieldType,
    JiraConnection,
    WorkItemCategory,
    coerce_options,
)
from issue_autofill.observability.tracing import get_tracer
from issue_autofill.pipeline.schema_parsing import (
    default_fields,
    mine_required_fields,
    parse_metadata_fields,
    probe_success_fields,
    settings_field_names,
)
from issue_autofill.shared.config_loader import ExtractorSettings
from issue_autofill.shared.utils import log_kv
from issue_autofill.state.mapping_cache import MappingCache

logger = logging.getLogger(__name__)

# Candidate tracker issue-type names per category, in preference order
CATEGORY_ISSUE_TYPES: Dict[str, List[str]] = {
    WorkItemCategory.INITIATIVE.value: ["Initiative", "Epic", "Story"],
    WorkItemCategory.EPIC.value: ["Epic"],
    WorkItemCategory.STORY.value: ["Story", "User Story", "Task"],
    WorkItemCategory.TASK.value: ["Task", "Story"],
    WorkItemCategory.BUG.value: ["Bug", "Task"],
}

PROBE_SUMMARY = "TEST - Field Discovery (will be deleted)"
PROBE_DESCRIPTION = "This is a test issue for field discovery"

_OPTION_TYPES = (FieldType.SELECT, FieldType.MULTISELECT, FieldType.RADIO, FieldType.CHECKBOX)


def resolve_issue_type(issue_types: List[Dict[str, Any]], category: str) -> Optional[Dict[str, Any]]:
    """Pick the tracker issue type for a category: exact name, then substring, per candidate."""
    creatable = [t for t in issue_types if not t.get("subtask")] or list(issue_types)
    for candidate in CATEGORY_ISSUE_TYPES.get(category, []):
        low = candidate.lower()
        for t in creatable:
            if str(t.get("name") or "").lower() == low:
                return t
        for t in creatable:
            if low in str(t.get("name") or "").lower():
                return t
    return creatable[0] if creatable else None


def normalize_category(category: Any) -> str:
    if isinstance(category, WorkItemCategory):
        return category.value
    return str(category or "").strip().lower()


class DiscoveryEngine:
    def __init__(
        self,
        cache: MappingCache,
        client_factory: Callable[[JiraConnection], TrackerClient] = JiraClient,
        settings: Optional[ExtractorSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.cache = cache
        self.client_factory = client_factory
        self.settings = settings or ExtractorSettings()
        self._today = today or date.today

    # ---------- Input validation ----------
    @staticmethod
    def validate(connection: Optional[JiraConnection], category: Any) -> Optional[str]:
        if connection is None:
            return "Missing Jira connection details"
        missing = connection.missing()
        if missing:
            return f"Missing Jira connection details: {', '.join(missing)}"
        cat = normalize_category(category)
        if not cat:
            return "Missing work item category"
        if cat not in CATEGORY_ISSUE_TYPES:
            return f"Unknown work item category: {cat}"
        return None

    # ---------- Cache (failure tolerant) ----------
    def cached(self, category: str) -> Optional[FieldMapping]:
        try:
            return self.cache.get(category)
        except Exception as ex:
            logger.warning("Field mapping cache read failed for %s: %s", category, ex)
            return None

    def _store(self, category: str, mapping: FieldMapping) -> None:
        try:
            self.cache.set(category, mapping)
        except Exception as ex:
            logger.warning("Field mapping cache write failed for %s: %s", category, ex)

    def clear_cache(self) -> None:
        try:
            self.cache.clear()
        except Exception as ex:
            logger.warning("Field mapping cache clear failed: %s", ex)

    # ---------- Public API ----------
    def get_mapping(self, connection: JiraConnection, category: Any, *, refresh: bool = False) -> DiscoveryResult:
        """Cached mapping for the category, discovering when absent or when refresh is requested."""
        error = self.validate(connection, category)
        if error:
            return DiscoveryResult(ok=False, error=error)
        cat = normalize_category(category)
        if not refresh:
            hit = self.cached(cat)
            if hit is not None:
                log_kv("field_mapping", category=cat, source="cache", fields=len(hit.fields))
                return DiscoveryResult(ok=True, mapping=hit)
        return self.discover(connection, cat)

    def discover(self, connection: JiraConnection, category: Any) -> DiscoveryResult:
        error = self.validate(connection, category)
        if error:
            return DiscoveryResult(ok=False, error=error)
        cat = normalize_category(category)
        client = self.client_factory(connection)
        span = get_tracer().start_span("discover.fields", input={"category": cat})

        issue_type = self._resolve_issue_type(client, cat)
        issue_type_name = str((issue_type or {}).get("name") or CATEGORY_ISSUE_TYPES[cat][0])

        fields: List[FieldDescriptor] = []
        source = "metadata"
        if issue_type and issue_type.get("id"):
            fields = self._metadata_tier(client, str(issue_type["id"]))
        if not fields:
            fields, source = self._probe_tier(client, connection, issue_type, issue_type_name)

        mapping = FieldMapping(
            work_item_category=cat,
            issue_type_name=issue_type_name,
            fields=fields,
            source=source,
        )
        self._store(cat, mapping)
        span.set_attribute("source", source)
        span.set_attribute("fields", len(fields))
        span.end()
        log_kv(
            "discover_fields",
            category=cat,
            issue_type=issue_type_name,
            source=source,
            fields=len(fields),
            required=len(mapping.required_ids),
        )
        return DiscoveryResult(ok=True, mapping=mapping)

    # ---------- Tiers ----------
    def _resolve_issue_type(self, client: TrackerClient, category: str) -> Optional[Dict[str, Any]]:
        try:
            types = client.list_issue_types()
        except Exception as ex:
            logger.warning("Issue type listing failed: %s", ex)
            return None
        found = resolve_issue_type(types or [], category)
        if found is None:
            logger.warning("No issue type found for %s", category)
        return found

    def _metadata_tier(self, client: TrackerClient, issue_type_id: str) -> List[FieldDescriptor]:
        try:
            raw = client.get_create_metadata_fields(issue_type_id)
            fields = parse_metadata_fields(raw or {})
        except Exception as ex:
            logger.warning("Create metadata tier failed for issue type %s: %s", issue_type_id, ex)
            return []
        return [self._with_options(client, f) for f in fields]

    def _with_options(self, client: TrackerClient, field: FieldDescriptor) -> FieldDescriptor:
        if field.allowed_values or field.type not in _OPTION_TYPES:
            return field
        try:
            options = client.get_field_options(field.id)
        except Exception as ex:
            logger.debug("Options unavailable for %s: %s", field.id, ex)
            return field
        if not options:
            return field
        return field.model_copy(update={"allowed_values": coerce_options(options)})

    def _probe_payload(self, connection: JiraConnection, issue_type: Optional[Dict[str, Any]], issue_type_name: str) -> Dict[str, Any]:
        if issue_type and issue_type.get("id"):
            itype: Dict[str, Any] = {"id": str(issue_type["id"])}
        else:
            itype = {"name": issue_type_name}
        return {
            "fields": {
                "project": {"key": connection.project_key},
                "issuetype": itype,
                "summary": PROBE_SUMMARY,
                "description": description_adf(PROBE_DESCRIPTION),
            }
        }

    def _probe_tier(
        self,
        client: TrackerClient,
        connection: JiraConnection,
        issue_type: Optional[Dict[str, Any]],
        issue_type_name: str,
    ) -> Tuple[List[FieldDescriptor], str]:
        body: Optional[Dict[str, Any]] = None
        try:
            status, body = client.create_issue(self._probe_payload(connection, issue_type, issue_type_name))
        except Exception as ex:
            logger.warning("Probe issue creation failed: %s", ex)
            status = 0
        if status in (200, 201):
            self._delete_probe(client, body or {})
            return probe_success_fields(), "probe"
        mined = self._mine(body)
        if mined:
            return mined, "error"
        return default_fields(), "default"

    def _mine(self, body: Optional[Dict[str, Any]]) -> List[FieldDescriptor]:
        try:
            return mine_required_fields(body, today=self._today(), names=settings_field_names(self.settings))
        except Exception as ex:
            logger.warning("Could not parse probe rejection: %s", ex)
            return []

    def _delete_probe(self, client: TrackerClient, body: Dict[str, Any]) -> None:
        key = str(body.get("key") or body.get("id") or "").strip()
        if not key:
            logger.warning("Probe issue created without a key; nothing to delete")
            return
        try:
            if not client.delete_issue(key):
                logger.warning("Probe issue %s could not be deleted", key)
        except Exception as ex:
            logger.warning("Probe issue %s deletion failed: %s", key, ex)
