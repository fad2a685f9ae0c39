from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from issue_autofill.clients.base import CompletionProvider, TrackerClient
from issue_autofill.clients.jira_client import JiraClient, description_adf
from issue_autofill.models import (
    CreateIssueResult,
    DiscoveryResult,
    FieldMapping,
    FormatInfo,
    JiraConnection,
    ResolutionReport,
)
from issue_autofill.observability.tracing import get_tracer
from issue_autofill.pipeline.discovery import DiscoveryEngine, normalize_category
from issue_autofill.pipeline.extraction import FieldExtractor
from issue_autofill.pipeline.formatter import FieldFormatter
from issue_autofill.services.validation import autofill_gaps
from issue_autofill.shared.config_loader import ExtractorSettings
from issue_autofill.shared.utils import log_kv, redact_error_payload
from issue_autofill.state.mapping_cache import InMemoryMappingCache, MappingCache

logger = logging.getLogger(__name__)

# Set by build_issue_payload itself; extracted values for these ids are ignored
BASIC_FIELD_IDS = ("project", "issuetype", "summary", "description", "labels")


class FieldResolutionService:
    """Discovery + extraction + formatting + issue creation for one tracker project.

    Methods used by the CLIs:
    - get_mapping(category, refresh)
    - resolve(text, category, summary) -> ResolutionReport
    - build_issue_payload(mapping, summary, text, fields, labels)
    - create_issue(category, summary, text, field_values, labels) -> CreateIssueResult
    - format_info_for(field_id)
    """

    def __init__(
        self,
        connection: JiraConnection,
        *,
        cache: Optional[MappingCache] = None,
        client: Optional[TrackerClient] = None,
        completion_provider: Optional[CompletionProvider] = None,
        settings: Optional[ExtractorSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.connection = connection
        self.settings = settings or ExtractorSettings()
        self._today = today or date.today
        self.client: TrackerClient = client or JiraClient(connection)
        self.engine = DiscoveryEngine(
            cache if cache is not None else InMemoryMappingCache(),
            client_factory=lambda _conn: self.client,
            settings=self.settings,
            today=self._today,
        )
        self.extractor = FieldExtractor(completion_provider, settings=self.settings, today=self._today)
        self.formatter = FieldFormatter(self.settings)

    # ---------- Discovery ----------
    def get_mapping(self, category: Any, *, refresh: bool = False) -> DiscoveryResult:
        return self.engine.get_mapping(self.connection, category, refresh=refresh)

    def clear_cache(self) -> None:
        self.engine.clear_cache()

    def format_info_for(self, field_id: str) -> Optional[FormatInfo]:
        """FormatInfo for a single field from the global field list plus its options."""
        try:
            data = self.client.get_field(field_id)
        except requests.RequestException as ex:
            logger.warning("Field lookup failed for %s: %s", field_id, ex)
            return None
        if not data:
            return None
        options: List[Any] = []
        try:
            options = self.client.get_field_options(field_id)
        except requests.RequestException as ex:
            logger.debug("Options unavailable for %s: %s", field_id, ex)
        return FieldFormatter.format_info_from_metadata(data, options, field_id=field_id)

    # ---------- Resolution ----------
    def resolve(self, text: str, category: Any, summary: Optional[str] = None, *, refresh: bool = False) -> ResolutionReport:
        """Discover fields for the category, extract values from text, format them.

        An unusable connection or category comes back as ResolutionReport(ok=False).
        """
        found = self.get_mapping(category, refresh=refresh)
        if not found.ok or found.mapping is None:
            return ResolutionReport(ok=False, error=found.error or "Field discovery failed")
        mapping = found.mapping
        tracer = get_tracer()
        span = tracer.start_span("resolve.fields", input={"category": mapping.work_item_category})

        source_text = "\n\n".join(t for t in (summary, text) if t)
        candidates = [f for f in mapping.fields if f.id not in BASIC_FIELD_IDS]
        extraction = self.extractor.extract(source_text, candidates)
        formatted = self.formatter.format_fields(mapping.fields, extraction.values())

        gaps = [f for f in candidates if f.required and f.id not in formatted]
        proposals = autofill_gaps(gaps, source_text, self._today())

        span.set_attribute("extracted", len(extraction.extracted_fields))
        span.set_attribute("gaps", len(gaps))
        span.end()
        log_kv(
            "resolve_fields",
            category=mapping.work_item_category,
            source=mapping.source,
            extracted=len(extraction.extracted_fields),
            formatted=len(formatted),
            gaps=len(gaps),
            proposals=len(proposals),
        )
        return ResolutionReport(
            mapping=mapping,
            extraction=extraction,
            formatted_fields=formatted,
            gaps=gaps,
            proposals=proposals,
        )

    # ---------- Issue creation ----------
    def build_issue_payload(
        self,
        mapping: FieldMapping,
        summary: str,
        text: str,
        fields: Optional[Dict[str, Any]] = None,
        labels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "project": {"key": self.connection.project_key},
            "issuetype": {"name": mapping.issue_type_name},
            "summary": summary,
            "description": description_adf(text),
        }
        if labels:
            payload["labels"] = list(labels)
        for fid, value in (fields or {}).items():
            if fid in BASIC_FIELD_IDS or value is None or value == "" or value == []:
                continue
            payload[fid] = value
        return {"fields": payload}

    @staticmethod
    def _should_retry_basic(body: Dict[str, Any]) -> bool:
        errors = body.get("errors") if isinstance(body, dict) else None
        if not isinstance(errors, dict):
            return False
        return any(k == "priority" or str(k).startswith("customfield_") for k in errors)

    @staticmethod
    def error_message(status: int, body: Dict[str, Any]) -> str:
        if status == 400:
            errors = body.get("errors") if isinstance(body, dict) else None
            if isinstance(errors, dict) and errors:
                return "Bad request: " + ", ".join(str(v) for v in errors.values())
            return "Bad request: Invalid request data"
        if status == 401:
            return "Authentication failed. Please check your credentials."
        if status == 403:
            return "Permission denied. You may not have permission to create issues in this project."
        return f"Jira API error: {status}"

    def create_issue(
        self,
        category: Any,
        summary: str,
        text: str,
        field_values: Optional[Dict[str, Any]] = None,
        labels: Optional[List[str]] = None,
    ) -> CreateIssueResult:
        """Create an issue; a 400 naming priority/custom fields is retried once with basic fields only."""
        if not str(summary or "").strip():
            return CreateIssueResult(ok=False, error="Summary is required")
        found = self.get_mapping(category)
        if not found.ok or found.mapping is None:
            return CreateIssueResult(ok=False, error=found.error)
        mapping = found.mapping

        tracer = get_tracer()
        span = tracer.start_span("issue.create", input={"category": normalize_category(category)})
        payload = self.build_issue_payload(mapping, summary, text, field_values, labels)
        dropped: List[str] = []
        try:
            status, body = self.client.create_issue(payload)
            if status == 400 and self._should_retry_basic(body):
                basic = self.build_issue_payload(mapping, summary, text, None, labels)
                dropped = [k for k in payload["fields"] if k not in basic["fields"]]
                logger.warning(
                    "Create rejected on field availability %s; retrying without %s",
                    redact_error_payload(body.get("errors")),
                    ", ".join(dropped),
                )
                status, body = self.client.create_issue(basic)
        except requests.RequestException as ex:
            tracer.record_error(span, ex)
            span.end()
            return CreateIssueResult(ok=False, error="Network error. Please check your connection to Jira.")

        span.set_attribute("status", status)
        span.end()
        if status not in (200, 201):
            logger.error("Issue create failed HTTP %s: %s", status, redact_error_payload(body))
            log_kv("create_issue", category=mapping.work_item_category, ok=False, status=status)
            return CreateIssueResult(ok=False, status=status, error=self.error_message(status, body), dropped_fields=dropped)

        key = str(body.get("key") or "").strip() or None
        result = CreateIssueResult(
            ok=True,
            key=key,
            id=str(body.get("id") or "").strip() or None,
            url=self.client.browse_url(key) if key else None,
            status=status,
            dropped_fields=dropped,
        )
        log_kv("create_issue", category=mapping.work_item_category, ok=True, key=key, dropped=len(dropped))
        return result
