from __future__ import annotations

"""
Field value extraction from free text.

Tiers
1. AI: one structured prompt to an optional completion provider; only extractions with
   confidence > 0.5 on known field ids with a non-null value are kept. Any provider or
   parse failure yields zero extractions.
2. Pattern: built-in rules (see pipeline.patterns) over the fields the AI tier left open.

Independently of resolution, every field with allowed values gets ranked suggestions, and
required fields with no extracted value are reported as missing.
"""

from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence
import json
import logging
import re

from issue_autofill.clients.base import CompletionProvider
from issue_autofill.models import (
    ExtractedFieldValue,
    ExtractionMethod,
    FieldDescriptor,
    FieldExtractionResult,
)
from issue_autofill.observability.tracing import get_tracer
from issue_autofill.pipeline.patterns import RuleContext, apply_rules
from issue_autofill.shared.config_loader import ExtractorSettings
from issue_autofill.shared.utils import log_kv

logger = logging.getLogger(__name__)

AI_CONFIDENCE_THRESHOLD = 0.5
PROMPT_ALLOWED_VALUES_LIMIT = 10
SUGGESTION_LIMIT = 5

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?|```\n?")

EXTRACTION_PROMPT = """Extract field values from the following description for Jira issue creation.

Description:
{description}

Fields to extract:
{fields}

Instructions:
1. Extract values that match the field types and requirements
2. For select fields, only use values from allowedValues if provided
3. For date fields, use ISO format (YYYY-MM-DD)
4. For number fields, extract numeric values only
5. Return null if no suitable value can be extracted
6. Be conservative - only extract values you're confident about

Return a JSON object with this structure:
{{
  "extractions": [
    {{"fieldId": "field_id", "value": "extracted_value", "confidence": 0.8}}
  ]
}}
"""


def build_prompt(text: str, fields: Sequence[FieldDescriptor]) -> str:
    info = []
    for f in fields:
        entry: Dict[str, Any] = {
            "id": f.id,
            "name": f.name,
            "type": f.type.value,
            "required": f.required,
        }
        if f.allowed_values:
            entry["allowedValues"] = f.labels[:PROMPT_ALLOWED_VALUES_LIMIT]
        info.append(entry)
    return EXTRACTION_PROMPT.format(description=text, fields=json.dumps(info, indent=2))


def parse_ai_response(response: str, fields: Sequence[FieldDescriptor]) -> List[ExtractedFieldValue]:
    """Parse the provider's JSON reply; malformed output yields an empty list."""
    known = {f.id for f in fields}
    cleaned = _FENCE_RE.sub("", response or "").strip()
    if not cleaned:
        return []
    try:
        data = json.loads(cleaned)
    except ValueError:
        logger.warning("AI response is not JSON; falling back to patterns. Response began: %r", cleaned[:200])
        return []
    items = data.get("extractions") if isinstance(data, dict) else data
    if not isinstance(items, list):
        logger.warning("AI response has no extractions array")
        return []
    best: Dict[str, ExtractedFieldValue] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        fid = str(item.get("fieldId") or "").strip()
        value = item.get("value")
        if fid not in known or value is None:
            continue
        try:
            confidence = float(item.get("confidence"))
        except (TypeError, ValueError):
            continue
        if not confidence > AI_CONFIDENCE_THRESHOLD:
            continue
        ev = ExtractedFieldValue(field_id=fid, value=value, confidence=confidence, method=ExtractionMethod.AI)
        prev = best.get(fid)
        if prev is None or ev.confidence > prev.confidence:
            best[fid] = ev
    return list(best.values())


def score_option(label: str, lower_text: str, is_priority: bool) -> int:
    value = label.strip().lower()
    if not value:
        return 0
    score = 0
    if value in lower_text:
        score += 10
    for word in value.split():
        if len(word) > 2 and word in lower_text:
            score += 3
    if is_priority:
        if "urgent" in lower_text and "high" in value:
            score += 5
        if "important" in lower_text and "high" in value:
            score += 3
        if "later" in lower_text and "low" in value:
            score += 3
    return score


def suggest_values(field: FieldDescriptor, text: str) -> List[str]:
    """Top-ranked allowed values for a field; ties keep allowed-value order."""
    lower = (text or "").lower()
    is_priority = "priority" in (field.name or "").lower()
    scored = []
    for idx, label in enumerate(field.labels):
        score = score_option(label, lower, is_priority)
        if score > 0:
            scored.append((-score, idx, label))
    scored.sort()
    return [label for _s, _i, label in scored[:SUGGESTION_LIMIT]]


class FieldExtractor:
    def __init__(
        self,
        completion_provider: Optional[CompletionProvider] = None,
        settings: Optional[ExtractorSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.completion_provider = completion_provider
        self.settings = settings or ExtractorSettings()
        self._today = today or date.today

    def extract_with_ai(self, text: str, fields: Sequence[FieldDescriptor], provider: CompletionProvider) -> List[ExtractedFieldValue]:
        tracer = get_tracer()
        span = tracer.start_span("extract.ai", input={"fields": len(fields), "chars": len(text or "")})
        try:
            response = provider.complete(build_prompt(text, fields))
        except Exception as ex:
            # Provider failures degrade to the pattern tier
            logger.warning("Completion provider failed, using pattern rules only: %s", ex)
            tracer.record_error(span, ex)
            span.end()
            return []
        out = parse_ai_response(response, fields)
        span.set_attribute("kept", len(out))
        span.end()
        return out

    def extract_with_patterns(self, text: str, fields: Sequence[FieldDescriptor]) -> List[ExtractedFieldValue]:
        ctx = RuleContext(text=text or "", lower=(text or "").lower(), today=self._today(), settings=self.settings)
        out: List[ExtractedFieldValue] = []
        seen = set()
        for field in fields:
            if field.id in seen:
                continue
            seen.add(field.id)
            hit = apply_rules(field, ctx)
            if hit is None:
                continue
            _rule, value, confidence = hit
            out.append(
                ExtractedFieldValue(field_id=field.id, value=value, confidence=confidence, method=ExtractionMethod.PATTERN)
            )
        return out

    def extract(
        self,
        text: str,
        fields: Sequence[FieldDescriptor],
        completion_provider: Optional[CompletionProvider] = None,
    ) -> FieldExtractionResult:
        provider = completion_provider or self.completion_provider
        extracted: List[ExtractedFieldValue] = []
        if provider is not None:
            extracted.extend(self.extract_with_ai(text, fields, provider))
        ai_count = len(extracted)

        done = {e.field_id for e in extracted}
        remaining = [f for f in fields if f.id not in done]
        extracted.extend(self.extract_with_patterns(text, remaining))

        suggestions: Dict[str, List[str]] = {}
        for field in fields:
            if field.allowed_values:
                suggestions[field.id] = suggest_values(field, text)

        resolved = {e.field_id for e in extracted}
        missing: List[str] = []
        for field in fields:
            if field.required and field.id not in resolved and field.id not in missing:
                missing.append(field.id)

        log_kv(
            "extract_fields",
            fields=len(fields),
            ai=ai_count,
            pattern=len(extracted) - ai_count,
            missing=len(missing),
            used_llm=provider is not None,
        )
        return FieldExtractionResult(extracted_fields=extracted, missing_fields=missing, suggestions=suggestions)
