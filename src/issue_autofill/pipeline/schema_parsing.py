from __future__ import annotations

"""
Turn tracker responses into FieldDescriptors.

- parse_metadata_fields(raw) for create-metadata payloads (tier 1)
- mine_required_fields(body) for probe rejection payloads (tier 3)
- default_fields() when nothing else is known
"""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional
import re

from issue_autofill.models import FieldDescriptor, FieldType, sort_fields
from issue_autofill.shared.config_loader import ExtractorSettings
from issue_autofill.shared.utils import delivery_quarters

# Display names for fields whose rejection messages rarely carry one
KNOWN_FIELD_NAMES: Dict[str, str] = {
    "summary": "Summary",
    "description": "Description",
    "issuetype": "Issue Type",
    "project": "Project",
    "priority": "Priority",
    "assignee": "Assignee",
    "reporter": "Reporter",
    "duedate": "Due Date",
    "labels": "Labels",
    "components": "Components",
    "fixVersions": "Fix Versions",
    "parent": "Parent",
}

PRIORITY_GUESS = ["Highest", "High", "Medium", "Low", "Lowest"]
YES_NO_GUESS = ["Yes", "No"]

_MESSAGE_NAME_RES = [
    re.compile(r"^\s*Field\s+'([^']+)'\s+is required", re.IGNORECASE),
    re.compile(r'^\s*"([^"]+)"\s+is required', re.IGNORECASE),
    re.compile(r"^\s*(.+?)\s+is required", re.IGNORECASE),
]

# Free-text errorMessages (no field id attached)
_FREE_TEXT_RES = [
    re.compile(r"Field '([^']+)' is required", re.IGNORECASE),
    re.compile(r'"([^"]+)" is required', re.IGNORECASE),
    re.compile(r"([^,\s]+) is required", re.IGNORECASE),
]


def field_type_from_schema(schema: Mapping[str, Any]) -> FieldType:
    stype = str(schema.get("type") or "").lower()
    custom = str(schema.get("custom") or "").lower()
    if stype == "string":
        return FieldType.TEXTAREA if "textarea" in custom else FieldType.TEXT
    if stype == "number":
        return FieldType.NUMBER
    if stype in ("date", "datetime"):
        return FieldType.DATE
    if stype == "option":
        return FieldType.RADIO if "radiobuttons" in custom else FieldType.SELECT
    if stype == "array":
        if "checkbox" in custom:
            return FieldType.CHECKBOX
        if schema.get("items") == "option" or "multiselect" in custom:
            return FieldType.MULTISELECT
        return FieldType.TEXT
    if stype in ("user", "project", "issuetype", "priority"):
        return FieldType(stype)
    if custom:
        if "select" in custom:
            return FieldType.MULTISELECT if "multi" in custom else FieldType.SELECT
        if "textarea" in custom:
            return FieldType.TEXTAREA
        if "checkbox" in custom:
            return FieldType.CHECKBOX
        if "radiobutton" in custom:
            return FieldType.RADIO
    return FieldType.TEXT


def parse_metadata_fields(raw_fields: Mapping[str, Any]) -> List[FieldDescriptor]:
    fields: List[FieldDescriptor] = []
    for field_id, info in (raw_fields or {}).items():
        if not isinstance(info, dict):
            continue
        schema = info.get("schema") if isinstance(info.get("schema"), dict) else {}
        allowed = info.get("allowedValues") if isinstance(info.get("allowedValues"), list) else []
        fields.append(
            FieldDescriptor(
                id=str(field_id),
                name=str(info.get("name") or field_id),
                type=field_type_from_schema(schema),
                required=bool(info.get("required")),
                allowed_values=allowed,
                description=info.get("description") or None,
                schema=schema,
            )
        )
    return sort_fields(fields)


def guess_field_type(field_id: str, name: str) -> FieldType:
    probe = f"{field_id} {name}".lower()
    if "date" in probe or "due" in probe:
        return FieldType.DATE
    if any(w in probe for w in ("point", "number", "estimate", "count")):
        return FieldType.NUMBER
    if any(w in probe for w in ("priority", "quarter", "select", "option", "type", "project", "component", "version")):
        return FieldType.SELECT
    if any(w in probe for w in ("description", "comment", "notes", "details", "environment")):
        return FieldType.TEXTAREA
    return FieldType.TEXT


def guess_allowed_values(field_id: str, name: str, today: Optional[date] = None) -> List[str]:
    probe = f"{field_id} {name}".lower()
    if "priority" in probe:
        return list(PRIORITY_GUESS)
    if "quarter" in probe:
        labels, _default = delivery_quarters(today)
        return labels
    if any(w in probe for w in ("include", "roadmap", "yes/no", "flag", "enabled")):
        return list(YES_NO_GUESS)
    return []


def name_from_message(message: str, field_id: str, names: Optional[Mapping[str, str]] = None) -> str:
    for rx in _MESSAGE_NAME_RES:
        m = rx.search(message or "")
        if m:
            name = m.group(1).strip().strip("'\"").strip()
            if name and name != field_id:
                return name
    return (names or KNOWN_FIELD_NAMES).get(field_id, field_id)


def synthesize_required(field_id: str, name: str, message: str, today: Optional[date] = None) -> FieldDescriptor:
    ftype = guess_field_type(field_id, name)
    allowed = guess_allowed_values(field_id, name, today)
    if allowed and ftype == FieldType.TEXT:
        ftype = FieldType.SELECT
    return FieldDescriptor(
        id=field_id,
        name=name,
        type=ftype,
        required=True,
        allowed_values=allowed,
        description=f"Required field discovered from error: {message}".strip(),
    )


def _id_for_name(name: str, names: Mapping[str, str]) -> str:
    low = name.strip().lower()
    for fid, known in names.items():
        if known.lower() == low:
            return fid
    return re.sub(r"\s+", "", low)


def mine_required_fields(
    body: Optional[Mapping[str, Any]],
    today: Optional[date] = None,
    names: Optional[Mapping[str, str]] = None,
) -> List[FieldDescriptor]:
    """Synthesize required descriptors from a create rejection payload.

    Structured `errors: {fieldId: message}` entries are used first; free-text
    `errorMessages` are scanned with looser patterns.
    """
    if not isinstance(body, Mapping):
        return []
    names = names or KNOWN_FIELD_NAMES
    fields: List[FieldDescriptor] = []
    errors = body.get("errors")
    if isinstance(errors, Mapping):
        for fid, msg in errors.items():
            message = str(msg or "")
            if "required" not in message.lower():
                continue
            fid = str(fid)
            fields.append(synthesize_required(fid, name_from_message(message, fid, names), message, today))
    messages = body.get("errorMessages")
    if isinstance(messages, list):
        for message in messages:
            text = str(message or "")
            # Most specific pattern that matches wins for a message
            for rx in _FREE_TEXT_RES:
                matches = list(rx.finditer(text))
                for m in matches:
                    name = m.group(1).strip().strip("'\"").strip()
                    if not name:
                        continue
                    fid = _id_for_name(name, names)
                    if any(f.name == name or f.id == fid for f in fields):
                        continue
                    fields.append(synthesize_required(fid, name, text, today))
                if matches:
                    break
    return sort_fields(fields)


def probe_success_fields() -> List[FieldDescriptor]:
    return sort_fields(
        [
            FieldDescriptor(id="summary", name="Summary", type=FieldType.TEXT, required=True),
            FieldDescriptor(id="description", name="Description", type=FieldType.TEXTAREA, required=False),
        ]
    )


def default_fields() -> List[FieldDescriptor]:
    return sort_fields(
        [
            FieldDescriptor(id="summary", name="Summary", type=FieldType.TEXT, required=True),
            FieldDescriptor(id="description", name="Description", type=FieldType.TEXTAREA, required=False),
            FieldDescriptor(id="issuetype", name="Issue Type", type=FieldType.SELECT, required=True),
            FieldDescriptor(id="project", name="Project", type=FieldType.SELECT, required=True),
        ]
    )


def settings_field_names(settings: ExtractorSettings) -> Dict[str, str]:
    """Display names for the deployment's custom fields, merged over KNOWN_FIELD_NAMES."""
    names = dict(KNOWN_FIELD_NAMES)
    names.setdefault(settings.delivery_quarter_field_id, "Delivery Quarter")
    names.setdefault(settings.roadmap_field_id, "Include on Roadmap")
    return names
