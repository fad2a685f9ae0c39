from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from issue_autofill.shared.utils import ts_iso_utc


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    USER = "user"
    PROJECT = "project"
    ISSUETYPE = "issuetype"
    PRIORITY = "priority"


class ExtractionMethod(str, Enum):
    AI = "ai"
    PATTERN = "pattern"
    DEFAULT = "default"


class WorkItemCategory(str, Enum):
    INITIATIVE = "initiative"
    EPIC = "epic"
    STORY = "story"
    TASK = "task"
    BUG = "bug"


def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class FieldOption(BaseModel):
    """One allowed value of an enumerated tracker field.

    Tracker payloads carry extra keys (self, iconUrl, disabled...); they are kept.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    value: Optional[str] = None

    @field_validator("id", "name", "value", mode="before")
    @classmethod
    def v_strings(cls, v):
        return _opt_str(v)

    @property
    def label(self) -> str:
        return self.value or self.name or self.id or ""

    @classmethod
    def coerce(cls, raw: Any) -> Optional["FieldOption"]:
        if isinstance(raw, FieldOption):
            return raw
        if isinstance(raw, dict):
            opt = cls(**raw)
        elif raw is None:
            return None
        else:
            opt = cls(value=str(raw))
        if not (opt.id or opt.name or opt.value):
            return None
        return opt


def coerce_options(raw: Any) -> List[FieldOption]:
    out: List[FieldOption] = []
    for item in raw or []:
        opt = FieldOption.coerce(item)
        if opt is not None:
            out.append(opt)
    return out


class FieldDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    type: FieldType = FieldType.TEXT
    required: bool = False
    allowed_values: List[FieldOption] = Field(default_factory=list)
    description: Optional[str] = None
    schema_info: Dict[str, Any] = Field(default_factory=dict, alias="schema")

    @field_validator("allowed_values", mode="before")
    @classmethod
    def v_allowed(cls, v):
        return coerce_options(v)

    @property
    def labels(self) -> List[str]:
        return [o.label for o in self.allowed_values if o.label]


def sort_fields(fields: List[FieldDescriptor]) -> List[FieldDescriptor]:
    """Drop duplicate ids (first wins), then order required-first and by name."""
    seen = set()
    unique: List[FieldDescriptor] = []
    for f in fields:
        if f.id in seen:
            continue
        seen.add(f.id)
        unique.append(f)
    return sorted(unique, key=lambda f: (not f.required, f.name))


class FieldMapping(BaseModel):
    work_item_category: str
    issue_type_name: str
    fields: List[FieldDescriptor] = Field(default_factory=list)
    discovered_at: str = Field(default_factory=ts_iso_utc)
    # Which discovery tier produced the fields: metadata | probe | error | default
    source: str = "metadata"

    def field(self, field_id: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    @property
    def required_ids(self) -> List[str]:
        return [f.id for f in self.fields if f.required]


class ExtractedFieldValue(BaseModel):
    field_id: str
    value: Any = None
    confidence: float = 0.0
    method: ExtractionMethod = ExtractionMethod.PATTERN

    @field_validator("confidence", mode="before")
    @classmethod
    def v_confidence(cls, v):
        try:
            c = float(v)
        except (TypeError, ValueError):
            return 0.0
        if c != c:  # NaN
            return 0.0
        return max(0.0, min(1.0, c))


class FieldExtractionResult(BaseModel):
    extracted_fields: List[ExtractedFieldValue] = Field(default_factory=list)
    missing_fields: List[str] = Field(default_factory=list)
    suggestions: Dict[str, List[str]] = Field(default_factory=dict)

    def values(self) -> Dict[str, Any]:
        return {e.field_id: e.value for e in self.extracted_fields}

    def get(self, field_id: str) -> Optional[ExtractedFieldValue]:
        for e in self.extracted_fields:
            if e.field_id == field_id:
                return e
        return None


class FormatInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_id: str
    field_type: str = "text"
    schema_info: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    allowed_values: List[FieldOption] = Field(default_factory=list)
    is_array: bool = False
    is_required: bool = False

    @field_validator("allowed_values", mode="before")
    @classmethod
    def v_allowed(cls, v):
        return coerce_options(v)

    @classmethod
    def from_descriptor(cls, field: FieldDescriptor) -> "FormatInfo":
        schema = dict(field.schema_info) if field.schema_info else None
        is_array = field.type in (FieldType.MULTISELECT, FieldType.CHECKBOX) or (
            (schema or {}).get("type") == "array"
        )
        return cls(
            field_id=field.id,
            field_type=field.type.value,
            schema=schema,
            allowed_values=list(field.allowed_values),
            is_array=is_array,
            is_required=field.required,
        )


class JiraConnection(BaseModel):
    url: str = ""
    email: str = ""
    api_token: str = ""
    project_key: str = ""

    def missing(self) -> List[str]:
        return [k for k in ("url", "email", "api_token", "project_key") if not str(getattr(self, k) or "").strip()]


class DiscoveryResult(BaseModel):
    ok: bool
    mapping: Optional[FieldMapping] = None
    error: Optional[str] = None


class CreateIssueResult(BaseModel):
    ok: bool
    key: Optional[str] = None
    id: Optional[str] = None
    url: Optional[str] = None
    status: int = 0
    error: Optional[str] = None
    dropped_fields: List[str] = Field(default_factory=list)


class ResolutionReport(BaseModel):
    """Outcome of discover + extract + format for one free-text description.

    ok=False carries only `error`; mapping and extraction are then None.
    """

    ok: bool = True
    error: Optional[str] = None
    mapping: Optional[FieldMapping] = None
    extraction: Optional[FieldExtractionResult] = None
    formatted_fields: Dict[str, Any] = Field(default_factory=dict)
    gaps: List[FieldDescriptor] = Field(default_factory=list)
    proposals: Dict[str, Any] = Field(default_factory=dict)
