from __future__ import annotations

"""
Field value formatter: (FormatInfo, candidate value) -> wire-shaped value, or None for "no value".

Dispatch resolves a closed FieldKind first, then renders through a table that has an
entry for every kind:
  (a) per-deployment custom field overrides by id
  (b) schema.type from the tracker metadata
  (c) declared field type (select/multiselect/checkbox/is_array)
  (d) passthrough
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional
import logging
import math
import re

import pandas as pd

from issue_autofill.models import FieldDescriptor, FieldOption, FormatInfo, coerce_options
from issue_autofill.shared.config_loader import ExtractorSettings

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    OPTION_ARRAY = "option_array"
    OPTION = "option"
    USER = "user"
    PROJECT = "project"
    ISSUETYPE = "issuetype"
    PRIORITY = "priority"
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    PASSTHROUGH = "passthrough"


_SCHEMA_KINDS: Dict[str, FieldKind] = {
    "array": FieldKind.OPTION_ARRAY,
    "option": FieldKind.OPTION,
    "user": FieldKind.USER,
    "project": FieldKind.PROJECT,
    "issuetype": FieldKind.ISSUETYPE,
    "priority": FieldKind.PRIORITY,
    "string": FieldKind.STRING,
    "number": FieldKind.NUMBER,
    "date": FieldKind.DATE,
    "datetime": FieldKind.DATE,
}

_ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})")


def is_no_value(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def find_matching_option(value: Any, allowed: Iterable[FieldOption]) -> Optional[FieldOption]:
    """Exact case-insensitive match on value/name/id first, then substring on value/name."""
    options = list(allowed)
    needle = str(value).strip().lower()
    if not needle:
        return None
    for opt in options:
        for cand in (opt.value, opt.name, opt.id):
            if cand and cand.lower() == needle:
                return opt
    for opt in options:
        for cand in (opt.value, opt.name):
            if cand and needle in cand.lower():
                return opt
    return None


def _option_shape(opt: FieldOption) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if opt.id:
        out["id"] = opt.id
    out["value"] = opt.value or opt.name or opt.id
    return out


def _render_option(value: Any, info: FormatInfo) -> Any:
    if isinstance(value, dict):
        return value
    if info.allowed_values:
        match = find_matching_option(value, info.allowed_values)
        if match is not None:
            return _option_shape(match)
    return {"value": str(value)}


def _render_option_array(value: Any, info: FormatInfo) -> List[Any]:
    values = list(value) if isinstance(value, (list, tuple, set)) else [value]
    return [_render_option(v, info) for v in values if not is_no_value(v)]


def _render_user(value: Any, _info: FormatInfo) -> Any:
    if isinstance(value, dict):
        return value
    s = str(value)
    if "@" in s:
        return {"emailAddress": s}
    return {"accountId": s}


def _render_project(value: Any, _info: FormatInfo) -> Any:
    if isinstance(value, dict):
        return value
    return {"key": str(value)}


def _render_named(value: Any, _info: FormatInfo) -> Any:
    if isinstance(value, dict):
        return value
    return {"name": str(value)}


def _render_string(value: Any, _info: FormatInfo) -> str:
    return str(value)


def _render_number(value: Any, info: FormatInfo) -> Optional[float | int]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        num = value
    else:
        try:
            num = float(str(value).replace(",", "").strip())
        except ValueError:
            logger.warning("Field %s: %r is not numeric; dropping", info.field_id, value)
            return None
    if isinstance(num, float):
        if not math.isfinite(num):
            logger.warning("Field %s: %r is not a finite number; dropping", info.field_id, value)
            return None
        if num.is_integer():
            return int(num)
    return num


def _render_date(value: Any, info: FormatInfo) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    m = _ISO_DATE_RE.search(s)
    if m:
        try:
            return date.fromisoformat(m.group(1)).isoformat()
        except ValueError:
            logger.warning("Field %s: %r is not a calendar date; dropping", info.field_id, value)
            return None
    ts = pd.to_datetime(s, errors="coerce")
    if pd.isna(ts):
        logger.warning("Field %s: %r is not a recognizable date; dropping", info.field_id, value)
        return None
    return ts.date().isoformat()


def _render_passthrough(value: Any, _info: FormatInfo) -> Any:
    return value


RENDERERS: Dict[FieldKind, Callable[[Any, FormatInfo], Any]] = {
    FieldKind.OPTION_ARRAY: _render_option_array,
    FieldKind.OPTION: _render_option,
    FieldKind.USER: _render_user,
    FieldKind.PROJECT: _render_project,
    FieldKind.ISSUETYPE: _render_named,
    FieldKind.PRIORITY: _render_named,
    FieldKind.STRING: _render_string,
    FieldKind.NUMBER: _render_number,
    FieldKind.DATE: _render_date,
    FieldKind.PASSTHROUGH: _render_passthrough,
}


class FieldFormatter:
    def __init__(self, settings: Optional[ExtractorSettings] = None) -> None:
        self.settings = settings or ExtractorSettings()

    def resolve_kind(self, info: FormatInfo) -> FieldKind:
        # Known custom fields whose metadata misreports their wire shape
        if info.field_id == self.settings.roadmap_field_id:
            return FieldKind.OPTION_ARRAY
        if info.field_id == self.settings.delivery_quarter_field_id:
            return FieldKind.OPTION
        schema_type = str((info.schema_info or {}).get("type") or "").strip().lower()
        if schema_type in _SCHEMA_KINDS:
            return _SCHEMA_KINDS[schema_type]
        ftype = (info.field_type or "").strip().lower()
        if ftype in ("select", "option", "radio"):
            return FieldKind.OPTION
        if ftype in ("multiselect", "checkbox") or info.is_array:
            return FieldKind.OPTION_ARRAY
        return FieldKind.PASSTHROUGH

    def format(self, info: FormatInfo, value: Any) -> Any:
        if is_no_value(value):
            return None
        kind = self.resolve_kind(info)
        return RENDERERS[kind](value, info)

    def format_fields(self, fields: Iterable[FieldDescriptor], values: Mapping[str, Any]) -> Dict[str, Any]:
        """Format every value whose id is a known field; unknown ids and no-value results are dropped."""
        out: Dict[str, Any] = {}
        by_id = {f.id: f for f in fields}
        for fid, raw in values.items():
            field = by_id.get(fid)
            if field is None:
                continue
            wire = self.format(FormatInfo.from_descriptor(field), raw)
            if wire is None or wire == []:
                continue
            out[fid] = wire
        return out

    @staticmethod
    def format_info_from_metadata(field_data: Mapping[str, Any], options: Optional[List[Any]] = None, *, field_id: str = "") -> FormatInfo:
        """Build a FormatInfo from raw tracker field metadata (GET field) plus its option list."""
        schema = dict(field_data.get("schema") or {})
        schema_type = str(schema.get("type") or "string")
        items = schema.get("items")
        custom = str(schema.get("custom") or "")
        is_array = schema_type == "array" or items == "option" or "multiselect" in custom
        return FormatInfo(
            field_id=str(field_data.get("id") or field_id),
            field_type=schema_type,
            schema=schema or None,
            allowed_values=coerce_options(options or []),
            is_array=is_array,
            is_required=False,
        )
