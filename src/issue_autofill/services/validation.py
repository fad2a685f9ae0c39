from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple
import math

import pandas as pd

from issue_autofill.models import FieldDescriptor, FieldType
from issue_autofill.shared.utils import current_quarter


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, tuple, set, dict)) and len(value) == 0:
        return True
    return False


def validate_field_value(field: FieldDescriptor, value: Any) -> Tuple[bool, Optional[str]]:
    """Check a user-supplied value against the field's type and allowed values.

    Returns (ok, error message).
    """
    if is_empty(value):
        if field.required:
            return False, f"{field.name} is required"
        return True, None
    if field.type == FieldType.NUMBER:
        try:
            num = float(str(value).strip())
        except ValueError:
            return False, f"{field.name} must be a valid number"
        if not math.isfinite(num):
            return False, f"{field.name} must be a valid number"
    elif field.type in (FieldType.SELECT, FieldType.RADIO) and field.allowed_values:
        labels = field.labels
        if str(value) not in labels:
            return False, f"{field.name} must be one of: {', '.join(labels)}"
    elif field.type == FieldType.DATE:
        if pd.isna(pd.to_datetime(str(value), errors="coerce")):
            return False, f"{field.name} must be a valid date"
    return True, None


def _priority_candidates(lower_text: str) -> List[str]:
    if "urgent" in lower_text or "critical" in lower_text:
        return ["High", "Critical"]
    if "minor" in lower_text or "nice to have" in lower_text:
        return ["Low", "Minor"]
    return ["Medium", "Normal"]


def propose_values(field: FieldDescriptor, text: str, today: Optional[date] = None) -> List[str]:
    """Candidate values for a field left unresolved by extraction, restricted to its allowed values."""
    lower = (text or "").lower()
    name = (field.name or "").lower()
    labels = field.labels
    if "priority" in name:
        cands = _priority_candidates(lower)
        return [c for c in cands if c in labels] if labels else []
    if "quarter" in name:
        d = today or date.today()
        cand = f"Q{current_quarter(d)} {d.year}"
        if labels and cand not in labels:
            return []
        return [cand]
    return []


def autofill_gaps(
    gaps: Iterable[FieldDescriptor],
    text: str,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """First proposal per gap field; fields without one are left out."""
    out: Dict[str, Any] = {}
    for field in gaps:
        proposals = propose_values(field, text, today)
        if proposals:
            out[field.id] = proposals[0]
    return out
