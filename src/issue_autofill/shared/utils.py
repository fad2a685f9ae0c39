"""
Shared helpers: UTC timestamps, delivery-quarter labels, error-payload redaction
and the single-line `action: k=v` log used for pipeline milestones.
"""
from __future__ import annotations

import re
import sys
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple


def ts_iso_utc() -> str:
    """Return current timestamp in ISO 8601 (UTC)."""
    return datetime.now(timezone.utc).isoformat()


def current_quarter(today: Optional[date] = None) -> int:
    d = today or date.today()
    return (d.month - 1) // 3 + 1


def delivery_quarters(today: Optional[date] = None) -> Tuple[List[str], str]:
    """Quarter labels for the current and next year plus the current-quarter default.

    Example (2025-08-01): (["Q1 2025", ..., "Q4 2026"], "Q3 2025")
    """
    d = today or date.today()
    labels = [f"Q{q} {y}" for y in (d.year, d.year + 1) for q in range(1, 5)]
    return labels, f"Q{current_quarter(d)} {d.year}"


_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_TOKEN_KEYS = {
    "authorization",
    "api_token",
    "apitoken",
    "api_key",
    "token",
    "password",
    "secret",
    "access_token",
    "refresh_token",
}


def redact_error_payload(err: Any) -> Any:
    """Copy of a tracker error body with credential-like keys and email addresses masked."""
    if isinstance(err, dict):
        out: Dict[str, Any] = {}
        for k, v in err.items():
            if isinstance(k, str) and k.strip().lower() in _TOKEN_KEYS:
                out[k] = "***REDACTED***"
            else:
                out[k] = redact_error_payload(v)
        return out
    if isinstance(err, list):
        return [redact_error_payload(x) for x in err]
    if isinstance(err, str):
        return _EMAIL_RE.sub("***@***", err)
    return err


def log_kv(action: str, **fields: Any) -> None:
    """Print a single-line action log with key=value pairs to stdout.

    Example
    - log_kv("discover_fields", category="epic", tier="metadata", fields=12)
    """
    parts = [f"{k}={v}" for k, v in fields.items()]
    line = f"{action}: " + " ".join(parts)
    print(line, file=sys.stdout, flush=True)
