from __future__ import annotations

"""
Configuration helpers.

Canonical variable names:
- Jira: JIRA_BASE_URL (or JIRA_URL), JIRA_EMAIL, JIRA_API_TOKEN, JIRA_PROJECT_KEY,
  or a JSON file at AUTOFILL_JIRA_CONFIG_PATH with keys url/email/api_token/project_key
- LLM: AUTOFILL_LLM_ENABLED, OPENAI_API_KEY, AUTOFILL_LLM_MODEL, AUTOFILL_LLM_MAX_TOKENS, AUTOFILL_LLM_TIMEOUT
- Langfuse: LANGFUSE_ENABLED, LANGFUSE_HOST, LANGFUSE_PUBLIC_KEY, LANGFUSE_SECRET_KEY
- Extraction: AUTOFILL_DELIVERY_QUARTER_FIELD, AUTOFILL_ROADMAP_FIELD
- Cache: AUTOFILL_CACHE_PATH

Never commit secrets. These loaders only read from local machine state.
"""

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from issue_autofill.models import JiraConnection


DEFAULT_CACHE_PATH = Path(".cache") / "field_mappings.json"
DEFAULT_DELIVERY_QUARTER_FIELD = "customfield_26362"
DEFAULT_ROADMAP_FIELD = "customfield_26360"


class ConfigError(RuntimeError):
    pass


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _flag(name: str, default: str = "0") -> bool:
    return str(os.getenv(name, default)).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class JiraConfig:
    url: str
    email: str
    api_token: str
    project_key: str

    @classmethod
    def load(cls) -> "JiraConfig":
        data: Dict[str, Any] = {}
        cfg_path = os.getenv("AUTOFILL_JIRA_CONFIG_PATH")
        if cfg_path and Path(cfg_path).exists():
            data = _load_json(Path(cfg_path))
        url = str(data.get("url") or os.getenv("JIRA_BASE_URL") or os.getenv("JIRA_URL") or "").strip().rstrip("/")
        email = str(data.get("email") or os.getenv("JIRA_EMAIL") or "").strip()
        token = str(data.get("api_token") or os.getenv("JIRA_API_TOKEN") or "").strip()
        project_key = str(data.get("project_key") or os.getenv("JIRA_PROJECT_KEY") or "").strip()
        if not (url and email and token):
            raise ConfigError("Jira configuration requires url/email/api_token (JIRA_BASE_URL, JIRA_EMAIL, JIRA_API_TOKEN)")
        return cls(url=url, email=email, api_token=token, project_key=project_key)

    def connection(self) -> JiraConnection:
        return JiraConnection(url=self.url, email=self.email, api_token=self.api_token, project_key=self.project_key)


@dataclass
class LlmConfig:
    enabled: bool
    api_key: Optional[str]
    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    timeout_s: int = 20

    @classmethod
    def load(cls) -> "LlmConfig":
        try:
            max_tokens = int(os.getenv("AUTOFILL_LLM_MAX_TOKENS", "1000"))
        except ValueError:
            max_tokens = 1000
        try:
            timeout_s = int(os.getenv("AUTOFILL_LLM_TIMEOUT", "20"))
        except ValueError:
            timeout_s = 20
        return cls(
            enabled=_flag("AUTOFILL_LLM_ENABLED"),
            api_key=(os.getenv("OPENAI_API_KEY") or "").strip() or None,
            model=(os.getenv("AUTOFILL_LLM_MODEL") or "gpt-4o-mini").strip(),
            max_tokens=max_tokens,
            timeout_s=timeout_s,
        )


@dataclass
class TracingConfig:
    enabled: bool
    host: Optional[str]
    public_key: Optional[str]
    secret_key: Optional[str]

    @classmethod
    def load(cls) -> "TracingConfig":
        enabled = str(os.getenv("LANGFUSE_ENABLED", "0")).strip() == "1"
        host = (os.getenv("LANGFUSE_HOST") or "").strip() or None
        pub = (os.getenv("LANGFUSE_PUBLIC_KEY") or "").strip() or None
        sec = (os.getenv("LANGFUSE_SECRET_KEY") or "").strip() or None
        return cls(enabled=enabled, host=host, public_key=pub, secret_key=sec)

    @property
    def usable(self) -> bool:
        return bool(self.enabled and self.host and self.public_key and self.secret_key)


@dataclass(frozen=True)
class ExtractorSettings:
    # Deployment-specific custom field ids
    delivery_quarter_field_id: str = DEFAULT_DELIVERY_QUARTER_FIELD
    roadmap_field_id: str = DEFAULT_ROADMAP_FIELD

    @classmethod
    def load(cls) -> "ExtractorSettings":
        return cls(
            delivery_quarter_field_id=(os.getenv("AUTOFILL_DELIVERY_QUARTER_FIELD") or DEFAULT_DELIVERY_QUARTER_FIELD).strip(),
            roadmap_field_id=(os.getenv("AUTOFILL_ROADMAP_FIELD") or DEFAULT_ROADMAP_FIELD).strip(),
        )


def cache_path() -> Path:
    p = (os.getenv("AUTOFILL_CACHE_PATH") or "").strip()
    return Path(p) if p else DEFAULT_CACHE_PATH
