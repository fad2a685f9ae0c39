from __future__ import annotations

import json

import pytest

from issue_autofill.shared.config_loader import (
    DEFAULT_CACHE_PATH,
    ConfigError,
    ExtractorSettings,
    JiraConfig,
    LlmConfig,
    TracingConfig,
    cache_path,
)

JIRA_VARS = ("JIRA_BASE_URL", "JIRA_URL", "JIRA_EMAIL", "JIRA_API_TOKEN", "JIRA_PROJECT_KEY", "AUTOFILL_JIRA_CONFIG_PATH")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in JIRA_VARS + (
        "AUTOFILL_LLM_ENABLED",
        "OPENAI_API_KEY",
        "AUTOFILL_LLM_MAX_TOKENS",
        "AUTOFILL_DELIVERY_QUARTER_FIELD",
        "AUTOFILL_ROADMAP_FIELD",
        "AUTOFILL_CACHE_PATH",
        "LANGFUSE_HOST",
        "LANGFUSE_PUBLIC_KEY",
        "LANGFUSE_SECRET_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


def test_jira_config_from_env(monkeypatch):
    monkeypatch.setenv("JIRA_URL", "https://example.atlassian.net/")
    monkeypatch.setenv("JIRA_EMAIL", "dev@example.com")
    monkeypatch.setenv("JIRA_API_TOKEN", "secret")
    monkeypatch.setenv("JIRA_PROJECT_KEY", "PROJ")

    conn = JiraConfig.load().connection()
    assert conn.url == "https://example.atlassian.net"
    assert conn.project_key == "PROJ"
    assert conn.missing() == []


def test_jira_config_file_takes_precedence(monkeypatch, tmp_path):
    path = tmp_path / "jira.json"
    path.write_text(json.dumps({"url": "https://file.example", "email": "f@example.com", "api_token": "t"}), encoding="utf-8")
    monkeypatch.setenv("AUTOFILL_JIRA_CONFIG_PATH", str(path))
    monkeypatch.setenv("JIRA_BASE_URL", "https://env.example")
    monkeypatch.setenv("JIRA_PROJECT_KEY", "ENV")

    cfg = JiraConfig.load()
    assert cfg.url == "https://file.example"
    assert cfg.project_key == "ENV"


def test_jira_config_missing_credentials():
    with pytest.raises(ConfigError):
        JiraConfig.load()


def test_llm_config_defaults_and_bad_numbers(monkeypatch):
    monkeypatch.setenv("AUTOFILL_LLM_MAX_TOKENS", "lots")
    cfg = LlmConfig.load()
    assert cfg.enabled is False
    assert cfg.api_key is None
    assert cfg.max_tokens == 1000

    monkeypatch.setenv("AUTOFILL_LLM_ENABLED", "true")
    assert LlmConfig.load().enabled is True


def test_tracing_usable_needs_keys(monkeypatch):
    monkeypatch.setenv("LANGFUSE_ENABLED", "1")
    assert TracingConfig.load().usable is False
    monkeypatch.setenv("LANGFUSE_HOST", "https://cloud.langfuse.com")
    monkeypatch.setenv("LANGFUSE_PUBLIC_KEY", "pk")
    monkeypatch.setenv("LANGFUSE_SECRET_KEY", "sk")
    assert TracingConfig.load().usable is True


def test_extractor_settings_and_cache_path(monkeypatch, tmp_path):
    assert ExtractorSettings.load() == ExtractorSettings()
    monkeypatch.setenv("AUTOFILL_ROADMAP_FIELD", "customfield_1")
    assert ExtractorSettings.load().roadmap_field_id == "customfield_1"

    assert cache_path() == DEFAULT_CACHE_PATH
    monkeypatch.setenv("AUTOFILL_CACHE_PATH", str(tmp_path / "c.json"))
    assert cache_path() == tmp_path / "c.json"
