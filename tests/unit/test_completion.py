from __future__ import annotations

from unittest.mock import MagicMock, patch

from issue_autofill.clients.completion import LangChainCompletionProvider, get_llm_client, make_completion_provider
from issue_autofill.observability.tracing import get_tracer
from issue_autofill.shared.config_loader import LlmConfig


def test_disabled_llm_yields_no_provider():
    assert get_llm_client(LlmConfig(enabled=False, api_key="sk")) is None
    assert get_llm_client(LlmConfig(enabled=True, api_key=None)) is None
    assert make_completion_provider(LlmConfig(enabled=False, api_key=None)) is None


def test_enabled_llm_builds_chat_model():
    with patch("issue_autofill.clients.completion.ChatOpenAI") as chat:
        llm = get_llm_client(LlmConfig(enabled=True, api_key="sk", model="gpt-4o-mini"))
    assert llm is chat.return_value
    kwargs = chat.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.1


def test_provider_sends_system_and_prompt():
    llm = MagicMock()
    llm.invoke.return_value = MagicMock(content=[{"type": "text", "text": '{"extractions"'}, {"type": "text", "text": ": []}"}])
    out = LangChainCompletionProvider(llm).complete("extract please")
    assert out == '{"extractions": []}'
    messages = llm.invoke.call_args[0][0]
    assert messages[0][0] == "system"
    assert messages[1] == ("human", "extract please")


def test_tracer_is_noop_when_disabled():
    tracer = get_tracer()
    span = tracer.start_span("anything", input={"a": 1})
    span.set_attribute("k", "v")
    tracer.record_error(span, RuntimeError("boom"))
    span.end()
