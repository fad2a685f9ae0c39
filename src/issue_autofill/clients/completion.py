from __future__ import annotations

"""
Completion provider used by the AI extraction tier.

Provides a LangChain Chat client at low temperature. If disabled or no API key is
configured, `make_completion_provider()` returns None so the extractor falls back to
its pattern rules.
"""

from typing import Any, Optional

from langchain_openai import ChatOpenAI

from issue_autofill.observability.langchain_integration import get_langchain_callbacks
from issue_autofill.shared.config_loader import LlmConfig


def get_llm_client(cfg: Optional[LlmConfig] = None, *, temperature: float = 0.1) -> Optional[ChatOpenAI]:
    """Return a LangChain Chat model or None if disabled/unconfigured.

    Inputs
    - cfg: LLM settings; loaded from the environment when omitted
    - temperature: kept low for consistent extraction

    Notes
    - Callers MUST treat None as "fallback to deterministic behavior".
    """
    cfg = cfg or LlmConfig.load()
    if not cfg.enabled or not cfg.api_key:
        return None
    callbacks = get_langchain_callbacks()
    return ChatOpenAI(
        model=cfg.model,
        api_key=cfg.api_key,
        temperature=temperature,
        max_tokens=cfg.max_tokens,
        timeout=cfg.timeout_s,
        callbacks=callbacks if callbacks else None,
    )


class LangChainCompletionProvider:
    """Adapts a LangChain chat model to the `complete(prompt) -> str` boundary."""

    def __init__(self, llm: Any, system: Optional[str] = None) -> None:
        self.llm = llm
        self.system = system or "You extract structured field values for issue tracker tickets. Reply with JSON only."

    def complete(self, prompt: str) -> str:
        messages = [("system", self.system), ("human", prompt)]
        res = self.llm.invoke(messages)
        content = getattr(res, "content", res)
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return str(content or "")


def make_completion_provider(cfg: Optional[LlmConfig] = None) -> Optional[LangChainCompletionProvider]:
    llm = get_llm_client(cfg)
    if llm is None:
        return None
    return LangChainCompletionProvider(llm)
