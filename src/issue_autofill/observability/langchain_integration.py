from __future__ import annotations

"""
Optional LangChain -> Langfuse callback integration.

Enabled only when both LANGFUSE_ENABLED=1 and AUTOFILL_LLM_ENABLED=1.
Returns no callbacks when the handler cannot be constructed.
"""

from typing import Any, List
import logging

from issue_autofill.shared.config_loader import LlmConfig, TracingConfig

logger = logging.getLogger(__name__)


def get_langchain_callbacks() -> List[Any]:
    if not (TracingConfig.load().usable and LlmConfig.load().enabled):
        return []
    try:
        # Handler reads LANGFUSE_* from the environment
        from langfuse.langchain import CallbackHandler

        return [CallbackHandler()]
    except Exception as ex:
        logger.warning("Langfuse callback handler unavailable: %s", ex)
        return []
