from __future__ import annotations

"""
Langfuse tracer with a no-op fallback.

Usage
- Call get_tracer() once per process and reuse for spans.
- If LANGFUSE_ENABLED is not '1' or keys are missing, all methods are no-ops.

Design
- Fail-open: never raise; swallow SDK/network errors.
- Sampling: span-level sampling via LANGFUSE_SAMPLE_RATE; errors always recorded on sampled spans.
- Redaction: attributes only; payload strings are masked at call-site.
"""

from typing import Any, Dict, Optional
import logging
import os
import random

from langfuse import Langfuse

from issue_autofill.shared.config_loader import TracingConfig

logger = logging.getLogger(__name__)


class _NoopSpan:
    def set_attribute(self, _key: str, _value: Any) -> None:  # noqa: D401
        return

    def end(self, **_kw: Any) -> None:
        return


class _NoopTracer:
    def start_span(self, *_args: Any, **_kw: Any) -> _NoopSpan:
        return _NoopSpan()

    def record_error(self, *_args: Any, **_kw: Any) -> None:
        return


class _Span:
    def __init__(self, raw: Any) -> None:
        self.raw = raw
        self.attrs: Dict[str, Any] = {}

    def set_attribute(self, key: str, value: Any) -> None:
        self.attrs[key] = value

    def end(self, **kw: Any) -> None:
        try:
            self.raw.update(metadata=dict(self.attrs), **kw)
            self.raw.end()
        except Exception as ex:
            logger.debug("langfuse span end failed: %s", ex)


class LangfuseTracer:
    def __init__(self, client: Langfuse, sample_rate: float = 0.25) -> None:
        self.client = client
        self.sample_rate = sample_rate

    def _sampled(self) -> bool:
        if self.sample_rate >= 1.0:
            return True
        if self.sample_rate <= 0.0:
            return False
        return random.random() < self.sample_rate

    def start_span(self, name: str, *, input: Optional[Dict[str, Any]] = None, parent: Optional[Any] = None) -> Any:  # noqa: A002
        try:
            if isinstance(parent, _Span):
                return _Span(parent.raw.start_span(name=name, input=input or {}))
            if isinstance(parent, _NoopSpan) or not self._sampled():
                return _NoopSpan()
            return _Span(self.client.start_span(name=name, input=input or {}))
        except Exception as ex:
            logger.debug("langfuse span start failed: %s", ex)
            return _NoopSpan()

    def record_error(self, span: Optional[Any], error: Exception, **attrs: Any) -> None:
        if not isinstance(span, _Span):
            return
        try:
            span.attrs.update({"error_type": error.__class__.__name__, **attrs})
            span.raw.update(level="ERROR", status_message=str(error)[:500])
        except Exception as ex:
            logger.debug("langfuse error record failed: %s", ex)


_CACHED: Optional[Any] = None


def get_tracer() -> Any:
    """Return a tracer that matches the minimal interface used by the app.

    When disabled or misconfigured, returns a no-op tracer.
    """
    global _CACHED
    if _CACHED is not None:
        return _CACHED
    cfg = TracingConfig.load()
    if not cfg.usable:
        _CACHED = _NoopTracer()
        return _CACHED
    try:
        client = Langfuse(host=cfg.host, public_key=cfg.public_key, secret_key=cfg.secret_key)
        try:
            rate = float(os.getenv("LANGFUSE_SAMPLE_RATE", "0.25"))
        except ValueError:
            rate = 0.25
        _CACHED = LangfuseTracer(client, sample_rate=rate)
    except Exception as ex:
        logger.warning("Langfuse tracer unavailable, tracing disabled: %s", ex)
        _CACHED = _NoopTracer()
    return _CACHED


def reset_tracer() -> None:
    global _CACHED
    _CACHED = None
