"""Langfuse tracing for Scout invocations.

One trace per Scout run; planner/cleaner generations and search spans hang off
it. Every Langfuse call is best-effort: a tracing failure is logged and never
reaches the research pipeline.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from ...core.config import settings

logger = structlog.get_logger(__name__)


class LangfuseTracer:
    """Thin wrapper over the Langfuse client with graceful degradation.

    Example:
        >>> tracer = LangfuseTracer()
        >>> with tracer.trace_context(name="scout", metadata={"game": "Hades II"}):
        ...     span = tracer.create_span("search:overview")
        ...     tracer.end_span(span, output={"results": 8})
    """

    def __init__(
        self,
        public_key: str | None = None,
        secret_key: str | None = None,
        host: str | None = None,
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self.langfuse_client: Any = None
        self.current_trace: Any = None

        if not enabled:
            logger.info("langfuse_disabled")
            return

        eff_public = (public_key or settings.LANGFUSE_PUBLIC_KEY or "").strip()
        eff_secret = (secret_key or settings.LANGFUSE_SECRET_KEY or "").strip()
        eff_host = (host or settings.LANGFUSE_BASE_URL or "").strip()

        if not eff_public or not eff_secret:
            logger.info(
                "langfuse_disabled_missing_credentials",
                has_public=bool(eff_public),
                has_secret=bool(eff_secret),
            )
            self.enabled = False
            return

        try:
            from langfuse import Langfuse

            self.langfuse_client = Langfuse(
                public_key=eff_public, secret_key=eff_secret, host=eff_host
            )
            logger.info("langfuse_tracer_initialized", host=eff_host)
        except Exception as e:
            logger.warning(f"Failed to initialize Langfuse client: {e}")
            self.enabled = False
            self.langfuse_client = None

    @property
    def active(self) -> bool:
        return self.enabled and self.langfuse_client is not None

    def create_trace(self, name: str, metadata: dict[str, Any] | None = None) -> Any:
        if not self.active:
            return None
        try:
            self.current_trace = self.langfuse_client.trace(name=name, metadata=metadata or {})
            return self.current_trace
        except Exception as e:
            logger.warning(f"Failed to create trace: {e}")
            return None

    def end_trace(self, output: dict[str, Any] | None = None) -> None:
        if not self.active or self.current_trace is None:
            return
        try:
            self.current_trace.update(output=output) if output else self.current_trace.update()
        except Exception as e:
            logger.warning(f"Failed to end trace: {e}")
        finally:
            self.current_trace = None

    def track_generation(
        self,
        name: str,
        model: str,
        input_messages: list[dict[str, str]],
        output: str,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
    ) -> Any:
        """Record one LLM generation on the current trace."""
        if not self.active or self.current_trace is None:
            return None
        usage = None
        if prompt_tokens is not None or completion_tokens is not None:
            usage = {"input": prompt_tokens or 0, "output": completion_tokens or 0}
        try:
            return self.current_trace.generation(
                name=name, model=model, input=input_messages, output=output, usage=usage
            )
        except Exception as e:
            logger.warning(f"Failed to track generation: {e}")
            return None

    def create_span(self, name: str, metadata: dict[str, Any] | None = None) -> Any:
        if not self.active or self.current_trace is None:
            return None
        try:
            return self.current_trace.span(name=name, metadata=metadata or {})
        except Exception as e:
            logger.warning(f"Failed to create span: {e}")
            return None

    def end_span(self, span: Any, output: dict[str, Any] | None = None) -> None:
        if span is None:
            return
        try:
            span.end(output=output) if output else span.end()
        except Exception as e:
            logger.warning(f"Failed to end span: {e}")

    def track_error(self, error: BaseException) -> None:
        if not self.active or self.current_trace is None:
            return
        try:
            self.current_trace.update(
                metadata={"error": str(error), "error_type": type(error).__name__}
            )
        except Exception as e:
            logger.warning(f"Failed to track error: {e}")

    @contextmanager
    def trace_context(self, name: str, metadata: dict[str, Any] | None = None) -> Iterator[Any]:
        """Create a trace for the ``with`` block and always close it."""
        trace = self.create_trace(name=name, metadata=metadata)
        try:
            yield trace
        except BaseException as e:
            self.track_error(e)
            raise
        finally:
            self.end_trace()

    def flush(self) -> None:
        if not self.active:
            return
        try:
            self.langfuse_client.flush()
        except Exception as e:
            logger.warning(f"Failed to flush traces: {e}")
