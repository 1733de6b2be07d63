"""Tests for the OpenRouter client, the LLM factory and Langfuse tracing."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from scout_agents.core.config import LLMConfig
from scout_agents.core.exceptions import OperationCancelledError
from scout_agents.core.retry import CancellationToken, RetryPolicy
from scout_agents.services.llm import LLMFactory
from scout_agents.services.llm.langfuse_tracer import LangfuseTracer
from scout_agents.services.llm.openrouter_client import OpenRouterClient, extract_json_from_markdown
from scout_agents.services.llm.schemas import LLMClientError, LLMNotConfiguredError


class BossInfo(BaseModel):
    name: str
    weakness: str


def _reply(content: str, prompt_tokens: int = 100, completion_tokens: int = 20) -> dict[str, Any]:
    return {
        "content": content,
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
        "model": "google/gemini-2.5-flash-lite",
        "finish_reason": "stop",
    }


def _client() -> OpenRouterClient:
    return OpenRouterClient(
        api_key="sk-or-test",
        retry_policy=RetryPolicy(max_retries=2, initial_delay=0.0, max_delay=0.0, jitter=0.0),
    )


@pytest.mark.unit
class TestExtractJsonFromMarkdown:
    def test_plain_json_is_untouched(self) -> None:
        assert extract_json_from_markdown(' {"a": 1} ') == '{"a": 1}'

    def test_fenced_json(self) -> None:
        assert extract_json_from_markdown('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self) -> None:
        assert extract_json_from_markdown('```\n{"a": 1}\n```') == '{"a": 1}'


@pytest.mark.unit
@pytest.mark.asyncio
class TestOpenRouterClient:
    async def test_unconfigured_client_raises(self) -> None:
        client = OpenRouterClient(api_key="")

        assert client.is_configured is False
        with pytest.raises(LLMNotConfiguredError):
            await client.generate_object(BossInfo, "system", "prompt")

    async def test_generate_object_validates_reply(self) -> None:
        client = _client()
        with patch.object(
            client, "chat", AsyncMock(return_value=_reply('```json\n{"name": "Melinoë", "weakness": "none"}\n```'))
        ) as chat:
            result = await client.generate_object(BossInfo, "You extract bosses.", "Hades II")

        assert result.value == BossInfo(name="Melinoë", weakness="none")
        assert result.usage.input == 100
        assert result.usage.output == 20
        assert chat.await_args.kwargs["json_mode"] is True
        messages = chat.await_args.args[0]
        assert '"weakness"' in messages[0]["content"]

    async def test_invalid_reply_is_retried_and_usage_summed(self) -> None:
        client = _client()
        replies = [_reply('{"name": "Chronos"}'), _reply('{"name": "Chronos", "weakness": "Cast"}')]
        with patch.object(client, "chat", AsyncMock(side_effect=replies)):
            result = await client.generate_object(BossInfo, "s", "p")

        assert result.value.weakness == "Cast"
        assert result.usage.input == 200
        assert result.usage.output == 40

    async def test_persistent_schema_mismatch_raises_client_error(self) -> None:
        client = _client()
        with patch.object(client, "chat", AsyncMock(return_value=_reply("not json"))) as chat:
            with pytest.raises(LLMClientError):
                await client.generate_object(BossInfo, "s", "p")

        assert chat.await_count == 3

    async def test_unexpected_errors_are_wrapped(self) -> None:
        client = _client()
        with patch.object(client, "chat", AsyncMock(side_effect=KeyError("usage"))):
            with pytest.raises(LLMClientError, match="failed"):
                await client.generate_object(BossInfo, "s", "p", context="Planner")

    async def test_cancelled_token_raises_before_any_call(self) -> None:
        client = _client()
        token = CancellationToken()
        token.cancel()
        with patch.object(client, "chat", AsyncMock()) as chat:
            with pytest.raises(OperationCancelledError):
                await client.generate_object(BossInfo, "s", "p", token=token)

        chat.assert_not_called()

    async def test_failed_attempts_report_billed_usage(self) -> None:
        client = _client()
        with patch.object(client, "chat", AsyncMock(return_value=_reply("not json", 100, 50))):
            with pytest.raises(LLMClientError) as exc_info:
                await client.generate_object(BossInfo, "s", "p")

        assert exc_info.value.usage.input == 300
        assert exc_info.value.usage.output == 150

    async def test_wrapped_errors_keep_usage_of_earlier_attempts(self) -> None:
        client = _client()
        replies = [_reply("not json", 40, 10), KeyError("usage")]
        with patch.object(client, "chat", AsyncMock(side_effect=replies)):
            with pytest.raises(LLMClientError) as exc_info:
                await client.generate_object(BossInfo, "s", "p")

        assert exc_info.value.usage.total == 50


@pytest.mark.unit
class TestLLMFactory:
    def test_clients_are_cached_per_config(self) -> None:
        config = LLMConfig(provider="openrouter", model="m", temperature=0.2, max_tokens=1000, timeout=60)

        first = LLMFactory.create_client(config)

        assert LLMFactory.create_client(config) is first
        assert first.model == "m"

    def test_each_tracer_gets_its_own_bound_client(self) -> None:
        config = LLMConfig(provider="openrouter", model="m", temperature=0.2, max_tokens=1000, timeout=60)
        first_run = LangfuseTracer(enabled=False)
        second_run = LangfuseTracer(enabled=False)

        untraced = LLMFactory.create_client(config)
        first = LLMFactory.create_client(config, tracer=first_run)
        second = LLMFactory.create_client(config, tracer=second_run)

        assert first.tracer is first_run
        assert second.tracer is second_run
        assert untraced.tracer is None
        assert LLMFactory.create_client(config) is untraced
        assert first.client is second.client is untraced.client

    def test_unknown_provider_rejected(self) -> None:
        config = LLMConfig(provider="local", model="m", temperature=0.2, max_tokens=1000, timeout=60)

        with pytest.raises(ValueError, match="Unknown provider"):
            LLMFactory.create_client(config)


@pytest.mark.unit
class TestLangfuseTracer:
    def test_disabled_tracer_is_inert(self) -> None:
        tracer = LangfuseTracer(enabled=False)

        assert tracer.active is False
        assert tracer.create_trace("scout") is None
        with tracer.trace_context("scout") as trace:
            assert trace is None
        tracer.flush()

    def test_missing_credentials_disable_tracing(self) -> None:
        with patch("scout_agents.services.llm.langfuse_tracer.settings") as mock_settings:
            mock_settings.LANGFUSE_PUBLIC_KEY = None
            mock_settings.LANGFUSE_SECRET_KEY = None
            mock_settings.LANGFUSE_BASE_URL = "https://cloud.langfuse.com"
            tracer = LangfuseTracer()

        assert tracer.enabled is False
        assert tracer.langfuse_client is None

    def test_trace_context_records_errors_and_closes(self) -> None:
        client = MagicMock()
        with patch("langfuse.Langfuse", return_value=client):
            tracer = LangfuseTracer(public_key="pk", secret_key="sk", host="https://lf.example")

        trace = client.trace.return_value
        with pytest.raises(RuntimeError):
            with tracer.trace_context("scout", {"game": "Hades II"}):
                span = tracer.create_span("search:overview")
                tracer.end_span(span, {"results": 3})
                raise RuntimeError("boom")

        client.trace.assert_called_once_with(name="scout", metadata={"game": "Hades II"})
        trace.span.assert_called_once()
        trace.span.return_value.end.assert_called_once_with(output={"results": 3})
        assert trace.update.call_args_list[0].kwargs["metadata"]["error_type"] == "RuntimeError"
        assert tracer.current_trace is None

    def test_span_without_trace_is_none(self) -> None:
        client = MagicMock()
        with patch("langfuse.Langfuse", return_value=client):
            tracer = LangfuseTracer(public_key="pk", secret_key="sk")

        assert tracer.create_span("orphan") is None
        tracer.end_span(None)
