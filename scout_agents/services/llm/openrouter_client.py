"""OpenRouter LLM client with structured generation.

OpenAI-compatible client used for discovery checks, query planning and content
cleaning. Retries go through the shared ``with_retry`` wrapper so the
invocation's cancellation token is honoured between attempts.
"""

from __future__ import annotations

import copy
import json
from typing import Any, TypeVar

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ...core.config import settings
from ...core.exceptions import OperationCancelledError
from ...core.retry import CancellationToken, RetryPolicy, with_retry
from ...models.research import TokenUsage
from .langfuse_tracer import LangfuseTracer
from .schemas import GenerationResult, LLMClientError, LLMNotConfiguredError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


def extract_json_from_markdown(content: str) -> str:
    """Extract JSON from markdown code blocks.

    Some models wrap JSON responses in ```json...``` or ```...``` blocks even
    in JSON mode.

    Args:
        content: Raw LLM response text

    Returns:
        Cleaned JSON string
    """
    stripped = content.strip()
    if not stripped.startswith("```"):
        return stripped

    json_lines: list[str] = []
    in_code_block = False
    for line in stripped.split("\n"):
        if line.strip().startswith("```"):
            in_code_block = not in_code_block
            continue
        if in_code_block:
            json_lines.append(line)
    return "\n".join(json_lines).strip()


class OpenRouterClient:
    """OpenRouter LLM client with an OpenAI-compatible interface.

    Features:
    - Async chat completion returning content plus token usage
    - Structured generation validated against a pydantic schema
    - Retry with backoff and cancellation via ``with_retry``
    - Optional Langfuse generation tracking

    A client without an API key can be constructed; every call then raises
    ``LLMNotConfiguredError`` so callers can take their fallback path.

    Example:
        >>> client = OpenRouterClient(model="google/gemini-2.5-flash-lite")
        >>> result = await client.generate_object(
        ...     schema=DiscoveryCheckSchema,
        ...     system="You evaluate research needs.",
        ...     prompt="Game: Hades II",
        ... )
        >>> result.value.needs_discovery
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        tracer: LangfuseTracer | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key (defaults to settings.OPENROUTER_API_KEY)
            base_url: Base URL for OpenRouter API
            model: Model to use (defaults to settings.PLANNER_LLM_MODEL)
            temperature: Default sampling temperature
            max_tokens: Default completion budget
            timeout: Request timeout (seconds)
            tracer: Optional Langfuse tracer for monitoring
            retry_policy: Backoff policy for transient failures
        """
        self.api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self.base_url = base_url or settings.OPENROUTER_BASE_URL
        self.model = model or settings.PLANNER_LLM_MODEL
        self.temperature = settings.PLANNER_LLM_TEMPERATURE if temperature is None else temperature
        self.max_tokens = max_tokens or settings.PLANNER_LLM_MAX_TOKENS
        self.timeout = float(timeout or settings.PLANNER_LLM_TIMEOUT)
        self.tracer = tracer
        self.retry_policy = retry_policy

        self.client: AsyncOpenAI | None = None
        if self.is_configured:
            self.client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                # Retries are owned by with_retry
                max_retries=0,
            )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def with_tracer(self, tracer: LangfuseTracer | None) -> OpenRouterClient:
        """Copy of this client reporting to ``tracer``; the HTTP connection is shared."""
        if tracer is self.tracer:
            return self
        bound = copy.copy(self)
        bound.tracer = tracer
        return bound

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Execute a single chat completion attempt.

        Returns:
            dict with keys: content, usage (prompt_tokens, completion_tokens,
            total_tokens), model, finish_reason

        Raises:
            LLMNotConfiguredError: If no API key is configured
            openai.APIError: Propagated for the retry wrapper to classify
        """
        if self.client is None:
            raise LLMNotConfiguredError("OPENROUTER_API_KEY is not configured")

        temp = self.temperature if temperature is None else temperature
        logger.info(
            f"🤖 LLM REQUEST: model={self.model}, temp={temp}, messages={len(messages)}"
        )
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            temperature=temp,
            max_tokens=max_tokens or self.max_tokens,
            stream=False,
            **kwargs,
        )
        usage = response.usage
        result: dict[str, Any] = {
            "content": response.choices[0].message.content or "",
            "usage": {
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
                "total_tokens": usage.total_tokens if usage else 0,
            },
            "model": response.model,
            "finish_reason": response.choices[0].finish_reason,
        }
        logger.info(
            f"✅ LLM RESPONSE: tokens={result['usage']['total_tokens']} "
            f"(input={result['usage']['prompt_tokens']}, output={result['usage']['completion_tokens']})"
        )

        if self.tracer:
            self.tracer.track_generation(
                name="chat_completion",
                model=self.model,
                input_messages=messages,
                output=result["content"],
                prompt_tokens=result["usage"]["prompt_tokens"],
                completion_tokens=result["usage"]["completion_tokens"],
            )
        return result

    async def generate_object(
        self,
        schema: type[T],
        system: str,
        prompt: str,
        *,
        token: CancellationToken | None = None,
        context: str = "LLM structured generation",
        temperature: float | None = None,
    ) -> GenerationResult[T]:
        """Generate a value matching ``schema``.

        The JSON schema is appended to the system prompt and the reply is
        validated with pydantic. A reply that fails validation counts as a
        transient failure and is retried.

        Args:
            schema: Pydantic model the reply must satisfy
            system: System prompt
            prompt: User prompt
            token: Cancellation token checked between attempts
            context: Operation name for logs and errors
            temperature: Optional temperature override

        Returns:
            GenerationResult with the validated value and summed token usage

        Raises:
            LLMNotConfiguredError: If no API key is configured
            OperationCancelledError: If the token is cancelled
            LLMClientError: If every attempt failed
        """
        if not self.is_configured:
            raise LLMNotConfiguredError(f"{context}: OPENROUTER_API_KEY is not configured")

        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        messages = [
            {
                "role": "system",
                "content": f"{system}\n\nRespond with valid JSON only, matching this JSON schema:\n{schema_json}",
            },
            {"role": "user", "content": prompt},
        ]
        spent = TokenUsage.zero()

        async def _attempt() -> GenerationResult[T]:
            nonlocal spent
            response = await self.chat(messages, temperature=temperature, json_mode=True)
            usage = TokenUsage(
                input=response["usage"]["prompt_tokens"],
                output=response["usage"]["completion_tokens"],
            )
            spent = spent + usage
            content = extract_json_from_markdown(response["content"])
            try:
                value = schema.model_validate_json(content)
            except ValidationError as e:
                raise LLMClientError(
                    f"{context}: response did not match schema ({e.error_count()} errors)"
                ) from e
            return GenerationResult[schema](value=value, usage=spent, model=response["model"])  # type: ignore[valid-type]

        try:
            return await with_retry(
                _attempt, context=context, token=token, policy=self.retry_policy
            )
        except OperationCancelledError:
            raise
        except LLMClientError as e:
            e.usage = spent
            raise
        except Exception as e:
            raise LLMClientError(f"{context} failed: {e}", usage=spent) from e
