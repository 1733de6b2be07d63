"""LLM client factory for creating and caching LLM clients.

Clients are cached by provider and model so the planner and the cleaner share
connections across invocations. The cached client carries no tracer; callers
passing one get a copy bound to it.
"""

from __future__ import annotations

import structlog

from ...core.config import LLMConfig, settings
from .langfuse_tracer import LangfuseTracer
from .openrouter_client import OpenRouterClient

logger = structlog.get_logger(__name__)


class LLMFactory:
    """Factory for creating and caching LLM clients.

    Example:
        >>> client = LLMFactory.create_client(settings.planner_llm_config)
        >>> assert LLMFactory.create_client(settings.planner_llm_config) is client
    """

    _clients: dict[str, OpenRouterClient] = {}

    @classmethod
    def create_client(
        cls, config: LLMConfig, tracer: LangfuseTracer | None = None
    ) -> OpenRouterClient:
        """Create or retrieve a cached client, bound to ``tracer`` when given.

        Raises:
            ValueError: If the provider is not supported
        """
        cache_key = f"{config.provider}:{config.model}:{config.temperature}"
        if cache_key in cls._clients:
            return cls._clients[cache_key].with_tracer(tracer)

        if config.provider != "openrouter":
            raise ValueError(
                f"Unknown provider: {config.provider}. Supported providers: openrouter"
            )

        logger.info(
            "llm_client_created",
            provider=config.provider,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
        client = OpenRouterClient(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )
        cls._clients[cache_key] = client
        return client.with_tracer(tracer)

    @classmethod
    def clear_cache(cls) -> None:
        """Drop all cached clients (tests, config reloads)."""
        cls._clients.clear()


def get_planner_llm(tracer: LangfuseTracer | None = None) -> OpenRouterClient:
    """Client for discovery checks and query planning."""
    return LLMFactory.create_client(settings.planner_llm_config, tracer=tracer)


def get_cleaner_llm(tracer: LangfuseTracer | None = None) -> OpenRouterClient:
    """Client for content cleaning (pre-filter and extraction)."""
    return LLMFactory.create_client(settings.cleaner_llm_config, tracer=tracer)
