"""LLM service clients (OpenRouter, Langfuse) and factory."""

from .langfuse_tracer import LangfuseTracer
from .llm_factory import LLMFactory, get_cleaner_llm, get_planner_llm
from .openrouter_client import OpenRouterClient, extract_json_from_markdown
from .schemas import GenerationResult, LLMClientError, LLMNotConfiguredError, usage_from_error

__all__ = [
    "GenerationResult",
    "LLMClientError",
    "LLMFactory",
    "LLMNotConfiguredError",
    "LangfuseTracer",
    "OpenRouterClient",
    "extract_json_from_markdown",
    "get_cleaner_llm",
    "get_planner_llm",
    "usage_from_error",
]
