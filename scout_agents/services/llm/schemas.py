"""Schemas for the LLM service.

Pydantic models for LLM requests and responses, plus the client errors.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from ...models.research import TokenUsage

T = TypeVar("T", bound=BaseModel)


class GenerationResult(BaseModel, Generic[T]):
    """Structured generation output with its token usage."""

    value: T
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str | None = None


class LLMClientError(Exception):
    """Base exception for LLM client errors.

    Attributes:
        usage: Tokens billed by attempts made before the failure
    """

    def __init__(self, message: str, usage: TokenUsage | None = None) -> None:
        super().__init__(message)
        self.usage = usage if usage is not None else TokenUsage.zero()


class LLMNotConfiguredError(LLMClientError):
    """No API key configured, or the capability is disabled."""

    pass


def usage_from_error(error: BaseException) -> TokenUsage:
    """Tokens an LLM failure had already spent (zero for other errors)."""
    if isinstance(error, LLMClientError):
        return error.usage
    return TokenUsage.zero()
