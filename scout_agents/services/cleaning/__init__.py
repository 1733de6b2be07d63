"""Content cleaning adapter."""

from .content_cleaner import (
    CleaningOutcome,
    ContentCleaner,
    LLMContentCleaner,
    quick_relevance_check,
)

__all__ = ["CleaningOutcome", "ContentCleaner", "LLMContentCleaner", "quick_relevance_check"]
