"""Exception hierarchy for the Scout research engine.

Every error the engine surfaces to callers derives from ``ScoutError`` and
carries optional provider/category/query context so it can be logged and
displayed without re-parsing the message.
"""

from __future__ import annotations


class ScoutError(Exception):
    """Base exception for Scout engine errors.

    Attributes:
        provider: Search provider involved (tavily/exa), if any
        category: Search category involved, if any
        query: Query text involved, if any
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        category: str | None = None,
        query: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.category = category
        self.query = query


class OperationCancelledError(ScoutError):
    """Raised when the invocation's cancellation token has been triggered."""


class NonRetryableError(ScoutError):
    """Validation, authorization or SSRF-style failure that must not be retried."""


class SearchProviderError(ScoutError):
    """HTTP or network failure reported by a search provider.

    Attributes:
        status_code: HTTP status code when the provider answered, else None
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        provider: str | None = None,
        category: str | None = None,
        query: str | None = None,
    ) -> None:
        super().__init__(message, provider=provider, category=category, query=query)
        self.status_code = status_code


class ScoutSearchError(ScoutError):
    """A main-phase search failed after exhausting retries."""


class QueryPlanningError(ScoutError):
    """The deterministic fallback planner could not produce a plan."""
