"""Search provider capability shared by the lexical and semantic clients."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel, Field

from ...core.exceptions import NonRetryableError, SearchProviderError
from ...models.research import SearchProviderName

logger = structlog.get_logger(__name__)


class SearchParams(BaseModel):
    """Provider-agnostic search parameters.

    Attributes:
        result_limit: Maximum results requested
        depth: Lexical search depth (basic/advanced)
        search_type: Semantic search type (neural/deep/auto/keyword/fast)
        exclude_domains: Domains the provider must skip
        include_answer: Ask the provider for an answer summary
        include_raw_content: Ask for full page content instead of snippets
        additional_queries: Semantic query variants for coverage expansion
    """

    result_limit: int = Field(default=5, ge=1)
    depth: str = "basic"
    search_type: str | None = None
    exclude_domains: tuple[str, ...] = ()
    include_answer: bool = True
    include_raw_content: bool = False
    additional_queries: tuple[str, ...] = ()

    model_config = {"frozen": True}


class ProviderResultItem(BaseModel):
    """One raw result as returned by a provider."""

    title: str = ""
    url: str
    content: str | None = None
    raw_content: str | None = None
    summary: str | None = None
    score: float | None = None

    model_config = {"frozen": True}


class ProviderResponse(BaseModel):
    """Raw provider response. Empty when the provider is unconfigured."""

    answer: str | None = None
    results: tuple[ProviderResultItem, ...] = ()
    cost_usd: float | None = None

    model_config = {"frozen": True}

    @classmethod
    def empty(cls) -> ProviderResponse:
        return cls()


@runtime_checkable
class SearchProvider(Protocol):
    """Capability shape implemented by ``TavilyClient`` and ``ExaClient``."""

    name: SearchProviderName

    @property
    def is_configured(self) -> bool: ...

    async def search(self, query: str, params: SearchParams) -> ProviderResponse: ...


def raise_for_provider_status(response: httpx.Response, provider: SearchProviderName) -> bool:
    """Map a provider HTTP status onto the engine's error taxonomy.

    Returns:
        True when the response is usable, False when the provider rejected our
        credentials (401/403) and the caller should degrade to an empty result

    Raises:
        SearchProviderError: On 429 and 5xx (retryable)
        NonRetryableError: On any other 4xx
    """
    status = response.status_code
    if status < 400:
        return True
    if status in (401, 403):
        logger.warning("search_provider_unauthorized", provider=provider, status_code=status)
        return False

    detail = response.text[:200] if response.text else ""
    if status == 429 or status >= 500:
        raise SearchProviderError(
            f"{provider} returned HTTP {status}: {detail}",
            status_code=status,
            provider=provider,
        )
    raise NonRetryableError(f"{provider} rejected the request with HTTP {status}: {detail}", provider=provider)
