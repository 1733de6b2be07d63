"""Tavily search client (lexical / keyword provider).

Design goals:
    - Async ``search()`` returning a normalized ``ProviderResponse``
    - Missing API key or rejected credentials degrade to an empty response
    - 429 / 5xx / network failures raise retryable ``SearchProviderError``
    - Timeouts propagate untouched (the retry wrapper does not retry them)
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from ...core.config import settings
from ...core.exceptions import SearchProviderError
from ...models.research import SearchProviderName
from .base import ProviderResponse, ProviderResultItem, SearchParams, raise_for_provider_status

logger = structlog.get_logger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 10


class TavilyClient:
    """Async client for the Tavily ``/search`` endpoint.

    Args:
        api_key: Tavily API key (defaults to settings.TAVILY_API_KEY)
        base_url: API base URL (defaults to settings.TAVILY_BASE_URL)
        timeout: Per-request timeout in seconds
        http_client: Optional pre-built client (tests pass one with a MockTransport)

    Example:
        >>> client = TavilyClient(api_key="tvly-...")
        >>> response = await client.search(
        ...     '"Elden Ring" boss guide', SearchParams(result_limit=8, depth="advanced")
        ... )
        >>> print(len(response.results))
    """

    name: SearchProviderName = "tavily"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.TAVILY_API_KEY
        self.base_url = (base_url or settings.TAVILY_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.TAVILY_TIMEOUT
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._owns_client = http_client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    async def close(self) -> None:
        """Close underlying HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def _build_payload(self, query: str, params: SearchParams) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "api_key": self.api_key,
            "query": query,
            "search_depth": "advanced" if params.depth == "advanced" else "basic",
            "max_results": max(MIN_RESULTS, min(MAX_RESULTS, params.result_limit)),
            "include_answer": params.include_answer,
            "include_raw_content": params.include_raw_content,
        }
        if params.exclude_domains:
            payload["exclude_domains"] = list(params.exclude_domains)
        return payload

    async def search(self, query: str, params: SearchParams) -> ProviderResponse:
        """Run one Tavily search.

        Args:
            query: Search query string
            params: Depth, result limit, exclusions, raw-content toggle

        Returns:
            ProviderResponse (empty when unconfigured or unauthorized)

        Raises:
            SearchProviderError: On rate limiting, 5xx or network failure
            NonRetryableError: On other 4xx responses
        """
        if not self.is_configured:
            logger.warning("tavily_not_configured", query=query[:80])
            return ProviderResponse.empty()

        payload = self._build_payload(query, params)
        logger.info(
            "tavily_search",
            query=query[:80],
            depth=payload["search_depth"],
            max_results=payload["max_results"],
            excluded=len(params.exclude_domains),
        )

        try:
            response = await self._client.post(
                f"{self.base_url}/search", json=payload, timeout=self.timeout
            )
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as e:
            raise SearchProviderError(
                f"tavily network error: {e}", provider=self.name, query=query
            ) from e

        if not raise_for_provider_status(response, self.name):
            return ProviderResponse.empty()

        return self._parse_response(response.json())

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> ProviderResponse:
        items: list[ProviderResultItem] = []
        for raw in data.get("results") or []:
            url = raw.get("url")
            if not url:
                continue
            items.append(
                ProviderResultItem(
                    title=raw.get("title") or "",
                    url=url,
                    content=raw.get("content"),
                    raw_content=raw.get("raw_content"),
                    score=raw.get("score"),
                )
            )
        logger.info("tavily_results", count=len(items), has_answer=bool(data.get("answer")))
        return ProviderResponse(answer=data.get("answer"), results=tuple(items))
