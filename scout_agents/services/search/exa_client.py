"""Exa search client (semantic / neural provider)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from ...core.config import settings
from ...core.exceptions import SearchProviderError
from ...models.research import SearchProviderName
from ...research.costs import estimate_search_cost
from .base import ProviderResponse, ProviderResultItem, SearchParams, raise_for_provider_status

logger = structlog.get_logger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 25
SEARCH_TYPES = ("neural", "deep", "auto", "keyword", "fast")


class ExaClient:
    """Async client for the Exa ``/search`` endpoint.

    Semantic queries work best as natural-language questions. ``additional_queries``
    in ``SearchParams`` are forwarded so Exa can widen coverage with variants.

    Example:
        >>> client = ExaClient(api_key="exa-...")
        >>> response = await client.search(
        ...     "How does stamina work in Elden Ring?", SearchParams(result_limit=5)
        ... )
        >>> response.cost_usd
        0.01
    """

    name: SearchProviderName = "exa"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.EXA_API_KEY
        self.base_url = (base_url or settings.EXA_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.EXA_TIMEOUT
        self._client = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._owns_client = http_client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build_payload(self, query: str, params: SearchParams) -> dict[str, Any]:
        search_type = params.search_type or settings.EXA_SEARCH_TYPE
        if search_type not in SEARCH_TYPES:
            search_type = "neural"
        payload: dict[str, Any] = {
            "query": query,
            "numResults": max(MIN_RESULTS, min(MAX_RESULTS, params.result_limit)),
            "type": search_type,
            "useAutoprompt": search_type != "keyword",
            "contents": {"text": {"maxCharacters": settings.EXA_MAX_CHARACTERS}},
            "livecrawl": "preferred",
        }
        if params.additional_queries:
            payload["additionalQueries"] = list(params.additional_queries)
        if params.exclude_domains:
            payload["excludeDomains"] = list(params.exclude_domains)
        return payload

    async def search(self, query: str, params: SearchParams) -> ProviderResponse:
        """Run one Exa search.

        Returns:
            ProviderResponse with ``cost_usd`` from ``costDollars.total`` or an
            estimate; empty when unconfigured or unauthorized

        Raises:
            SearchProviderError: On rate limiting, 5xx or network failure
            NonRetryableError: On other 4xx responses
        """
        if not self.is_configured:
            logger.warning("exa_not_configured", query=query[:80])
            return ProviderResponse.empty()

        payload = self._build_payload(query, params)
        logger.info(
            "exa_search",
            query=query[:80],
            type=payload["type"],
            num_results=payload["numResults"],
            variants=len(params.additional_queries),
        )

        try:
            response = await self._client.post(
                f"{self.base_url}/search",
                json=payload,
                headers={"x-api-key": self.api_key or "", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as e:
            raise SearchProviderError(
                f"exa network error: {e}", provider=self.name, query=query
            ) from e

        if not raise_for_provider_status(response, self.name):
            return ProviderResponse.empty()

        return self._parse_response(response.json(), payload["type"])

    @staticmethod
    def _parse_response(data: dict[str, Any], search_type: str) -> ProviderResponse:
        items: list[ProviderResultItem] = []
        for raw in data.get("results") or []:
            url = raw.get("url")
            if not url:
                continue
            items.append(
                ProviderResultItem(
                    title=raw.get("title") or "",
                    url=url,
                    content=raw.get("text"),
                    summary=raw.get("summary"),
                    score=raw.get("score"),
                )
            )

        cost = (data.get("costDollars") or {}).get("total")
        if not isinstance(cost, (int, float)):
            cost = estimate_search_cost("exa", search_type=search_type, num_results=len(items))
        logger.info("exa_results", count=len(items), cost_usd=round(float(cost), 4))
        return ProviderResponse(results=tuple(items), cost_usd=float(cost))
