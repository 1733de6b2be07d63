"""Research pool building and search-result normalization.

The pool folds every ``CategorizedSearchResult`` of one invocation into a
single structure keyed by category and by normalized query text. Folding is
order independent: the built pool only depends on which results were added,
never on the order they arrived in.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog

from ..models.research import (
    CATEGORY_ORDER,
    CategorizedSearchResult,
    ResearchPool,
    SearchCategory,
    SearchProviderName,
    SearchResultItem,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# Normalization
# =============================================================================


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse whitespace for query deduplication."""
    return " ".join(query.lower().split())


def normalize_url(url: str) -> str | None:
    """Normalize a URL for deduplication.

    Returns:
        The URL without its fragment, or None for invalid / non-http(s) URLs
    """
    if not url or not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def extract_domain(url: str) -> str:
    """Hostname without a leading ``www.``; empty string when unparsable."""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


# =============================================================================
# Builder
# =============================================================================


class ResearchPoolBuilder:
    """Incrementally folds categorized results into a ``ResearchPool``.

    Duplicate queries (after normalization) are ignored: the first result for a
    query text wins and later ones do not touch the URL set either.

    Example:
        >>> builder = ResearchPoolBuilder()
        >>> builder.add(overview_result).add_all(category_results)
        >>> pool = builder.build()
        >>> print(len(pool.all_urls))
    """

    def __init__(self) -> None:
        self._by_category: dict[SearchCategory, list[CategorizedSearchResult]] = {
            category: [] for category in CATEGORY_ORDER
        }
        self._all_urls: set[str] = set()
        self._query_cache: dict[str, CategorizedSearchResult] = {}

    def add(self, result: CategorizedSearchResult) -> ResearchPoolBuilder:
        key = normalize_query(result.query)
        if key in self._query_cache:
            logger.debug("pool_skip_duplicate_query", query=result.query)
            return self

        for item in result.results:
            normalized = normalize_url(item.url)
            if normalized:
                self._all_urls.add(normalized)

        self._by_category[result.category].append(result)
        self._query_cache[key] = result
        return self

    def add_all(self, results: Iterable[CategorizedSearchResult]) -> ResearchPoolBuilder:
        for result in results:
            self.add(result)
        return self

    def has(self, query: str) -> bool:
        return normalize_query(query) in self._query_cache

    def find(self, query: str) -> CategorizedSearchResult | None:
        return self._query_cache.get(normalize_query(query))

    @property
    def url_count(self) -> int:
        return len(self._all_urls)

    @property
    def query_count(self) -> int:
        return len(self._query_cache)

    def build(self) -> ResearchPool:
        """Snapshot the builder into an immutable pool.

        Results inside each category are sorted by normalized query so the
        snapshot is identical whatever order ``add`` was called in.
        """
        by_category = {
            category: tuple(sorted(results, key=lambda r: normalize_query(r.query)))
            for category, results in self._by_category.items()
            if results
        }
        query_cache = {key: self._query_cache[key] for key in sorted(self._query_cache)}
        return ResearchPool(
            by_category=by_category,
            all_urls=frozenset(self._all_urls),
            query_cache=query_cache,
        )


def create_empty_research_pool() -> ResearchPool:
    return ResearchPool(by_category={}, all_urls=frozenset(), query_cache={})


# =============================================================================
# Pool Helpers
# =============================================================================


def deduplicate_queries(queries: Sequence[str]) -> list[str]:
    """Drop queries whose normalized form was already seen, preserving order."""
    seen: set[str] = set()
    unique: list[str] = []
    for query in queries:
        key = normalize_query(query)
        if key and key not in seen:
            seen.add(key)
            unique.append(query)
    return unique


def collect_urls(pool: ResearchPool) -> list[str]:
    """Every pool URL, sorted for stable output."""
    return sorted(pool.all_urls)


def extract_research_for_queries(
    queries: Sequence[str],
    pool: ResearchPool,
    include_overview: bool = True,
) -> list[CategorizedSearchResult]:
    """Look up pooled results for a downstream section's queries.

    Args:
        queries: Query texts to look up (normalized before lookup)
        pool: Research pool to search
        include_overview: Append the overview results as general context

    Returns:
        Matching results, queries first then overview (without repeats)
    """
    found: list[CategorizedSearchResult] = []
    seen: set[str] = set()
    for query in queries:
        result = pool.lookup(query)
        if result is not None and normalize_query(result.query) not in seen:
            seen.add(normalize_query(result.query))
            found.append(result)

    if include_overview:
        for result in pool.by_category.get("overview", ()):
            if normalize_query(result.query) not in seen:
                seen.add(normalize_query(result.query))
                found.append(result)
    return found


def process_search_results(
    query: str,
    category: SearchCategory,
    response: Any,
    provider: SearchProviderName,
) -> CategorizedSearchResult:
    """Convert a raw provider response into a ``CategorizedSearchResult``.

    Items with invalid URLs are dropped. Full page content (``raw_content``) is
    preferred over the provider snippet when present.

    Args:
        query: Executed query text
        category: Category to tag the result with
        response: ``ProviderResponse`` returned by a search provider
        provider: Provider that answered
    """
    items: list[SearchResultItem] = []
    for raw in response.results:
        normalized = normalize_url(raw.url)
        if normalized is None:
            logger.debug("dropping_invalid_url", url=raw.url, query=query)
            continue
        items.append(
            SearchResultItem(
                url=normalized,
                title=raw.title or "",
                content=raw.raw_content or raw.content or "",
                score=raw.score,
                summary=raw.summary,
            )
        )

    return CategorizedSearchResult(
        query=query,
        provider=provider,
        category=category,
        answer_summary=response.answer or None,
        cost_usd=response.cost_usd,
        results=tuple(items),
    )
