"""URL-per-query bookkeeping for duplicate reporting."""

from __future__ import annotations

from ..models.research import (
    CategorizedSearchResult,
    DuplicateUrlInfo,
    SearchQueryStats,
)
from .pool import normalize_query, normalize_url


class DeduplicationTracker:
    """Records every (query, url) occurrence of one invocation.

    Pure bookkeeping: results are never filtered or modified. A URL produced
    by a second distinct query counts as a duplicate. First-seen attribution
    in ``get_query_stats`` follows ingest order, so callers ingest in a
    deterministic order (plan order) after concurrent tasks have joined.

    Example:
        >>> tracker = DeduplicationTracker()
        >>> for result in results:
        ...     tracker.ingest(result)
        >>> tracker.get_duplicates()
    """

    def __init__(self) -> None:
        self._queries_by_url: dict[str, list[str]] = {}
        self._stats: dict[str, SearchQueryStats] = {}
        self.duplicate_count = 0

    def ingest(self, result: CategorizedSearchResult) -> None:
        query_key = normalize_query(result.query)
        total = unique = duplicates = 0
        seen_in_this_result: set[str] = set()

        for item in result.results:
            url = normalize_url(item.url) or item.url
            if url in seen_in_this_result:
                continue
            seen_in_this_result.add(url)
            total += 1

            queries = self._queries_by_url.setdefault(url, [])
            if not queries:
                unique += 1
            elif query_key not in (normalize_query(q) for q in queries):
                duplicates += 1
                self.duplicate_count += 1
            else:
                # Same query text ingested twice; not a cross-query duplicate
                continue
            queries.append(result.query)

        previous = self._stats.get(query_key)
        if previous is not None:
            total += previous.total_results
            unique += previous.unique_results
            duplicates += previous.duplicate_results
        self._stats[query_key] = SearchQueryStats(
            query=result.query,
            provider=result.provider,
            category=result.category,
            total_results=total,
            unique_results=unique,
            duplicate_results=duplicates,
        )

    def get_duplicates(self) -> list[DuplicateUrlInfo]:
        """URLs produced by two or more distinct queries, sorted by URL."""
        return [
            DuplicateUrlInfo(url=url, queries=tuple(sorted(queries)))
            for url, queries in sorted(self._queries_by_url.items())
            if len(queries) > 1
        ]

    def get_query_stats(self) -> list[SearchQueryStats]:
        """Per-query first-seen / already-seen counts in ingest order."""
        return list(self._stats.values())

    @property
    def url_count(self) -> int:
        return len(self._queries_by_url)
