"""Scout output validation, search-context formatting and final assembly."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from ..core.config import settings
from ..models.research import (
    CategorizedSearchResult,
    CleaningTokenUsage,
    DiscoveryCheck,
    DuplicateUrlInfo,
    FilteredSource,
    QueryPlan,
    ResearchConfidence,
    ResearchPool,
    ScoutOutput,
    SearchApiCosts,
    SearchQueryStats,
    SourceSummary,
    TokenUsage,
)
from .pool import ResearchPoolBuilder, collect_urls

logger = structlog.get_logger(__name__)


def build_search_context(
    results: Sequence[CategorizedSearchResult],
    results_per_context: int | None = None,
    max_snippet_length: int | None = None,
) -> str:
    """Format results into the text digest handed to downstream writers.

    Args:
        results: Results to format, in the order they should appear
        results_per_context: Items listed per query (defaults to settings)
        max_snippet_length: Characters kept per item (defaults to settings)
    """
    per_context = results_per_context or settings.RESULTS_PER_SEARCH_CONTEXT
    snippet_length = max_snippet_length or settings.MAX_SNIPPET_LENGTH

    blocks: list[str] = []
    for search in results:
        snippets = "\n".join(
            f"  - {item.title} ({item.url})\n    {(item.detailed_summary or item.content)[:snippet_length]}"
            for item in search.results[:per_context]
        )
        blocks.append(
            f'Query: "{search.query}"\n'
            f"Category: {search.category}\n"
            f"AI Summary: {search.answer_summary or '(none)'}\n"
            f"Results:\n{snippets}"
        )
    return "\n\n---\n\n".join(blocks)


def validate_scout_output(
    pool_builder: ResearchPoolBuilder,
    pool: ResearchPool,
    game_name: str,
) -> list[str]:
    """Log warnings about thin research. Never raises.

    Returns:
        The warning messages that were logged
    """
    warnings: list[str] = []

    if pool_builder.url_count < settings.MIN_SOURCES_WARNING:
        warnings.append(
            f'Found only {pool_builder.url_count} sources for "{game_name}" '
            f"(minimum recommended: {settings.MIN_SOURCES_WARNING})"
        )

    if pool_builder.query_count < settings.MIN_QUERIES_WARNING:
        warnings.append(
            f'Only {pool_builder.query_count} unique queries executed for "{game_name}" '
            f"(minimum recommended: {settings.MIN_QUERIES_WARNING})"
        )

    empty = [r.query for r in pool.query_cache.values() if not r.results]
    if empty:
        warnings.append(
            f"{len(empty)} search(es) returned no results: " + ", ".join(f'"{q}"' for q in empty)
        )

    for message in warnings:
        logger.warning("scout_research_thin", game=game_name, detail=message)
    return warnings


def assemble_scout_output(
    *,
    query_plan: QueryPlan,
    research_pool: ResearchPool,
    confidence: ResearchConfidence,
    search_api_costs: SearchApiCosts,
    token_usage: TokenUsage,
    discovery_check: DiscoveryCheck | None = None,
    source_summaries: Sequence[SourceSummary] = (),
    cleaning_token_usage: CleaningTokenUsage | None = None,
    duplicated_urls: Sequence[DuplicateUrlInfo] = (),
    query_stats: Sequence[SearchQueryStats] = (),
    filtered_sources: Sequence[FilteredSource] = (),
    search_context: str = "",
) -> ScoutOutput:
    """Combine every component's output into one immutable ``ScoutOutput``.

    Optional parts are only attached when they carry information: the
    discovery check only when discovery ran, cleaning usage only when the
    cleaner spent tokens, and duplicate/stats/filtered lists only when non-empty.
    """
    ran_discovery = discovery_check is not None and discovery_check.needs_discovery
    has_cleaning = cleaning_token_usage is not None and not cleaning_token_usage.is_empty

    return ScoutOutput(
        query_plan=query_plan,
        discovery_check=discovery_check if ran_discovery else None,
        research_pool=research_pool,
        source_urls=tuple(collect_urls(research_pool)),
        source_summaries=tuple(source_summaries),
        confidence=confidence,
        search_api_costs=search_api_costs,
        token_usage=token_usage,
        cleaning_token_usage=cleaning_token_usage if has_cleaning else None,
        duplicated_urls=tuple(duplicated_urls) or None,
        query_stats=tuple(query_stats) or None,
        filtered_sources=tuple(filtered_sources) or None,
        search_context=search_context,
    )
