"""Scout data model."""

from .research import (
    CategorizedSearchResult,
    CleaningTokenUsage,
    DiscoveryCheck,
    DuplicateUrlInfo,
    FilteredSource,
    GameSubject,
    PlannedQuery,
    QueryPlan,
    ResearchPool,
    ScoutOutput,
    SearchApiCosts,
    SearchQueryStats,
    SearchResultItem,
    SourceSummary,
    TokenUsage,
)

__all__ = [
    "CategorizedSearchResult",
    "CleaningTokenUsage",
    "DiscoveryCheck",
    "DuplicateUrlInfo",
    "FilteredSource",
    "GameSubject",
    "PlannedQuery",
    "QueryPlan",
    "ResearchPool",
    "ScoutOutput",
    "SearchApiCosts",
    "SearchQueryStats",
    "SearchResultItem",
    "SourceSummary",
    "TokenUsage",
]
