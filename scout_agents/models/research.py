"""Pydantic data model for Scout research.

Everything the engine hands across a component boundary is a frozen model:
results produced by concurrent tasks are never mutated after creation, and the
final ``ScoutOutput`` is an immutable aggregate.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

SearchProviderName = Literal["tavily", "exa"]
SearchCategory = Literal["overview", "category-specific", "recent", "discovery"]
DiscoveryReason = Literal["unknown_game", "specific_topic", "recent_changes", "none"]
ResearchConfidence = Literal["high", "medium", "low"]
FilterReason = Literal[
    "low_relevance", "low_quality", "excluded_domain", "pre_filtered", "scrape_failure"
]

LEXICAL_PROVIDER: SearchProviderName = "tavily"
SEMANTIC_PROVIDER: SearchProviderName = "exa"

# Canonical category order used wherever the pool is iterated
CATEGORY_ORDER: tuple[SearchCategory, ...] = ("overview", "category-specific", "recent", "discovery")


# =============================================================================
# Invocation Input
# =============================================================================


class GameSubject(BaseModel):
    """The game being researched plus the editorial intent.

    Attributes:
        name: Display name of the game (used verbatim in queries)
        slug: Locale-agnostic slug identifier
        igdb_id: IGDB identifier, when known
        description: Short description (e.g., from IGDB)
        genres: Genre hints
        platforms: Platform hints
        developer: Developer studio
        publisher: Publisher
        release_date: Release date as free text
        category_slug: Article category hint (guides, news, reviews, lists)
        instruction: Free-text editorial instruction ("beginner guide")
    """

    name: str = Field(..., min_length=1)
    slug: str | None = None
    igdb_id: int | None = None
    description: str | None = None
    genres: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    developer: str | None = None
    publisher: str | None = None
    release_date: str | None = None
    category_slug: str | None = None
    instruction: str | None = None

    model_config = {"frozen": True}


# =============================================================================
# Planning
# =============================================================================


class PlannedQuery(BaseModel):
    """One query the planner wants executed."""

    query: str = Field(..., min_length=1)
    provider: SearchProviderName
    purpose: str = ""
    expected_findings: tuple[str, ...] = ()

    model_config = {"frozen": True}


class QueryPlan(BaseModel):
    """Ordered list of planned queries plus a working title."""

    draft_title: str
    queries: tuple[PlannedQuery, ...]

    model_config = {"frozen": True}

    @field_validator("queries")
    @classmethod
    def _non_empty(cls, v: tuple[PlannedQuery, ...]) -> tuple[PlannedQuery, ...]:
        if not v:
            raise ValueError("query plan must contain at least one query")
        return v


class DiscoveryCheck(BaseModel):
    """Outcome of the pre-planning ambiguity assessment."""

    needs_discovery: bool
    reason: DiscoveryReason = "none"
    query: str | None = None
    provider: SearchProviderName | None = None

    model_config = {"frozen": True}


# =============================================================================
# Search Results
# =============================================================================


class SearchResultItem(BaseModel):
    """A single source returned by a provider, optionally enriched by cleaning.

    ``quality_score``, ``relevance_score``, ``detailed_summary``, ``key_facts``
    and ``data_points`` are only populated when the content cleaner ran.
    """

    url: str
    title: str = ""
    content: str = ""
    score: float | None = None
    summary: str | None = None
    quality_score: float | None = None
    relevance_score: float | None = None
    detailed_summary: str | None = None
    key_facts: tuple[str, ...] = ()
    data_points: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @property
    def is_cleaned(self) -> bool:
        return self.quality_score is not None or bool(self.detailed_summary)


class CategorizedSearchResult(BaseModel):
    """Everything one executed query produced."""

    query: str
    provider: SearchProviderName
    category: SearchCategory
    answer_summary: str | None = None
    cost_usd: float | None = None
    results: tuple[SearchResultItem, ...] = ()
    timestamp: float = Field(default_factory=time.time)

    model_config = {"frozen": True}

    @property
    def urls(self) -> list[str]:
        return [item.url for item in self.results]


class FilteredSource(BaseModel):
    """A source the cleaner dropped, with the reason."""

    url: str
    domain: str
    title: str = ""
    quality_score: float = 0.0
    relevance_score: float | None = None
    reason: FilterReason
    details: str = ""
    query: str | None = None
    provider: SearchProviderName | None = None

    model_config = {"frozen": True}


# =============================================================================
# Derived Bookkeeping
# =============================================================================


class DuplicateUrlInfo(BaseModel):
    """A URL returned by more than one distinct query."""

    url: str
    queries: tuple[str, ...]

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        return len(self.queries)


class SearchQueryStats(BaseModel):
    """Per-query first-seen versus already-seen counts."""

    query: str
    provider: SearchProviderName
    category: SearchCategory
    total_results: int
    unique_results: int
    duplicate_results: int

    model_config = {"frozen": True}


class ResearchPool(BaseModel):
    """Frozen aggregate of every categorized result from one invocation.

    Attributes:
        by_category: Results grouped by category, in canonical category order
        all_urls: Union of every result item URL
        query_cache: Results keyed by normalized query text
    """

    by_category: Mapping[SearchCategory, tuple[CategorizedSearchResult, ...]]
    all_urls: frozenset[str]
    query_cache: Mapping[str, CategorizedSearchResult]

    model_config = {"frozen": True}

    def lookup(self, query: str) -> CategorizedSearchResult | None:
        """Find the result for ``query`` (normalized the same way as the cache keys)."""
        return self.query_cache.get(" ".join(query.lower().split()))

    def iter_results(self) -> Iterable[CategorizedSearchResult]:
        """Every result, category by category in canonical order."""
        for category in CATEGORY_ORDER:
            yield from self.by_category.get(category, ())


class SourceSummary(BaseModel):
    """A ranked, deduplicated projection of one cleaned source."""

    url: str
    title: str
    detailed_summary: str
    key_facts: tuple[str, ...] = ()
    data_points: tuple[str, ...] = ()
    origin_query: str
    quality_score: float
    relevance_score: float

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def combined_score(self) -> float:
        return self.quality_score + self.relevance_score


# =============================================================================
# Accumulators
# =============================================================================


class TokenUsage(BaseModel):
    """LLM token usage. ``+`` is associative and commutative."""

    input: int = 0
    output: int = 0
    actual_cost_usd: float | None = None

    model_config = {"frozen": True}

    @classmethod
    def zero(cls) -> TokenUsage:
        return cls()

    @property
    def total(self) -> int:
        return self.input + self.output

    @property
    def is_empty(self) -> bool:
        return self.input == 0 and self.output == 0 and not self.actual_cost_usd

    def add(self, other: TokenUsage) -> TokenUsage:
        if self.actual_cost_usd is None and other.actual_cost_usd is None:
            cost = None
        else:
            cost = (self.actual_cost_usd or 0.0) + (other.actual_cost_usd or 0.0)
        return TokenUsage(input=self.input + other.input, output=self.output + other.output, actual_cost_usd=cost)

    __add__ = add


class SearchApiCosts(BaseModel):
    """Per-provider query counts and USD cost. ``+`` is associative."""

    lexical_count: int = 0
    lexical_cost_usd: float = 0.0
    semantic_count: int = 0
    semantic_cost_usd: float = 0.0

    model_config = {"frozen": True}

    @property
    def total_cost_usd(self) -> float:
        return self.lexical_cost_usd + self.semantic_cost_usd

    @property
    def total_count(self) -> int:
        return self.lexical_count + self.semantic_count

    def add(self, other: SearchApiCosts) -> SearchApiCosts:
        return SearchApiCosts(
            lexical_count=self.lexical_count + other.lexical_count,
            lexical_cost_usd=self.lexical_cost_usd + other.lexical_cost_usd,
            semantic_count=self.semantic_count + other.semantic_count,
            semantic_cost_usd=self.semantic_cost_usd + other.semantic_cost_usd,
        )

    __add__ = add


class CleaningTokenUsage(BaseModel):
    """Cleaner token usage split into pre-filter and extraction sub-totals."""

    prefilter: TokenUsage = Field(default_factory=TokenUsage)
    extraction: TokenUsage = Field(default_factory=TokenUsage)

    model_config = {"frozen": True}

    @property
    def total(self) -> TokenUsage:
        return self.prefilter + self.extraction

    @property
    def is_empty(self) -> bool:
        return self.prefilter.is_empty and self.extraction.is_empty

    def add(self, other: CleaningTokenUsage) -> CleaningTokenUsage:
        return CleaningTokenUsage(
            prefilter=self.prefilter + other.prefilter,
            extraction=self.extraction + other.extraction,
        )

    __add__ = add


# =============================================================================
# Final Output
# =============================================================================


class ScoutOutput(BaseModel):
    """Terminal, immutable result of one Scout invocation.

    Optional fields are None when the corresponding step never ran or produced
    nothing (no discovery, no cleaning, no duplicates). ``source_summaries`` is
    an empty tuple when no source carried cleaning scores.
    """

    query_plan: QueryPlan
    discovery_check: DiscoveryCheck | None = None
    research_pool: ResearchPool
    source_urls: tuple[str, ...]
    source_summaries: tuple[SourceSummary, ...] = ()
    confidence: ResearchConfidence
    search_api_costs: SearchApiCosts
    token_usage: TokenUsage
    cleaning_token_usage: CleaningTokenUsage | None = None
    duplicated_urls: tuple[DuplicateUrlInfo, ...] | None = None
    query_stats: tuple[SearchQueryStats, ...] | None = None
    filtered_sources: tuple[FilteredSource, ...] | None = None
    search_context: str = ""

    model_config = {"frozen": True}
