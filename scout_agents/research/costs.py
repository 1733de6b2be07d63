"""Search API cost and LLM token accumulation.

All accumulation is plain addition over frozen value objects, so contributions
from concurrently completing queries can be merged in any order and produce
identical totals.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..core.config import settings
from ..models.research import (
    LEXICAL_PROVIDER,
    CategorizedSearchResult,
    CleaningTokenUsage,
    SearchApiCosts,
    SearchProviderName,
    TokenUsage,
)


def estimate_search_cost(
    provider: SearchProviderName,
    *,
    search_depth: str = "basic",
    search_type: str | None = None,
    num_results: int = 5,
) -> float:
    """Static per-query USD estimate used when a provider reports no cost.

    Tavily bills 1 credit per basic search and 2 per advanced search. Exa bills
    per search (neural or deep) plus a per-page charge for text contents.
    """
    if provider == LEXICAL_PROVIDER:
        credits = 2 if search_depth == "advanced" else 1
        return credits * settings.TAVILY_COST_PER_CREDIT

    kind = search_type or settings.EXA_SEARCH_TYPE
    base = settings.EXA_DEEP_COST if kind == "deep" else settings.EXA_NEURAL_COST
    return base + max(0, num_results) * settings.EXA_TEXT_COST_PER_PAGE


def search_cost_for(result: CategorizedSearchResult, estimate: float = 0.0) -> SearchApiCosts:
    """Cost contribution of one executed query.

    Args:
        result: Executed query result
        estimate: Fallback USD amount when the provider reported no cost
    """
    cost = result.cost_usd if result.cost_usd is not None else estimate
    if result.provider == LEXICAL_PROVIDER:
        return SearchApiCosts(lexical_count=1, lexical_cost_usd=cost)
    return SearchApiCosts(semantic_count=1, semantic_cost_usd=cost)


def sum_search_costs(contributions: Iterable[SearchApiCosts]) -> SearchApiCosts:
    total = SearchApiCosts()
    for contribution in contributions:
        total = total + contribution
    return total


def sum_token_usage(usages: Iterable[TokenUsage]) -> TokenUsage:
    total = TokenUsage.zero()
    for usage in usages:
        total = total + usage
    return total


class CostAggregator:
    """Running totals for one invocation.

    Example:
        >>> costs = CostAggregator()
        >>> costs.add_llm(planner_usage)
        >>> costs.add_search(result, estimate=0.008)
        >>> costs.search_api_costs.total_cost_usd
    """

    def __init__(self) -> None:
        self._search = SearchApiCosts()
        self._tokens = TokenUsage.zero()
        self._cleaning = CleaningTokenUsage()

    def add_search(self, result: CategorizedSearchResult, estimate: float = 0.0) -> None:
        self._search = self._search + search_cost_for(result, estimate)

    def add_search_costs(self, costs: SearchApiCosts) -> None:
        self._search = self._search + costs

    def add_llm(self, usage: TokenUsage) -> None:
        self._tokens = self._tokens + usage

    def add_cleaning(self, prefilter: TokenUsage, extraction: TokenUsage) -> None:
        self._cleaning = self._cleaning + CleaningTokenUsage(
            prefilter=prefilter, extraction=extraction
        )

    def merge(self, other: CostAggregator) -> CostAggregator:
        """Fold another aggregator's totals into this one."""
        self._search = self._search + other._search
        self._tokens = self._tokens + other._tokens
        self._cleaning = self._cleaning + other._cleaning
        return self

    @property
    def search_api_costs(self) -> SearchApiCosts:
        return self._search

    @property
    def token_usage(self) -> TokenUsage:
        return self._tokens

    @property
    def cleaning_token_usage(self) -> CleaningTokenUsage:
        return self._cleaning
