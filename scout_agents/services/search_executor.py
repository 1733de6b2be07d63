"""Execute one planned query end to end.

exclusions -> retry(provider.search) -> normalize -> best-effort cleaning

Domain quality samples are returned with the execution and recorded by the
caller once concurrent searches have joined.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import structlog
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.exceptions import NonRetryableError, OperationCancelledError
from ..core.retry import CancellationToken, RetryPolicy, with_retry
from ..models.research import (
    LEXICAL_PROVIDER,
    CategorizedSearchResult,
    CleaningTokenUsage,
    FilteredSource,
    PlannedQuery,
    SearchCategory,
    SearchProviderName,
    SearchResultItem,
)
from ..research.costs import estimate_search_cost
from ..research.pool import process_search_results
from .cleaning import CleaningOutcome, ContentCleaner
from .domain_exclusion import ExclusionSource, StaticDomainExclusionSource, create_exclusion_source
from .llm.schemas import usage_from_error
from .search import ExaClient, SearchParams, SearchProvider, TavilyClient

logger = structlog.get_logger(__name__)


MAX_QUERY_VARIANTS = 3


class SearchOptions(BaseModel):
    """Per-category provider parameters.

    ``search_type`` and ``additional_queries`` only apply to the semantic provider.
    """

    search_depth: str = "basic"
    max_results: int = Field(default=5, ge=1)
    include_answer: bool = True
    include_raw_content: bool = False
    search_type: str | None = None
    additional_queries: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @classmethod
    def for_category(
        cls, category: SearchCategory, provider: SearchProviderName = LEXICAL_PROVIDER
    ) -> SearchOptions:
        """Defaults: overview advanced/8, category-specific advanced/6, recent and discovery basic/5.

        Semantic providers always request ``SEMANTIC_RESULTS_PER_QUERY`` results.
        """
        if category == "overview":
            depth, limit = settings.OVERVIEW_SEARCH_DEPTH, settings.OVERVIEW_SEARCH_RESULTS
        elif category == "category-specific":
            depth, limit = settings.CATEGORY_SEARCH_DEPTH, settings.CATEGORY_SEARCH_RESULTS
        elif category == "recent":
            depth, limit = settings.RECENT_SEARCH_DEPTH, settings.RECENT_SEARCH_RESULTS
        else:
            depth, limit = "basic", settings.DISCOVERY_SEARCH_RESULTS

        search_type = None
        if provider != LEXICAL_PROVIDER:
            limit = settings.SEMANTIC_RESULTS_PER_QUERY
            search_type = settings.EXA_SEARCH_TYPE
        return cls(
            search_depth=depth,
            max_results=limit,
            include_raw_content=settings.INCLUDE_RAW_CONTENT,
            search_type=search_type,
        )

    @classmethod
    def for_query(cls, planned: PlannedQuery, category: SearchCategory) -> SearchOptions:
        """Category defaults plus one semantic query variant per expected finding.

        Each variant is the planned query followed by the finding, so Exa keeps
        the game context while widening coverage.
        """
        options = cls.for_category(category, planned.provider)
        if planned.provider == LEXICAL_PROVIDER:
            return options
        variants: list[str] = []
        for finding in planned.expected_findings:
            finding = finding.strip()
            if not finding:
                continue
            variant = f"{planned.query} {finding}"
            if variant not in variants:
                variants.append(variant)
        return options.model_copy(update={"additional_queries": tuple(variants[:MAX_QUERY_VARIANTS])})


class SearchExecution(BaseModel):
    """Outcome of one executed query.

    Attributes:
        result: Categorized (and possibly cleaned) result
        cleaning_usage: Cleaner token spend for this query
        filtered_sources: Sources the cleaner rejected
        cost_estimate: Static USD estimate used when the provider reported no cost
        quality_samples: Raw items overlaid with cleaning scores, for domain statistics
    """

    result: CategorizedSearchResult
    cleaning_usage: CleaningTokenUsage = Field(default_factory=CleaningTokenUsage)
    filtered_sources: tuple[FilteredSource, ...] = ()
    cost_estimate: float = 0.0
    quality_samples: tuple[SearchResultItem, ...] = ()

    model_config = {"frozen": True}


async def clean_best_effort(
    cleaner: ContentCleaner | None,
    result: CategorizedSearchResult,
    *,
    game_name: str | None = None,
    token: CancellationToken | None = None,
) -> CleaningOutcome:
    """Run the cleaner, falling back to the raw result on any failure except cancellation.

    Tokens a failed pre-filter call had already spent are kept as pre-filter usage.
    """
    if cleaner is None:
        return CleaningOutcome.passthrough(result)
    try:
        return await cleaner.clean(
            result.query,
            result.category,
            result,
            result.provider,
            result.cost_usd,
            game_name=game_name,
            token=token,
        )
    except OperationCancelledError:
        raise
    except Exception as e:
        logger.warning(
            "content_cleaning_failed",
            query=result.query[:80],
            provider=result.provider,
            error=str(e)[:200],
        )
        return CleaningOutcome(cleaned_result=result, prefilter_usage=usage_from_error(e))


def _quality_samples(
    raw: CategorizedSearchResult, outcome: CleaningOutcome
) -> list[SearchResultItem]:
    """Raw items overlaid with whatever scores cleaning assigned, kept or filtered."""
    cleaned = {item.url: item for item in outcome.cleaned_result.results}
    rejected = {f.url: f for f in outcome.filtered_sources}
    samples: list[SearchResultItem] = []
    for item in raw.results:
        if item.url in cleaned:
            samples.append(cleaned[item.url])
        elif item.url in rejected and rejected[item.url].relevance_score is not None:
            source = rejected[item.url]
            samples.append(
                item.model_copy(
                    update={
                        "quality_score": source.quality_score,
                        "relevance_score": source.relevance_score,
                    }
                )
            )
        else:
            samples.append(item)
    return samples


async def execute_search(
    query: str,
    category: SearchCategory,
    provider: SearchProvider,
    options: SearchOptions,
    *,
    exclusion_source: ExclusionSource,
    cleaner: ContentCleaner | None = None,
    token: CancellationToken | None = None,
    game_name: str | None = None,
    policy: RetryPolicy | None = None,
) -> SearchExecution:
    """Execute one query against one provider.

    Raises:
        OperationCancelledError: If the token is cancelled before or during the call
        SearchProviderError: If the provider keeps failing after retries
        NonRetryableError: If the provider rejected the request
    """
    context = f"Scout search ({category})"
    if token is not None:
        token.raise_if_cancelled(context)

    excluded = await exclusion_source.get_excluded_domains(provider.name)
    params = SearchParams(
        result_limit=options.max_results,
        depth=options.search_depth,
        search_type=options.search_type,
        exclude_domains=tuple(excluded),
        include_answer=options.include_answer,
        include_raw_content=options.include_raw_content,
        additional_queries=options.additional_queries,
    )

    response = await with_retry(
        lambda: provider.search(query, params),
        context=context,
        token=token,
        policy=policy,
    )
    raw = process_search_results(query, category, response, provider.name)
    logger.info(
        "search_executed",
        query=query[:80],
        category=category,
        provider=provider.name,
        results=len(raw.results),
        excluded_domains=len(excluded),
    )

    outcome = await clean_best_effort(cleaner, raw, game_name=game_name, token=token)

    return SearchExecution(
        result=outcome.cleaned_result,
        cleaning_usage=CleaningTokenUsage(
            prefilter=outcome.prefilter_usage, extraction=outcome.extraction_usage
        ),
        filtered_sources=outcome.filtered_sources,
        cost_estimate=estimate_search_cost(
            provider.name,
            search_depth=options.search_depth,
            search_type=options.search_type,
            num_results=options.max_results,
        ),
        quality_samples=tuple(_quality_samples(raw, outcome)) if raw.results else (),
    )


class SearchExecutor:
    """Bundles providers, exclusions, cleaner and retry policy for the agent.

    Example:
        >>> executor = SearchExecutor.from_settings()
        >>> execution = await executor.execute(planned_query, "overview", token=token)
        >>> execution.result.urls
    """

    def __init__(
        self,
        providers: Mapping[SearchProviderName, SearchProvider],
        exclusion_source: ExclusionSource | None = None,
        cleaner: ContentCleaner | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.providers = dict(providers)
        self.exclusion_source = exclusion_source or StaticDomainExclusionSource()
        self.cleaner = cleaner
        self.retry_policy = retry_policy

    @classmethod
    def from_settings(cls) -> SearchExecutor:
        """Build the production executor from configuration."""
        cleaner: ContentCleaner | None = None
        if settings.ENABLE_CONTENT_CLEANING:
            from .cleaning import LLMContentCleaner
            from .llm import get_cleaner_llm

            cleaner = LLMContentCleaner(get_cleaner_llm())

        tavily = TavilyClient()
        exa = ExaClient()
        return cls(
            providers={tavily.name: tavily, exa.name: exa},
            exclusion_source=create_exclusion_source(),
            cleaner=cleaner,
            retry_policy=RetryPolicy.from_settings(),
        )

    def provider(self, name: SearchProviderName) -> SearchProvider:
        try:
            return self.providers[name]
        except KeyError:
            raise NonRetryableError(f"No search provider registered for '{name}'", provider=name) from None

    async def execute(
        self,
        planned: PlannedQuery,
        category: SearchCategory,
        token: CancellationToken | None = None,
        game_name: str | None = None,
    ) -> SearchExecution:
        return await execute_search(
            planned.query,
            category,
            self.provider(planned.provider),
            SearchOptions.for_query(planned, category),
            exclusion_source=self.exclusion_source,
            cleaner=self.cleaner,
            token=token,
            game_name=game_name,
            policy=self.retry_policy,
        )

    async def record_quality(self, executions: Sequence[SearchExecution]) -> None:
        """Feed quality samples into the exclusion statistics, one execution at a time.

        Called after the concurrent search phase has joined, so domain rows are
        written by a single task in plan order.
        """
        record = getattr(self.exclusion_source, "record_sources", None)
        if record is None:
            return
        for execution in executions:
            if execution.quality_samples:
                await record(execution.result.provider, execution.quality_samples)

    async def close(self) -> None:
        for provider in self.providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
