"""ScoutAgent - research orchestration for one game subject.

Architecture:
- Planner phase: discovery check + query plan (LLM or deterministic fallback)
- Discovery phase: at most one exploratory search, then a fresh plan
- Search phase: one asyncio task per planned query, joined with gather
- Merge phase: task results folded in plan order into the dedup tracker,
  pool builder and cost aggregator (single writer, no locks)
"""

from __future__ import annotations

import asyncio
import re
import uuid
from collections.abc import Callable
from contextlib import nullcontext
from dataclasses import dataclass, field

import structlog

from ..core.config import settings
from ..core.exceptions import OperationCancelledError, ScoutSearchError
from ..core.logging_config import bind_scout_context, clear_scout_context
from ..core.retry import CancellationToken
from ..models.research import (
    LEXICAL_PROVIDER,
    CategorizedSearchResult,
    DiscoveryCheck,
    FilteredSource,
    GameSubject,
    PlannedQuery,
    QueryPlan,
    ScoutOutput,
    SearchCategory,
)
from ..research.confidence import (
    ConfidenceThresholds,
    calculate_confidence,
    measure_evidence_volume,
)
from ..research.costs import CostAggregator
from ..research.deduplication import DeduplicationTracker
from ..research.output import assemble_scout_output, build_search_context, validate_scout_output
from ..research.pool import ResearchPoolBuilder
from ..research.summaries import extract_source_summaries
from ..services.llm import LangfuseTracer, get_planner_llm
from ..services.search_executor import SearchExecution, SearchExecutor
from .query_planner import QueryPlanner

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, int, int], None]

_RECENT_QUERY = re.compile(r"\b(patch|patches|update|updates|news|latest|recent|season)\b", re.IGNORECASE)


def categorize_query(index: int, planned: PlannedQuery) -> SearchCategory:
    """Category for the ``index``-th planned query.

    The first query is the overview; queries about patches, updates or news
    are recent; everything else is category-specific.
    """
    if index == 0:
        return "overview"
    if _RECENT_QUERY.search(planned.query):
        return "recent"
    return "category-specific"


def build_discovery_context(
    result: CategorizedSearchResult,
    max_results: int | None = None,
    snippet_length: int | None = None,
) -> str:
    """Excerpt of the top discovery results handed to the re-planning call."""
    limit = max_results or settings.DISCOVERY_CONTEXT_RESULTS
    length = snippet_length or settings.DISCOVERY_SNIPPET_LENGTH

    parts: list[str] = []
    if result.answer_summary:
        parts.append(f"Summary: {result.answer_summary}")
    for item in result.results[:limit]:
        text = (item.detailed_summary or item.content or "").strip()
        if not text:
            continue
        parts.append(f"- {item.title}: {text[:length]}")
    return "\n".join(parts)


@dataclass
class ScoutAgentDeps:
    """Dependencies for ScoutAgent."""

    planner: QueryPlanner
    executor: SearchExecutor
    tracer: LangfuseTracer | None = None
    cancellation_token: CancellationToken | None = None
    on_progress: ProgressCallback | None = None
    max_sources: int = field(default_factory=lambda: settings.MAX_SOURCE_SUMMARIES)
    confidence_thresholds: ConfidenceThresholds = field(
        default_factory=ConfidenceThresholds.from_settings
    )


class _InvocationState:
    """Accumulators for one invocation. Only touched from the merge steps."""

    def __init__(self) -> None:
        self.pool_builder = ResearchPoolBuilder()
        self.tracker = DeduplicationTracker()
        self.costs = CostAggregator()
        self.filtered_sources: list[FilteredSource] = []

    def merge(self, execution: SearchExecution) -> None:
        self.tracker.ingest(execution.result)
        self.pool_builder.add(execution.result)
        self.costs.add_search(execution.result, execution.cost_estimate)
        self.costs.add_cleaning(
            execution.cleaning_usage.prefilter, execution.cleaning_usage.extraction
        )
        self.filtered_sources.extend(execution.filtered_sources)


class ScoutAgent:
    """Research orchestrator producing one immutable ``ScoutOutput``.

    Example:
        >>> agent = ScoutAgent(ScoutAgentDeps(planner=planner, executor=executor))
        >>> output = await agent.run(GameSubject(name="Hades II", instruction="beginner guide"))
        >>> output.confidence, len(output.source_urls)
    """

    def __init__(self, deps: ScoutAgentDeps) -> None:
        self.deps = deps
        self.planner = deps.planner
        self.executor = deps.executor
        self.tracer = deps.tracer
        self.token = deps.cancellation_token

    @classmethod
    def from_settings(
        cls,
        cancellation_token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ScoutAgent:
        """Wire the production planner, executor and tracer from configuration."""
        tracer = LangfuseTracer()
        return cls(
            ScoutAgentDeps(
                planner=QueryPlanner(get_planner_llm(tracer)),
                executor=SearchExecutor.from_settings(),
                tracer=tracer,
                cancellation_token=cancellation_token,
                on_progress=on_progress,
            )
        )

    def _check_cancelled(self, context: str) -> None:
        if self.token is not None:
            self.token.raise_if_cancelled(context)

    def _report(self, phase: str, done: int, total: int) -> None:
        if self.deps.on_progress is None:
            return
        try:
            self.deps.on_progress(phase, done, total)
        except Exception as e:
            logger.warning("progress_callback_failed", phase=phase, error=str(e)[:200])

    async def run(self, subject: GameSubject) -> ScoutOutput:
        """Research ``subject`` end to end.

        Raises:
            OperationCancelledError: If the token is cancelled at any point
            ScoutSearchError: If a main-phase query fails after retries
        """
        run_id = uuid.uuid4().hex[:12]
        bind_scout_context(subject.name, run_id)
        trace_cm = (
            self.tracer.trace_context(
                name="scout_research",
                metadata={"game": subject.name, "instruction": subject.instruction, "run_id": run_id},
            )
            if self.tracer
            else nullcontext()
        )
        try:
            with trace_cm:
                output = await self._run(subject)
            logger.info(
                "🔎 SCOUT COMPLETE",
                sources=len(output.source_urls),
                queries=len(output.research_pool.query_cache),
                confidence=output.confidence,
                search_cost_usd=round(output.search_api_costs.total_cost_usd, 4),
                tokens=output.token_usage.total,
            )
            return output
        finally:
            if self.tracer:
                self.tracer.flush()
            clear_scout_context()

    async def _run(self, subject: GameSubject) -> ScoutOutput:
        self._check_cancelled("Scout research")
        state = _InvocationState()

        planned = await self.planner.run(subject, token=self.token)
        state.costs.add_llm(planned.token_usage)
        plan = planned.plan
        discovery_check = planned.discovery_check

        if discovery_check is not None and discovery_check.needs_discovery and discovery_check.query:
            plan = await self._discover(subject, discovery_check, plan, state)

        executions = await self._search(subject, plan)
        for execution in executions:
            state.merge(execution)
        await self.executor.record_quality(executions)

        pool = state.pool_builder.build()
        validate_scout_output(state.pool_builder, pool, subject.name)

        evidence = measure_evidence_volume(pool)
        confidence = calculate_confidence(
            state.pool_builder.url_count,
            state.pool_builder.query_count,
            evidence,
            self.deps.confidence_thresholds,
        )
        if confidence == "low":
            logger.warning(
                "scout_confidence_low",
                game=subject.name,
                sources=state.pool_builder.url_count,
                queries=state.pool_builder.query_count,
                evidence_chars=evidence,
            )

        return assemble_scout_output(
            query_plan=plan,
            research_pool=pool,
            confidence=confidence,
            search_api_costs=state.costs.search_api_costs,
            token_usage=state.costs.token_usage,
            discovery_check=discovery_check,
            source_summaries=extract_source_summaries(pool, self.deps.max_sources),
            cleaning_token_usage=state.costs.cleaning_token_usage,
            duplicated_urls=state.tracker.get_duplicates(),
            query_stats=state.tracker.get_query_stats(),
            filtered_sources=state.filtered_sources,
            search_context=build_search_context(list(pool.iter_results())),
        )

    async def _discover(
        self,
        subject: GameSubject,
        check: DiscoveryCheck,
        plan: QueryPlan,
        state: _InvocationState,
    ) -> QueryPlan:
        """Run the discovery search and re-plan with its findings.

        A failed discovery search keeps the pre-discovery plan; cancellation
        propagates.
        """
        self._check_cancelled("Scout discovery")
        discovery_query = PlannedQuery(
            query=check.query or subject.name,
            provider=check.provider or LEXICAL_PROVIDER,
            purpose=f"Discovery ({check.reason})",
        )
        logger.info(
            "discovery_search_started",
            query=discovery_query.query,
            provider=discovery_query.provider,
            reason=check.reason,
        )
        span = None
        if self.tracer:
            span = self.tracer.create_span("search:discovery", {"query": discovery_query.query})

        try:
            execution = await self.executor.execute(discovery_query, "discovery", self.token, subject.name)
        except OperationCancelledError:
            raise
        except Exception as e:
            logger.warning("discovery_search_failed", query=discovery_query.query, error=str(e)[:200])
            if self.tracer:
                self.tracer.end_span(span, {"error": str(e)[:200]})
            return plan

        if self.tracer:
            self.tracer.end_span(span, {"results": len(execution.result.results)})
        state.merge(execution)
        await self.executor.record_quality([execution])

        context = build_discovery_context(execution.result)
        if not context:
            logger.info("discovery_context_empty", query=discovery_query.query)
            return plan

        self._check_cancelled("Scout re-planning")
        replanned = await self.planner.run(subject, discovery_context=context, token=self.token)
        state.costs.add_llm(replanned.token_usage)
        return replanned.plan

    async def _search(self, subject: GameSubject, plan: QueryPlan) -> list[SearchExecution]:
        """Run every planned query concurrently; results come back in plan order."""
        self._check_cancelled("Scout search phase")
        jobs = [(q, categorize_query(i, q)) for i, q in enumerate(plan.queries)]
        total = len(jobs)
        done = 0
        self._report("search", 0, total)

        def _on_done(_: asyncio.Task[SearchExecution]) -> None:
            nonlocal done
            done += 1
            self._report("search", done, total)

        tasks: list[asyncio.Task[SearchExecution]] = []
        for planned, category in jobs:
            task = asyncio.create_task(
                self.executor.execute(planned, category, self.token, subject.name)
            )
            task.add_done_callback(_on_done)
            tasks.append(task)

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        cancelled = (self.token is not None and self.token.is_cancelled) or any(
            isinstance(o, (OperationCancelledError, asyncio.CancelledError)) for o in outcomes
        )
        if cancelled:
            logger.info("scout_search_cancelled", queries=total)
            raise OperationCancelledError("Scout search phase was cancelled")

        executions: list[SearchExecution] = []
        for (planned, category), outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "scout_search_failed",
                    query=planned.query,
                    provider=planned.provider,
                    category=category,
                    error=str(outcome)[:200],
                )
                raise ScoutSearchError(
                    f"Search failed for {category} query '{planned.query}' "
                    f"({planned.provider}): {outcome}",
                    provider=planned.provider,
                    category=category,
                    query=planned.query,
                ) from outcome
            executions.append(outcome)
        return executions
