"""Unit tests for ScoutAgent orchestration helpers and failure handling."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from conftest import FakeProvider, fake_response, make_item, mock_llm
from scout_agents.agents import QueryPlanner, ScoutAgent, ScoutAgentDeps
from scout_agents.agents.query_planner import DiscoveryCheckSchema, PlannedQuerySchema, QueryPlanSchema
from scout_agents.agents.scout_agent import build_discovery_context, categorize_query
from scout_agents.core.config import settings
from scout_agents.core.exceptions import NonRetryableError, ScoutSearchError
from scout_agents.models.research import CategorizedSearchResult, GameSubject, PlannedQuery
from scout_agents.services.domain_exclusion import StaticDomainExclusionSource
from scout_agents.services.search.base import ProviderResponse
from scout_agents.services.search_executor import SearchExecutor


def _executor(providers, policy) -> SearchExecutor:
    return SearchExecutor(
        {p.name: p for p in providers},
        exclusion_source=StaticDomainExclusionSource(),
        retry_policy=policy,
    )


@pytest.mark.unit
class TestCategorizeQuery:
    @pytest.mark.parametrize(
        ("index", "query", "expected"),
        [
            (0, '"Hades II" latest patch notes', "overview"),
            (1, '"Hades II" patch 0.95 changes', "recent"),
            (2, "What changed in the latest Hades II update?", "recent"),
            (1, '"Hades II" boon tier list', "category-specific"),
            (3, "How do aspects work in Hades II?", "category-specific"),
        ],
    )
    def test_categories(self, index: int, query: str, expected: str) -> None:
        assert categorize_query(index, PlannedQuery(query=query, provider="tavily")) == expected


@pytest.mark.unit
class TestBuildDiscoveryContext:
    def test_summary_and_top_results(self) -> None:
        result = CategorizedSearchResult(
            query="What is Hades II?",
            provider="tavily",
            category="discovery",
            answer_summary="Hades II is a roguelike.",
            results=(
                make_item("https://a.com/1", "A" * 600, title="Wiki"),
                make_item("https://b.com/1", "", title="Empty"),
                make_item("https://c.com/1", "C" * 10, title="Short", detailed_summary="cleaned"),
                make_item("https://d.com/1", "D" * 10, title="Fourth"),
            ),
        )

        context = build_discovery_context(result, max_results=3, snippet_length=500)

        lines = context.split("\n")
        assert lines[0] == "Summary: Hades II is a roguelike."
        assert lines[1] == "- Wiki: " + "A" * 500
        assert lines[2] == "- Short: cleaned"
        assert "Fourth" not in context

    def test_empty_result_gives_empty_context(self) -> None:
        result = CategorizedSearchResult(query="q", provider="exa", category="discovery")

        assert build_discovery_context(result) == ""


@pytest.mark.unit
@pytest.mark.asyncio
class TestScoutAgentFailures:
    async def test_main_phase_failure_raises_scout_search_error(self, subject: GameSubject, no_delay_policy) -> None:
        def respond(query, params):
            if "tips secrets" in query:
                raise NonRetryableError("HTTP 400 from tavily")
            return fake_response(query)

        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor([FakeProvider("tavily", respond), FakeProvider("exa")], no_delay_policy),
            )
        )

        with pytest.raises(ScoutSearchError) as exc_info:
            await agent.run(subject)

        error = exc_info.value
        assert error.provider == "tavily"
        assert error.category == "category-specific"
        assert "tips secrets" in error.query
        assert isinstance(error.__cause__, NonRetryableError)

    async def test_discovery_failure_keeps_original_plan(self, subject: GameSubject, no_delay_policy) -> None:
        plan = QueryPlanSchema(
            draft_title="Hades II Beginner Guide",
            queries=[
                PlannedQuerySchema(
                    query='"Hades II" beginner guide',
                    engine="tavily",
                    purpose="General beginner coverage",
                    expected_findings=["Basics"],
                ),
                PlannedQuerySchema(
                    query="How do boons work in Hades II?",
                    engine="exa",
                    purpose="Explain the boon system",
                    expected_findings=["Boon rules"],
                ),
            ],
        )
        llm = mock_llm(
            DiscoveryCheckSchema(
                needs_discovery=True,
                discovery_reason="unknown_game",
                discovery_query="What is Hades II?",
                discovery_engine="tavily",
            ),
            plan,
        )

        def respond(query, params):
            if query == "What is Hades II?":
                raise NonRetryableError("HTTP 422")
            return fake_response(query)

        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(llm, enabled=True),
                executor=_executor([FakeProvider("tavily", respond), FakeProvider("exa")], no_delay_policy),
            )
        )

        output = await agent.run(subject)

        assert [q.query for q in output.query_plan.queries] == [
            '"Hades II" beginner guide',
            "How do boons work in Hades II?",
        ]
        assert output.research_pool.lookup("What is Hades II?") is None
        assert llm.generate_object.await_count == 2

    async def test_progress_is_reported_and_callback_errors_ignored(
        self, subject: GameSubject, no_delay_policy
    ) -> None:
        events: list[tuple[str, int, int]] = []

        def on_progress(phase: str, done: int, total: int) -> None:
            events.append((phase, done, total))
            if done == 2:
                raise RuntimeError("UI went away")

        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor([FakeProvider("tavily"), FakeProvider("exa")], no_delay_policy),
                on_progress=on_progress,
            )
        )

        output = await agent.run(subject)

        assert events[0] == ("search", 0, 5)
        assert events[-1] == ("search", 5, 5)
        assert len(events) == 6
        assert len(output.research_pool.query_cache) == 5

    async def test_empty_provider_responses_give_low_confidence(self, subject: GameSubject, no_delay_policy) -> None:
        def empty(query, params):
            return ProviderResponse.empty()

        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor([FakeProvider("tavily", empty), FakeProvider("exa", empty)], no_delay_policy),
            )
        )

        output = await agent.run(subject)

        assert output.confidence == "low"
        assert output.source_urls == ()
        assert output.search_api_costs.lexical_count == 3
        assert output.search_api_costs.semantic_count == 2


@pytest.mark.unit
class TestScoutAgentFromSettings:
    def test_wires_production_dependencies(self) -> None:
        with (
            patch.object(settings, "ENABLE_CONTENT_CLEANING", False),
            patch.object(settings, "DATABASE_URL", None),
            patch.object(settings, "LANGFUSE_PUBLIC_KEY", None),
        ):
            agent = ScoutAgent.from_settings()

        assert set(agent.executor.providers) == {"tavily", "exa"}
        assert agent.executor.cleaner is None
        assert isinstance(agent.executor.exclusion_source, StaticDomainExclusionSource)
        assert agent.tracer is not None and agent.tracer.active is False
        assert agent.planner.llm is not None


class _RecordingExclusions(StaticDomainExclusionSource):
    """Records which provider wrote and how many searches had run by then."""

    def __init__(self, *providers: FakeProvider) -> None:
        super().__init__(domains=())
        self.providers = providers
        self.recorded: list[tuple[str, int]] = []

    async def record_sources(self, provider, items) -> None:
        searches = sum(len(p.calls) for p in self.providers)
        self.recorded.append((provider, searches))


@pytest.mark.unit
@pytest.mark.asyncio
class TestScoutAgentDomainStatistics:
    async def test_quality_samples_recorded_in_plan_order_after_join(
        self, subject: GameSubject, no_delay_policy
    ) -> None:
        tavily, exa = FakeProvider("tavily"), FakeProvider("exa")
        exclusions = _RecordingExclusions(tavily, exa)
        executor = SearchExecutor(
            {"tavily": tavily, "exa": exa},
            exclusion_source=exclusions,
            retry_policy=no_delay_policy,
        )
        agent = ScoutAgent(
            ScoutAgentDeps(planner=QueryPlanner(None, enabled=False), executor=executor)
        )

        output = await agent.run(subject)

        assert [p for p, _ in exclusions.recorded] == [q.provider for q in output.query_plan.queries]
        assert all(searches == 5 for _, searches in exclusions.recorded)
