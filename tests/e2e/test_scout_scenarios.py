"""End-to-end Scout scenarios with in-process providers and planner doubles.

No network: search providers and the planner LLM are replaced by doubles, the
rest of the pipeline (planning, discovery, concurrent search, cleaning,
pooling, ranking, confidence) runs for real.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeProvider, fake_response, mock_llm
from scout_agents.agents import QueryPlanner, ScoutAgent, ScoutAgentDeps
from scout_agents.agents.query_planner import (
    DiscoveryCheckSchema,
    PlannedQuerySchema,
    QueryPlanSchema,
)
from scout_agents.core.exceptions import OperationCancelledError, SearchProviderError
from scout_agents.core.retry import CancellationToken, RetryPolicy
from scout_agents.models.research import GameSubject
from scout_agents.services.cleaning import CleaningOutcome
from scout_agents.services.domain_exclusion import StaticDomainExclusionSource
from scout_agents.services.llm.langfuse_tracer import LangfuseTracer
from scout_agents.services.search.base import ProviderResponse, ProviderResultItem
from scout_agents.services.search_executor import SearchExecutor

GAME_X = GameSubject(name="Game X", instruction="beginner guide")
FAST = RetryPolicy(max_retries=3, initial_delay=0.0, max_delay=0.0, jitter=0.0)

RANK = {"low": 0, "medium": 1, "high": 2}


def _plan(*queries: tuple[str, str], title: str = "Game X Beginner Guide") -> QueryPlanSchema:
    return QueryPlanSchema(
        draft_title=title,
        queries=[
            PlannedQuerySchema(
                query=text,
                engine=engine,
                purpose="Research coverage for the article",
                expected_findings=["Facts"],
            )
            for text, engine in queries
        ],
    )


def _executor(*providers, cleaner=None, policy=FAST) -> SearchExecutor:
    return SearchExecutor(
        {p.name: p for p in providers},
        exclusion_source=StaticDomainExclusionSource(),
        cleaner=cleaner,
        retry_policy=policy,
    )


class ScoringCleaner:
    """Cleaner double assigning fixed scores to every source."""

    def __init__(self, quality: float, relevance: float) -> None:
        self.quality = quality
        self.relevance = relevance

    async def clean(self, query, category, raw_result, provider, cost_usd=None, *, game_name=None, token=None):
        results = tuple(
            item.model_copy(
                update={
                    "quality_score": self.quality,
                    "relevance_score": self.relevance,
                    "detailed_summary": f"Cleaned summary of {item.title}",
                }
            )
            for item in raw_result.results
        )
        return CleaningOutcome(cleaned_result=raw_result.model_copy(update={"results": results}))


@pytest.mark.e2e
@pytest.mark.asyncio
class TestScoutScenarios:
    async def test_scenario_a_uncleaned_results(self) -> None:
        """Fallback plan, lexical results without scores, cleaning disabled."""
        shared = ProviderResponse(
            results=tuple(
                ProviderResultItem(title=f"Page {i}", url=f"https://site{i}.example/game-x", content="Short text.")
                for i in range(5)
            )
        )
        tavily = FakeProvider("tavily", lambda query, params: shared)
        exa = FakeProvider("exa", lambda query, params: ProviderResponse.empty())
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor(tavily, exa),
                tracer=LangfuseTracer(enabled=False),
            )
        )

        output = await agent.run(GAME_X)

        assert output.source_summaries == ()
        assert output.confidence in ("low", "medium")
        assert len(output.source_urls) == 5
        assert output.cleaning_token_usage is None
        assert output.discovery_check is None
        assert len(output.duplicated_urls) == 5
        assert output.token_usage.total == 0
        assert output.search_context.startswith('Query: "')

    async def test_scenario_b_cleaned_sources_are_ranked(self) -> None:
        """Eight distinct cleaned sources across three queries."""
        counts = {'"Game X" beginner guide': 3, '"Game X" starting builds': 3, "How does combat work in Game X?": 2}

        def respond(query, params):
            return fake_response(query, count=counts[query])

        llm = mock_llm(
            DiscoveryCheckSchema(needs_discovery=False, discovery_reason="none"),
            _plan(
                ('"Game X" beginner guide', "tavily"),
                ('"Game X" starting builds', "tavily"),
                ("How does combat work in Game X?", "exa"),
            ),
        )
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(llm, enabled=True),
                executor=_executor(
                    FakeProvider("tavily", respond),
                    FakeProvider("exa", respond),
                    cleaner=ScoringCleaner(quality=90, relevance=85),
                ),
                max_sources=15,
            )
        )

        output = await agent.run(GAME_X)

        assert len(output.source_urls) == 8
        assert len(output.source_summaries) == min(8, 15)
        scores = [s.combined_score for s in output.source_summaries]
        assert scores == sorted(scores, reverse=True)
        assert all(s.quality_score == 90 and s.relevance_score == 85 for s in output.source_summaries)
        assert RANK[output.confidence] >= RANK["medium"]
        assert output.token_usage.total == 30
        assert [s.unique_results for s in output.query_stats] == [3, 3, 2]

    async def test_scenario_b_respects_max_sources(self) -> None:
        llm = mock_llm(
            DiscoveryCheckSchema(needs_discovery=False, discovery_reason="none"),
            _plan(('"Game X" beginner guide', "tavily"), ('"Game X" starting builds', "tavily")),
        )
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(llm, enabled=True),
                executor=_executor(
                    FakeProvider("tavily", lambda q, p: fake_response(q, count=5)),
                    cleaner=ScoringCleaner(quality=70, relevance=70),
                ),
                max_sources=4,
            )
        )

        output = await agent.run(GAME_X)

        assert len(output.source_summaries) == 4

    async def test_scenario_c_discovery_feeds_replanning(self) -> None:
        """Discovery results land in the pool and the main plan is re-derived."""
        pre_discovery = _plan(('"Game X" guide', "tavily"), ('"Game X" tips', "tavily"))
        post_discovery = _plan(
            ('"Game X" crafting system guide', "tavily"),
            ("How does crafting progression work?", "exa"),
            title="Game X Crafting Beginner Guide",
        )
        llm = mock_llm(
            DiscoveryCheckSchema(
                needs_discovery=True,
                discovery_reason="unknown_game",
                discovery_query="What is Game X? gameplay overview",
                discovery_engine="tavily",
            ),
            pre_discovery,
            post_discovery,
        )

        def respond(query, params):
            if query.startswith("What is Game X"):
                return ProviderResponse(
                    answer="Game X is a survival crafting game.",
                    results=(
                        ProviderResultItem(
                            title="Game X on Wikipedia",
                            url="https://en.wikipedia.org/wiki/Game_X",
                            content="Game X is a 2025 survival game built around crafting.",
                        ),
                    ),
                )
            return fake_response(query)

        tavily = FakeProvider("tavily", respond)
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(llm, enabled=True),
                executor=_executor(tavily, FakeProvider("exa")),
            )
        )

        output = await agent.run(GAME_X)

        assert "https://en.wikipedia.org/wiki/Game_X" in output.source_urls
        assert output.research_pool.by_category["discovery"][0].query == "What is Game X? gameplay overview"
        assert output.discovery_check is not None
        assert output.discovery_check.reason == "unknown_game"
        assert output.query_plan.draft_title == "Game X Crafting Beginner Guide"
        assert [q.query for q in output.query_plan.queries] == [
            '"Game X" crafting system guide',
            "How does crafting progression work in Game X?",
        ]
        assert output.research_pool.lookup('"Game X" guide') is None
        assert output.token_usage.total == 45

        replan_prompt = llm.generate_object.await_args_list[2].kwargs["prompt"]
        assert "Game X is a survival crafting game." in replan_prompt
        assert output.search_api_costs.lexical_count == 2
        assert output.search_api_costs.semantic_count == 1

    async def test_scenario_d_cancel_during_backoff(self) -> None:
        """One query is stuck in retry backoff when the token is triggered."""
        token = CancellationToken()

        def respond(query, params):
            if "tips secrets" in query:
                raise SearchProviderError("tavily returned HTTP 429", status_code=429)
            return fake_response(query)

        slow_backoff = RetryPolicy(max_retries=3, initial_delay=30.0, max_delay=30.0, jitter=0.0)
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor(FakeProvider("tavily", respond), FakeProvider("exa"), policy=slow_backoff),
                cancellation_token=token,
            )
        )

        async def cancel_soon() -> None:
            await asyncio.sleep(0.05)
            token.cancel("user aborted")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(OperationCancelledError, match="Scout search phase was cancelled"):
            await asyncio.wait_for(agent.run(GAME_X), timeout=5.0)
        await canceller

    async def test_pre_cancelled_token_never_searches(self) -> None:
        token = CancellationToken()
        token.cancel()
        tavily = FakeProvider("tavily")
        agent = ScoutAgent(
            ScoutAgentDeps(
                planner=QueryPlanner(None, enabled=False),
                executor=_executor(tavily, FakeProvider("exa")),
                cancellation_token=token,
            )
        )

        with pytest.raises(OperationCancelledError):
            await agent.run(GAME_X)

        assert tavily.calls == []
