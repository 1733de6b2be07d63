"""Query planner for Scout research.

Two LLM phases:
- Discovery check: does the planner need one exploratory search first?
- Query planning: a draft title plus 2-4 queries, each routed to the lexical
  (Tavily) or semantic (Exa) provider, with purpose and expected findings.

Any planner LLM failure falls back to a deterministic template plan, so a
missing API key or a malformed reply never stops research.
"""

from __future__ import annotations

import re
from typing import Literal

import structlog
from pydantic import BaseModel, Field, field_validator

from ..core.config import settings
from ..core.exceptions import OperationCancelledError, QueryPlanningError
from ..core.retry import CancellationToken
from ..models.research import (
    LEXICAL_PROVIDER,
    SEMANTIC_PROVIDER,
    DiscoveryCheck,
    GameSubject,
    PlannedQuery,
    QueryPlan,
    SearchProviderName,
    TokenUsage,
)
from ..services.llm.openrouter_client import OpenRouterClient
from ..services.llm.schemas import usage_from_error

logger = structlog.get_logger(__name__)


# =============================================================================
# LLM Schemas
# =============================================================================


class DiscoveryCheckSchema(BaseModel):
    """Structured reply for the discovery check."""

    needs_discovery: bool = Field(
        ..., description="Whether a discovery query is needed before planning strategic queries"
    )
    discovery_reason: Literal["unknown_game", "specific_topic", "recent_changes", "none"] = Field(
        ...,
        description=(
            "unknown_game (new/obscure game), specific_topic (need depth on one topic), "
            "recent_changes (need patch/update info), none (sufficient knowledge)"
        ),
    )
    discovery_query: str | None = Field(
        default=None, description="The discovery query to execute (if needs_discovery is true)"
    )
    discovery_engine: Literal["tavily", "exa"] = Field(
        default="tavily", description="Which engine to use for discovery"
    )


class PlannedQuerySchema(BaseModel):
    query: str = Field(..., min_length=5, description="The search query string")
    engine: Literal["tavily", "exa"] = Field(..., description="Which search engine to use")
    purpose: str = Field(..., min_length=10, description="Why this query is needed for the article")
    expected_findings: list[str] = Field(
        ..., min_length=1, max_length=5, description="What this query should provide (1-5 items)"
    )


class QueryPlanSchema(BaseModel):
    """Structured reply for query planning."""

    draft_title: str = Field(
        ..., min_length=10, max_length=100, description="Working title (10-100 characters)"
    )
    queries: list[PlannedQuerySchema] = Field(..., description="Strategic queries to execute")

    @field_validator("queries")
    @classmethod
    def _query_count(cls, v: list[PlannedQuerySchema]) -> list[PlannedQuerySchema]:
        if not settings.PLANNER_MIN_QUERIES <= len(v) <= settings.PLANNER_MAX_QUERIES:
            raise ValueError(
                f"expected {settings.PLANNER_MIN_QUERIES}-{settings.PLANNER_MAX_QUERIES} queries, got {len(v)}"
            )
        return v


class PlannerResult(BaseModel):
    """Outcome of one planner run.

    ``discovery_check`` is None when the check was skipped because discovery
    context was supplied.
    """

    plan: QueryPlan
    discovery_check: DiscoveryCheck | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    used_fallback: bool = False

    model_config = {"frozen": True}


# =============================================================================
# Prompts
# =============================================================================


DISCOVERY_SYSTEM_PROMPT = """You are the Scout agent deciding whether you need initial research before planning article queries.

Consider the game context (name, description, genres, etc.) and the article intent.
Decide whether you can plan effective research queries now, or need one discovery query first.

REASONS TO REQUEST DISCOVERY:
1. UNKNOWN_GAME: the game is new, obscure, or you know too little about it.
   Discovery query: "What is [Game]? gameplay overview mechanics"
2. SPECIFIC_TOPIC: you know the game but need depth on one topic (a boss, a build, a quest).
   Discovery query: "[Game] [topic] strategies tips"
3. RECENT_CHANGES: the game may have had patches affecting the article.
   Discovery query: "[Game] patch notes update changes"
4. NONE: you know enough to plan your queries.

Discovery is separate from your strategic query budget. When in doubt, prefer discovery."""


QUERY_PLAN_SYSTEM_PROMPT = """You are the Scout agent planning research for a game article.

SEARCH ENGINES:
TAVILY: keyword web search.
  - ALWAYS start with the FULL game name in quotes, then the search terms.
  - Correct: "Elden Ring" Margit weakness fire damage guide
  - Wrong: Margit guide Elden Ring (no quotes returns unrelated results)

EXA: semantic search.
  - Natural language questions work best.
  - ALWAYS include the FULL game name, at the end of the question.
  - Correct: What are the best parry strategies in Elden Ring?
  - Wrong: Best parry timings? (missing game name)

PLANNING STRATEGY:
1. Create a draft title that focuses the research.
2. Split queries between Tavily and Exa where each engine is strongest.
3. Include at least one general "[Game] guide/overview" query.
4. Queries must complement each other and cover different aspects.
5. For each query list 1-5 specific expected findings
   ("Boss weakness to fire damage", not "Boss strategies")."""


def _game_context_lines(subject: GameSubject) -> list[str]:
    parts = ["=== GAME CONTEXT ===", f"Game: {subject.name}"]
    if subject.description:
        parts.append(f"Description: {subject.description}")
    if subject.genres:
        parts.append(f"Genres: {', '.join(subject.genres)}")
    if subject.platforms:
        parts.append(f"Platforms: {', '.join(subject.platforms)}")
    if subject.developer:
        parts.append(f"Developer: {subject.developer}")
    if subject.release_date:
        parts.append(f"Release: {subject.release_date}")
    return parts


def build_discovery_prompt(subject: GameSubject) -> str:
    parts = _game_context_lines(subject)
    parts += [
        "",
        "=== ARTICLE INTENT ===",
        subject.instruction or "General guide about the game",
        "",
        "=== YOUR TASK ===",
        "Evaluate: do you need a discovery query before planning your strategic queries?",
        "Consider: is this game familiar? Is the topic specific? Are there recent changes?",
    ]
    return "\n".join(parts)


def build_query_plan_prompt(
    subject: GameSubject,
    discovery_context: str | None = None,
    min_queries: int | None = None,
    max_queries: int | None = None,
) -> str:
    low = min_queries or settings.PLANNER_MIN_QUERIES
    high = max_queries or settings.PLANNER_MAX_QUERIES
    parts = _game_context_lines(subject)
    if discovery_context:
        parts += ["", "=== DISCOVERY FINDINGS ===", discovery_context]
    parts += [
        "",
        "=== ARTICLE INTENT ===",
        subject.instruction or "General guide about the game",
        "",
        "=== YOUR TASK ===",
        "1. Create a draft title for the article",
        f"2. Plan {low}-{high} strategic queries with engine selection",
        "3. For each query, specify expected findings",
        "",
        "Remember:",
        "- At least 1 general coverage query",
        "- Mix Tavily (factual) and Exa (conceptual) strategically",
        "- Every query must contain the full game name",
    ]
    return "\n".join(parts)


# =============================================================================
# Query Fixing
# =============================================================================


def query_contains_game_name(query: str, game_name: str) -> bool:
    """True if the query mentions the game.

    Accepts the full name, the quoted name, or the main title before a ``:``
    subtitle when that title is longer than 5 characters.
    """
    normalized_query = query.lower()
    normalized_name = game_name.lower()
    if normalized_name in normalized_query:
        return True
    if f'"{normalized_name}"' in normalized_query:
        return True
    main_title = game_name.split(":")[0].strip().lower()
    return len(main_title) > 5 and main_title in normalized_query


def fix_query_with_game_name(query: str, game_name: str, provider: SearchProviderName) -> str:
    """Add the game name to a query that lacks it.

    Lexical queries get the quoted name prepended; semantic queries get
    ``in <Game>`` appended (before a trailing ``?``).
    """
    if query_contains_game_name(query, game_name):
        return query

    if provider == LEXICAL_PROVIDER:
        fixed = f'"{game_name}" {query}'
    elif query.endswith("?"):
        fixed = f"{query[:-1]} in {game_name}?"
    else:
        fixed = f"{query} in {game_name}"
    logger.debug("query_fixed_with_game_name", provider=provider, original=query, fixed=fixed)
    return fixed


def validate_and_fix_queries(plan: QueryPlan, game_name: str) -> QueryPlan:
    """Return a plan in which every query mentions the game."""
    queries = tuple(
        q.model_copy(update={"query": fix_query_with_game_name(q.query, game_name, q.provider)})
        for q in plan.queries
    )
    return plan.model_copy(update={"queries": queries})


# =============================================================================
# Fallback
# =============================================================================

_INTENT_NOISE = re.compile(r"guide|walkthrough|how to", re.IGNORECASE)


def generate_fallback_query_plan(subject: GameSubject) -> QueryPlan:
    """Deterministic template plan: 3 lexical and 2 semantic queries."""
    game = subject.name
    intent = " ".join(_INTENT_NOISE.sub("", subject.instruction or "").split())
    keywords = intent or "gameplay mechanics"

    queries = (
        PlannedQuery(
            query=f'"{game}" {keywords} guide tutorial',
            provider=LEXICAL_PROVIDER,
            purpose="General overview and tutorial content",
            expected_findings=("Core mechanics", "Getting started tips", "Basic strategies"),
        ),
        PlannedQuery(
            query=f'"{game}" {keywords} walkthrough strategies',
            provider=LEXICAL_PROVIDER,
            purpose="Detailed strategies and walkthroughs",
            expected_findings=("Step-by-step instructions", "Optimal approaches", "Common challenges"),
        ),
        PlannedQuery(
            query=f'"{game}" tips secrets',
            provider=LEXICAL_PROVIDER,
            purpose="Tips, tricks, and hidden content",
            expected_findings=("Pro tips", "Hidden mechanics", "Secret content"),
        ),
        PlannedQuery(
            query=f"How does {keywords} work in {game}?",
            provider=SEMANTIC_PROVIDER,
            purpose="Conceptual understanding of mechanics",
            expected_findings=("Mechanic explanations", "System interactions", "Design philosophy"),
        ),
        PlannedQuery(
            query=f"Best strategies for {intent or 'playing'} {game}",
            provider=SEMANTIC_PROVIDER,
            purpose="Community-recommended approaches",
            expected_findings=("Meta strategies", "Community consensus", "Advanced techniques"),
        ),
    )
    title = f"{game} {intent[0].upper() + intent[1:]}" if intent else f"{game} Guide"
    return QueryPlan(draft_title=title, queries=queries)


# =============================================================================
# Planner
# =============================================================================


class QueryPlanner:
    """Discovery check plus query planning, with a deterministic fallback.

    Args:
        llm: Client for the structured calls (None = always use the fallback)
        enabled: Use the LLM planner at all (defaults to settings.PLANNER_ENABLED)

    Example:
        >>> planner = QueryPlanner(get_planner_llm())
        >>> result = await planner.run(GameSubject(name="Hades II", instruction="beginner guide"))
        >>> [q.query for q in result.plan.queries]
    """

    def __init__(self, llm: OpenRouterClient | None = None, enabled: bool | None = None) -> None:
        self.llm = llm
        self.enabled = settings.PLANNER_ENABLED if enabled is None else enabled

    @property
    def uses_llm(self) -> bool:
        return self.enabled and self.llm is not None and self.llm.is_configured

    async def check_discovery(
        self, subject: GameSubject, token: CancellationToken | None = None
    ) -> tuple[DiscoveryCheck, TokenUsage]:
        """Ask the LLM whether one discovery search should run before planning."""
        if self.llm is None:
            raise QueryPlanningError("No planner LLM configured")

        logger.info("discovery_check_started", game=subject.name)
        generation = await self.llm.generate_object(
            schema=DiscoveryCheckSchema,
            system=DISCOVERY_SYSTEM_PROMPT,
            prompt=build_discovery_prompt(subject),
            token=token,
            context="Scout discovery check",
        )
        reply = generation.value
        query = (reply.discovery_query or "").strip() or None
        check = DiscoveryCheck(
            needs_discovery=reply.needs_discovery,
            reason=reply.discovery_reason,
            query=query,
            provider=reply.discovery_engine if reply.needs_discovery else None,
        )
        logger.info(
            "discovery_check_completed",
            needs_discovery=check.needs_discovery,
            reason=check.reason,
            query=check.query,
        )
        return check, generation.usage

    async def plan_queries(
        self,
        subject: GameSubject,
        discovery_context: str | None = None,
        token: CancellationToken | None = None,
    ) -> tuple[QueryPlan, TokenUsage]:
        """Ask the LLM for a draft title and strategic queries, then fix game names."""
        if self.llm is None:
            raise QueryPlanningError("No planner LLM configured")

        generation = await self.llm.generate_object(
            schema=QueryPlanSchema,
            system=QUERY_PLAN_SYSTEM_PROMPT,
            prompt=build_query_plan_prompt(subject, discovery_context),
            token=token,
            context="Scout query planning",
        )
        reply = generation.value
        raw_plan = QueryPlan(
            draft_title=reply.draft_title,
            queries=tuple(
                PlannedQuery(
                    query=q.query,
                    provider=q.engine,
                    purpose=q.purpose,
                    expected_findings=tuple(q.expected_findings),
                )
                for q in reply.queries
            ),
        )
        plan = validate_and_fix_queries(raw_plan, subject.name)

        logger.info("query_plan_created", title=plan.draft_title, queries=len(plan.queries))
        for q in plan.queries:
            logger.debug("planned_query", provider=q.provider, query=q.query, purpose=q.purpose)
        return plan, generation.usage

    async def plan(
        self,
        subject: GameSubject,
        intent: str | None = None,
        prior_discovery_context: str | None = None,
        token: CancellationToken | None = None,
    ) -> PlannerResult:
        """Plan queries for ``subject``.

        Without discovery context the discovery check runs first; with it the
        check is skipped and a fresh plan is derived from the findings.

        Raises:
            OperationCancelledError: If the token is cancelled
            QueryPlanningError: If even the fallback plan cannot be built
        """
        if intent is not None:
            subject = subject.model_copy(update={"instruction": intent})

        if not self.uses_llm:
            logger.info("query_planner_fallback", game=subject.name, reason="llm_disabled")
            return self._fallback(subject, TokenUsage.zero())

        usage = TokenUsage.zero()
        discovery_check: DiscoveryCheck | None = None

        if prior_discovery_context is None:
            try:
                discovery_check, check_usage = await self.check_discovery(subject, token)
                usage = usage + check_usage
            except OperationCancelledError:
                raise
            except Exception as e:
                usage = usage + usage_from_error(e)
                logger.warning("discovery_check_failed", game=subject.name, error=str(e)[:200])
                discovery_check = DiscoveryCheck(needs_discovery=False)

        try:
            plan, plan_usage = await self.plan_queries(subject, prior_discovery_context, token)
        except OperationCancelledError:
            raise
        except Exception as e:
            usage = usage + usage_from_error(e)
            logger.warning("query_planning_failed", game=subject.name, error=str(e)[:200])
            result = self._fallback(subject, usage)
            return result.model_copy(update={"discovery_check": discovery_check})

        return PlannerResult(
            plan=plan,
            discovery_check=discovery_check,
            token_usage=usage + plan_usage,
            used_fallback=False,
        )

    async def run(
        self,
        subject: GameSubject,
        discovery_context: str | None = None,
        token: CancellationToken | None = None,
    ) -> PlannerResult:
        return await self.plan(subject, prior_discovery_context=discovery_context, token=token)

    @staticmethod
    def _fallback(subject: GameSubject, usage: TokenUsage) -> PlannerResult:
        try:
            plan = generate_fallback_query_plan(subject)
        except Exception as e:
            raise QueryPlanningError(f"Fallback query plan failed for '{subject.name}': {e}") from e
        logger.info("fallback_query_plan_created", title=plan.draft_title, queries=len(plan.queries))
        return PlannerResult(plan=plan, token_usage=usage, used_fallback=True)
