"""Scout research agents."""

from .query_planner import (
    PlannerResult,
    QueryPlanner,
    generate_fallback_query_plan,
    validate_and_fix_queries,
)
from .scout_agent import ScoutAgent, ScoutAgentDeps, build_discovery_context, categorize_query

__all__ = [
    # Query planning
    "PlannerResult",
    "QueryPlanner",
    "generate_fallback_query_plan",
    "validate_and_fix_queries",
    # Scout agent
    "ScoutAgent",
    "ScoutAgentDeps",
    "build_discovery_context",
    "categorize_query",
]
