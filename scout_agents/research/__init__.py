"""Research pool, deduplication, ranking, confidence and cost accounting."""

from .confidence import ConfidenceThresholds, calculate_confidence, measure_evidence_volume
from .costs import CostAggregator, estimate_search_cost, search_cost_for
from .deduplication import DeduplicationTracker
from .output import assemble_scout_output, build_search_context, validate_scout_output
from .pool import (
    ResearchPoolBuilder,
    deduplicate_queries,
    extract_domain,
    extract_research_for_queries,
    normalize_query,
    normalize_url,
    process_search_results,
)
from .summaries import extract_source_summaries

__all__ = [
    "ConfidenceThresholds",
    "CostAggregator",
    "DeduplicationTracker",
    "ResearchPoolBuilder",
    "assemble_scout_output",
    "build_search_context",
    "calculate_confidence",
    "deduplicate_queries",
    "estimate_search_cost",
    "extract_domain",
    "extract_research_for_queries",
    "extract_source_summaries",
    "measure_evidence_volume",
    "normalize_query",
    "normalize_url",
    "process_search_results",
    "search_cost_for",
    "validate_scout_output",
]
