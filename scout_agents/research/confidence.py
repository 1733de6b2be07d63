"""Research confidence scoring."""

from __future__ import annotations

from dataclasses import dataclass

from ..core.config import settings
from ..models.research import ResearchConfidence, ResearchPool, SearchCategory

OVERVIEW_EVIDENCE_CATEGORIES: tuple[SearchCategory, ...] = ("discovery", "overview")


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Medium-level thresholds; high is 2x for counts and 4x for evidence.

    Attributes:
        min_sources: Sources needed for one source point
        min_queries: Distinct queries needed for one query point
        min_evidence: Evidence characters needed for one evidence point
    """

    min_sources: int = 5
    min_queries: int = 3
    min_evidence: int = 50

    @classmethod
    def from_settings(cls) -> ConfidenceThresholds:
        return cls(
            min_sources=settings.MIN_SOURCES_WARNING,
            min_queries=settings.MIN_QUERIES_WARNING,
            min_evidence=settings.MIN_EVIDENCE_LENGTH,
        )


def _points(value: int, medium: int, high: int) -> int:
    if value >= high:
        return 2
    if value >= medium:
        return 1
    return 0


def calculate_confidence(
    source_count: int,
    query_count: int,
    evidence_volume: int,
    thresholds: ConfidenceThresholds | None = None,
) -> ResearchConfidence:
    """Map source count, query count and evidence volume to high/medium/low.

    Each dimension scores 0-2 points; the total (max 6) maps to
    ``high`` (>= 5), ``medium`` (>= 3) or ``low``.

    Example:
        >>> calculate_confidence(10, 6, 200)
        'high'
        >>> calculate_confidence(5, 1, 0)
        'low'
    """
    t = thresholds or ConfidenceThresholds.from_settings()

    score = (
        _points(source_count, t.min_sources, t.min_sources * 2)
        + _points(query_count, t.min_queries, t.min_queries * 2)
        + _points(evidence_volume, t.min_evidence, t.min_evidence * 4)
    )

    if score >= 5:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def measure_evidence_volume(pool: ResearchPool) -> int:
    """Characters of overview-level evidence.

    Counts provider answer summaries and cleaned source summaries from the
    discovery and overview categories, each distinct URL once. Raw page text
    is not counted.
    """
    seen: set[str] = set()
    total = 0
    for category in OVERVIEW_EVIDENCE_CATEGORIES:
        for result in pool.by_category.get(category, ()):
            total += len(result.answer_summary or "")
            for item in result.results:
                if item.url in seen or not item.detailed_summary:
                    continue
                seen.add(item.url)
                total += len(item.detailed_summary)
    return total
