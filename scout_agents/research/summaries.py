"""Source summary extraction: the best N cleaned sources across the pool."""

from __future__ import annotations

from ..core.config import settings
from ..models.research import ResearchPool, SourceSummary


def extract_source_summaries(
    pool: ResearchPool,
    max_sources: int | None = None,
) -> list[SourceSummary]:
    """Rank distinct cleaned sources by ``quality + relevance``.

    Items that have neither a quality score nor a detailed summary never ran
    through the cleaner and carry no ranking signal, so they are skipped. When
    cleaning is disabled the result is legitimately empty.

    Args:
        pool: Research pool to project
        max_sources: Cap on returned summaries (defaults to settings)

    Returns:
        Summaries sorted by combined score, descending. Ties keep first-seen order.
    """
    limit = settings.MAX_SOURCE_SUMMARIES if max_sources is None else max_sources
    if limit <= 0:
        return []

    seen: set[str] = set()
    candidates: list[SourceSummary] = []

    for result in pool.iter_results():
        for item in result.results:
            if item.url in seen:
                continue
            seen.add(item.url)

            if item.quality_score is None and not item.detailed_summary:
                continue

            candidates.append(
                SourceSummary(
                    url=item.url,
                    title=item.title,
                    detailed_summary=item.detailed_summary or "",
                    key_facts=item.key_facts,
                    data_points=item.data_points,
                    origin_query=result.query,
                    quality_score=item.quality_score or 0.0,
                    relevance_score=item.relevance_score or 0.0,
                )
            )

    # sorted() is stable, so equal scores keep first-seen order
    ranked = sorted(candidates, key=lambda s: s.combined_score, reverse=True)
    return ranked[:limit]
