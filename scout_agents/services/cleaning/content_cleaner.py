"""Content cleaning for raw search results.

Two-step LLM cleaning:

1. Pre-filter: a regex check drops obviously irrelevant hosts, then one batch
   LLM call scores every remaining title/snippet for relevance.
2. Extraction: one LLM call per surviving source produces quality and
   relevance scores, a detailed summary, key facts and data points.

Sources scoring under the configured floors become ``FilteredSource`` entries.
A source whose extraction fails keeps its raw content.
"""

from __future__ import annotations

import asyncio
import re
from typing import Protocol

import structlog
from pydantic import BaseModel, Field

from ...core.config import settings
from ...core.exceptions import OperationCancelledError
from ...core.retry import CancellationToken
from ...models.research import (
    CategorizedSearchResult,
    FilteredSource,
    SearchCategory,
    SearchProviderName,
    SearchResultItem,
    TokenUsage,
)
from ...research.pool import extract_domain
from ..llm.openrouter_client import OpenRouterClient
from ..llm.schemas import usage_from_error

logger = structlog.get_logger(__name__)

# Content shorter than this is not worth an extraction call
MIN_CLEANABLE_CHARS = 100
PREFILTER_SNIPPET_CHARS = 300

_OBVIOUSLY_IRRELEVANT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # Adult content
        r"\bporn\b",
        r"\bxxx\b",
        r"\badult\b",
        r"\bnsfw\b",
        r"xhamster",
        r"pornhub",
        r"xvideos",
        # Shopping
        r"\bamazon\.com/(?!.*game)",
        r"\bebay\.com",
        r"\baliexpress",
        # Social media and forums
        r"\breddit\.com",
        r"twitter\.com/\w+$",
        r"facebook\.com/\w+$",
        r"instagram\.com/\w+$",
        r"fextralife\.com/forums",
        # Programming docs
        r"docs\.python\.org",
        r"docs\.oracle\.com",
        r"flask\.palletsprojects",
        r"django\.readthedocs",
        r"\bstackoverflow\.com",
        # Real estate / interior design
        r"\bhouzz\.com",
        r"\bzillow\.com",
        r"\brealtor\.com",
        r"\bcoohom\.com",
    )
)


def quick_relevance_check(url: str, title: str) -> str | None:
    """Regex pre-filter for sources that are obviously not about games.

    Returns:
        The matched pattern when the source is irrelevant, else None
    """
    candidates = (url.lower(), f"{url} {title}".lower())
    for pattern in _OBVIOUSLY_IRRELEVANT_PATTERNS:
        if any(pattern.search(text) for text in candidates):
            return pattern.pattern
    return None


# =============================================================================
# Interface
# =============================================================================


class CleaningOutcome(BaseModel):
    """Cleaned result plus the cleaner's token spend and rejected sources."""

    cleaned_result: CategorizedSearchResult
    prefilter_usage: TokenUsage = Field(default_factory=TokenUsage)
    extraction_usage: TokenUsage = Field(default_factory=TokenUsage)
    filtered_sources: tuple[FilteredSource, ...] = ()

    model_config = {"frozen": True}

    @classmethod
    def passthrough(cls, result: CategorizedSearchResult) -> CleaningOutcome:
        return cls(cleaned_result=result)


class ContentCleaner(Protocol):
    """Capability that turns a raw categorized result into a cleaned one."""

    async def clean(
        self,
        query: str,
        category: SearchCategory,
        raw_result: CategorizedSearchResult,
        provider: SearchProviderName,
        cost_usd: float | None = None,
        *,
        game_name: str | None = None,
        token: CancellationToken | None = None,
    ) -> CleaningOutcome: ...


# =============================================================================
# LLM Schemas
# =============================================================================


class PrefilterVerdict(BaseModel):
    index: int = Field(..., ge=0, description="Index of the source in the list")
    relevance_to_gaming: int = Field(..., ge=0, le=100, description="Is this about games? 0-100")
    relevance_to_article: int = Field(
        ..., ge=0, le=100, description="Is this about the game and topic researched? 0-100"
    )
    reason: str = Field(default="", description="One short sentence")


class PrefilterBatch(BaseModel):
    verdicts: list[PrefilterVerdict]


class SourceExtraction(BaseModel):
    detailed_summary: str = Field(
        ..., min_length=1, description="3-6 sentence summary of the useful content"
    )
    key_facts: list[str] = Field(default_factory=list, max_length=10)
    data_points: list[str] = Field(
        default_factory=list, max_length=10, description="Numbers, stats, dates, names"
    )
    quality_score: int = Field(
        ..., ge=0, le=100, description="Depth, authority and junk ratio, 0-100"
    )
    relevance_score: int = Field(
        ..., ge=0, le=100, description="Relevance to the game and query, 0-100"
    )
    content_type: str = Field(default="", max_length=100)


PREFILTER_SYSTEM_PROMPT = """You triage web search results for a video game research assistant.

For each numbered source you get a URL, a title and a short snippet. Score:
- relevance_to_gaming (0-100): is this page about video games at all?
- relevance_to_article (0-100): is it about the specific game and topic being researched?

Be generous with wikis, guides, official sites and gaming news. Be strict with
shops, unrelated software, real estate and spam. Return one verdict per source."""

EXTRACTION_SYSTEM_PROMPT = """You are a content extraction specialist for video game research.

Ignore navigation, cookie banners, ads, share widgets, comments, related-article
lists and legal boilerplate. From the substantive content extract:
- detailed_summary: what this source actually says, 3-6 sentences
- key_facts: concrete facts a writer can rely on
- data_points: numbers, stats, dates, item/boss/character names

QUALITY SCORING (0-100):
- Content depth (0-40): detailed, comprehensive information?
- Authority (0-30): wiki, official source, reputable outlet?
- Junk ratio (0-30): how much of the page was junk?

RELEVANCE SCORING (0-100): how useful is this for an article about the given
game and query? Pages about a different game score under 20."""


def _build_prefilter_prompt(game_name: str | None, query: str, items: list[SearchResultItem]) -> str:
    lines = [f"Game: {game_name or '(unknown)'}", f"Query: {query}", "", "Sources:"]
    for index, item in enumerate(items):
        snippet = (item.content or "")[:PREFILTER_SNIPPET_CHARS].replace("\n", " ")
        lines.append(f"[{index}] {item.url}\n    Title: {item.title}\n    Snippet: {snippet}")
    return "\n".join(lines)


def _build_extraction_prompt(
    game_name: str | None, query: str, item: SearchResultItem, max_chars: int
) -> str:
    return (
        f"Game: {game_name or '(unknown)'}\n"
        f"Query: {query}\n\n"
        f"URL: {item.url}\n"
        f"Title: {item.title}\n\n"
        f"=== RAW CONTENT START ===\n{item.content[:max_chars]}\n=== RAW CONTENT END ==="
    )


def _filtered(
    item: SearchResultItem,
    reason: str,
    details: str,
    query: str,
    provider: SearchProviderName,
    quality: float = 0.0,
    relevance: float | None = None,
) -> FilteredSource:
    return FilteredSource(
        url=item.url,
        domain=extract_domain(item.url),
        title=item.title,
        quality_score=quality,
        relevance_score=relevance,
        reason=reason,  # type: ignore[arg-type]
        details=details,
        query=query,
        provider=provider,
    )


# =============================================================================
# LLM Cleaner
# =============================================================================


class LLMContentCleaner:
    """LLM-backed ``ContentCleaner``.

    Args:
        llm: Client used for the pre-filter and extraction calls
        enabled: When False every call returns the raw result with zero usage
        min_relevance: Post-extraction relevance floor
        min_quality: Post-extraction quality floor
        prefilter_min_relevance: Pre-filter relevance floor
        max_input_chars: Raw content characters sent for extraction
    """

    def __init__(
        self,
        llm: OpenRouterClient,
        enabled: bool | None = None,
        min_relevance: int | None = None,
        min_quality: int | None = None,
        prefilter_min_relevance: int | None = None,
        max_input_chars: int | None = None,
    ) -> None:
        self.llm = llm
        self.enabled = settings.ENABLE_CONTENT_CLEANING if enabled is None else enabled
        self.min_relevance = (
            settings.CLEANER_MIN_RELEVANCE if min_relevance is None else min_relevance
        )
        self.min_quality = settings.CLEANER_MIN_QUALITY if min_quality is None else min_quality
        self.prefilter_min_relevance = (
            settings.CLEANER_PREFILTER_MIN_RELEVANCE
            if prefilter_min_relevance is None
            else prefilter_min_relevance
        )
        self.max_input_chars = max_input_chars or settings.CLEANER_MAX_INPUT_CHARS

    @property
    def is_active(self) -> bool:
        return self.enabled and self.llm.is_configured

    async def clean(
        self,
        query: str,
        category: SearchCategory,
        raw_result: CategorizedSearchResult,
        provider: SearchProviderName,
        cost_usd: float | None = None,
        *,
        game_name: str | None = None,
        token: CancellationToken | None = None,
    ) -> CleaningOutcome:
        """Clean one query's results.

        Raises:
            OperationCancelledError: If the token is cancelled
            LLMClientError: If the batch pre-filter call fails
        """
        if not self.is_active or not raw_result.results:
            return CleaningOutcome.passthrough(raw_result)

        filtered: list[FilteredSource] = []
        candidates: list[SearchResultItem] = []
        for item in raw_result.results:
            matched = quick_relevance_check(item.url, item.title)
            if matched:
                filtered.append(
                    _filtered(item, "pre_filtered", f"Quick filter: {matched}", query, provider)
                )
            else:
                candidates.append(item)

        prefilter_usage = TokenUsage.zero()
        if candidates:
            candidates, rejected, prefilter_usage = await self._prefilter(
                query, candidates, provider, game_name, token
            )
            filtered.extend(rejected)

        extraction_usage = TokenUsage.zero()
        cleaned_by_url: dict[str, SearchResultItem] = {}
        to_extract = [c for c in candidates if len(c.content) >= MIN_CLEANABLE_CHARS]
        if to_extract:
            outcomes = await asyncio.gather(
                *(self._extract(query, item, game_name, token) for item in to_extract),
                return_exceptions=True,
            )
            for item, outcome in zip(to_extract, outcomes):
                if isinstance(outcome, OperationCancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    extraction_usage = extraction_usage + usage_from_error(outcome)
                    logger.warning(
                        "source_extraction_failed", url=item.url, error=str(outcome)[:200]
                    )
                    continue
                extracted, usage = outcome
                extraction_usage = extraction_usage + usage

                if extracted.relevance_score < self.min_relevance:
                    filtered.append(
                        _filtered(
                            item,
                            "low_relevance",
                            f"Relevance {extracted.relevance_score}/100 < min {self.min_relevance}",
                            query,
                            provider,
                            quality=extracted.quality_score,
                            relevance=extracted.relevance_score,
                        )
                    )
                    continue
                if extracted.quality_score < self.min_quality:
                    filtered.append(
                        _filtered(
                            item,
                            "low_quality",
                            f"Quality {extracted.quality_score}/100 < min {self.min_quality}",
                            query,
                            provider,
                            quality=extracted.quality_score,
                            relevance=extracted.relevance_score,
                        )
                    )
                    continue

                cleaned_by_url[item.url] = item.model_copy(
                    update={
                        "quality_score": float(extracted.quality_score),
                        "relevance_score": float(extracted.relevance_score),
                        "detailed_summary": extracted.detailed_summary,
                        "key_facts": tuple(extracted.key_facts),
                        "data_points": tuple(extracted.data_points),
                    }
                )

        dropped = {f.url for f in filtered}
        results = tuple(
            cleaned_by_url.get(item.url, item)
            for item in raw_result.results
            if item.url not in dropped
        )
        logger.info(
            "content_cleaned",
            query=query[:80],
            category=category,
            provider=provider,
            kept=len(results),
            cleaned=len(cleaned_by_url),
            filtered=len(filtered),
        )
        if cost_usd is None:
            cost_usd = raw_result.cost_usd
        return CleaningOutcome(
            cleaned_result=raw_result.model_copy(update={"results": results, "cost_usd": cost_usd}),
            prefilter_usage=prefilter_usage,
            extraction_usage=extraction_usage,
            filtered_sources=tuple(filtered),
        )

    async def _prefilter(
        self,
        query: str,
        items: list[SearchResultItem],
        provider: SearchProviderName,
        game_name: str | None,
        token: CancellationToken | None,
    ) -> tuple[list[SearchResultItem], list[FilteredSource], TokenUsage]:
        generation = await self.llm.generate_object(
            schema=PrefilterBatch,
            system=PREFILTER_SYSTEM_PROMPT,
            prompt=_build_prefilter_prompt(game_name, query, items),
            token=token,
            context="Cleaner pre-filter",
        )
        verdicts = {v.index: v for v in generation.value.verdicts}

        kept: list[SearchResultItem] = []
        rejected: list[FilteredSource] = []
        for index, item in enumerate(items):
            verdict = verdicts.get(index)
            # Sources the model skipped stay in
            if verdict is None:
                kept.append(item)
                continue
            score = min(verdict.relevance_to_gaming, verdict.relevance_to_article)
            if score < self.prefilter_min_relevance:
                rejected.append(
                    _filtered(
                        item,
                        "pre_filtered",
                        f"LLM pre-filter: relevance {score}/100. {verdict.reason}".strip(),
                        query,
                        provider,
                        relevance=float(score),
                    )
                )
            else:
                kept.append(item)
        return kept, rejected, generation.usage

    async def _extract(
        self,
        query: str,
        item: SearchResultItem,
        game_name: str | None,
        token: CancellationToken | None,
    ) -> tuple[SourceExtraction, TokenUsage]:
        generation = await self.llm.generate_object(
            schema=SourceExtraction,
            system=EXTRACTION_SYSTEM_PROMPT,
            prompt=_build_extraction_prompt(game_name, query, item, self.max_input_chars),
            token=token,
            context=f"Cleaner: {item.url[:50]}",
        )
        return generation.value, generation.usage
