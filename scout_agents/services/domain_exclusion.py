"""Per-provider domain exclusion lists for search requests.

The static deny-list covers hosts that never yield article-grade text (video,
social, shopping). When a database is configured, domains excluded by the
quality statistics are added on top. A failing lookup never fails a search:
the static list is returned instead.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..database.repositories import DomainQualityRepository
from ..models.research import SearchProviderName, SearchResultItem
from ..research.pool import extract_domain

logger = structlog.get_logger(__name__)

EXCLUDED_DOMAINS: tuple[str, ...] = (
    # Video platforms
    "youtube.com",
    "youtu.be",
    "tiktok.com",
    "twitch.tv",
    "vimeo.com",
    "dailymotion.com",
    # Social media
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "pinterest.com",
    "linkedin.com",
    # Shopping
    "amazon.com",
    "ebay.com",
    "aliexpress.com",
    "walmart.com",
    "g2a.com",
    "kinguin.net",
)


class ExclusionSource(Protocol):
    """Anything that can answer "which domains must ``provider`` skip?"."""

    async def get_excluded_domains(self, provider: SearchProviderName) -> list[str]: ...


class StaticDomainExclusionSource:
    """Static deny-list only; no database, no cache."""

    def __init__(self, domains: Iterable[str] = EXCLUDED_DOMAINS) -> None:
        self._domains = sorted({d.lower() for d in domains})

    async def get_excluded_domains(self, provider: SearchProviderName) -> list[str]:
        return list(self._domains)

    async def record_sources(
        self, provider: SearchProviderName, items: Iterable[SearchResultItem]
    ) -> None:
        return None


class DomainExclusionSource:
    """Static deny-list merged with database exclusions, cached per provider.

    Args:
        session_factory: Async session factory for the domain quality table
        static_domains: Baseline deny-list
        cache_ttl: Seconds a provider's merged list is reused
        clock: Monotonic clock (patched in tests)

    Example:
        >>> source = DomainExclusionSource(get_session_factory())
        >>> await source.get_excluded_domains("exa")
        ['aliexpress.com', 'amazon.com', ...]
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | Callable[[], AsyncSession],
        static_domains: Iterable[str] = EXCLUDED_DOMAINS,
        cache_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._static = sorted({d.lower() for d in static_domains})
        self._cache_ttl = settings.DOMAIN_EXCLUSION_CACHE_TTL if cache_ttl is None else cache_ttl
        self._clock = clock
        self._cache: dict[str, tuple[float, list[str]]] = {}
        self._write_lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._cache.clear()

    async def get_excluded_domains(self, provider: SearchProviderName) -> list[str]:
        """Sorted, de-duplicated union of the static list and database rows."""
        now = self._clock()
        cached = self._cache.get(provider)
        if cached is not None and now - cached[0] < self._cache_ttl:
            return list(cached[1])

        try:
            async with self._session_factory() as session:
                dynamic = await DomainQualityRepository(session).get_excluded_domains(provider)
        except Exception as e:
            logger.warning(
                "domain_exclusion_lookup_failed",
                provider=provider,
                error=str(e)[:200],
            )
            return list(self._static)

        merged = sorted(set(self._static).union(d.lower() for d in dynamic))
        self._cache[provider] = (now, merged)
        logger.debug(
            "domain_exclusions_loaded",
            provider=provider,
            static=len(self._static),
            dynamic=len(dynamic),
        )
        return list(merged)

    async def record_sources(
        self, provider: SearchProviderName, items: Iterable[SearchResultItem]
    ) -> None:
        """Feed cleaned sources into the domain statistics. Best-effort.

        Items with empty content count as scrape failures for ``provider``;
        items carrying cleaning scores update the domain's running averages.
        Batches are written one at a time; rows are read-modify-write.
        """
        try:
            async with self._write_lock, self._session_factory() as session:
                repo = DomainQualityRepository(session)
                for item in items:
                    domain = extract_domain(item.url)
                    if not domain:
                        continue
                    await repo.record_scrape_result(domain, provider, success=bool(item.content))
                    if item.quality_score is not None:
                        await repo.record_source(
                            domain, item.quality_score, item.relevance_score or 0.0
                        )
        except Exception as e:
            logger.warning("domain_quality_update_failed", provider=provider, error=str(e)[:200])
            return
        self.invalidate()


def create_exclusion_source() -> DomainExclusionSource | StaticDomainExclusionSource:
    """Pick the exclusion source for the current configuration."""
    if not settings.ENABLE_DOMAIN_EXCLUSION:
        return StaticDomainExclusionSource(domains=())
    if not settings.DATABASE_URL:
        return StaticDomainExclusionSource()

    from ..database.session import get_session_factory

    return DomainExclusionSource(get_session_factory())
