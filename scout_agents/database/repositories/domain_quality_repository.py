"""Repository for per-domain quality statistics and search exclusions.

Cleaned sources feed running quality/relevance averages per domain; provider
scrape attempts feed per-provider failure rates. Both drive automatic
exclusion, and the resulting excluded domains are passed to the search
providers on the next invocation.
"""

from datetime import datetime

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...models.research import LEXICAL_PROVIDER, SearchProviderName
from ..models import DomainQuality

logger = structlog.get_logger(__name__)


class DomainQualityRepository:
    """Domain quality operations with an in-memory exclusion cache.

    Features:
    - Global exclusion from running quality and relevance averages
    - Per-provider exclusion from scrape failure rates
    - Manual exclusion with a reason
    - Cache invalidated on every write

    Example:
        >>> repo = DomainQualityRepository(db)
        >>> await repo.record_source("fandom.com", quality=82, relevance=90)
        >>> await repo.get_excluded_domains("tavily")
        []
    """

    def __init__(self, db: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy database session
        """
        self.db = db
        self._cache: dict[str, list[str]] | None = None

    def _invalidate_cache(self) -> None:
        self._cache = None

    async def get_by_domain(self, domain: str) -> DomainQuality | None:
        result = await self.db.execute(
            select(DomainQuality).where(DomainQuality.domain == domain.lower())
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, domain: str) -> DomainQuality:
        row = await self.get_by_domain(domain)
        if row is None:
            now = datetime.utcnow()
            row = DomainQuality(
                domain=domain.lower(),
                is_excluded=False,
                is_excluded_tavily=False,
                is_excluded_exa=False,
                avg_quality_score=0.0,
                avg_relevance_score=0.0,
                total_sources=0,
                tavily_attempts=0,
                tavily_scrape_failures=0,
                exa_attempts=0,
                exa_scrape_failures=0,
                created_at=now,
                updated_at=now,
            )
            self.db.add(row)
        return row

    async def get_excluded_domains(self, provider: SearchProviderName | None = None) -> list[str]:
        """Domains excluded globally, or for ``provider`` specifically.

        Args:
            provider: Search provider; None returns global exclusions only

        Returns:
            Sorted domain names
        """
        cache_key = provider or "global"
        if self._cache is not None and cache_key in self._cache:
            return self._cache[cache_key]

        condition = DomainQuality.is_excluded.is_(True)
        if provider is not None:
            column = (
                DomainQuality.is_excluded_tavily
                if provider == LEXICAL_PROVIDER
                else DomainQuality.is_excluded_exa
            )
            condition = or_(condition, column.is_(True))

        result = await self.db.execute(
            select(DomainQuality.domain).where(condition).order_by(DomainQuality.domain)
        )
        domains = list(result.scalars().all())

        if self._cache is None:
            self._cache = {}
        self._cache[cache_key] = domains
        return domains

    async def record_source(self, domain: str, quality: float, relevance: float) -> DomainQuality:
        """Fold one cleaned source's scores into the domain's running averages.

        The domain is excluded globally once it has enough samples and its
        average quality or relevance falls below the configured floor.
        """
        row = await self._get_or_create(domain)
        count = row.total_sources + 1
        row.avg_quality_score = row.avg_quality_score + (quality - row.avg_quality_score) / count
        row.avg_relevance_score = (
            row.avg_relevance_score + (relevance - row.avg_relevance_score) / count
        )
        row.total_sources = count

        if count >= settings.DOMAIN_EXCLUSION_MIN_SAMPLES and not row.is_excluded:
            reasons: list[str] = []
            if row.avg_quality_score < settings.DOMAIN_AUTO_EXCLUDE_MIN_QUALITY:
                reasons.append(
                    f"quality {row.avg_quality_score:.1f} < {settings.DOMAIN_AUTO_EXCLUDE_MIN_QUALITY}"
                )
            if row.avg_relevance_score < settings.DOMAIN_AUTO_EXCLUDE_MIN_RELEVANCE:
                reasons.append(
                    f"relevance {row.avg_relevance_score:.1f} < {settings.DOMAIN_AUTO_EXCLUDE_MIN_RELEVANCE}"
                )
            if reasons:
                row.is_excluded = True
                row.exclude_reason = f"Auto-excluded: {', '.join(reasons)} ({count} samples)"
                logger.info("domain_auto_excluded", domain=row.domain, reason=row.exclude_reason)

        row.updated_at = datetime.utcnow()
        await self.db.commit()
        self._invalidate_cache()
        return row

    async def record_scrape_result(
        self, domain: str, provider: SearchProviderName, success: bool
    ) -> DomainQuality:
        """Count one content-fetch attempt for ``provider``.

        The domain is excluded for that provider once enough attempts exist and
        the failure rate exceeds the configured threshold.
        """
        row = await self._get_or_create(domain)
        if provider == LEXICAL_PROVIDER:
            row.tavily_attempts += 1
            row.tavily_scrape_failures += 0 if success else 1
            attempts, failures = row.tavily_attempts, row.tavily_scrape_failures
        else:
            row.exa_attempts += 1
            row.exa_scrape_failures += 0 if success else 1
            attempts, failures = row.exa_attempts, row.exa_scrape_failures

        failure_rate = failures / attempts
        should_exclude = (
            attempts >= settings.SCRAPE_FAILURE_MIN_ATTEMPTS
            and failure_rate > settings.SCRAPE_FAILURE_RATE_THRESHOLD
        )
        if provider == LEXICAL_PROVIDER:
            newly_excluded = should_exclude and not row.is_excluded_tavily
            row.is_excluded_tavily = should_exclude
        else:
            newly_excluded = should_exclude and not row.is_excluded_exa
            row.is_excluded_exa = should_exclude

        if newly_excluded:
            logger.info(
                "domain_auto_excluded_for_provider",
                domain=row.domain,
                provider=provider,
                failure_rate=round(failure_rate, 2),
                attempts=attempts,
            )

        row.updated_at = datetime.utcnow()
        await self.db.commit()
        self._invalidate_cache()
        return row

    async def exclude_domain(
        self,
        domain: str,
        reason: str | None = None,
        provider: SearchProviderName | None = None,
    ) -> DomainQuality:
        """Exclude a domain manually, globally or for one provider."""
        row = await self._get_or_create(domain)
        if provider is None:
            row.is_excluded = True
        elif provider == LEXICAL_PROVIDER:
            row.is_excluded_tavily = True
        else:
            row.is_excluded_exa = True
        row.exclude_reason = reason
        row.updated_at = datetime.utcnow()

        await self.db.commit()
        await self.db.refresh(row)
        self._invalidate_cache()
        return row
