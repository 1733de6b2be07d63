"""Database models for Scout domain quality statistics."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class DomainQuality(Base):
    """Running quality statistics and exclusion flags for one source domain.

    A domain can be excluded globally (``is_excluded``: low average quality or
    relevance of its cleaned sources) or for a single search provider
    (``is_excluded_tavily`` / ``is_excluded_exa``: that provider keeps failing
    to return usable page content for it).
    """

    __tablename__ = "domain_qualities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    is_excluded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    is_excluded_tavily: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_excluded_exa: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    exclude_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    avg_quality_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_relevance_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_sources: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Per-provider scrape statistics
    tavily_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tavily_scrape_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exa_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exa_scrape_failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
