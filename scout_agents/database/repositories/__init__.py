"""Database repositories."""

from .domain_quality_repository import DomainQualityRepository

__all__ = ["DomainQualityRepository"]
