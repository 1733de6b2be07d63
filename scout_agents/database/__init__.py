"""Persistence for domain quality statistics."""

from .models import Base, DomainQuality
from .session import dispose_engine, get_engine, get_session_factory

__all__ = ["Base", "DomainQuality", "dispose_engine", "get_engine", "get_session_factory"]
