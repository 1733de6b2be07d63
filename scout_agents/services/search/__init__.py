"""Search provider clients (Tavily lexical, Exa semantic)."""

from .base import ProviderResponse, ProviderResultItem, SearchParams, SearchProvider
from .exa_client import ExaClient
from .tavily_client import TavilyClient

__all__ = [
    "ExaClient",
    "ProviderResponse",
    "ProviderResultItem",
    "SearchParams",
    "SearchProvider",
    "TavilyClient",
]
