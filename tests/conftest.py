"""Pytest configuration for Scout tests."""

from __future__ import annotations

import re
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from scout_agents.core.retry import RetryPolicy
from scout_agents.database.models import Base
from scout_agents.models.research import (
    CategorizedSearchResult,
    GameSubject,
    SearchCategory,
    SearchProviderName,
    SearchResultItem,
    TokenUsage,
)
from scout_agents.services.llm.llm_factory import LLMFactory
from scout_agents.services.llm.schemas import GenerationResult
from scout_agents.services.search.base import ProviderResponse, ProviderResultItem, SearchParams

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture(autouse=True)
def reset_llm_cache():
    """LLM clients are cached per config; never leak them across tests."""
    LLMFactory.clear_cache()
    yield
    LLMFactory.clear_cache()


@pytest.fixture
def no_delay_policy() -> RetryPolicy:
    return RetryPolicy(max_retries=3, initial_delay=0.0, max_delay=0.0, jitter=0.0)


@pytest.fixture
def subject() -> GameSubject:
    return GameSubject(
        name="Hades II",
        description="Roguelike dungeon crawler from Supergiant Games",
        genres=("Roguelike", "Action"),
        platforms=("PC",),
        developer="Supergiant Games",
        instruction="beginner guide",
    )


@pytest_asyncio.fixture
async def db_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite database with the Scout schema."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(
    db_session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with db_session_factory() as session:
        yield session


# =============================================================================
# Builders
# =============================================================================


def make_item(url: str, content: str = "", title: str = "", **kwargs) -> SearchResultItem:
    return SearchResultItem(url=url, title=title or url, content=content, **kwargs)


def make_result(
    query: str,
    urls: list[str],
    category: SearchCategory = "overview",
    provider: SearchProviderName = "tavily",
    content: str = "Some content",
    cost_usd: float | None = None,
) -> CategorizedSearchResult:
    return CategorizedSearchResult(
        query=query,
        provider=provider,
        category=category,
        cost_usd=cost_usd,
        results=tuple(make_item(url, content) for url in urls),
    )


def generation(value, input_tokens: int = 10, output_tokens: int = 5) -> GenerationResult:
    return GenerationResult(value=value, usage=TokenUsage(input=input_tokens, output=output_tokens))


def mock_llm(*values) -> MagicMock:
    """LLM client double whose ``generate_object`` returns ``values`` in order.

    A value that is an exception instance is raised instead.
    """
    llm = MagicMock()
    llm.is_configured = True
    llm.generate_object = AsyncMock(
        side_effect=[v if isinstance(v, BaseException) else generation(v) for v in values]
    )
    return llm


class FakeProvider:
    """Search provider double answering from a callable."""

    def __init__(
        self,
        name: SearchProviderName,
        respond: Callable[[str, SearchParams], ProviderResponse] | None = None,
    ) -> None:
        self.name = name
        self.calls: list[tuple[str, SearchParams]] = []
        self._respond = respond or (lambda query, params: fake_response(query))

    @property
    def is_configured(self) -> bool:
        return True

    async def search(self, query: str, params: SearchParams) -> ProviderResponse:
        self.calls.append((query, params))
        return self._respond(query, params)


def fake_response(query: str, count: int = 3, host: str = "example.com") -> ProviderResponse:
    slug = re.sub(r"[^a-z0-9]+", "-", query.lower()).strip("-")[:40]
    return ProviderResponse(
        answer=f"Answer for {query}",
        results=tuple(
            ProviderResultItem(
                title=f"{query} #{i}",
                url=f"https://{host}/{slug}/{i}",
                content=f"Content about {query} number {i}. " * 5,
                score=0.9 - i * 0.1,
            )
            for i in range(count)
        ),
    )
