"""Tests for research pool building and result normalization."""

from __future__ import annotations

from itertools import permutations

import pytest

from conftest import make_result
from scout_agents.research.pool import (
    ResearchPoolBuilder,
    create_empty_research_pool,
    deduplicate_queries,
    extract_domain,
    extract_research_for_queries,
    normalize_query,
    normalize_url,
    process_search_results,
)
from scout_agents.services.search.base import ProviderResponse, ProviderResultItem


@pytest.mark.unit
class TestNormalization:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://Example.com/Guide#section", "https://example.com/Guide"),
            ("HTTP://example.com", "http://example.com/"),
            ("https://example.com/a?b=1#c", "https://example.com/a?b=1"),
            ("ftp://example.com/file", None),
            ("not a url", None),
            ("", None),
        ],
    )
    def test_normalize_url(self, url: str, expected: str | None) -> None:
        assert normalize_url(url) == expected

    def test_normalize_query_collapses_whitespace_and_case(self) -> None:
        assert normalize_query("  Elden   Ring\tBOSSES ") == "elden ring bosses"

    def test_extract_domain_strips_www(self) -> None:
        assert extract_domain("https://www.fandom.com/wiki/Hades") == "fandom.com"
        assert extract_domain("https://game8.co/games") == "game8.co"

    def test_deduplicate_queries_preserves_first_occurrence(self) -> None:
        queries = ["Hades II boons", "hades ii  BOONS", "Hades II weapons", ""]

        assert deduplicate_queries(queries) == ["Hades II boons", "Hades II weapons"]


@pytest.mark.unit
class TestResearchPoolBuilder:
    def test_groups_by_category_and_unions_urls(self) -> None:
        overview = make_result("hades overview", ["https://a.com/1", "https://b.com/2"])
        recent = make_result("hades patch notes", ["https://b.com/2", "https://c.com/3"], category="recent")

        builder = ResearchPoolBuilder().add(overview).add(recent)
        pool = builder.build()

        assert pool.all_urls == {"https://a.com/1", "https://b.com/2", "https://c.com/3"}
        assert [r.query for r in pool.by_category["overview"]] == ["hades overview"]
        assert [r.query for r in pool.by_category["recent"]] == ["hades patch notes"]
        assert builder.url_count == 3
        assert builder.query_count == 2

    def test_duplicate_query_is_ignored(self) -> None:
        first = make_result("Hades II Boons", ["https://a.com/1"])
        second = make_result("hades ii   boons", ["https://z.com/9"])

        pool = ResearchPoolBuilder().add_all([first, second]).build()

        assert pool.all_urls == {"https://a.com/1"}
        assert pool.lookup("HADES II BOONS") is first

    def test_build_is_order_independent(self) -> None:
        results = [
            make_result("q overview", ["https://a.com/1", "https://b.com/1"]),
            make_result("q weapons", ["https://b.com/1", "https://c.com/1"], category="category-specific"),
            make_result("q boons", ["https://d.com/1"], category="category-specific"),
            make_result("q patch", ["https://a.com/1"], category="recent"),
        ]
        expected = ResearchPoolBuilder().add_all(results).build()

        for ordering in permutations(results):
            pool = ResearchPoolBuilder().add_all(ordering).build()
            assert pool == expected

    def test_empty_pool(self) -> None:
        pool = create_empty_research_pool()

        assert pool.all_urls == frozenset()
        assert list(pool.iter_results()) == []


@pytest.mark.unit
class TestPoolHelpers:
    def test_extract_research_for_queries_appends_overview(self) -> None:
        overview = make_result("hades overview", ["https://a.com/1"])
        weapons = make_result("hades weapons", ["https://b.com/1"], category="category-specific")
        pool = ResearchPoolBuilder().add_all([overview, weapons]).build()

        found = extract_research_for_queries(["Hades Weapons", "unknown query"], pool)

        assert [r.query for r in found] == ["hades weapons", "hades overview"]

    def test_extract_research_without_overview(self) -> None:
        overview = make_result("hades overview", ["https://a.com/1"])
        pool = ResearchPoolBuilder().add(overview).build()

        assert extract_research_for_queries(["hades overview"], pool, include_overview=False) == [overview]

    def test_process_search_results_drops_invalid_urls_and_prefers_raw_content(self) -> None:
        response = ProviderResponse(
            answer="Hades II is a roguelike.",
            cost_usd=0.01,
            results=(
                ProviderResultItem(
                    title="Wiki",
                    url="https://hades.fandom.com/wiki/Hades_II#top",
                    content="snippet",
                    raw_content="full page text",
                ),
                ProviderResultItem(title="Bad", url="javascript:alert(1)", content="x"),
            ),
        )

        result = process_search_results("hades ii", "overview", response, "tavily")

        assert result.urls == ["https://hades.fandom.com/wiki/Hades_II"]
        assert result.results[0].content == "full page text"
        assert result.answer_summary == "Hades II is a roguelike."
        assert result.cost_usd == 0.01
        assert result.category == "overview"
