"""Tests for the built-in research tools."""

from datetime import datetime

import pytest

from reverie.tools.builtin.research import (
    AnalyzeQueryIntentTool,
    CalculateSumTool,
    CurrentTimeTool,
    EvaluateSourceQualityTool,
    ExtractKeyEntitiesTool,
    GenerateSearchStrategyTool,
    classify_intent,
    extract_entities,
    rate_source,
    search_queries,
)


class TestIntent:
    @pytest.mark.parametrize(
        "query,intent",
        [
            ("What is quantum computing?", "factual"),
            ("Explain how transformers work", "analytical"),
            ("Compare Rust versus Go", "comparative"),
            ("Tell me about Kyoto", "exploratory"),
        ],
    )
    def test_keywords(self, query, intent):
        assert classify_intent(query) == {"intent": intent, "confidence": 0.8}

    def test_fallback(self):
        assert classify_intent("quantum stuff") == {"intent": "exploratory", "confidence": 0.5}

    def test_whole_words_only(self):
        # "vs" inside "canvas" is not a comparison
        assert classify_intent("canvas painting")["intent"] == "exploratory"

    async def test_tool(self):
        out = await AnalyzeQueryIntentTool().execute(query="Define entropy")
        assert out["intent"] == "factual"


class TestEntities:
    def test_extract(self):
        entities = extract_entities("Compare Quantum Computing vs Classical Computing in 2024")
        assert entities["topics"] == ["Compare Quantum Computing", "Classical Computing"]
        assert entities["timeframes"] == ["2024"]
        assert entities["comparisons"] == ["vs"]
        assert entities["locations"] == []

    def test_topics_deduplicated(self):
        assert extract_entities("Python and Python")["topics"] == ["Python"]

    async def test_tool(self):
        out = await ExtractKeyEntitiesTool().execute(text="recent Mars missions")
        assert out["timeframes"] == ["recent"]
        assert out["topics"] == ["Mars"]


class TestSearchStrategy:
    def test_comparative_needs_two_topics(self):
        assert search_queries("comparative", ["Rust"]) == []
        assert search_queries("comparative", ["Rust", "Go"])[0] == "Rust vs Go comparison"

    def test_capped_at_five(self):
        assert len(search_queries("factual", ["A", "B", "C"])) == 5

    async def test_tool(self):
        out = await GenerateSearchStrategyTool().execute(
            intent="analytical", entities={"topics": ["Inflation"]},
        )
        assert out["approach"] == "multi_perspective"
        assert out["depth"] == "deep"
        assert out["search_queries"][0] == "Inflation analysis research"

    async def test_unknown_intent_defaults(self):
        out = await GenerateSearchStrategyTool().execute(intent="mystery", entities={})
        assert out["approach"] == "broad_coverage"
        assert out["search_queries"] == []


class TestSourceQuality:
    @pytest.mark.parametrize(
        "url,quality,score",
        [
            ("https://www.nasa.gov/mission", "high", 0.9),
            ("https://en.wikipedia.org/wiki/Qubit", "high", 0.9),
            ("https://github.com/org/repo", "medium", 0.6),
            ("https://someone.blogspot.com/post", "low", 0.3),
            ("https://example.com", "medium", 0.5),
        ],
    )
    def test_tiers(self, url, quality, score):
        assert rate_source(url) == {"quality": quality, "score": score}

    def test_no_url(self):
        assert rate_source(None) == {"quality": "unknown", "score": 0.5}

    async def test_tool(self):
        out = await EvaluateSourceQualityTool().execute(url="https://arxiv.org/abs/1")
        assert out["quality"] == "high"


class TestUtilityTools:
    async def test_current_time(self):
        out = await CurrentTimeTool().execute()
        assert datetime.fromisoformat(out["time"]).tzinfo is not None

    async def test_sum_integral(self):
        out = await CalculateSumTool().execute(a=2, b="3")
        assert out == {"result": 5}
        assert isinstance(out["result"], int)

    async def test_sum_fractional(self):
        assert await CalculateSumTool().execute(a=0.5, b=0.25) == {"result": 0.75}

    async def test_sum_bad_input(self):
        with pytest.raises(ValueError):
            await CalculateSumTool().execute(a="two", b=1)
