"""Deterministic research helper tools.

These run locally without network access; the model calls them to plan a
search before answering.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from reverie.tools.base import Tool
from reverie.types import ToolParameter

_INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "factual": ("what is", "define", "who is", "when did", "where is"),
    "analytical": ("analyze", "explain", "how does", "why does", "impact of"),
    "comparative": ("compare", "versus", "vs", "difference between", "better than"),
    "exploratory": ("tell me about", "overview of", "introduction to", "guide to"),
}

_SEARCH_STRATEGIES: dict[str, dict[str, Any]] = {
    "factual": {
        "approach": "authoritative_sources",
        "sources": ["wikipedia", "gov", "edu"],
        "depth": "shallow",
        "verification": True,
    },
    "analytical": {
        "approach": "multi_perspective",
        "sources": ["academic", "expert_analysis", "case_studies"],
        "depth": "deep",
        "verification": True,
    },
    "comparative": {
        "approach": "side_by_side",
        "sources": ["reviews", "benchmarks", "comparisons"],
        "depth": "medium",
        "verification": False,
    },
    "exploratory": {
        "approach": "broad_coverage",
        "sources": ["general", "overview", "introduction"],
        "depth": "medium",
        "verification": False,
    },
}

# Ordered best-first; the first tier with a matching domain wins
_SOURCE_TIERS: tuple[tuple[str, float, tuple[str, ...]], ...] = (
    ("high", 0.9, (".gov", ".edu", "wikipedia.org", "nature.com", "science.org", "arxiv.org")),
    ("medium", 0.6, (".org", "medium.com", "github.com")),
    ("low", 0.3, ("blogspot.com", "wordpress.com")),
)

_MAX_QUERIES = 5

_TOPIC_RE = re.compile(r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*")
_TIMEFRAME_RE = re.compile(r"\b\d{4}\b|\b(?:recent|current|latest|historical)\b", re.IGNORECASE)
_COMPARISON_RE = re.compile(r"\b(?:vs|versus|compared to|better than)\b", re.IGNORECASE)


def _contains_keyword(text: str, keyword: str) -> bool:
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def classify_intent(query: str) -> dict[str, Any]:
    lowered = query.lower()
    for intent, keywords in _INTENT_KEYWORDS.items():
        if any(_contains_keyword(lowered, kw) for kw in keywords):
            return {"intent": intent, "confidence": 0.8}
    return {"intent": "exploratory", "confidence": 0.5}


def extract_entities(text: str) -> dict[str, list[str]]:
    return {
        "topics": _unique(_TOPIC_RE.findall(text)),
        "timeframes": _unique(_TIMEFRAME_RE.findall(text)),
        "locations": [],
        "comparisons": _COMPARISON_RE.findall(text),
    }


def search_queries(intent: str, topics: list[str]) -> list[str]:
    queries: list[str] = []
    if intent == "factual":
        for topic in topics:
            queries += [f"{topic} definition facts", f"{topic} official data statistics",
                        f"what is {topic}", f"define {topic}"]
    elif intent == "analytical":
        for topic in topics:
            queries += [f"{topic} analysis research", f"{topic} impact effects consequences",
                        f"how does {topic}", f"why does {topic}"]
    elif intent == "comparative":
        if len(topics) >= 2:
            a, b = topics[0], topics[1]
            queries += [f"{a} vs {b} comparison", f"difference between {a} and {b}",
                        f"compare {a} {b}"]
    else:
        for topic in topics:
            queries += [f"{topic} overview introduction", f"guide to {topic}",
                        f"introduction to {topic}"]
    return queries[:_MAX_QUERIES]


def rate_source(url: str | None) -> dict[str, Any]:
    if not url:
        return {"quality": "unknown", "score": 0.5}
    for quality, score, domains in _SOURCE_TIERS:
        if any(domain in url for domain in domains):
            return {"quality": quality, "score": score}
    return {"quality": "medium", "score": 0.5}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

class AnalyzeQueryIntentTool(Tool):
    """Classify what kind of answer a query is after."""

    name = "analyze_query_intent"
    description = (
        "Classify a research query as factual, analytical, comparative "
        "or exploratory."
    )
    parameters = [
        ToolParameter(name="query", type="string", description="The research query"),
    ]

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        return classify_intent(str(kwargs.get("query", "")))


class ExtractKeyEntitiesTool(Tool):
    """Pull topics, timeframes and comparison markers out of text."""

    name = "extract_key_entities"
    description = "Extract key entities, topics, and timeframes from text"
    parameters = [
        ToolParameter(name="text", type="string", description="Text to extract entities from"),
    ]

    async def execute(self, **kwargs: Any) -> dict[str, list[str]]:
        return extract_entities(str(kwargs.get("text", "")))


class GenerateSearchStrategyTool(Tool):
    name = "generate_search_strategy"
    description = "Generate a search strategy based on intent and entities"
    parameters = [
        ToolParameter(
            name="intent",
            type="string",
            description="Query intent",
            enum=list(_INTENT_KEYWORDS),
        ),
        ToolParameter(
            name="entities",
            type="object",
            description="Extracted entities from the query",
        ),
    ]

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        intent = kwargs.get("intent", "exploratory")
        entities = kwargs.get("entities") or {}
        strategy = _SEARCH_STRATEGIES.get(intent, _SEARCH_STRATEGIES["exploratory"])
        return {
            **strategy,
            "entities": entities,
            "search_queries": search_queries(intent, list(entities.get("topics") or [])),
        }


class EvaluateSourceQualityTool(Tool):
    """Score a source by its domain."""

    name = "evaluate_source_quality"
    description = "Evaluate the credibility of a source by its URL"
    parameters = [
        ToolParameter(name="url", type="string", description="Source URL", required=False),
        ToolParameter(name="name", type="string", description="Source name", required=False),
    ]

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        return rate_source(kwargs.get("url"))


class CurrentTimeTool(Tool):
    name = "get_current_time"
    description = "Get the current time in ISO format"
    parameters: list[ToolParameter] = []

    async def execute(self, **kwargs: Any) -> dict[str, str]:
        return {"time": datetime.now(timezone.utc).isoformat()}


class CalculateSumTool(Tool):
    name = "calculate_sum"
    description = "Calculate the sum of two numbers"
    parameters = [
        ToolParameter(name="a", type="number", description="First number"),
        ToolParameter(name="b", type="number", description="Second number"),
    ]

    async def execute(self, **kwargs: Any) -> dict[str, float]:
        try:
            a = float(kwargs["a"])
            b = float(kwargs["b"])
        except KeyError as e:
            raise ValueError(f"missing argument: {e.args[0]}") from None
        total = a + b
        return {"result": int(total) if total.is_integer() else total}
