"""
Topic discovery for news episodes.

An ordered chain of strategies, each implementing
`async discover(context) -> DiscoveryResult | DiscoveryFailure`:

1. DirectGenerationStrategy: one constrained, web-grounded prompt
2. HybridMergeStrategy: direct generation + search-grounded discovery in
   parallel, merged and ranked
3. SearchExtractStrategy: exploratory web searches, then topic extraction

Strategies catch their own errors and report them as DiscoveryFailure;
TopicDiscovery tries them in order and stops at the first that yields topics.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from newscast.config import (
    DISCOVERY_RECENCY_DAYS, DISCOVERY_QUERY_COUNT, MAX_CANDIDATE_TOPICS, HYBRID_TOP_N,
)
from newscast.models import CandidateTopic, HistorySummary
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.pipeline_types import PodcastRecord
from newscast.providers.search import search_many
from newscast.research.history import format_history_for_prompt
from newscast.utils import clamp_score, dedupe, safe_str, safe_str_list

logger = logging.getLogger(__name__)

RECENCY_BONUS = {
    "breaking": 30,
    "developing": 25,
    "trending": 20,
    "recent": 15,
    "ongoing": 10,
    "emerging": 8,
}
DEFAULT_RECENCY_BONUS = 5
PROVENANCE_BONUS = {"grounded": 5, "analytical": 3}


@dataclass
class DiscoveryContext:
    podcast: PodcastRecord
    history: HistorySummary
    now: datetime = field(default_factory=datetime.now)

    @property
    def theme(self) -> str:
        return (self.podcast.get("prompt") or self.podcast.get("title") or "general news").strip()


@dataclass
class DiscoveryResult:
    strategy: str
    topics: List[CandidateTopic]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DiscoveryFailure:
    strategy: str
    reason: str


DiscoveryOutcome = Union[DiscoveryResult, DiscoveryFailure]


def _preferred_sources(podcast: PodcastRecord) -> List[str]:
    urls = []
    for src in podcast.get("sources") or []:
        if isinstance(src, str):
            urls.append(src)
        elif isinstance(src, dict) and src.get("url"):
            urls.append(src["url"])
    return urls


def _podcast_block(context: DiscoveryContext) -> str:
    podcast = context.podcast
    lines = [
        f"PODCAST: {podcast.get('title', '')}",
        f"DESCRIPTION: {podcast.get('description', '')}",
        f"FOCUS: {context.theme}",
    ]
    sources = _preferred_sources(podcast)
    if sources:
        lines.append("PREFERRED SOURCES (favor these when relevant): " + ", ".join(sources))
    lines.append(format_history_for_prompt(context.history))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Tier 1: direct generation
# ---------------------------------------------------------------------------
def build_direct_prompt(context: DiscoveryContext) -> str:
    today = context.now.strftime("%B %d, %Y")
    return (
        f"Today is {today}. Use web search to find what is happening right now.\n\n"
        f"{_podcast_block(context)}\n\n"
        f"Propose 5-7 topic ideas for the next episode, all from the last {DISCOVERY_RECENCY_DAYS} days.\n"
        "REQUIREMENTS:\n"
        "- Include the top headline story of the last 24-48 hours for this focus area.\n"
        "- Each topic must be a distinct story; no two topics may overlap.\n"
        "- Cover different categories: at least one regulatory or legal development, one financial "
        "or market development, and one story with direct public impact.\n"
        "- Be specific: name the organizations, people, products or decisions involved.\n"
        "- Do NOT repeat topics from the previous coverage listed above.\n\n"
        "For each topic give a title, a 1-2 sentence summary of why it matters now, and 2-3 key "
        "questions an episode should answer.\n\n"
        "Respond with ONLY a JSON array (no markdown):\n"
        '[{"topic_title": "...", "topic_summary": "...", "key_questions": ["...", "..."]}]'
    )


def _direct_item_to_topic(item: dict, citations: List[str], api_source: str) -> Optional[CandidateTopic]:
    title = safe_str(item.get("topic_title") or item.get("title") or item.get("topic"))
    if not title:
        return None
    summary = safe_str(item.get("topic_summary") or item.get("summary"))
    questions = safe_str_list(item.get("key_questions"))
    if questions:
        query = "Explore further: " + "; ".join(questions)
    else:
        query = summary or title
    return CandidateTopic(
        topic=title,
        relevance=9,
        query=query,
        recency=f"Within {DISCOVERY_RECENCY_DAYS} days",
        rationale=summary,
        key_questions=questions,
        sources=citations,
        api_source=api_source,
    )


class DirectGenerationStrategy:
    """Single heavily constrained prompt with web grounding requested."""

    name = "direct_generation"

    def __init__(self, provider, api_source: str = "direct"):
        self.provider = provider
        self.api_source = api_source

    async def discover(self, context: DiscoveryContext) -> DiscoveryOutcome:
        try:
            result = await self.provider.generate(build_direct_prompt(context), temperature=0.7,
                                                  max_tokens=2500, web_search=True)
        except Exception as e:
            logger.warning(f"Direct topic generation failed: {e}")
            return DiscoveryFailure(self.name, f"provider error: {e}")

        items = parse_structured_response(result.text, List[dict], strict=True)
        if isinstance(items, ParseFailure):
            return DiscoveryFailure(self.name, f"unparseable response: {items.reason}")

        topics = []
        for item in items[:MAX_CANDIDATE_TOPICS]:
            topic = _direct_item_to_topic(item, result.citations, self.api_source)
            if topic:
                topics.append(topic)
        if not topics:
            return DiscoveryFailure(self.name, "no topics in response")
        return DiscoveryResult(self.name, topics, {"citations": len(result.citations)})


# ---------------------------------------------------------------------------
# Tier 2: hybrid merge
# ---------------------------------------------------------------------------
def build_grounded_prompt(context: DiscoveryContext) -> str:
    return (
        f"Search the web for the most important news of the last {DISCOVERY_RECENCY_DAYS} days "
        f"for this podcast.\n\n{_podcast_block(context)}\n\n"
        "Find 5-7 distinct, specific, newsworthy stories not covered before. Label recency as one of "
        "breaking, developing, trending, recent, ongoing, emerging.\n\n"
        "Respond with ONLY a JSON object (no markdown):\n"
        '{"topics": [{"topic": "...", "description": "...", "relevance": 1-10, "recency": "breaking", '
        '"sources": ["https://..."], "keyQuestions": ["..."], "reasoning": "..."}]}'
    )


def _normalize_title(title: str) -> str:
    return re.sub(r"[^a-z0-9 ]", "", title.lower()).strip()


def score_topic(topic: CandidateTopic) -> int:
    """Ranking score used when merging hybrid discovery paths."""
    recency = (topic.recency or "").lower()
    bonus = DEFAULT_RECENCY_BONUS
    for label, value in RECENCY_BONUS.items():
        if label in recency:
            bonus = value
            break
    return (
        topic.relevance * 10
        + bonus
        + 5 * len(topic.sources)
        + PROVENANCE_BONUS.get(topic.api_source or "", 0)
        + 3 * len(topic.key_questions)
    )


def combine_and_rank_topics(topic_lists: List[List[CandidateTopic]], top_n: int = HYBRID_TOP_N) -> List[CandidateTopic]:
    """Dedupe on normalized titles (either containing the other) and keep the top_n by score."""
    merged: List[CandidateTopic] = []
    keys: List[str] = []
    for topics in topic_lists:
        for topic in topics:
            key = _normalize_title(topic.topic)
            if not key:
                continue
            dup = next((i for i, k in enumerate(keys) if key in k or k in key), None)
            if dup is None:
                merged.append(topic)
                keys.append(key)
            elif score_topic(topic) > score_topic(merged[dup]):
                merged[dup] = topic
    return sorted(merged, key=score_topic, reverse=True)[:top_n]


class HybridMergeStrategy:
    """Analytical direct generation and search-grounded discovery, merged."""

    name = "hybrid_merge"

    def __init__(self, analytical_provider, grounded_provider=None):
        self.direct = DirectGenerationStrategy(analytical_provider, api_source="analytical")
        self.grounded_provider = grounded_provider or analytical_provider

    async def _grounded_topics(self, context: DiscoveryContext) -> List[CandidateTopic]:
        result = await self.grounded_provider.generate(build_grounded_prompt(context), temperature=0.5,
                                                       max_tokens=2500, web_search=True)
        items = parse_structured_response(result.text, List[dict])
        if isinstance(items, ParseFailure):
            raise ValueError(f"grounded discovery unparseable: {items.reason}")
        topics = []
        for item in items:
            name = safe_str(item.get("topic"))
            if not name:
                continue
            sources = dedupe(safe_str_list(item.get("sources")) + result.citations)
            topics.append(CandidateTopic(
                topic=name,
                relevance=clamp_score(item.get("relevance"), 1, 10, 7),
                query=safe_str(item.get("description")) or name,
                recency=safe_str(item.get("recency")),
                rationale=safe_str(item.get("reasoning")) or safe_str(item.get("description")),
                key_questions=safe_str_list(item.get("keyQuestions") or item.get("key_questions")),
                sources=sources,
                api_source="grounded",
            ))
        return topics

    async def _analytical_topics(self, context: DiscoveryContext) -> List[CandidateTopic]:
        outcome = await self.direct.discover(context)
        if isinstance(outcome, DiscoveryFailure):
            raise ValueError(outcome.reason)
        return outcome.topics

    async def discover(self, context: DiscoveryContext) -> DiscoveryOutcome:
        start = time.time()

        async def run_path(label, coro):
            try:
                return await coro
            except Exception as e:
                logger.warning(f"Hybrid discovery path '{label}' failed: {e}")
                return []

        analytical, grounded = await asyncio.gather(
            run_path("analytical", self._analytical_topics(context)),
            run_path("grounded", self._grounded_topics(context)),
        )
        if not analytical and not grounded:
            return DiscoveryFailure(self.name, "both discovery paths returned no topics")

        ranked = combine_and_rank_topics([grounded, analytical])
        productive = sum(1 for t in (analytical, grounded) if t)
        metadata = {
            "analytical_count": len(analytical),
            "grounded_count": len(grounded),
            "merged_count": len(ranked),
            "processing_time_ms": int((time.time() - start) * 1000),
            "hybrid_score": 40 * productive + min(2 * (len(analytical) + len(grounded)), 20),
        }
        logger.info(f"Hybrid discovery: {metadata}")
        return DiscoveryResult(self.name, ranked, metadata)


# ---------------------------------------------------------------------------
# Tier 3: search then extract
# ---------------------------------------------------------------------------
def fallback_search_queries(context: DiscoveryContext) -> List[str]:
    """Templated exploratory queries; never empty."""
    base = context.theme
    month = context.now.strftime("%B")
    year = context.now.year
    return [
        f"latest news about {base} {month} {year}",
        f"recent developments in {base}",
        f"{base} current events",
        f"what's new with {base}",
        f"{base} trending topics {month} {year}",
    ]


class SearchExtractStrategy:
    """Exploratory searches in parallel, then topic extraction from the results."""

    name = "search_extract"

    def __init__(self, provider, search_provider):
        self.provider = provider
        self.search_provider = search_provider

    async def generate_queries(self, context: DiscoveryContext) -> List[str]:
        prompt = (
            f"Today is {context.now.strftime('%B %d, %Y')}.\n\n{_podcast_block(context)}\n\n"
            f"Write {DISCOVERY_QUERY_COUNT} web search queries that would surface the newest "
            "developments for this podcast's next episode. Include recency terms (this week, "
            "latest, the current month and year) and avoid previously covered topics.\n\n"
            'Respond with ONLY a JSON array of strings: ["query 1", "query 2"]'
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.5, max_tokens=500)
            queries = parse_structured_response(result.text, List[str])
        except Exception as e:
            logger.warning(f"Search query generation failed: {e}")
            queries = ParseFailure(str(e))
        if isinstance(queries, ParseFailure):
            queries = []
        queries = dedupe(q.strip() for q in queries if q and q.strip())[:DISCOVERY_QUERY_COUNT]
        if not queries:
            logger.info("Using templated discovery queries")
            queries = fallback_search_queries(context)
        return queries

    async def discover(self, context: DiscoveryContext) -> DiscoveryOutcome:
        queries = await self.generate_queries(context)
        combined = await search_many(self.search_provider, queries)
        if not combined.content:
            return DiscoveryFailure(self.name, "all exploratory searches failed")

        prompt = (
            f"{_podcast_block(context)}\n\n"
            f"SEARCH RESULTS:\n{combined.content[:15000]}\n\n"
            "From these search results, extract 5-7 candidate topics for the next episode. Each "
            "topic needs a search query for researching it further, a relevance score (1-10) for "
            "this podcast and a recency label.\n\n"
            "Respond with ONLY a JSON object (no markdown):\n"
            '{"potentialTopics": [{"topic": "...", "relevance": 8, "query": "...", "recency": "..."}]}'
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.4, max_tokens=2000)
        except Exception as e:
            logger.warning(f"Topic extraction failed: {e}")
            return DiscoveryFailure(self.name, f"provider error: {e}")

        data = parse_structured_response(result.text, dict)
        if isinstance(data, ParseFailure):
            return DiscoveryFailure(self.name, f"unparseable response: {data.reason}")

        topics = []
        for item in data.get("potentialTopics") or data.get("potential_topics") or []:
            if not isinstance(item, dict):
                continue
            name, query = safe_str(item.get("topic")), safe_str(item.get("query"))
            if not (name and query):
                continue
            topics.append(CandidateTopic(
                topic=name,
                relevance=clamp_score(item.get("relevance"), 1, 10, 5),
                query=query,
                recency=safe_str(item.get("recency")),
                sources=combined.sources,
                api_source="search",
            ))
        if not topics:
            return DiscoveryFailure(self.name, "no topic had both topic and query")
        return DiscoveryResult(self.name, topics[:MAX_CANDIDATE_TOPICS],
                               {"queries": queries, "sources": len(combined.sources)})


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------
class TopicDiscovery:
    """Tries each strategy in order until one yields topics."""

    def __init__(self, strategies: list):
        self.strategies = strategies

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        failures = []
        for strategy in self.strategies:
            outcome = await strategy.discover(context)
            if isinstance(outcome, DiscoveryResult) and outcome.topics:
                logger.info(f"Topic discovery succeeded with {outcome.strategy}: "
                            f"{len(outcome.topics)} topics")
                outcome.metadata["failed_strategies"] = failures
                return outcome
            reason = outcome.reason if isinstance(outcome, DiscoveryFailure) else "no topics"
            logger.warning(f"Topic discovery strategy {strategy.name} failed: {reason}")
            failures.append({"strategy": strategy.name, "reason": reason})
        logger.error("Topic discovery exhausted all strategies")
        return DiscoveryResult("none", [], {"failed_strategies": failures})


def build_topic_discovery(smart_provider, fast_provider, search_provider, grounded_provider=None) -> TopicDiscovery:
    return TopicDiscovery([
        DirectGenerationStrategy(smart_provider),
        HybridMergeStrategy(smart_provider, grounded_provider),
        SearchExtractStrategy(fast_provider, search_provider),
    ])
