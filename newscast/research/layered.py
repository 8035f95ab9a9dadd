"""
Layered research: three passes of increasing depth per topic.

Layer 1 (surface) runs the topic's first search query. Layer 2
(intermediate) runs the remaining queries plus follow-ups derived
deterministically from Layer 1 insights. Layer 3 (deep) runs model-generated
expert queries built from Layer 2 insights, with a fixed template set when
generation fails. Each layer extracts key insights; a final synthesis call
integrates them and a metrics call scores the depth.

Topics are researched in parallel; a failing topic degrades to an
error-tagged result without affecting the others.
"""

import asyncio
import logging
import re
from typing import List

from newscast.config import (
    MAX_FOLLOW_UP_QUERIES, DEEP_LAYER_QUERY_COUNT, INSIGHT_CHAR_LIMITS, DEFAULT_DEPTH_SCORE,
)
from newscast.models import (
    DeepResearchTopic, DepthMetrics, LayeredResearchResult, ResearchBundle, ResearchLayer,
)
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.providers.search import search_many
from newscast.utils import clamp_score, dedupe

logger = logging.getLogger(__name__)

STOPWORDS = {
    "about", "above", "after", "again", "against", "also", "among", "because", "been", "before",
    "being", "below", "between", "both", "could", "does", "doing", "down", "during", "each",
    "even", "from", "further", "have", "having", "here", "however", "into", "just", "like",
    "made", "make", "many", "more", "most", "much", "must", "only", "other", "over", "said",
    "same", "should", "since", "some", "such", "than", "that", "their", "them", "then", "there",
    "these", "they", "this", "those", "through", "under", "until", "very", "were", "what",
    "when", "where", "which", "while", "will", "with", "within", "would", "your", "according",
    "report", "reports", "reported", "says", "new", "recent", "recently",
}
SALIENT_TERMS_PER_INSIGHT = 4


def salient_terms(text: str, limit: int = SALIENT_TERMS_PER_INSIGHT) -> List[str]:
    """First `limit` distinct non-stopword words of 4+ letters, in order of appearance."""
    terms = []
    for word in re.findall(r"[A-Za-z][A-Za-z0-9'-]{3,}", text):
        key = word.lower().strip("'-")
        if key in STOPWORDS or key in (t.lower() for t in terms):
            continue
        terms.append(word.strip("'-"))
        if len(terms) >= limit:
            break
    return terms


def follow_up_queries(topic: str, insights: List[str], limit: int = MAX_FOLLOW_UP_QUERIES) -> List[str]:
    """Layer 2 follow-ups from Layer 1 insights, without a model call."""
    queries = []
    for insight in insights[:limit]:
        terms = salient_terms(insight)
        if terms:
            queries.append(f"{topic} {' '.join(terms)} detailed analysis")
    queries = dedupe(queries)[:limit]
    if not queries:
        queries = [f"latest updates on {topic}"]
    return queries


def deep_query_templates(topic: str) -> List[str]:
    return [
        f"expert analysis {topic}",
        f"implications of {topic}",
        f"historical context {topic}",
        f"future predictions {topic}",
        f"contrasting views {topic}",
    ]


def _empty_layers() -> List[ResearchLayer]:
    return [ResearchLayer(level=level) for level in (1, 2, 3)]


def _failed_result(topic: DeepResearchTopic, error: str) -> LayeredResearchResult:
    return LayeredResearchResult(
        topic=topic.topic,
        layers=_empty_layers(),
        synthesized_content=f"Research failed for topic: {topic.topic}.",
        depth_metrics=DepthMetrics.default(),
        error=error,
    )


class LayeredResearchEngine:
    """Runs surface, intermediate and deep research passes for each topic."""

    def __init__(self, provider, search_provider, fast_provider=None):
        self.provider = provider
        self.search_provider = search_provider
        self.fast_provider = fast_provider or provider

    # --- Insight extraction ---

    async def extract_key_insights(self, topic: str, content: str, level: int) -> List[str]:
        """5-7 key insights from one layer's content, truncated to the layer's ceiling."""
        if not content.strip():
            return []
        limit = INSIGHT_CHAR_LIMITS.get(level, INSIGHT_CHAR_LIMITS[1])
        prompt = (
            f"TOPIC: {topic}\n\n"
            f"RESEARCH MATERIAL:\n{content[:limit]}\n\n"
            "Extract the 5-7 most important, specific insights about the topic from this material. "
            "Each insight is one self-contained sentence with concrete facts (names, figures, "
            "decisions). Ignore material unrelated to the topic.\n\n"
            'Respond with ONLY a JSON array of strings: ["insight 1", "insight 2"]'
        )
        try:
            result = await self.fast_provider.generate(prompt, temperature=0.2, max_tokens=1200)
        except Exception as e:
            logger.warning(f"Insight extraction failed for '{topic}' (layer {level}): {e}")
            return []
        insights = parse_structured_response(result.text, List[str])
        if isinstance(insights, ParseFailure):
            logger.warning(f"Insight extraction unparseable for '{topic}' (layer {level})")
            return []
        return [i.strip() for i in insights if i and i.strip()][:7]

    # --- Query derivation ---

    def surface_queries(self, topic: DeepResearchTopic) -> List[str]:
        return topic.search_queries[:1] or [topic.topic]

    def intermediate_queries(self, topic: DeepResearchTopic, layer1: ResearchLayer) -> List[str]:
        return dedupe(topic.search_queries[1:] + follow_up_queries(topic.topic, layer1.key_insights))

    async def deep_queries(self, topic: DeepResearchTopic, layer2: ResearchLayer) -> List[str]:
        """Model-generated expert queries from Layer 2 insights; templates on failure."""
        insights = "\n".join(f"- {i}" for i in layer2.key_insights) or "(no insights yet)"
        questions = "\n".join(f"- {q}" for q in topic.key_questions) or "(none)"
        prompt = (
            f"TOPIC: {topic.topic}\n\nWHAT WE KNOW SO FAR:\n{insights}\n\nKEY QUESTIONS:\n{questions}\n\n"
            f"Write {DEEP_LAYER_QUERY_COUNT} sophisticated web search queries that go beyond the "
            "basics: one for expert analysis, one for contrasting viewpoints, one for historical "
            "context, one for future implications, and one derived directly from the key questions.\n\n"
            'Respond with ONLY a JSON array of strings: ["query 1", "query 2"]'
        )
        queries = []
        try:
            result = await self.fast_provider.generate(prompt, temperature=0.5, max_tokens=600)
            parsed = parse_structured_response(result.text, List[str])
            if not isinstance(parsed, ParseFailure):
                queries = dedupe(q.strip() for q in parsed if q and q.strip())[:DEEP_LAYER_QUERY_COUNT]
        except Exception as e:
            logger.warning(f"Deep query generation failed for '{topic.topic}': {e}")
        if not queries:
            logger.info(f"Using deep query templates for '{topic.topic}'")
            queries = deep_query_templates(topic.topic)
        return queries

    # --- Layers ---

    async def run_layer(self, topic: str, level: int, queries: List[str]) -> ResearchLayer:
        combined = await search_many(self.search_provider, queries)
        insights = await self.extract_key_insights(topic, combined.content, level)
        logger.info(f"Layer {level} for '{topic}': {len(queries)} queries, "
                    f"{len(combined.sources)} sources, {len(insights)} insights")
        return ResearchLayer(level=level, queries=queries, content=combined.content,
                             sources=combined.sources, key_insights=insights)

    # --- Synthesis and scoring ---

    async def synthesize(self, topic: DeepResearchTopic, layers: List[ResearchLayer]) -> str:
        labels = {1: "SURFACE", 2: "INTERMEDIATE", 3: "DEEP (weigh most heavily)"}
        parts = []
        for layer in layers:
            insights = "\n".join(f"- {i}" for i in layer.key_insights) or "- (no insights)"
            parts.append(f"LAYER {layer.level} - {labels[layer.level]}\nInsights:\n{insights}\n"
                         f"Excerpt:\n{layer.content[:1000]}")
        prompt = (
            f"TOPIC: {topic.topic}\nWHY IT MATTERS: {topic.rationale}\n\n" + "\n\n".join(parts) + "\n\n"
            "Write a 400-800 word synthesis of this research for a news podcast host. Integrate the "
            "insights from all layers, giving the most weight to the deep layer: expert analysis, "
            "competing viewpoints, context and implications. Stay factual and specific. Plain prose, "
            "no headings or lists."
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.5, max_tokens=1500)
            if result.text.strip():
                return result.text.strip()
        except Exception as e:
            logger.warning(f"Synthesis failed for '{topic.topic}': {e}")
        return f"Synthesis failed for topic: {topic.topic}."

    async def score_depth(self, topic: str, synthesized: str) -> DepthMetrics:
        prompt = (
            f"TOPIC: {topic}\n\nRESEARCH SYNTHESIS:\n{synthesized[:6000]}\n\n"
            "Rate this research from 1 to 10 on factualDensity (specific facts and figures), "
            "insightScore (non-obvious analysis) and contextualDepth (background and implications).\n\n"
            'Respond with ONLY a JSON object: {"factualDensity": 7, "insightScore": 6, "contextualDepth": 8}'
        )
        try:
            result = await self.fast_provider.generate(prompt, temperature=0.1, max_tokens=200)
        except Exception as e:
            logger.warning(f"Depth scoring failed for '{topic}': {e}")
            return DepthMetrics.default()
        data = parse_structured_response(result.text, dict)
        if isinstance(data, ParseFailure):
            logger.warning(f"Depth scoring unparseable for '{topic}'")
            return DepthMetrics.default()
        d = DEFAULT_DEPTH_SCORE
        return DepthMetrics.from_scores(
            clamp_score(data.get("factualDensity"), 1, 10, d),
            clamp_score(data.get("insightScore"), 1, 10, d),
            clamp_score(data.get("contextualDepth"), 1, 10, d),
        )

    # --- Entry points ---

    async def research_topic(self, topic: DeepResearchTopic) -> LayeredResearchResult:
        """All three layers for one topic, then synthesis and scoring."""
        logger.info(f"Layered research: {topic.topic}")
        layer1 = await self.run_layer(topic.topic, 1, self.surface_queries(topic))
        layer2 = await self.run_layer(topic.topic, 2, self.intermediate_queries(topic, layer1))
        layer3 = await self.run_layer(topic.topic, 3, await self.deep_queries(topic, layer2))
        layers = [layer1, layer2, layer3]

        synthesized = await self.synthesize(topic, layers)
        metrics = await self.score_depth(topic.topic, synthesized)
        return LayeredResearchResult(
            topic=topic.topic,
            layers=layers,
            synthesized_content=synthesized,
            depth_metrics=metrics,
            sources=dedupe(s for layer in layers for s in layer.sources),
        )

    async def research_topics(self, topics: List[DeepResearchTopic]) -> ResearchBundle:
        """Research every topic in parallel and compute distribution and source union."""
        async def research_one(topic: DeepResearchTopic) -> LayeredResearchResult:
            try:
                return await self.research_topic(topic)
            except Exception as e:
                logger.warning(f"Layered research failed for '{topic.topic}': {e}")
                return _failed_result(topic, str(e))

        results = await asyncio.gather(*[research_one(t) for t in topics])
        return ResearchBundle(
            results=list(results),
            topic_distribution=topic_distribution(topics),
            all_sources=dedupe(s for r in results for s in r.sources),
        )


def topic_distribution(topics: List[DeepResearchTopic]) -> dict:
    """Share of episode attention per topic (percent, by importance)."""
    total = sum(t.importance for t in topics)
    if not total:
        return {}
    return {t.topic: round(100 * t.importance / total) for t in topics}
