"""
Topic prioritization: choose which candidate topics get layered research.

The number of deep-research topics is a pure function of the word budget
(see script.budget.derive_topic_count): fewer, deeper topics for longer
episodes.
"""

import json
import logging
from typing import List

from newscast.models import BudgetConfig, CandidateTopic, DeepResearchTopic, HistorySummary
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.research.history import format_history_for_prompt
from newscast.script.budget import derive_topic_count
from newscast.utils import clamp_score, dedupe, safe_str, safe_str_list

logger = logging.getLogger(__name__)


def _to_deep_topic(item: dict) -> DeepResearchTopic:
    name = safe_str(item.get("topic"))
    if not name:
        raise ValueError("topic missing")
    queries = safe_str_list(item.get("searchQueries") or item.get("search_queries"))
    return DeepResearchTopic(
        topic=name,
        importance=clamp_score(item.get("importance"), 1, 10, 5),
        newsworthiness=clamp_score(item.get("newsworthiness"), 1, 10, 5),
        depth_potential=clamp_score(item.get("depthPotential") or item.get("depth_potential"), 1, 10, 5),
        rationale=safe_str(item.get("rationale")) or "",
        key_questions=safe_str_list(item.get("keyQuestions") or item.get("key_questions")),
        search_queries=queries or [name],
    )


async def prioritize_topics(
    provider,
    candidates: List[CandidateTopic],
    history: HistorySummary,
    target_word_count: int,
    budget: BudgetConfig = None,
) -> List[DeepResearchTopic]:
    """Ask the model to rank candidates and keep the top K.

    Returns an empty list on provider error or malformed output; never raises.
    """
    k = derive_topic_count(target_word_count, budget)
    if not candidates:
        return []
    listing = json.dumps([
        {"topic": c.topic, "relevance": c.relevance, "query": c.query, "recency": c.recency,
         "rationale": c.rationale}
        for c in candidates
    ], indent=2)
    prompt = (
        f"CANDIDATE TOPICS:\n{listing}\n\n{format_history_for_prompt(history)}\n\n"
        f"The episode is about {target_word_count} words long. Select the {k * 2} topics most worth "
        "in-depth research, ranked best first. Score each 1-10 for importance, newsworthiness and "
        "depthPotential (how much substance further research can uncover). Prefer topics that "
        "were not covered before. For each, write a rationale, 2-4 keyQuestions and 2-4 "
        "specific searchQueries.\n\n"
        "Respond with ONLY a JSON object (no markdown):\n"
        '{"prioritizedTopics": [{"topic": "...", "importance": 8, "newsworthiness": 9, '
        '"depthPotential": 7, "rationale": "...", "keyQuestions": ["..."], "searchQueries": ["..."]}]}'
    )
    try:
        result = await provider.generate(prompt, temperature=0.3, max_tokens=2000)
    except Exception as e:
        logger.warning(f"Topic prioritization failed: {e}")
        return []

    data = parse_structured_response(result.text, dict)
    if isinstance(data, ParseFailure):
        logger.warning(f"Topic prioritization returned unparseable output: {data.reason}")
        return []

    topics = []
    for item in data.get("prioritizedTopics") or data.get("prioritized_topics") or []:
        if not isinstance(item, dict):
            continue
        try:
            topics.append(_to_deep_topic(item))
        except ValueError as e:
            logger.debug(f"Skipping prioritized topic: {e}")
    logger.info(f"Prioritized {len(topics)} topics, keeping {min(k, len(topics))}")
    return topics[:k]


def promote_candidates(candidates: List[CandidateTopic], k: int) -> List[DeepResearchTopic]:
    """Deterministically turn the top-k candidates (by relevance) into research topics."""
    ranked = sorted(candidates, key=lambda c: c.relevance, reverse=True)[:k]
    promoted = []
    for c in ranked:
        # "Explore further: ..." queries are question lists, not searchable strings
        queries = [c.topic]
        if c.query and not c.query.startswith("Explore further:"):
            queries = dedupe([c.query, c.topic])
        promoted.append(DeepResearchTopic(
            topic=c.topic,
            importance=c.relevance,
            newsworthiness=c.relevance,
            depth_potential=5,
            rationale=c.rationale or "",
            key_questions=c.key_questions,
            search_queries=queries + c.key_questions[:2],
        ))
    return promoted
