"""
Episode planning: which researched topics make the episode, at what depth,
from which angles, and how the episode sets itself apart from history.
"""

import logging
from typing import List

from newscast.models import (
    DeepResearchTopic, EpisodePlan, HistorySummary, PlannedTopic, ResearchBundle,
)
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.pipeline_types import PodcastRecord
from newscast.research.history import format_history_for_prompt

logger = logging.getLogger(__name__)

FALLBACK_ANGLES = ["Latest developments", "Impact and significance"]


def fallback_episode_plan(topics: List[DeepResearchTopic], podcast: PodcastRecord) -> EpisodePlan:
    """First two topics at medium depth, or a generic update topic."""
    title = podcast.get("title") or "the news"
    selected = [
        PlannedTopic(topic=t.topic, rationale=t.rationale, target_depth="medium",
                     angles=list(FALLBACK_ANGLES))
        for t in topics[:2]
    ]
    if not selected:
        selected = [PlannedTopic(topic=f"Latest updates on {title}", target_depth="medium",
                                 angles=list(FALLBACK_ANGLES))]
    return EpisodePlan(
        episode_title=f"New Developments in {title}",
        selected_topics=selected,
        differentiation_strategy="Focus on the newest developments and their practical impact.",
    )


class EpisodePlanner:
    def __init__(self, provider):
        self.provider = provider

    async def plan(
        self,
        research: ResearchBundle,
        topics: List[DeepResearchTopic],
        history: HistorySummary,
        podcast: PodcastRecord,
    ) -> EpisodePlan:
        research_block = "\n\n".join(
            f"TOPIC: {r.topic}\nDEPTH SCORE: {r.depth_metrics.overall_depth_score}/10\n"
            f"SHARE: {research.topic_distribution.get(r.topic, 0)}%\n"
            f"RESEARCH:\n{r.synthesized_content[:1500]}"
            for r in research.results
        )
        prompt = (
            f"PODCAST: {podcast.get('title', '')}\nDESCRIPTION: {podcast.get('description', '')}\n\n"
            f"{format_history_for_prompt(history)}\n\nRESEARCHED TOPICS:\n{research_block}\n\n"
            "Plan the next episode. Select the topics to include, and for each choose a targetDepth "
            "(deep, medium or overview), 2-4 angles, a rationale and whether furtherResearchNeeded. "
            "Give a differentiationStrategy explaining how this episode avoids repeating previous "
            "coverage. The episodeTitle must describe the content and must NOT mention dates, days, "
            "weeks, episode numbers or publication cadence.\n\n"
            "Respond with ONLY a JSON object (no markdown):\n"
            '{"episodeTitle": "...", "selectedTopics": [{"topic": "...", "rationale": "...", '
            '"targetDepth": "deep", "angles": ["..."], "furtherResearchNeeded": false}], '
            '"differentiationStrategy": "..."}'
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.4, max_tokens=1500)
        except Exception as e:
            logger.warning(f"Episode planning failed: {e}")
            return fallback_episode_plan(topics, podcast)

        plan = parse_structured_response(result.text, EpisodePlan)
        if isinstance(plan, ParseFailure):
            logger.warning(f"Episode plan unparseable ({plan.reason}), using fallback plan")
            return fallback_episode_plan(topics, podcast)
        logger.info(f"Episode plan: '{plan.episode_title}' with "
                    f"{[(t.topic, t.target_depth) for t in plan.selected_topics]}")
        return plan
