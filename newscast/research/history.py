"""
History analysis for repetition avoidance.

Summarizes a bounded window of recent episodes into covered topics, recurring
themes and sources with a single consolidated model call. Compact bullet-point
summaries are preferred over transcripts; structurally available metadata
(episode count, declared sources) survives any model failure.
"""

import logging
from typing import List

from newscast.config import HISTORY_WINDOW, MAX_HISTORY_TOPICS, HISTORY_CONTENT_PREFIX
from newscast.models import HistorySummary, HistoryTopic
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.pipeline_types import EpisodeRecord
from newscast.utils import clamp_score, safe_str, safe_str_list

logger = logging.getLogger(__name__)


def _episode_sources(episode: EpisodeRecord) -> List[str]:
    urls = []
    for src in episode.get("sources") or []:
        if isinstance(src, str):
            urls.append(src)
        elif isinstance(src, dict) and src.get("url"):
            urls.append(src["url"])
    return urls


def _episode_digest(episode: EpisodeRecord) -> str:
    """Bullet points if the episode has them, else a truncated transcript prefix."""
    bullets = [b for b in (episode.get("bullet_points") or []) if b and b.strip()]
    if bullets:
        return "BULLET POINT SUMMARY:\n" + "\n".join(f"- {b.strip()}" for b in bullets)
    content = (episode.get("content") or "").strip()
    if content:
        return content[:HISTORY_CONTENT_PREFIX] + "..."
    return "(no content)"


def _build_history_prompt(episodes: List[EpisodeRecord]) -> str:
    parts = []
    for i, ep in enumerate(episodes, 1):
        header = f"EPISODE {i}"
        if ep.get("title"):
            header += f": {ep['title']}"
        if ep.get("created_at"):
            header += f" ({ep['created_at']})"
        parts.append(f"{header}\n{_episode_digest(ep)}")
    joined = "\n\n".join(parts)
    return (
        f"Below are summaries of the {len(episodes)} most recent episodes of a news podcast.\n\n"
        f"{joined}\n\n"
        f"Identify at most {MAX_HISTORY_TOPICS} main topics these episodes covered, with how many "
        "episodes covered each, and the recurring themes across episodes.\n\n"
        "Respond with ONLY a JSON object (no markdown):\n"
        '{"topics": [{"topic": "topic name", "frequency": 2}], "themes": ["theme"]}'
    )


class HistoryAnalyzer:
    """Builds a HistorySummary from recent episodes."""

    def __init__(self, provider):
        self.provider = provider

    async def analyze(self, episodes: List[EpisodeRecord], limit: int = HISTORY_WINDOW) -> HistorySummary:
        """Summarize up to `limit` most recent episodes (input is newest first)."""
        window = list(episodes or [])[:limit]
        if not window:
            logger.info("No previous episodes, treating this as the first episode")
            return HistorySummary(episode_count=0)

        covered_sources = set()
        for ep in window:
            covered_sources.update(_episode_sources(ep))

        summary = HistorySummary(covered_sources=covered_sources, episode_count=len(window))
        try:
            result = await self.provider.generate(_build_history_prompt(window),
                                                  temperature=0.2, max_tokens=1500)
        except Exception as e:
            logger.warning(f"History analysis failed: {e}")
            return summary

        data = parse_structured_response(result.text, dict)
        if isinstance(data, ParseFailure):
            logger.warning(f"History analysis returned unparseable output: {data.reason}")
            return summary

        raw_topics = data.get("topics")
        if not isinstance(raw_topics, list):
            raw_topics = []
        topics = []
        for item in raw_topics:
            if isinstance(item, str):
                item = {"topic": item}
            if not isinstance(item, dict):
                continue
            name = safe_str(item.get("topic"))
            if name:
                topics.append(HistoryTopic(topic=name,
                                           frequency=clamp_score(item.get("frequency"), 0, len(window), 1)))
        summary.recent_topics = topics[:MAX_HISTORY_TOPICS]
        summary.recurrent_themes = safe_str_list(data.get("themes"))
        logger.info(f"History: {len(window)} episodes, {len(summary.recent_topics)} topics, "
                    f"{len(summary.recurrent_themes)} themes, {len(covered_sources)} sources")
        return summary


def format_history_for_prompt(summary: HistorySummary) -> str:
    """Render a HistorySummary as prompt context for later stages."""
    if summary.episode_count == 0:
        return "This is the first episode of this podcast; there is no previous coverage to avoid."
    lines = [f"Previous coverage (last {summary.episode_count} episodes):"]
    if summary.recent_topics:
        lines.append("Topics already covered:")
        lines += [f"- {t.topic} (covered in {t.frequency} episode(s))" for t in summary.recent_topics]
    if summary.recurrent_themes:
        lines.append("Recurring themes: " + ", ".join(summary.recurrent_themes))
    if summary.covered_sources:
        lines.append(f"Sources already cited: {len(summary.covered_sources)}")
    return "\n".join(lines)
