"""
Script generation under hard format constraints.

Renders the narrative outline and per-topic research into a single spoken
script, performs the one differentiation rewrite, and derives the compact
artifacts stored with an episode (bullet points, title, description).
"""

import logging
import re
from typing import List, Tuple

from newscast.config import (
    MIN_CONTENT_CHARS, SHORT_CONTENT_POLICY, MAX_TITLE_CHARS, MAX_DESCRIPTION_CHARS,
)
from newscast.errors import ContentTooShortError
from newscast.models import (
    EpisodePlan, HistorySummary, NarrativeStructure, ResearchBundle, ValidationResult,
)
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.pipeline_types import PodcastRecord
from newscast.research.history import format_history_for_prompt
from newscast.script.narrative import section_budget_lines
from newscast.utils import strip_markdown, truncate_at_boundary

logger = logging.getLogger(__name__)

STAGE = "content_generation"

FORMAT_CONSTRAINTS = (
    "HARD FORMAT RULES:\n"
    "1. No speaker labels or names followed by a colon (no 'Host:', 'Narrator:').\n"
    "2. No audio or stage directions (no [music], (pause), *sound effect*).\n"
    "3. No markdown: no headings, bold, italics, bullet points or numbered lists.\n"
    "4. No section headers or titles inside the script.\n"
    "5. No references to specific dates, days, weeks, months or periods, and no mention of "
    "publication cadence (no 'this week's episode', 'today's daily update').\n"
    "6. Standard punctuation only: periods, commas, question marks, exclamation points, "
    "apostrophes, quotation marks, hyphens.\n"
    "Output ONLY the script text as continuous spoken paragraphs."
)

GENERIC_BULLETS = [
    "Key developments in the stories covered",
    "Why these developments matter now",
    "What to watch for next",
]


def _research_block(research: ResearchBundle, limit: int = 3000) -> str:
    return "\n\n".join(
        f"RESEARCH ON {r.topic.upper()}:\n{r.synthesized_content[:limit]}"
        for r in research.results if r.synthesized_content
    )


class ContentSynthesizer:
    """Renders the final script and its single rewrite pass."""

    def __init__(self, provider, min_chars: int = MIN_CONTENT_CHARS, short_policy: str = SHORT_CONTENT_POLICY):
        self.provider = provider
        self.min_chars = min_chars
        self.short_policy = short_policy

    async def _render(self, prompt: str, max_tokens: int) -> str:
        result = await self.provider.generate(prompt, temperature=0.7, max_tokens=max_tokens)
        return strip_markdown(result.text)

    def _handle_short(self, text: str, research: ResearchBundle) -> str:
        """Apply the configured policy to degenerate output."""
        logger.error(f"Generated script is too short ({len(text)} chars < {self.min_chars}), "
                     f"policy={self.short_policy}")
        if self.short_policy == "concatenate":
            joined = "\n\n".join(r.synthesized_content for r in research.results
                                 if r.synthesized_content and not r.error)
            if len(joined) >= self.min_chars:
                logger.warning("Returning concatenated topic syntheses instead of a structured script")
                return joined
        raise ContentTooShortError(
            f"script generation produced {len(text)} characters (minimum {self.min_chars})",
            stage=STAGE,
        )

    async def generate(
        self,
        structure: NarrativeStructure,
        research: ResearchBundle,
        plan: EpisodePlan,
        podcast: PodcastRecord,
    ) -> str:
        """Generate the script.

        Raises:
            ContentTooShortError: Output below the minimum length (policy "raise",
                or "concatenate" with nothing usable to concatenate).
        """
        target = structure.overall_word_count
        outline = "\n".join(section_budget_lines(structure))
        prompt = (
            f"Write the complete script for a solo news podcast episode.\n\n"
            f"PODCAST: {podcast.get('title', '')}\nDESCRIPTION: {podcast.get('description', '')}\n"
            f"EPISODE: {plan.episode_title}\nAPPROACH: {plan.differentiation_strategy}\n\n"
            f"OUTLINE (follow this order and these word budgets):\n{outline}\n\n"
            f"{_research_block(research)}\n\n"
            f"LENGTH: about {target} words in total. Keep each part close to its word budget.\n\n"
            f"{FORMAT_CONSTRAINTS}"
        )
        max_tokens = max(1000, int(target * 2))
        try:
            text = await self._render(prompt, max_tokens)
        except Exception as e:
            logger.error(f"Script generation call failed: {e}")
            text = ""
        if len(text.strip()) < self.min_chars:
            return self._handle_short(text.strip(), research)
        logger.info(f"Generated script: {len(text.split())} words (target {target})")
        return text

    async def rewrite(self, draft: str, validation: ValidationResult, history: HistorySummary) -> str:
        """One differentiation rewrite; returns the original draft on any failure."""
        redundant = "\n".join(f"- {r}" for r in validation.redundant_elements) or "- (not itemized)"
        suggestions = "\n".join(f"- {s}" for s in validation.improvement_suggestions) or "- (none)"
        prompt = (
            f"{format_history_for_prompt(history)}\n\n"
            f"The draft below repeats earlier episodes too closely (similarity "
            f"{validation.similarity_score}/100).\n\nREDUNDANT ELEMENTS:\n{redundant}\n\n"
            f"SUGGESTIONS:\n{suggestions}\n\nDRAFT:\n{draft}\n\n"
            "Rewrite ONLY the redundant parts. Change the analytical framing for them (new angle, "
            "new stakeholders, new consequences), not merely the wording. Keep everything else, "
            f"and keep the length about {len(draft.split())} words.\n\n{FORMAT_CONSTRAINTS}"
        )
        try:
            text = await self._render(prompt, max(1000, int(len(draft.split()) * 2)))
        except Exception as e:
            logger.warning(f"Differentiation rewrite failed, keeping original: {e}")
            return draft
        if len(text.strip()) < self.min_chars:
            logger.warning("Differentiation rewrite too short, keeping original")
            return draft
        return text

    async def generate_bullet_points(self, content: str) -> List[str]:
        """3-5 summary bullets for future history analysis."""
        prompt = (
            f"SCRIPT:\n{content[:8000]}\n\n"
            "Summarize the topics and key points of this script as 3-5 short bullet points.\n"
            'Respond with ONLY a JSON array of strings: ["point 1", "point 2"]'
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.2, max_tokens=400)
        except Exception as e:
            logger.warning(f"Bullet point generation failed: {e}")
            return list(GENERIC_BULLETS)
        return bullet_points_from_text(result.text)


def bullet_points_from_text(text: str) -> List[str]:
    """JSON array first, then '-' / '*' lines, then generic bullets."""
    parsed = parse_structured_response(text, List[str])
    if not isinstance(parsed, ParseFailure):
        bullets = [b.strip() for b in parsed if b and b.strip()]
        if bullets:
            return bullets[:5]
    bullets = [m.group(1).strip() for m in re.finditer(r'^\s*[-*]\s+(.+)$', text or "", re.MULTILINE)]
    if bullets:
        return bullets[:5]
    return list(GENERIC_BULLETS)


def episode_metadata(plan: EpisodePlan, content: str) -> Tuple[str, str]:
    """Title (<= MAX_TITLE_CHARS) and description (<= MAX_DESCRIPTION_CHARS)."""
    title = truncate_at_boundary(plan.episode_title.strip(), MAX_TITLE_CHARS)
    first = re.split(r'(?<=[.!?])\s+', content.strip(), maxsplit=1)[0] if content.strip() else ""
    description = truncate_at_boundary(first or title, MAX_DESCRIPTION_CHARS, suffix="...")
    return title, description
