"""
Differentiation check against previous episodes.

Scores how much a draft repeats recent coverage. A failing draft gets exactly
one rewrite, which is returned without a second validation round. The check
fails open: validator errors never block an episode.
"""

import logging

from newscast.config import (
    SIMILARITY_PASS_THRESHOLD, DEFAULT_SIMILARITY_SCORE, DIFFERENTIATION_DRAFT_CHARS,
)
from newscast.models import HistorySummary, ValidationResult
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.research.history import format_history_for_prompt
from newscast.utils import clamp_score, safe_str, safe_str_list

logger = logging.getLogger(__name__)


def first_episode_result() -> ValidationResult:
    return ValidationResult(
        similarity_score=0,
        unique_elements=["All content is unique as there are no previous episodes"],
        is_passing=True,
        assessment="No previous episodes to compare against.",
    )


def fail_open_result(reason: str) -> ValidationResult:
    return ValidationResult(
        similarity_score=DEFAULT_SIMILARITY_SCORE,
        is_passing=True,
        assessment=f"Validation unavailable ({reason}); passing by default.",
    )


class DifferentiationValidator:
    """Compares a draft with history and triggers at most one rewrite."""

    def __init__(self, provider, synthesizer, threshold: int = SIMILARITY_PASS_THRESHOLD):
        self.provider = provider
        self.synthesizer = synthesizer
        self.threshold = threshold

    async def assess(self, draft: str, history: HistorySummary) -> ValidationResult:
        """Similarity assessment only (no rewrite)."""
        if history.episode_count == 0:
            return first_episode_result()

        prompt = (
            f"{format_history_for_prompt(history)}\n\n"
            f"NEW DRAFT:\n{draft[:DIFFERENTIATION_DRAFT_CHARS]}\n\n"
            "Assess how much the new draft repeats the previous coverage. Score similarityScore "
            "from 0 (entirely new) to 100 (a repeat). List uniqueElements (new topics or "
            "perspectives) and redundantElements (specific passages or angles already covered), and "
            "give improvementSuggestions. The draft passes only if similarityScore is below "
            f"{self.threshold} AND it introduces topics or perspectives that are not dominant in the "
            "previous coverage.\n\n"
            "Respond with ONLY a JSON object (no markdown):\n"
            '{"similarityScore": 25, "uniqueElements": ["..."], "redundantElements": ["..."], '
            '"differentiationAssessment": "...", "improvementSuggestions": ["..."], "isPassing": true}'
        )
        try:
            result = await self.provider.generate(prompt, temperature=0.2, max_tokens=1200)
        except Exception as e:
            logger.warning(f"Differentiation check failed, passing by default: {e}")
            return fail_open_result("provider error")

        data = parse_structured_response(result.text, dict)
        if isinstance(data, ParseFailure):
            logger.warning(f"Differentiation check unparseable, passing by default: {data.reason}")
            return fail_open_result("unparseable response")

        similarity = clamp_score(data.get("similarityScore"), 0, 100, DEFAULT_SIMILARITY_SCORE)
        verdict = data.get("isPassing")
        model_passes = verdict if isinstance(verdict, bool) else True
        return ValidationResult(
            similarity_score=similarity,
            unique_elements=safe_str_list(data.get("uniqueElements")),
            redundant_elements=safe_str_list(data.get("redundantElements")),
            improvement_suggestions=safe_str_list(data.get("improvementSuggestions")),
            assessment=safe_str(data.get("differentiationAssessment")) or "",
            is_passing=similarity < self.threshold and model_passes,
        )

    async def validate(self, draft: str, history: HistorySummary) -> ValidationResult:
        """Assess the draft; on failure rewrite once and attach the rewrite."""
        validation = await self.assess(draft, history)
        logger.info(f"Differentiation: similarity={validation.similarity_score} "
                    f"passing={validation.is_passing}")
        if validation.is_passing:
            return validation

        validation.rewrite_attempted = True
        try:
            improved = await self.synthesizer.rewrite(draft, validation, history)
        except Exception as e:
            logger.warning(f"Differentiation rewrite raised, keeping original: {e}")
            improved = draft
        if improved and improved != draft:
            validation.improved_content = improved
        return validation
