"""
Adherence scoring: how closely a generated script follows its outline.
"""

import logging

from newscast.config import DEFAULT_ADHERENCE_SCORE
from newscast.models import AdherenceMetrics, NarrativeStructure
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.script.narrative import section_budget_lines
from newscast.utils import clamp_score, count_words

logger = logging.getLogger(__name__)


def default_adherence() -> AdherenceMetrics:
    s = DEFAULT_ADHERENCE_SCORE
    return AdherenceMetrics(structure_score=s, balance_score=s, transition_score=s, overall_adherence=s)


def word_count_adherence(actual: int, target: int) -> int:
    """100 at the target, falling linearly with relative deviation, floored at 0."""
    if target <= 0:
        return 0
    return max(0, round(100 - abs(actual - target) / target * 100))


async def evaluate_adherence(provider, content: str, structure: NarrativeStructure) -> AdherenceMetrics:
    """Score structure, balance and transitions 0-100; defaults on any failure."""
    outline = "\n".join(section_budget_lines(structure))
    prompt = (
        f"OUTLINE:\n{outline}\n\nSCRIPT:\n{content[:10000]}\n\n"
        "Score from 0 to 100 how well the script follows the outline: structureScore (covers the "
        "introduction, every section in order and the conclusion), balanceScore (time spent per "
        "section matches the word budgets), transitionScore (smooth lead-ins and lead-outs), and "
        "overallAdherence.\n\n"
        'Respond with ONLY a JSON object: {"structureScore": 80, "balanceScore": 75, '
        '"transitionScore": 85, "overallAdherence": 80}'
    )
    try:
        result = await provider.generate(prompt, temperature=0.1, max_tokens=300)
    except Exception as e:
        logger.warning(f"Adherence evaluation failed: {e}")
        return default_adherence()
    data = parse_structured_response(result.text, dict)
    if isinstance(data, ParseFailure):
        logger.warning(f"Adherence evaluation unparseable: {data.reason}")
        return default_adherence()
    d = DEFAULT_ADHERENCE_SCORE
    return AdherenceMetrics(
        structure_score=clamp_score(data.get("structureScore"), 0, 100, d),
        balance_score=clamp_score(data.get("balanceScore"), 0, 100, d),
        transition_score=clamp_score(data.get("transitionScore"), 0, 100, d),
        overall_adherence=clamp_score(data.get("overallAdherence"), 0, 100, d),
    )


def create_adherence_feedback(metrics: AdherenceMetrics, structure: NarrativeStructure, content: str) -> str:
    """Plain-text adherence report for the run log."""
    actual = count_words(content)
    target = structure.overall_word_count
    lines = [
        "CONTENT ADHERENCE REPORT",
        f"Word count: {actual} / {target} target ({word_count_adherence(actual, target)}% adherence)",
        f"Structure: {metrics.structure_score}/100",
        f"Balance: {metrics.balance_score}/100",
        f"Transitions: {metrics.transition_score}/100",
        f"Overall: {metrics.overall_adherence}/100",
        f"Planned sections: introduction ({structure.introduction.word_count}), "
        + ", ".join(f"{s.section_title or s.topic_reference} ({s.word_count})" for s in structure.body_sections)
        + f", conclusion ({structure.conclusion.word_count})",
    ]
    weak = [name for name, score in (("structure", metrics.structure_score),
                                     ("balance", metrics.balance_score),
                                     ("transitions", metrics.transition_score)) if score < 60]
    if weak:
        lines.append("Needs attention: " + ", ".join(weak))
    return "\n".join(lines)
