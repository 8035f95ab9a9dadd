"""
Narrative budgeting: turn an episode plan and its research into a
word-budgeted outline (introduction, body sections, conclusion) with
transitions.

The model-generated outline is validated and rescaled to the target. When the
model fails or returns an unusable outline, a deterministic fallback builds
one body section per selected topic whose word counts sum exactly to the
target, so planning never stalls.
"""

import logging
from typing import List

from newscast.errors import PlanValidationError
from newscast.models import (
    BodySection, BudgetConfig, Conclusion, EpisodePlan, Introduction, NarrativeStructure,
    ResearchBundle, Transitions,
)
from newscast.parsing import ParseFailure, parse_structured_response
from newscast.script.budget import (
    base_allocation, body_section_count, length_class, rescale_structure, weighted_body_allocation,
)

logger = logging.getLogger(__name__)

STAGE = "narrative_planning"


def _transitions(index: int, count: int, topic: str) -> Transitions:
    if index == 0:
        lead_in = f"Let's begin by examining {topic}."
    else:
        lead_in = f"Moving on to our next topic, {topic}."
    if index == count - 1:
        lead_out = "Having covered all our topics, let's bring it all together."
    else:
        lead_out = "This leads us to our next topic."
    return Transitions(lead_in=lead_in, lead_out=lead_out)


def fallback_structure(plan: EpisodePlan, target_word_count: int,
                       budget: BudgetConfig = None) -> NarrativeStructure:
    """Deterministic outline: one body section per planned topic, exact word sum."""
    budget = budget or BudgetConfig()
    topics = plan.selected_topics
    alloc = base_allocation(target_word_count, budget, sections=len(topics))
    body_words = weighted_body_allocation(alloc.body_total, [t.target_depth for t in topics], budget)

    sections = []
    for i, (topic, words) in enumerate(zip(topics, body_words)):
        sections.append(BodySection(
            section_title=f"Section on {topic.topic}",
            topic_reference=topic.topic,
            content_approach=f"{topic.target_depth.capitalize()} coverage: {topic.rationale or 'key facts and why they matter'}",
            key_points=topic.angles[:3],
            transitions=_transitions(i, len(topics), topic.topic),
            word_count=words,
        ))

    return NarrativeStructure(
        introduction=Introduction(
            approach="Set up the episode and preview the stories",
            hook=f"Today we're exploring {plan.episode_title}...",
            topics=[t.topic for t in topics],
            word_count=alloc.introduction,
        ),
        body_sections=sections,
        conclusion=Conclusion(
            summarization_approach="Recap the main point of each story",
            final_thoughts="Leave listeners with what to watch for next.",
            word_count=alloc.conclusion,
        ),
        overall_word_count=target_word_count,
    )


def validate_structure(raw: str, target_word_count: int) -> NarrativeStructure:
    """Parse a model outline, raising PlanValidationError when it is unusable."""
    data = parse_structured_response(raw, dict)
    if isinstance(data, ParseFailure):
        raise PlanValidationError(f"unparseable outline: {data.reason}", stage=STAGE)
    data["overallWordCount"] = target_word_count
    data.pop("overall_word_count", None)

    intro = data.get("introduction")
    if not isinstance(intro, dict) or not (intro.get("approach") or intro.get("hook")):
        raise PlanValidationError("outline has no introduction", stage=STAGE)
    sections = data.get("bodySections") or data.get("body_sections")
    if not isinstance(sections, list) or not sections:
        raise PlanValidationError("outline has no body sections", stage=STAGE)
    if not isinstance(data.get("conclusion"), dict):
        raise PlanValidationError("outline has no conclusion", stage=STAGE)

    structure = _build_structure(data)
    if structure is None:
        raise PlanValidationError("outline fields are invalid", stage=STAGE)
    return structure


def _build_structure(data: dict):
    try:
        return NarrativeStructure.model_validate(data)
    except ValueError as e:
        logger.debug(f"Outline failed validation: {e}")
        return None


class NarrativeBudgetPlanner:
    def __init__(self, provider, budget: BudgetConfig = None):
        self.provider = provider
        self.budget = budget or BudgetConfig()

    def _prompt(self, plan: EpisodePlan, research: ResearchBundle, target_word_count: int) -> str:
        alloc = base_allocation(target_word_count, self.budget)
        depths = [t.target_depth for t in plan.selected_topics]
        weighted = weighted_body_allocation(alloc.body_total, depths, self.budget)
        topic_lines = "\n".join(
            f"- {t.topic} (depth: {t.target_depth}, about {w} words; angles: {', '.join(t.angles) or 'n/a'})"
            for t, w in zip(plan.selected_topics, weighted)
        )
        summaries = "\n\n".join(f"{r.topic}:\n{r.synthesized_content[:800]}" for r in research.results)
        return (
            f"EPISODE: {plan.episode_title}\n"
            f"DIFFERENTIATION STRATEGY: {plan.differentiation_strategy}\n\n"
            f"TOPICS:\n{topic_lines}\n\nRESEARCH SUMMARIES:\n{summaries}\n\n"
            f"Design the narrative structure for a {target_word_count}-word "
            f"({length_class(target_word_count, self.budget)}) solo news script.\n"
            f"- introduction: about {alloc.introduction} words, with an approach, a hook and the topics previewed\n"
            f"- bodySections: {body_section_count(target_word_count, self.budget)} sections sharing "
            f"{alloc.body_total} words, weighted toward deeper topics\n"
            f"- conclusion: about {alloc.conclusion} words\n"
            "Every body section needs a sectionTitle, topicReference, contentApproach, 2-4 keyPoints and "
            "transitions with a leadIn and leadOut. Word counts must add up to the total.\n\n"
            "Respond with ONLY a JSON object (no markdown):\n"
            '{"introduction": {"approach": "...", "hook": "...", "topics": ["..."], "wordCount": 50}, '
            '"bodySections": [{"sectionTitle": "...", "topicReference": "...", "contentApproach": "...", '
            '"keyPoints": ["..."], "transitions": {"leadIn": "...", "leadOut": "..."}, "wordCount": 100}], '
            '"conclusion": {"summarizationApproach": "...", "finalThoughts": "...", "wordCount": 50}}'
        )

    async def plan(self, plan: EpisodePlan, research: ResearchBundle, target_word_count: int) -> NarrativeStructure:
        """Model outline when valid, deterministic fallback otherwise; always within tolerance."""
        try:
            result = await self.provider.generate(self._prompt(plan, research, target_word_count),
                                                  temperature=0.4, max_tokens=2500)
            structure = validate_structure(result.text, target_word_count)
        except Exception as e:
            logger.warning(f"Narrative planning fell back to deterministic outline: {e}")
            return fallback_structure(plan, target_word_count, self.budget)

        total = structure.section_word_total()
        structure = rescale_structure(structure, target_word_count, self.budget)
        logger.info(f"Narrative outline: {len(structure.body_sections)} sections, "
                    f"{total} -> {structure.section_word_total()} words (target {target_word_count})")
        return structure


def section_budget_lines(structure: NarrativeStructure) -> List[str]:
    """Human-readable outline lines used in generation prompts."""
    lines = [
        f"INTRODUCTION (~{structure.introduction.word_count} words): {structure.introduction.approach}. "
        f"Hook: {structure.introduction.hook}",
    ]
    for i, s in enumerate(structure.body_sections, 1):
        points = "; ".join(s.key_points) or "n/a"
        lines.append(
            f"SECTION {i} (~{s.word_count} words) on {s.topic_reference or s.section_title}: "
            f"{s.content_approach}. Key points: {points}. "
            f"Lead in: \"{s.transitions.lead_in}\" Lead out: \"{s.transitions.lead_out}\""
        )
    lines.append(
        f"CONCLUSION (~{structure.conclusion.word_count} words): "
        f"{structure.conclusion.summarization_approach}. Final thought: {structure.conclusion.final_thoughts}"
    )
    return lines
