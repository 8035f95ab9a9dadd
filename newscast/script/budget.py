"""
Word-budget math for episode scripts.

Everything here is a pure function of the target word count and a
BudgetConfig, so tests can vary the constants independently.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from newscast.models import BudgetConfig, NarrativeStructure
from newscast.pipeline_types import PodcastRecord

logger = logging.getLogger(__name__)

_LENGTH_PATTERN = re.compile(
    r'episode\s+(?:length|duration):\s*(\d+)\s*(minutes|minute|min|words|word)', re.IGNORECASE)


def _round(x: float) -> int:
    """Half-up rounding."""
    return int(math.floor(x + 0.5))


def derive_topic_count(target_word_count: int, budget: BudgetConfig = None) -> int:
    """K = clamp(min_topics, max_topics, floor(w / words_per_topic))."""
    budget = budget or BudgetConfig()
    k = target_word_count // budget.words_per_topic
    return max(budget.min_topics, min(budget.max_topics, k))


def length_class(target_word_count: int, budget: BudgetConfig = None) -> str:
    """short if w <= short target, medium if w <= medium target, else long."""
    budget = budget or BudgetConfig()
    if target_word_count <= budget.length_targets['short']:
        return 'short'
    if target_word_count <= budget.length_targets['medium']:
        return 'medium'
    return 'long'


def resolve_word_count(length: Union[str, int], budget: BudgetConfig = None) -> int:
    """Map a length class ('short'|'medium'|'long') or explicit count to words."""
    budget = budget or BudgetConfig()
    if isinstance(length, str) and not length.strip().isdigit():
        try:
            return budget.length_targets[length.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown length class: {length!r}")
    words = int(length)
    if words <= 0:
        raise ValueError(f"Word count must be positive, got {words}")
    return words


def body_section_count(target_word_count: int, budget: BudgetConfig = None) -> int:
    budget = budget or BudgetConfig()
    return budget.body_sections[length_class(target_word_count, budget)]


@dataclass
class BudgetAllocation:
    """Per-part word targets; always sums exactly to total."""
    total: int
    introduction: int
    body: List[int]
    conclusion: int

    @property
    def body_total(self) -> int:
        return sum(self.body)


def split_evenly(total: int, parts: int) -> List[int]:
    """Equal split with the rounding remainder added to the first part."""
    if parts <= 0:
        return []
    base = total // parts
    shares = [base] * parts
    shares[0] += total - base * parts
    return shares


def base_allocation(target_word_count: int, budget: BudgetConfig = None,
                    sections: Optional[int] = None) -> BudgetAllocation:
    """Intro and conclusion shares, remainder split across body sections."""
    budget = budget or BudgetConfig()
    intro = _round(target_word_count * budget.intro_share)
    conclusion = _round(target_word_count * budget.conclusion_share)
    body_total = max(0, target_word_count - intro - conclusion)
    if sections is None:
        sections = body_section_count(target_word_count, budget)
    return BudgetAllocation(
        total=target_word_count,
        introduction=intro,
        body=split_evenly(body_total, sections),
        conclusion=conclusion,
    )


def weighted_body_allocation(body_total: int, depths: List[str], budget: BudgetConfig = None) -> List[int]:
    """Split body words by depth multiplier (deep > medium > overview).

    Shares are floored and the remainder goes to the first section, so the
    result sums exactly to body_total.
    """
    budget = budget or BudgetConfig()
    if not depths:
        return []
    weights = [budget.depth_multipliers.get(d, 1.0) for d in depths]
    weight_sum = sum(weights)
    shares = [int(body_total * w / weight_sum) for w in weights]
    shares[0] += body_total - sum(shares)
    return shares


def within_tolerance(total: int, target: int, tolerance: float) -> bool:
    return abs(total - target) <= tolerance * target


def rescale_structure(structure: NarrativeStructure, target_word_count: int,
                      budget: BudgetConfig = None) -> NarrativeStructure:
    """Return a copy whose section word counts sum to within tolerance of the target.

    Structures already inside the tolerance band are returned unchanged (as a
    copy). Otherwise every section is scaled by target/total and the rounding
    difference is absorbed by the first body section, so the sum is exact.
    """
    budget = budget or BudgetConfig()
    fixed = structure.model_copy(deep=True)
    fixed.overall_word_count = target_word_count
    total = fixed.section_word_total()
    if total > 0 and within_tolerance(total, target_word_count, budget.tolerance):
        return fixed

    if total == 0:
        alloc = base_allocation(target_word_count, budget, sections=len(fixed.body_sections))
        fixed.introduction.word_count = alloc.introduction
        fixed.conclusion.word_count = alloc.conclusion
        for section, words in zip(fixed.body_sections, alloc.body):
            section.word_count = words
    else:
        factor = target_word_count / total
        logger.info(f"Rescaling narrative word counts: {total} -> {target_word_count} (x{factor:.2f})")
        fixed.introduction.word_count = _round(fixed.introduction.word_count * factor)
        fixed.conclusion.word_count = _round(fixed.conclusion.word_count * factor)
        for section in fixed.body_sections:
            section.word_count = _round(section.word_count * factor)

    diff = target_word_count - fixed.section_word_total()
    if fixed.body_sections:
        first = fixed.body_sections[0]
        first.word_count = max(0, first.word_count + diff)
    else:
        fixed.introduction.word_count = max(0, fixed.introduction.word_count + diff)
    return fixed


def parse_length_from_prompt(prompt: str, budget: BudgetConfig = None) -> Optional[int]:
    """Read 'Episode length: 5 minutes' / 'Episode duration: 600 words' from a prompt."""
    budget = budget or BudgetConfig()
    m = _LENGTH_PATTERN.search(prompt or "")
    if not m:
        return None
    amount = int(m.group(1))
    if amount <= 0:
        return None
    if m.group(2).lower().startswith("word"):
        return amount
    return amount * budget.words_per_minute


def resolve_target_word_count(podcast: PodcastRecord, explicit: Union[str, int, None] = None,
                              budget: BudgetConfig = None) -> int:
    """Pick the word budget: explicit > podcast episode_length > prompt > default."""
    budget = budget or BudgetConfig()
    if explicit is not None:
        return resolve_word_count(explicit, budget)
    minutes = podcast.get("episode_length")
    if minutes:
        return int(minutes) * budget.words_per_minute
    from_prompt = parse_length_from_prompt(podcast.get("prompt", ""), budget)
    if from_prompt:
        return from_prompt
    return budget.default_target_words
