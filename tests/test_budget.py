"""
Unit tests for script/budget.py word-budget math.
"""

import pytest

from newscast.models import BodySection, BudgetConfig, Conclusion, Introduction, NarrativeStructure
from newscast.script.budget import (
    base_allocation,
    body_section_count,
    derive_topic_count,
    length_class,
    parse_length_from_prompt,
    rescale_structure,
    resolve_target_word_count,
    resolve_word_count,
    split_evenly,
    weighted_body_allocation,
    within_tolerance,
)


def _structure(intro, body, conclusion, overall=1):
    return NarrativeStructure(
        introduction=Introduction(approach="a", word_count=intro),
        body_sections=[BodySection(section_title=f"s{i}", word_count=w) for i, w in enumerate(body)],
        conclusion=Conclusion(word_count=conclusion),
        overall_word_count=overall,
    )


# ---------------------------------------------------------------------------
# Topic count and length class
# ---------------------------------------------------------------------------
class TestTopicCount:

    @pytest.mark.parametrize("words,expected", [
        (100, 1), (375, 1), (599, 1), (600, 2), (800, 2), (900, 3), (1500, 3), (5000, 3),
    ])
    def test_derive_topic_count(self, words, expected):
        assert derive_topic_count(words) == expected

    def test_topic_count_is_monotone(self):
        counts = [derive_topic_count(w) for w in range(50, 6000, 25)]
        assert counts == sorted(counts)
        assert min(counts) == 1 and max(counts) == 3

    def test_custom_budget(self):
        budget = BudgetConfig(words_per_topic=100, max_topics=5)
        assert derive_topic_count(450, budget) == 4
        assert derive_topic_count(2000, budget) == 5


class TestLengthClass:

    @pytest.mark.parametrize("words,expected", [
        (375, "short"), (800, "short"), (801, "medium"), (1500, "medium"), (1501, "long"),
    ])
    def test_boundaries(self, words, expected):
        assert length_class(words) == expected

    def test_body_section_count(self):
        assert body_section_count(375) == 3
        assert body_section_count(1200) == 4
        assert body_section_count(2500) == 5


class TestResolveWordCount:

    def test_length_classes(self):
        assert resolve_word_count("short") == 800
        assert resolve_word_count("Medium") == 1500
        assert resolve_word_count("long") == 2500

    def test_explicit_counts(self):
        assert resolve_word_count(900) == 900
        assert resolve_word_count("1200") == 1200

    def test_rejects_unknown_class(self):
        with pytest.raises(ValueError):
            resolve_word_count("epic")

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            resolve_word_count(0)


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------
class TestAllocation:

    def test_split_evenly_remainder_goes_first(self):
        assert split_evenly(263, 3) == [89, 87, 87]
        assert split_evenly(10, 0) == []

    def test_base_allocation_short_episode(self):
        alloc = base_allocation(375)
        assert alloc.introduction == 56
        assert alloc.conclusion == 56
        assert len(alloc.body) == 3
        assert alloc.introduction + alloc.body_total + alloc.conclusion == 375
        assert 38 <= alloc.introduction <= 56
        assert 38 <= alloc.conclusion <= 56

    @pytest.mark.parametrize("words", [150, 375, 640, 999, 1500, 2500, 4321])
    def test_base_allocation_sums_exactly(self, words):
        alloc = base_allocation(words)
        assert alloc.introduction + alloc.body_total + alloc.conclusion == words

    def test_weighted_body_allocation(self):
        shares = weighted_body_allocation(300, ["deep", "medium", "overview"])
        assert shares == [142, 93, 65]
        assert sum(shares) == 300

    def test_weighted_deep_gets_more(self):
        shares = weighted_body_allocation(500, ["overview", "deep"])
        assert sum(shares) == 500
        assert shares[1] > shares[0]

    def test_weighted_empty(self):
        assert weighted_body_allocation(500, []) == []


# ---------------------------------------------------------------------------
# Rescaling
# ---------------------------------------------------------------------------
class TestRescale:

    def test_within_tolerance_is_unchanged(self):
        structure = _structure(60, [140, 130], 60)
        fixed = rescale_structure(structure, 400)
        assert fixed.section_word_total() == 390
        assert fixed.overall_word_count == 400
        assert fixed.body_sections[0].word_count == 140

    def test_scales_proportionally(self):
        structure = _structure(100, [100, 100], 100)
        fixed = rescale_structure(structure, 800)
        assert [s.word_count for s in fixed.body_sections] == [200, 200]
        assert fixed.introduction.word_count == 200
        assert fixed.section_word_total() == 800

    def test_does_not_mutate_input(self):
        structure = _structure(100, [100, 100], 100)
        rescale_structure(structure, 1600)
        assert structure.section_word_total() == 400

    def test_zero_total_uses_base_allocation(self):
        structure = _structure(0, [0, 0], 0)
        fixed = rescale_structure(structure, 375)
        assert fixed.section_word_total() == 375
        assert fixed.introduction.word_count == 56

    def test_within_tolerance_for_many_targets(self):
        structure = _structure(37, [211, 48, 97], 12)
        for target in range(100, 5000, 37):
            fixed = rescale_structure(structure, target)
            assert within_tolerance(fixed.section_word_total(), target, 0.05), target


# ---------------------------------------------------------------------------
# Target word count resolution
# ---------------------------------------------------------------------------
class TestTargetWordCount:

    def test_parse_minutes_from_prompt(self):
        assert parse_length_from_prompt("Tech news. Episode length: 4 minutes") == 500

    def test_parse_words_from_prompt(self):
        assert parse_length_from_prompt("Episode duration: 600 words, upbeat tone") == 600

    def test_parse_nothing(self):
        assert parse_length_from_prompt("A show about markets") is None
        assert parse_length_from_prompt(None) is None

    def test_explicit_wins(self):
        podcast = {"episode_length": 10, "prompt": "Episode length: 2 minutes"}
        assert resolve_target_word_count(podcast, "medium") == 1500
        assert resolve_target_word_count(podcast, 900) == 900

    def test_episode_length_minutes(self):
        assert resolve_target_word_count({"episode_length": 8}) == 1000

    def test_prompt_then_default(self):
        assert resolve_target_word_count({"prompt": "Episode length: 600 words"}) == 600
        assert resolve_target_word_count({}) == 375
