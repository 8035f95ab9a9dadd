"""
Tests for script/synthesizer.py and script/adherence.py.
"""

import asyncio

import pytest

from newscast.errors import ContentTooShortError, ProviderFailure
from newscast.models import AdherenceMetrics, EpisodePlan, PlannedTopic, ValidationResult
from newscast.script.adherence import (
    create_adherence_feedback, default_adherence, evaluate_adherence, word_count_adherence,
)
from newscast.script.synthesizer import (
    GENERIC_BULLETS, ContentSynthesizer, bullet_points_from_text, episode_metadata,
)

SCRIPT_MARKER = "Write the complete script"
REWRITE_MARKER = "Rewrite ONLY the redundant parts"
BULLET_MARKER = "Summarize the topics and key points"
ADHERENCE_MARKER = "how well the script follows the outline"

SCRIPT = ("The central bank kept its policy rate where it was, and markets barely moved. "
          "For borrowers the message is patience. ") * 6


class TestGenerate:

    def test_prompt_and_output(self, make_provider, sample_structure, sample_research, sample_plan, sample_podcast):
        provider = make_provider([(SCRIPT_MARKER, "## Intro\n**Welcome** back.\n" + SCRIPT)])
        text = asyncio.run(ContentSynthesizer(provider).generate(
            sample_structure, sample_research, sample_plan, sample_podcast))
        assert text.startswith("Intro\nWelcome back.")
        assert "**" not in text
        prompt = provider.calls[0]["prompt"]
        assert "SECTION 1 (~160 words)" in prompt
        assert "RESEARCH ON CENTRAL BANK HOLDS RATES" in prompt
        assert "No speaker labels" in prompt
        assert "about 375 words in total" in prompt
        assert provider.calls[0]["max_tokens"] == 1000

    def test_short_output_raises(self, make_provider, sample_structure, sample_research, sample_plan, sample_podcast):
        provider = make_provider([(SCRIPT_MARKER, "Sorry, I can't.")])
        with pytest.raises(ContentTooShortError) as exc:
            asyncio.run(ContentSynthesizer(provider, short_policy="raise").generate(
                sample_structure, sample_research, sample_plan, sample_podcast))
        assert exc.value.stage == "content_generation"

    def test_provider_error_treated_as_empty(self, make_provider, sample_structure, sample_research,
                                             sample_plan, sample_podcast):
        provider = make_provider(default=ProviderFailure("down"))
        with pytest.raises(ContentTooShortError):
            asyncio.run(ContentSynthesizer(provider, short_policy="raise").generate(
                sample_structure, sample_research, sample_plan, sample_podcast))

    def test_concatenate_policy(self, make_provider, sample_structure, sample_research, sample_plan, sample_podcast):
        provider = make_provider([(SCRIPT_MARKER, "")])
        text = asyncio.run(ContentSynthesizer(provider, short_policy="concatenate").generate(
            sample_structure, sample_research, sample_plan, sample_podcast))
        assert text.startswith("The central bank kept its policy rate unchanged")
        assert "New export rules restrict" in text

    def test_concatenate_with_nothing_usable(self, make_provider, sample_structure, sample_research,
                                             sample_plan, sample_podcast):
        for result in sample_research.results:
            result.error = "search outage"
        provider = make_provider([(SCRIPT_MARKER, "")])
        with pytest.raises(ContentTooShortError):
            asyncio.run(ContentSynthesizer(provider, short_policy="concatenate").generate(
                sample_structure, sample_research, sample_plan, sample_podcast))


class TestRewrite:

    def _validation(self):
        return ValidationResult(similarity_score=72, redundant_elements=["Bond yield recap"],
                                improvement_suggestions=["Focus on borrowers"], is_passing=False)

    def test_rewrite(self, make_provider, sample_history):
        rewritten = "A fresh angle on borrowers and what the hold means for them. " * 3
        provider = make_provider([(REWRITE_MARKER, rewritten)])
        text = asyncio.run(ContentSynthesizer(provider).rewrite(SCRIPT, self._validation(), sample_history))
        assert text == rewritten.strip()
        prompt = provider.calls[0]["prompt"]
        assert "- Bond yield recap" in prompt
        assert "similarity 72/100" in prompt

    def test_rewrite_failure_keeps_draft(self, make_provider, sample_history):
        provider = make_provider(default=ProviderFailure("down"))
        assert asyncio.run(ContentSynthesizer(provider).rewrite(SCRIPT, self._validation(), sample_history)) == SCRIPT

    def test_short_rewrite_keeps_draft(self, make_provider, sample_history):
        provider = make_provider([(REWRITE_MARKER, "Too short.")])
        assert asyncio.run(ContentSynthesizer(provider).rewrite(SCRIPT, self._validation(), sample_history)) == SCRIPT


class TestBulletPoints:

    def test_json_array(self):
        assert bullet_points_from_text('["Rates held", "Chip rules tightened"]') == [
            "Rates held", "Chip rules tightened"]

    def test_dash_lines(self):
        assert bullet_points_from_text("Summary:\n- Rates held\n* Chips restricted\nDone") == [
            "Rates held", "Chips restricted"]

    def test_capped_at_five(self):
        assert len(bullet_points_from_text('["1", "2", "3", "4", "5", "6", "7"]')) == 5

    def test_generic_fallback(self):
        assert bullet_points_from_text("Nothing useful here.") == GENERIC_BULLETS

    def test_generate_bullet_points_provider_error(self, make_provider):
        provider = make_provider(default=ProviderFailure("down"))
        assert asyncio.run(ContentSynthesizer(provider).generate_bullet_points(SCRIPT)) == GENERIC_BULLETS

    def test_generate_bullet_points(self, make_provider):
        provider = make_provider([(BULLET_MARKER, '["Rates held"]')])
        assert asyncio.run(ContentSynthesizer(provider).generate_bullet_points(SCRIPT)) == ["Rates held"]


class TestEpisodeMetadata:

    def test_title_and_description(self, sample_plan):
        title, description = episode_metadata(sample_plan, SCRIPT)
        assert title == "Rates on Hold and Chips on the Line"
        assert description == "The central bank kept its policy rate where it was, and markets barely moved."

    def test_limits(self):
        plan = EpisodePlan(episode_title="Word " * 40, selected_topics=[PlannedTopic(topic="t")])
        title, description = episode_metadata(plan, "Long sentence " * 30 + ".")
        assert len(title) <= 100
        assert len(description) <= 150
        assert description.endswith("...")

    def test_empty_content_uses_title(self, sample_plan):
        _, description = episode_metadata(sample_plan, "")
        assert description == "Rates on Hold and Chips on the Line"


class TestAdherence:

    def test_word_count_adherence(self):
        assert word_count_adherence(375, 375) == 100
        assert word_count_adherence(300, 400) == 75
        assert word_count_adherence(1200, 400) == 0
        assert word_count_adherence(10, 0) == 0

    def test_evaluate(self, make_provider, sample_structure):
        provider = make_provider([(ADHERENCE_MARKER,
                                   '{"structureScore": 80, "balanceScore": 140, "transitionScore": "70", '
                                   '"overallAdherence": 78}')])
        metrics = asyncio.run(evaluate_adherence(provider, SCRIPT, sample_structure))
        assert metrics == AdherenceMetrics(structure_score=80, balance_score=100,
                                           transition_score=70, overall_adherence=78)

    def test_evaluate_failure_defaults(self, make_provider, sample_structure):
        provider = make_provider(default=ProviderFailure("down"))
        metrics = asyncio.run(evaluate_adherence(provider, SCRIPT, sample_structure))
        assert metrics == default_adherence()
        assert metrics.overall_adherence == 50

    def test_feedback(self, sample_structure):
        metrics = AdherenceMetrics(structure_score=85, balance_score=40, transition_score=90,
                                   overall_adherence=70)
        feedback = create_adherence_feedback(metrics, sample_structure, SCRIPT)
        assert feedback.startswith("CONTENT ADHERENCE REPORT")
        assert "/ 375 target" in feedback
        assert "Needs attention: balance" in feedback
        assert "Rates (160)" in feedback
