"""Shared pytest fixtures for the newscast test suite."""

import re

import pytest

from newscast.errors import ProviderFailure
from newscast.models import (
    BodySection, Conclusion, DeepResearchTopic, DepthMetrics, EpisodePlan, HistorySummary,
    HistoryTopic, Introduction, LayeredResearchResult, NarrativeStructure, PlannedTopic,
    ResearchBundle, ResearchLayer,
)
from newscast.providers.generative import GenerationResult
from newscast.providers.search import SearchResponse


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Set minimum env vars so modules can be imported without real services."""
    monkeypatch.setenv("MODEL_NAME", "test-model")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:9999/v1")
    monkeypatch.setenv("LLM_API_KEY", "NA")
    monkeypatch.setenv("FAST_MODEL_NAME", "test-fast")
    monkeypatch.setenv("FAST_LLM_BASE_URL", "http://localhost:9999/v1")
    monkeypatch.setenv("SEARXNG_URL", "http://localhost:9998")


@pytest.fixture
def tmp_output_dir(tmp_path):
    """Temporary output directory for test artifacts."""
    d = tmp_path / "test_output"
    d.mkdir()
    return d


@pytest.fixture
def mock_llm_response():
    """Factory fixture for mock OpenAI LLM responses.

    `raw` becomes the model_dump() payload, for citation extraction tests.
    """
    class MockChoice:
        def __init__(self, content):
            self.message = type('obj', (object,), {'content': content})()

    class MockResponse:
        def __init__(self, content, raw=None):
            self.choices = [MockChoice(content)]
            self._raw = raw

        def model_dump(self):
            return self._raw or {}

    def _make(content="test response", raw=None):
        return MockResponse(content, raw)

    return _make


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------
class FakeProvider:
    """Generative provider answering by prompt marker.

    routes: list of (marker, response); the first marker found in the prompt
    wins. A response may be a string, a GenerationResult, an exception
    instance (raised) or a callable taking the prompt.
    """

    def __init__(self, routes=None, default=None, name="fake"):
        self.routes = list(routes or [])
        self.default = default if default is not None else ProviderFailure("no route", provider=name)
        self.name = name
        self.calls = []

    async def generate(self, prompt, temperature=0.7, max_tokens=2000, web_search=False,
                       system_prompt=None):
        self.calls.append({"prompt": prompt, "temperature": temperature,
                           "max_tokens": max_tokens, "web_search": web_search})
        response = self.default
        for marker, candidate in self.routes:
            if marker in prompt:
                response = candidate
                break
        if callable(response) and not isinstance(response, Exception):
            response = response(prompt)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, GenerationResult):
            return response
        return GenerationResult(text=response)

    def calls_with(self, marker):
        return [c for c in self.calls if marker in c["prompt"]]


class FakeSearchProvider:
    """Search provider returning one canned article per query."""

    def __init__(self, fail_on=(), fail_all=False, empty=False):
        self.fail_on = set(fail_on)
        self.fail_all = fail_all
        self.empty = empty
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.fail_all or query in self.fail_on:
            raise ProviderFailure(f"search failed for '{query}'", provider="search")
        if self.empty:
            return SearchResponse(query=query)
        slug = re.sub(r"[^a-z0-9]+", "-", query.lower()).strip("-")
        return SearchResponse(
            query=query,
            content=f"Reporting on {query}: officials confirmed the decision on Tuesday.",
            sources=[f"https://news.example/{slug}"],
        )


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def make_search():
    return FakeSearchProvider


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_podcast():
    return {
        "id": "markets-brief",
        "title": "Markets Brief",
        "description": "Short, sharp coverage of central banks and global markets.",
        "prompt": "central banks and global markets",
        "sources": [{"url": "https://www.reuters.com/markets/"}, "https://www.ft.com/markets"],
        "episode_length": 3,
    }


@pytest.fixture
def sample_episodes():
    """Three past episodes, newest first."""
    return [
        {
            "id": "ep3",
            "title": "Bond Yields Climb",
            "content": "Long-dated yields rose sharply as investors priced in fewer cuts.",
            "bullet_points": ["Ten-year yields at a 16-year high", "Fewer rate cuts expected"],
            "sources": [{"url": "https://news.example/yields"}],
            "created_at": "2026-10-15T08:00:00+00:00",
        },
        {
            "id": "ep2",
            "title": "Oil Supply Cuts",
            "content": "Producers extended output cuts into next year. " * 40,
            "bullet_points": [],
            "sources": ["https://news.example/oil"],
            "created_at": "2026-10-12T08:00:00+00:00",
        },
        {
            "id": "ep1",
            "title": "Inflation Cools",
            "content": "Headline inflation slowed for a third month.",
            "bullet_points": ["Inflation slowed to 3.1 percent"],
            "sources": [],
            "created_at": "2026-10-09T08:00:00+00:00",
        },
    ]


@pytest.fixture
def empty_history():
    return HistorySummary(episode_count=0)


@pytest.fixture
def sample_history():
    return HistorySummary(
        recent_topics=[HistoryTopic(topic="Bond yields", frequency=2),
                       HistoryTopic(topic="Oil supply", frequency=1)],
        covered_sources={"https://news.example/yields"},
        recurrent_themes=["monetary policy"],
        episode_count=3,
    )


@pytest.fixture
def sample_deep_topics():
    return [
        DeepResearchTopic(topic="Central bank holds rates", importance=9, newsworthiness=9,
                          depth_potential=8, rationale="Sets the tone for markets",
                          key_questions=["Why hold now?"],
                          search_queries=["central bank rate decision", "rate hold market reaction"]),
        DeepResearchTopic(topic="Chip export rules", importance=6, newsworthiness=7,
                          depth_potential=6, rationale="Supply chain impact",
                          search_queries=["chip export controls"]),
    ]


@pytest.fixture
def sample_research():
    def result(topic, content):
        return LayeredResearchResult(
            topic=topic,
            layers=[ResearchLayer(level=1), ResearchLayer(level=2), ResearchLayer(level=3)],
            synthesized_content=content,
            depth_metrics=DepthMetrics.from_scores(7, 6, 8),
            sources=[f"https://news.example/{topic.split()[0].lower()}"],
        )

    return ResearchBundle(
        results=[
            result("Central bank holds rates",
                   "The central bank kept its policy rate unchanged, citing slowing inflation "
                   "and a cooling labour market. Markets had priced in the hold. " * 3),
            result("Chip export rules",
                   "New export rules restrict sales of advanced chips and the tools used to make "
                   "them, forcing suppliers to revise guidance. " * 3),
        ],
        topic_distribution={"Central bank holds rates": 60, "Chip export rules": 40},
        all_sources=["https://news.example/central", "https://news.example/chip"],
    )


@pytest.fixture
def sample_plan():
    return EpisodePlan(
        episode_title="Rates on Hold and Chips on the Line",
        selected_topics=[
            PlannedTopic(topic="Central bank holds rates", target_depth="deep",
                         angles=["Market reaction", "What it means for borrowers"]),
            PlannedTopic(topic="Chip export rules", target_depth="overview",
                         angles=["Supplier guidance"]),
        ],
        differentiation_strategy="Lead with borrowers rather than bond markets.",
    )


@pytest.fixture
def sample_structure():
    return NarrativeStructure(
        introduction=Introduction(approach="Preview both stories", hook="Rates held.",
                                  topics=["Central bank holds rates", "Chip export rules"],
                                  word_count=56),
        body_sections=[
            BodySection(section_title="Rates", topic_reference="Central bank holds rates",
                        key_points=["Market reaction"], word_count=160),
            BodySection(section_title="Chips", topic_reference="Chip export rules",
                        key_points=["Supplier guidance"], word_count=103),
        ],
        conclusion=Conclusion(summarization_approach="Recap", final_thoughts="Watch the next meeting.",
                              word_count=56),
        overall_word_count=375,
    )
