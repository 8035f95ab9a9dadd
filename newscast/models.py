"""
Pydantic records passed between pipeline stages.

Fields are snake_case with camelCase aliases, so JSON emitted by the
generative provider validates directly. Score ranges are enforced at
construction; stages that adapt loose model output clamp first
(see utils.clamp_score).
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from newscast import config


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
class HistoryTopic(_Record):
    topic: str
    frequency: int = Field(default=1, ge=0)


class HistorySummary(_Record):
    """What previous episodes already covered."""
    recent_topics: List[HistoryTopic] = []
    covered_sources: Set[str] = set()
    recurrent_themes: List[str] = []
    episode_count: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------
class CandidateTopic(_Record):
    """A topic idea produced by topic discovery."""
    topic: str = Field(min_length=1)
    relevance: int = Field(ge=1, le=10)
    query: str = ""
    recency: Optional[str] = None
    rationale: Optional[str] = None
    key_questions: List[str] = []
    sources: List[str] = []
    api_source: Optional[str] = None


class DeepResearchTopic(_Record):
    """A topic selected for layered research."""
    topic: str = Field(min_length=1)
    importance: int = Field(ge=1, le=10)
    newsworthiness: int = Field(ge=1, le=10)
    depth_potential: int = Field(ge=1, le=10)
    rationale: str = ""
    key_questions: List[str] = []
    search_queries: List[str] = []


# ---------------------------------------------------------------------------
# Research
# ---------------------------------------------------------------------------
class ResearchLayer(_Record):
    level: Literal[1, 2, 3]
    queries: List[str] = []
    content: str = ""
    sources: List[str] = []
    key_insights: List[str] = []


class DepthMetrics(_Record):
    factual_density: int = Field(ge=1, le=10)
    insight_score: int = Field(ge=1, le=10)
    contextual_depth: int = Field(ge=1, le=10)
    overall_depth_score: int = Field(ge=1, le=10)

    @classmethod
    def from_scores(cls, factual_density: int, insight_score: int, contextual_depth: int) -> "DepthMetrics":
        """Build metrics with the overall score as the half-up rounded mean."""
        mean = (factual_density + insight_score + contextual_depth) / 3
        return cls(
            factual_density=factual_density,
            insight_score=insight_score,
            contextual_depth=contextual_depth,
            overall_depth_score=math.floor(mean + 0.5),
        )

    @classmethod
    def default(cls) -> "DepthMetrics":
        s = config.DEFAULT_DEPTH_SCORE
        return cls.from_scores(s, s, s)


class LayeredResearchResult(_Record):
    topic: str
    layers: List[ResearchLayer] = Field(min_length=3, max_length=3)
    synthesized_content: str = ""
    depth_metrics: DepthMetrics
    sources: List[str] = []
    error: Optional[str] = None


class ResearchBundle(_Record):
    """Layered research for every selected topic of one episode."""
    results: List[LayeredResearchResult] = []
    topic_distribution: Dict[str, int] = {}
    all_sources: List[str] = []


# ---------------------------------------------------------------------------
# Episode plan and narrative structure
# ---------------------------------------------------------------------------
TargetDepth = Literal["deep", "medium", "overview"]


class PlannedTopic(_Record):
    topic: str = Field(min_length=1)
    rationale: str = ""
    target_depth: TargetDepth = "medium"
    angles: List[str] = []
    further_research_needed: bool = False

    @field_validator("target_depth", mode="before")
    @classmethod
    def _normalize_depth(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class EpisodePlan(_Record):
    episode_title: str = Field(min_length=1)
    selected_topics: List[PlannedTopic] = Field(min_length=1)
    differentiation_strategy: str = ""


class Introduction(_Record):
    approach: str = ""
    hook: str = ""
    topics: List[str] = []
    word_count: int = Field(ge=0)


class Transitions(_Record):
    lead_in: str = ""
    lead_out: str = ""


class BodySection(_Record):
    section_title: str = ""
    topic_reference: str = ""
    content_approach: str = ""
    key_points: List[str] = []
    transitions: Transitions = Field(default_factory=Transitions)
    word_count: int = Field(ge=0)


class Conclusion(_Record):
    summarization_approach: str = ""
    final_thoughts: str = ""
    word_count: int = Field(ge=0)


class AdherenceMetrics(_Record):
    structure_score: int = Field(ge=0, le=100)
    balance_score: int = Field(ge=0, le=100)
    transition_score: int = Field(ge=0, le=100)
    overall_adherence: int = Field(ge=0, le=100)


class NarrativeStructure(_Record):
    """Word-budgeted outline a script must follow."""
    introduction: Introduction
    body_sections: List[BodySection]
    conclusion: Conclusion
    overall_word_count: int = Field(ge=1)
    adherence_metrics: Optional[AdherenceMetrics] = None

    def section_word_total(self) -> int:
        return (
            self.introduction.word_count
            + sum(s.word_count for s in self.body_sections)
            + self.conclusion.word_count
        )


# ---------------------------------------------------------------------------
# Differentiation
# ---------------------------------------------------------------------------
class ValidationResult(_Record):
    similarity_score: int = Field(ge=0, le=100)
    unique_elements: List[str] = []
    redundant_elements: List[str] = []
    is_passing: bool = True
    improvement_suggestions: List[str] = []
    improved_content: Optional[str] = None
    assessment: str = ""
    rewrite_attempted: bool = False


# ---------------------------------------------------------------------------
# Budget configuration
# ---------------------------------------------------------------------------
@dataclass
class BudgetConfig:
    """Word-budget constants, overridable per run."""
    words_per_minute: int = config.WORDS_PER_MINUTE
    words_per_topic: int = config.WORDS_PER_TOPIC
    min_topics: int = config.MIN_DEEP_TOPICS
    max_topics: int = config.MAX_DEEP_TOPICS
    default_target_words: int = config.DEFAULT_TARGET_WORDS
    length_targets: Dict[str, int] = field(default_factory=lambda: dict(config.LENGTH_TARGETS))
    body_sections: Dict[str, int] = field(default_factory=lambda: dict(config.BODY_SECTIONS))
    depth_multipliers: Dict[str, float] = field(default_factory=lambda: dict(config.DEPTH_MULTIPLIERS))
    intro_share: float = config.INTRO_SHARE
    conclusion_share: float = config.CONCLUSION_SHARE
    tolerance: float = config.WORD_COUNT_TOLERANCE
