"""Type definitions for the newscast pipeline.

TypedDict interfaces for the records exchanged with the episode store and for
the return value of plan_and_generate_episode(), documenting the data
contracts at the pipeline boundary.
"""

from typing import TypedDict, List, Optional, Dict, Any, Union


class SourceRef(TypedDict, total=False):
    url: str
    title: str


class PodcastRecord(TypedDict, total=False):
    """Podcast fields the pipeline reads from the store."""
    id: str
    title: str
    description: str
    prompt: str
    sources: List[Union[SourceRef, str]]
    episode_length: int                 # minutes


class EpisodeRecord(TypedDict, total=False):
    """A previously published episode, as read from the store."""
    id: str
    title: str
    content: str
    bullet_points: List[str]
    sources: List[Union[SourceRef, str]]
    created_at: str                     # ISO timestamp


class NewEpisode(TypedDict):
    """Fields written back to the store for a generated episode."""
    title: str
    description: str
    content: str
    sources: List[str]
    bullet_points: List[str]


class EpisodeResult(TypedDict, total=False):
    """Return type of plan_and_generate_episode().

    Keys:
        content:           Final script text
        sources:           Deduped research sources
        adherence_metrics: Structure/balance/transition/overall scores (0-100)
        title:             Episode title (<= 100 chars)
        description:       Episode description (<= 150 chars)
        bullet_points:     Compact summary used by later history analysis
        word_count:        Words in content
        target_word_count: Word budget the script was planned for
        validation:        Differentiation verdict (ValidationResult dump)
        run_log:           Stage timings (RunLog.summary())
    """
    content: str
    sources: List[str]
    adherence_metrics: Dict[str, int]
    title: str
    description: str
    bullet_points: List[str]
    word_count: int
    target_word_count: int
    validation: Dict[str, Any]
    run_log: Dict[str, Any]
    feedback: Optional[str]
