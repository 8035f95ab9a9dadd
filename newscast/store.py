"""
Episode store interface consumed by the pipeline.

The pipeline reads a podcast and its recent episodes and writes back one new
episode. Persistence proper belongs to the host application; this module
provides the interface plus an in-memory store (tests, embedding) and a JSON
file store used by the command line entry point.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

from newscast.pipeline_types import EpisodeRecord, NewEpisode, PodcastRecord

logger = logging.getLogger(__name__)


class EpisodeStore(ABC):
    @abstractmethod
    def get_podcast(self, podcast_id: str) -> PodcastRecord:
        """Return the podcast record; raise KeyError if unknown."""

    @abstractmethod
    def get_recent_episodes(self, podcast_id: str, limit: int) -> List[EpisodeRecord]:
        """Return up to `limit` episodes, newest first."""

    @abstractmethod
    def create_episode(self, podcast_id: str, episode: NewEpisode) -> EpisodeRecord:
        """Persist a new episode and return the stored record."""


def _newest_first(episodes: List[EpisodeRecord]) -> List[EpisodeRecord]:
    return sorted(episodes, key=lambda e: e.get("created_at", ""), reverse=True)


def _stored_episode(episode: NewEpisode) -> EpisodeRecord:
    record: EpisodeRecord = dict(episode)
    record["id"] = uuid.uuid4().hex
    record["created_at"] = datetime.now(timezone.utc).isoformat()
    return record


class InMemoryEpisodeStore(EpisodeStore):
    def __init__(self, podcasts: Dict[str, PodcastRecord] = None,
                 episodes: Dict[str, List[EpisodeRecord]] = None):
        self.podcasts = dict(podcasts or {})
        self.episodes = {k: list(v) for k, v in (episodes or {}).items()}

    def get_podcast(self, podcast_id: str) -> PodcastRecord:
        return self.podcasts[podcast_id]

    def get_recent_episodes(self, podcast_id: str, limit: int) -> List[EpisodeRecord]:
        return _newest_first(self.episodes.get(podcast_id, []))[:limit]

    def create_episode(self, podcast_id: str, episode: NewEpisode) -> EpisodeRecord:
        record = _stored_episode(episode)
        self.episodes.setdefault(podcast_id, []).append(record)
        return record


class JsonEpisodeStore(EpisodeStore):
    """Store backed by one JSON file: {"podcasts": {id: {...}}, "episodes": {id: [...]}}."""

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {"podcasts": {}, "episodes": {}}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        data.setdefault("podcasts", {})
        data.setdefault("episodes", {})
        return data

    def _save(self, data: dict):
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False, default=str),
                             encoding="utf-8")

    def get_podcast(self, podcast_id: str) -> PodcastRecord:
        podcast = self._load()["podcasts"][podcast_id]
        podcast.setdefault("id", podcast_id)
        return podcast

    def get_recent_episodes(self, podcast_id: str, limit: int) -> List[EpisodeRecord]:
        return _newest_first(self._load()["episodes"].get(podcast_id, []))[:limit]

    def create_episode(self, podcast_id: str, episode: NewEpisode) -> EpisodeRecord:
        data = self._load()
        record = _stored_episode(episode)
        data["episodes"].setdefault(podcast_id, []).append(record)
        self._save(data)
        logger.info(f"Episode saved to {self.path.name}: {record['title']}")
        return record
