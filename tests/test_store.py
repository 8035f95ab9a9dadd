"""
Tests for store.py and run_log.py.
"""

import json

import pytest

from newscast.run_log import STAGE_METADATA, RunLog
from newscast.store import InMemoryEpisodeStore, JsonEpisodeStore


def _new_episode(title="Rates on Hold"):
    return {"title": title, "description": "d", "content": "c", "sources": ["https://x"],
            "bullet_points": ["b"]}


class TestInMemoryStore:

    def test_recent_episodes_newest_first(self, sample_podcast, sample_episodes):
        store = InMemoryEpisodeStore({"markets-brief": sample_podcast},
                                     {"markets-brief": list(reversed(sample_episodes))})
        recent = store.get_recent_episodes("markets-brief", 2)
        assert [e["id"] for e in recent] == ["ep3", "ep2"]

    def test_create_episode(self, sample_podcast):
        store = InMemoryEpisodeStore({"markets-brief": sample_podcast})
        record = store.create_episode("markets-brief", _new_episode())
        assert record["id"]
        assert record["created_at"]
        assert store.get_recent_episodes("markets-brief", 5) == [record]

    def test_unknown_podcast(self):
        with pytest.raises(KeyError):
            InMemoryEpisodeStore().get_podcast("nope")


class TestJsonStore:

    def test_round_trip(self, tmp_path, sample_podcast, sample_episodes):
        path = tmp_path / "store.json"
        podcast = {k: v for k, v in sample_podcast.items() if k != "id"}
        path.write_text(json.dumps({"podcasts": {"markets-brief": podcast},
                                    "episodes": {"markets-brief": sample_episodes}}))
        store = JsonEpisodeStore(path)
        assert store.get_podcast("markets-brief")["id"] == "markets-brief"
        assert [e["id"] for e in store.get_recent_episodes("markets-brief", 1)] == ["ep3"]

        record = store.create_episode("markets-brief", _new_episode("Fresh"))
        data = json.loads(path.read_text())
        assert len(data["episodes"]["markets-brief"]) == 4
        assert JsonEpisodeStore(path).get_recent_episodes("markets-brief", 1)[0]["id"] == record["id"]

    def test_missing_file(self, tmp_path):
        store = JsonEpisodeStore(tmp_path / "missing.json")
        assert store.get_recent_episodes("any", 5) == []
        with pytest.raises(KeyError):
            store.get_podcast("any")


class TestRunLog:

    def test_lifecycle(self):
        run_log = RunLog("run-1")
        run_log.start_run()
        run_log.stage_started("history_analysis")
        run_log.stage_completed("history_analysis", episodes=3)
        run_log.stage_started("topic_discovery")
        run_log.stage_failed("topic_discovery", "exhausted")
        run_log.finish_run("failed", "exhausted")

        summary = run_log.summary()
        assert summary["run_id"] == "run-1"
        assert summary["status"] == "failed"
        assert summary["error"] == "exhausted"
        assert summary["total_seconds"] is not None
        assert summary["stages"]["history_analysis"]["details"] == {"episodes": 3}
        assert summary["stages"]["topic_discovery"]["error"] == "exhausted"
        assert run_log.completed_stages() == ["history_analysis"]
        json.dumps(summary)

    def test_nine_stages(self):
        assert list(STAGE_METADATA) == [
            "history_analysis", "topic_discovery", "prioritization", "deep_research",
            "episode_planning", "narrative_planning", "content_generation", "differentiation",
            "finalization",
        ]
