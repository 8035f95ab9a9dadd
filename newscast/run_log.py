"""
Per-run stage tracking for episode generation.

Records start/finish/failure of each pipeline stage with durations and
stage details, and logs a summary table when the run ends.
"""

import logging
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stage metadata
# ---------------------------------------------------------------------------
STAGE_METADATA = {
    'history_analysis': {
        'name': 'History Analysis',
        'phase': '1',
        'description': 'Summarize recent episodes into covered topics, themes and sources',
    },
    'topic_discovery': {
        'name': 'Topic Discovery',
        'phase': '2',
        'description': 'Direct generation, hybrid merge, then search-then-extract',
    },
    'prioritization': {
        'name': 'Topic Prioritization',
        'phase': '3',
        'description': 'Select the topics worth layered research for this word budget',
    },
    'deep_research': {
        'name': 'Layered Research',
        'phase': '4',
        'description': 'Surface, intermediate and deep research passes per topic (parallel)',
    },
    'episode_planning': {
        'name': 'Episode Planning',
        'phase': '5',
        'description': 'Pick depth and angles per topic',
    },
    'narrative_planning': {
        'name': 'Narrative Budgeting',
        'phase': '6',
        'description': 'Word-budgeted outline with transitions',
    },
    'content_generation': {
        'name': 'Content Generation',
        'phase': '7',
        'description': 'Render the script under format constraints',
    },
    'differentiation': {
        'name': 'Differentiation',
        'phase': '8',
        'description': 'Compare against history, rewrite once if redundant',
    },
    'finalization': {
        'name': 'Finalization',
        'phase': '9',
        'description': 'Adherence scoring, bullet points, title and description',
    },
}


class RunLog:
    """Stage timings and details for one episode-generation run."""

    def __init__(self, run_id: str = "", stage_metadata: dict = None):
        self.run_id = run_id
        self.stage_metadata = stage_metadata or STAGE_METADATA
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.stages: Dict[str, Dict[str, Any]] = {}
        self.status = "pending"
        self.error: Optional[str] = None

    def start_run(self):
        self.start_time = time.time()
        self.status = "running"
        logger.info("=" * 70)
        logger.info("EPISODE GENERATION STARTED %s", self.run_id)
        logger.info("=" * 70)

    def stage_started(self, stage: str):
        meta = self.stage_metadata.get(stage, {'name': stage, 'phase': '?', 'description': ''})
        self.stages[stage] = {'status': 'running', 'started': time.time(), 'details': {}}
        logger.info("PHASE %s/%d: %s - %s", meta['phase'], len(self.stage_metadata),
                    meta['name'].upper(), meta['description'])

    def stage_completed(self, stage: str, **details):
        entry = self.stages.setdefault(stage, {'started': time.time(), 'details': {}})
        entry['status'] = 'completed'
        entry['duration'] = time.time() - entry['started']
        entry['details'].update(details)
        logger.info("  %s completed in %.1fs %s", stage, entry['duration'], details or "")

    def stage_failed(self, stage: str, error: str):
        entry = self.stages.setdefault(stage, {'started': time.time(), 'details': {}})
        entry['status'] = 'failed'
        entry['duration'] = time.time() - entry['started']
        entry['error'] = error
        logger.error("  %s failed after %.1fs: %s", stage, entry['duration'], error)

    def finish_run(self, status: str = "completed", error: str = None):
        self.end_time = time.time()
        self.status = status
        self.error = error
        total = self.end_time - (self.start_time or self.end_time)
        logger.info("=" * 70)
        logger.info("EPISODE GENERATION %s in %.1fs", status.upper(), total)
        for i, (stage, entry) in enumerate(self.stages.items(), 1):
            name = self.stage_metadata.get(stage, {}).get('name', stage)
            logger.info("%d. %-30s %-10s %6.1fs", i, name, entry.get('status', '?'),
                        entry.get('duration', 0.0))
        logger.info("=" * 70)

    def completed_stages(self) -> List[str]:
        return [s for s, e in self.stages.items() if e.get('status') == 'completed']

    def summary(self) -> dict:
        """JSON-serializable view of the run."""
        total = None
        if self.start_time is not None and self.end_time is not None:
            total = round(self.end_time - self.start_time, 3)
        return {
            'run_id': self.run_id,
            'status': self.status,
            'error': self.error,
            'total_seconds': total,
            'stages': {
                stage: {
                    'status': entry.get('status'),
                    'duration': round(entry.get('duration', 0.0), 3),
                    'details': entry.get('details', {}),
                    **({'error': entry['error']} if 'error' in entry else {}),
                }
                for stage, entry in self.stages.items()
            },
        }
