#!/usr/bin/env python3
"""
Episode generation pipeline for news podcasts.

Stages (strictly sequential; fan-out happens only inside a stage):
 1. History analysis        - what recent episodes covered
 2. Topic discovery         - direct -> hybrid -> search-then-extract
 3. Topic prioritization    - K deep-research topics for the word budget
 4. Layered research        - surface/intermediate/deep passes, topics in parallel
 5. Episode planning        - depth and angles per topic
 6. Narrative budgeting     - word-budgeted outline with transitions
 7. Content generation      - the script, under hard format constraints
 8. Differentiation         - compare with history, rewrite once if redundant
 9. Finalization            - adherence scoring, bullet points, title, description

Only two conditions end a run without an episode: topic discovery exhausting
every strategy, and script generation returning implausibly short output.

Usage:
  python -m newscast --store podcasts.json --podcast-id tech-daily --minutes 5
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple

from newscast.config import HISTORY_WINDOW, SEARXNG_URL
from newscast.errors import NewscastError, TopicDiscoveryExhaustedError
from newscast.models import BudgetConfig
from newscast.pipeline_types import EpisodeRecord, EpisodeResult, NewEpisode, PodcastRecord
from newscast.providers.generative import (
    make_fast_provider, make_grounded_provider, make_smart_provider,
)
from newscast.providers.search import SearchProvider, SearxngClient
from newscast.research.discovery import DiscoveryContext, build_topic_discovery
from newscast.research.history import HistoryAnalyzer
from newscast.research.layered import LayeredResearchEngine
from newscast.research.prioritization import prioritize_topics, promote_candidates
from newscast.run_log import RunLog
from newscast.script.adherence import create_adherence_feedback, evaluate_adherence
from newscast.script.budget import derive_topic_count, resolve_target_word_count
from newscast.script.differentiation import DifferentiationValidator
from newscast.script.episode_plan import EpisodePlanner
from newscast.script.narrative import NarrativeBudgetPlanner
from newscast.script.synthesizer import ContentSynthesizer, episode_metadata
from newscast.store import EpisodeStore, JsonEpisodeStore
from newscast.utils import count_words, dedupe

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    """External capabilities one run depends on."""
    smart: Any
    fast: Any
    search: Any
    grounded: Any = None
    budget: BudgetConfig = field(default_factory=BudgetConfig)


def build_services(search_provider, budget: BudgetConfig = None) -> PipelineServices:
    return PipelineServices(
        smart=make_smart_provider(),
        fast=make_fast_provider(),
        search=search_provider,
        grounded=make_grounded_provider(),
        budget=budget or BudgetConfig(),
    )


async def plan_and_generate_episode(
    podcast: PodcastRecord,
    history_window: List[EpisodeRecord],
    target_word_count=None,
    services: PipelineServices = None,
    now: Optional[datetime] = None,
    history_limit: int = HISTORY_WINDOW,
) -> EpisodeResult:
    """Run the full pipeline for one episode.

    Args:
        podcast: Podcast record (title, description, prompt, sources, episode_length)
        history_window: Recent episodes, newest first
        target_word_count: Explicit word count or length class; derived from the podcast when None
        services: Providers to use; built from config (with a live SearXNG client) when None
        now: Clock override for discovery prompts and query templates
        history_limit: Most recent episodes considered by history analysis

    Returns:
        EpisodeResult with content, sources and adherence_metrics

    Raises:
        TopicDiscoveryExhaustedError: No strategy produced a topic.
        ContentTooShortError: The script generation result was unusable.
    """
    if services is None:
        async with SearchProvider() as search:
            return await plan_and_generate_episode(podcast, history_window, target_word_count,
                                                   build_services(search), now, history_limit)

    budget = services.budget
    target = resolve_target_word_count(podcast, target_word_count, budget)
    run_log = RunLog(run_id=f"{podcast.get('id', 'podcast')}-{uuid.uuid4().hex[:8]}")
    run_log.start_run()
    logger.info(f"Podcast: {podcast.get('title', '')} | target {target} words | "
                f"{derive_topic_count(target, budget)} deep topic(s)")

    stage = "history_analysis"
    try:
        # --- 1. History ---
        run_log.stage_started(stage)
        history = await HistoryAnalyzer(services.fast).analyze(history_window, limit=history_limit)
        run_log.stage_completed(stage, episodes=history.episode_count, topics=len(history.recent_topics))

        # --- 2. Topic discovery ---
        stage = "topic_discovery"
        run_log.stage_started(stage)
        discovery = build_topic_discovery(services.smart, services.fast, services.search, services.grounded)
        outcome = await discovery.discover(DiscoveryContext(podcast, history, now or datetime.now()))
        if not outcome.topics:
            raise TopicDiscoveryExhaustedError(
                "topic discovery exhausted all strategies; no episode can be generated this run",
                stage=stage,
            )
        run_log.stage_completed(stage, strategy=outcome.strategy, topics=len(outcome.topics))

        # --- 3. Prioritization ---
        stage = "prioritization"
        run_log.stage_started(stage)
        topics = await prioritize_topics(services.smart, outcome.topics, history, target, budget)
        if not topics:
            logger.warning("Prioritization returned nothing, promoting top candidates")
            topics = promote_candidates(outcome.topics, derive_topic_count(target, budget))
        run_log.stage_completed(stage, topics=[t.topic for t in topics])

        # --- 4. Layered research ---
        stage = "deep_research"
        run_log.stage_started(stage)
        engine = LayeredResearchEngine(services.smart, services.search, services.fast)
        research = await engine.research_topics(topics)
        run_log.stage_completed(stage, sources=len(research.all_sources),
                                distribution=research.topic_distribution,
                                failed=[r.topic for r in research.results if r.error])

        # --- 5. Episode plan ---
        stage = "episode_planning"
        run_log.stage_started(stage)
        plan = await EpisodePlanner(services.smart).plan(research, topics, history, podcast)
        run_log.stage_completed(stage, title=plan.episode_title)

        # --- 6. Narrative budget ---
        stage = "narrative_planning"
        run_log.stage_started(stage)
        structure = await NarrativeBudgetPlanner(services.smart, budget).plan(plan, research, target)
        run_log.stage_completed(stage, sections=len(structure.body_sections),
                                words=structure.section_word_total())

        # --- 7. Content ---
        stage = "content_generation"
        run_log.stage_started(stage)
        synthesizer = ContentSynthesizer(services.smart)
        content = await synthesizer.generate(structure, research, plan, podcast)
        run_log.stage_completed(stage, words=count_words(content))

        # --- 8. Differentiation ---
        stage = "differentiation"
        run_log.stage_started(stage)
        validation = await DifferentiationValidator(services.smart, synthesizer).validate(content, history)
        if validation.improved_content:
            content = validation.improved_content
        run_log.stage_completed(stage, similarity=validation.similarity_score,
                                passing=validation.is_passing, rewritten=bool(validation.improved_content))

        # --- 9. Finalization ---
        stage = "finalization"
        run_log.stage_started(stage)
        metrics = await evaluate_adherence(services.fast, content, structure)
        structure.adherence_metrics = metrics
        feedback = create_adherence_feedback(metrics, structure, content)
        bullet_points = await synthesizer.generate_bullet_points(content)
        title, description = episode_metadata(plan, content)
        run_log.stage_completed(stage, overall_adherence=metrics.overall_adherence)
    except Exception as e:
        run_log.stage_failed(stage, str(e))
        run_log.finish_run("failed", str(e))
        raise

    selected = {t.topic for t in topics}
    sources = dedupe(research.all_sources
                     + [s for c in outcome.topics if c.topic in selected for s in c.sources])
    word_count = count_words(content)
    logger.info(f"Episode word count: {word_count} / {target} target")
    logger.info(feedback)
    run_log.finish_run("completed")

    return EpisodeResult(
        content=content,
        sources=sources,
        adherence_metrics=metrics.model_dump(),
        title=title,
        description=description,
        bullet_points=bullet_points,
        word_count=word_count,
        target_word_count=target,
        validation=validation.model_dump(exclude={"improved_content"}),
        run_log=run_log.summary(),
        feedback=feedback,
    )


async def generate_episode(
    store: EpisodeStore,
    podcast_id: str,
    target_word_count=None,
    history_limit: int = HISTORY_WINDOW,
    services: PipelineServices = None,
    dry_run: bool = False,
) -> Tuple[EpisodeResult, Optional[EpisodeRecord]]:
    """Read podcast and history from the store, generate, and write the episode back."""
    podcast = store.get_podcast(podcast_id)
    history = store.get_recent_episodes(podcast_id, history_limit)
    result = await plan_and_generate_episode(podcast, history, target_word_count, services,
                                            history_limit=history_limit)
    if dry_run:
        return result, None
    record = store.create_episode(podcast_id, NewEpisode(
        title=result["title"],
        description=result["description"],
        content=result["content"],
        sources=result["sources"],
        bullet_points=result["bullet_points"],
    ))
    return result, record


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------
def setup_logging(output_dir: Path, verbose: bool = False):
    """Configure logging to a file in output_dir and to stdout."""
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(output_dir / 'episode_generation.log'),
            logging.StreamHandler(sys.stdout)
        ],
        force=True
    )
    # keep HTTP client chatter out of the run log
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        description='Generate a news podcast episode script.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m newscast --store podcasts.json --podcast-id tech-daily
  python -m newscast --store podcasts.json --podcast-id tech-daily --minutes 8
  python -m newscast --store podcasts.json --podcast-id tech-daily --length medium --dry-run

Environment variables:
  MODEL_NAME, LLM_BASE_URL, LLM_API_KEY       smart model endpoint
  FAST_MODEL_NAME, FAST_LLM_BASE_URL          fast model endpoint
  GROUNDED_MODEL_NAME, GROUNDED_LLM_BASE_URL  search-grounded model (hybrid discovery)
  SEARXNG_URL                                 SearXNG instance
        """
    )
    parser.add_argument('--store', type=str, required=True,
                        help='JSON file holding podcasts and episodes')
    parser.add_argument('--podcast-id', type=str, required=True,
                        help='Podcast to generate an episode for')
    length = parser.add_mutually_exclusive_group()
    length.add_argument('--words', type=int, help='Target word count')
    length.add_argument('--minutes', type=int, help='Target length in minutes')
    length.add_argument('--length', choices=['short', 'medium', 'long'], help='Length class')
    parser.add_argument('--history-window', type=int, default=HISTORY_WINDOW,
                        help=f'Number of recent episodes to compare against (default: {HISTORY_WINDOW})')
    parser.add_argument('--output-dir', type=str, default='output',
                        help='Directory for the script, run summary and log (default: output)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Generate without saving the episode to the store')
    parser.add_argument('--verbose', action='store_true', help='Log prompts and responses')
    return parser.parse_args(argv)


def _target_from_args(args):
    if args.words:
        return args.words
    if args.minutes:
        return args.minutes * BudgetConfig().words_per_minute
    return args.length


async def _run_cli(args, output_dir: Path) -> int:
    async with SearxngClient() as client:
        if not await client.validate_connection():
            logger.warning(f"SearXNG not reachable at {SEARXNG_URL}; search-based stages will degrade")

    store = JsonEpisodeStore(args.store)
    try:
        store.get_podcast(args.podcast_id)
    except KeyError:
        logger.error(f"Unknown podcast id: {args.podcast_id}")
        return 2

    try:
        result, record = await generate_episode(
            store, args.podcast_id, _target_from_args(args),
            history_limit=args.history_window, dry_run=args.dry_run,
        )
    except NewscastError as e:
        logger.error(f"Episode generation failed: {e}")
        return 1

    script_path = output_dir / 'episode_script.txt'
    script_path.write_text(result["content"], encoding='utf-8')
    summary = {k: v for k, v in result.items() if k != "content"}
    if record:
        summary["episode_id"] = record["id"]
    (output_dir / 'run_summary.json').write_text(
        json.dumps(summary, indent=2, ensure_ascii=False, default=str), encoding='utf-8')
    logger.info(f"Script saved to {script_path}")
    return 0


def main(argv=None) -> int:
    args = parse_arguments(argv)
    output_dir = Path(args.output_dir) / datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    output_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(output_dir, args.verbose)
    return asyncio.run(_run_cli(args, output_dir))


if __name__ == "__main__":
    sys.exit(main())
