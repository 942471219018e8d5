"""Job orchestration: each job is an independent batch pass over the store.

Usual schedule: ``candidates`` every 30 minutes, ``link`` and ``filter``
every 5, ``heat`` every 10, ``cleanup`` daily. Jobs share nothing in memory;
all coordination goes through the store.
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel

from issuepulse.cleanup import cleanup_unlinked
from issuepulse.config import PipelineConfig
from issuepulse.gate import evaluate_candidates
from issuepulse.keywords import DEFAULT_LEXICON, Lexicon
from issuepulse.linker import link_all
from issuepulse.relevance import RelevanceScorer, run_relevance_filter
from issuepulse.status import recalculate_issues
from issuepulse.store import IssueStore

logger = logging.getLogger(__name__)

JOBS: tuple[str, ...] = ("candidates", "link", "heat", "filter", "cleanup")


def run_job(
    name: str,
    store: IssueStore,
    config: PipelineConfig,
    *,
    lexicon: Lexicon = DEFAULT_LEXICON,
    scorer: RelevanceScorer | None = None,
    now: datetime | None = None,
) -> BaseModel:
    """Run a single named job and return its result record."""
    logger.info("=== %s start ===", name)
    if name == "candidates":
        result: BaseModel = evaluate_candidates(store, config, lexicon=lexicon, now=now)
    elif name == "link":
        result = link_all(store, config, lexicon=lexicon)
    elif name == "heat":
        result = recalculate_issues(store, config, now=now)
    elif name == "filter":
        # Missing credentials surface here as ConfigError, before any work.
        result = run_relevance_filter(
            store, config, scorer or RelevanceScorer.from_settings(), now=now
        )
    elif name == "cleanup":
        result = cleanup_unlinked(store, config, now=now)
    else:
        raise ValueError(f"Unknown job '{name}'; expected one of {', '.join(JOBS)}")
    logger.info("=== %s done === %s", name, result.model_dump_json())
    return result


def run_all(
    store: IssueStore,
    config: PipelineConfig,
    *,
    lexicon: Lexicon = DEFAULT_LEXICON,
    scorer: RelevanceScorer | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Run every job in turn; a failing job is logged and the rest still run.

    Returns the names of the jobs that failed.
    """
    failed: list[str] = []
    for name in JOBS:
        try:
            run_job(name, store, config, lexicon=lexicon, scorer=scorer, now=now)
        except Exception:
            logger.exception("Job '%s' failed", name)
            failed.append(name)
    return failed
