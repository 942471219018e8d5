"""CLI entry-point: ``python -m issuepulse candidates`` / ``python -m issuepulse all``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from issuepulse import config
from issuepulse.keywords import load_lexicon
from issuepulse.pipeline import JOBS, run_all, run_job
from issuepulse.store import IssueStore

logger = logging.getLogger(__name__)

_HELP = {
    "candidates": "Cluster recent news and register qualifying issues.",
    "link": "Attach new unlinked items to approved issues.",
    "heat": "Recompute heat, settle pending issues, advance lifecycles.",
    "filter": "Score fresh titles with the LLM and stage AI candidates.",
    "cleanup": "Delete old raw items that were never linked.",
    "all": "Run every job once; failures do not stop later jobs.",
}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="issuepulse",
        description="Issue detection, heat scoring and lifecycle jobs.",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=config.DB_PATH,
        help=f"SQLite database path (default: {config.DB_PATH}).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command")
    for name in (*JOBS, "all"):
        sub.add_parser(name, help=_HELP[name])

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    _setup_logging(args.verbose)
    pipeline_config = config.PipelineConfig.from_env()
    lexicon = load_lexicon(config.KEYWORDS_FILE)
    store = IssueStore(db_path=args.db)

    if args.command == "all":
        failed = run_all(store, pipeline_config, lexicon=lexicon)
        if failed:
            logger.error("Failed jobs: %s", ", ".join(failed))
            sys.exit(1)
        return

    run_job(args.command, store, pipeline_config, lexicon=lexicon)


if __name__ == "__main__":
    main()
