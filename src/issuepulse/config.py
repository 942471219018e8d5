"""Centralised configuration loaded from environment variables and dotenv."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

# ── Paths ──────────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DB_PATH: Path = Path(
    os.getenv("ISSUEPULSE_DB_PATH", str(PROJECT_ROOT / "var" / "issuepulse.sqlite3"))
)
KEYWORDS_FILE: str = os.getenv("ISSUEPULSE_KEYWORDS_FILE", "")

# ── LLM (relevance filter) ─────────────────────────────────────────────────
PERPLEXITY_API_KEY: str = os.getenv("PERPLEXITY_API_KEY", "")
LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "https://api.perplexity.ai")
LLM_MODEL: str = os.getenv("LLM_MODEL", "sonar")


class ConfigError(Exception):
    """Raised when a required setting (e.g. an API credential) is missing."""


# env var → (field name, default)
_ENV_FIELDS: dict[str, tuple[str, int | float]] = {
    "CANDIDATE_ALERT_THRESHOLD": ("alert_threshold", 5),
    "CANDIDATE_AUTO_APPROVE_THRESHOLD": ("auto_approve_threshold", 10),
    "CANDIDATE_MIN_UNIQUE_SOURCES": ("min_unique_sources", 2),
    "CANDIDATE_MIN_HEAT_TO_REGISTER": ("min_heat_to_register", 10),
    "CANDIDATE_NO_RESPONSE_HOURS": ("no_response_hours", 6),
    "CANDIDATE_WINDOW_HOURS": ("window_hours", 3),
    "CANDIDATE_COMMUNITY_LOOKBACK_HOURS": ("community_lookback_hours", 24),
    "CANDIDATE_DEDUP_HOURS": ("dedup_hours", 24),
    "CANDIDATE_COMMUNITY_MATCH_THRESHOLD": ("community_match_threshold", 2),
    "CANDIDATE_AUTO_APPROVE_HEAT": ("auto_approve_heat", 60),
    "STATUS_IGNITE_TO_DEBATE_HOURS": ("ignite_to_debate_hours", 6),
    "STATUS_IGNITE_MIN_HEAT": ("ignite_min_heat", 40),
    "STATUS_CLOSED_MAX_HEAT": ("closed_max_heat", 10),
    "STATUS_CLOSED_IDLE_HOURS": ("closed_idle_hours", 48),
    "LINKER_ISSUE_LIMIT": ("link_batch_size", 50),
    "LINKER_FETCH_LIMIT": ("link_fetch_limit", 500),
    "LINKER_MIN_OVERLAP": ("link_min_overlap", 0.3),
    "LINKER_MAX_PER_PASS": ("link_max_per_pass", 20),
    "LINKER_BEFORE_DAYS": ("link_before_days", 1),
    "LINKER_NEWS_AFTER_DAYS": ("link_news_after_days", 2),
    "LINKER_COMMUNITY_AFTER_DAYS": ("link_community_after_days", 7),
    "HEAT_ISSUE_LIMIT": ("heat_batch_size", 100),
    "CLEANUP_RETAIN_DAYS": ("retain_days", 7),
    "FILTER_COLLECTION_WINDOW_MIN": ("collection_window_min", 10),
    "FILTER_VIEW_THRESHOLD": ("view_threshold", 500),
    "FILTER_COMMENT_THRESHOLD": ("comment_threshold", 20),
    "FILTER_BATCH_SIZE": ("batch_size", 20),
    "FILTER_MIN_SCORE": ("min_score", 7),
}


class PipelineConfig(BaseModel):
    """Every tunable threshold, built once per process and passed to each job."""

    model_config = ConfigDict(frozen=True)

    # ── Candidate clustering / gate ──────────────────────────────────────
    alert_threshold: int = 5
    auto_approve_threshold: int = 10
    min_unique_sources: int = 2
    min_heat_to_register: int = 10
    no_response_hours: int = 6
    window_hours: int = 3
    community_lookback_hours: int = 24
    dedup_hours: int = 24
    community_match_threshold: int = 2
    auto_approve_heat: int = 60

    # ── Status transitions ───────────────────────────────────────────────
    ignite_to_debate_hours: int = 6
    ignite_min_heat: int = 40
    closed_max_heat: int = 10
    closed_idle_hours: int = 48

    # ── Linker ───────────────────────────────────────────────────────────
    link_batch_size: int = 50
    link_fetch_limit: int = 500
    link_min_overlap: float = 0.3
    link_max_per_pass: int = 20
    link_before_days: int = 1
    link_news_after_days: int = 2
    link_community_after_days: int = 7

    # ── Heat pass / retention ────────────────────────────────────────────
    heat_batch_size: int = 100
    retain_days: int = 7

    # ── AI relevance filter ──────────────────────────────────────────────
    collection_window_min: int = 10
    view_threshold: int = 500
    comment_threshold: int = 20
    batch_size: int = 20
    min_score: int = 7

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> PipelineConfig:
        """Build a config from *environ* (defaults to ``os.environ``).

        Unset variables keep their defaults; malformed numbers raise ``ValueError``.
        """
        env = os.environ if environ is None else environ
        values: dict[str, int | float] = {}
        for var, (field, default) in _ENV_FIELDS.items():
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            values[field] = float(raw) if isinstance(default, float) else int(raw)
        return cls(**values)
