"""Heat index: a 0–100 intensity score from news breadth and community reaction."""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime

from issuepulse.models import RawItem, SourceType
from issuepulse.store import IssueStore

logger = logging.getLogger(__name__)

# ── Community engagement (tuneable) ────────────────────────────────────────
_VIEWS_PER_POINT = 1000
_COMMENTS_PER_POINT = 100
_W_VIEWS = 0.35
_W_COMMENTS = 0.45

# ── News credibility ───────────────────────────────────────────────────────
_MAX_SOURCES = 20
_MAX_ARTICLES = 50
_W_SOURCES = 0.6
_W_ARTICLES = 0.4

# ── Combination ────────────────────────────────────────────────────────────
_COMMUNITY_NOISE_FLOOR = 10
_NEWS_ONLY_WEIGHT = 0.3  # news-only issues top out at 30


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def _round(value: float) -> int:
    """Round half up, so 12.5 → 13 rather than Python's banker's 12."""
    return int(math.floor(value + 0.5))


def community_heat(items: list[RawItem]) -> int:
    """0 without community items, else views and comments scaled onto 0–100."""
    community = [i for i in items if i.source_type == SourceType.COMMUNITY]
    if not community:
        return 0
    views = sum(i.view_count for i in community)
    comments = sum(i.comment_count for i in community)
    raw = (
        (views / _VIEWS_PER_POINT) * _W_VIEWS
        + (comments / _COMMENTS_PER_POINT) * _W_COMMENTS
    ) * 100
    return _round(_clamp(raw))


def news_credibility(items: list[RawItem]) -> int:
    """0 without news items, else a blend of source diversity and article count."""
    news = [i for i in items if i.source_type == SourceType.NEWS]
    if not news:
        return 0
    unique_sources = len({i.source for i in news if i.source})
    source_score = min(_MAX_SOURCES, unique_sources) / _MAX_SOURCES * 100
    count_score = min(_MAX_ARTICLES, len(news)) / _MAX_ARTICLES * 100
    return _round(_clamp(source_score * _W_SOURCES + count_score * _W_ARTICLES))


def amplification(community: float) -> float:
    """Concave 0–1 boost from community heat; at or below the noise floor it is 0."""
    if community <= _COMMUNITY_NOISE_FLOOR:
        return 0.0
    ratio = (community - _COMMUNITY_NOISE_FLOOR) / (100 - _COMMUNITY_NOISE_FLOOR)
    return _clamp(math.sqrt(max(ratio, 0.0)), 0.0, 1.0)


def combine(community: float, news: float) -> int:
    """Final heat: news credibility, uncapped from 30% up to 100% by community reaction."""
    amp = amplification(community)
    return _round(_clamp(news * (_NEWS_ONLY_WEIGHT + (1 - _NEWS_ONLY_WEIGHT) * amp)))


def score(items: list[RawItem]) -> int:
    """Heat index for the given linked items."""
    return combine(community_heat(items), news_credibility(items))


def calculate_heat_index(
    store: IssueStore, issue_id: str, now: datetime | None = None
) -> int:
    """Recompute heat for *issue_id* from its linked items and write it back."""
    now = now or datetime.now(UTC)
    items = store.linked_items(issue_id)
    heat = score(items)
    store.update_issue(issue_id, now, heat_index=heat)
    logger.debug("Heat for issue %s: %d (%d linked items)", issue_id, heat, len(items))
    return heat
