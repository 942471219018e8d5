"""Threshold gate: turn candidate clusters into pending, approved or rejected issues.

Flow per cluster:
1. Drop it if it is too small or every news member comes from one outlet.
2. Match extra community posts against the representative title.
3. If an issue with that title was created recently, update it instead.
4. Otherwise create the issue, link members, compute heat, and reject it
   outright when the heat is negligible.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, Field

from issuepulse.cluster import cluster_items
from issuepulse.config import PipelineConfig
from issuepulse.heat import calculate_heat_index
from issuepulse.keywords import DEFAULT_LEXICON, Lexicon, strip_media_prefix, tokenize
from issuepulse.models import (
    DEFAULT_CATEGORY,
    ApprovalStatus,
    Category,
    Cluster,
    RawItem,
    SourceType,
)
from issuepulse.store import IssueStore, as_utc

logger = logging.getLogger(__name__)

_VALID_CATEGORIES = {c.value for c in Category}


class CandidateAlert(BaseModel):
    """A pending issue surfaced to operators."""

    title: str
    count: int
    news_count: int
    community_count: int


class GateResult(BaseModel):
    created: int = 0  # issues approved automatically
    rejected: int = 0  # issues suppressed for negligible heat
    evaluated: int = 0  # clusters looked at
    alerts: list[CandidateAlert] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


def unique_sources(items: list[RawItem]) -> int:
    return len({i.source for i in items if i.source_type == SourceType.NEWS and i.source})


def representative_title(cluster: Cluster) -> str:
    title = cluster.representative.title
    return strip_media_prefix(title) or title.strip()


def infer_category(items: list[RawItem], lexicon: Lexicon = DEFAULT_LEXICON) -> Category:
    """Majority vote over the members' collector categories.

    Falls back to the keyword dictionary, then to the society category.
    """
    votes = Counter(
        i.category
        for i in items
        if i.source_type == SourceType.NEWS and i.category in _VALID_CATEGORIES
    )
    if votes:
        return Category(votes.most_common(1)[0][0])
    return lexicon.guess_category([i.title for i in items]) or DEFAULT_CATEGORY


def _passes_volume(cluster: Cluster, config: PipelineConfig) -> bool:
    count = len(cluster.items)
    if count < config.alert_threshold:
        return False
    has_news = any(i.source_type == SourceType.NEWS for i in cluster.items)
    if has_news and unique_sources(cluster.items) < config.min_unique_sources:
        logger.debug(
            "Cluster '%s' dropped: %d items from %d source(s)",
            cluster.representative.title, count, unique_sources(cluster.items),
        )
        return False
    return True


def _match_community(
    title: str,
    community: list[tuple[RawItem, set[str]]],
    threshold: int,
    exclude: set[str],
) -> list[str]:
    title_tokens = tokenize(title)
    return [
        item.id
        for item, tokens in community
        if item.id not in exclude and len(tokens & title_tokens) >= threshold
    ]


def _link(store: IssueStore, issue_id: str, news_ids: list[str], community_ids: list[str]) -> None:
    store.link_items(SourceType.NEWS, news_ids, issue_id)
    store.link_items(SourceType.COMMUNITY, community_ids, issue_id)


def _heat_or_zero(store: IssueStore, issue_id: str, now: datetime, result: GateResult) -> int:
    """Heat failures must not block registration: count them as zero heat."""
    try:
        return calculate_heat_index(store, issue_id, now)
    except Exception as exc:
        logger.exception("Heat calculation failed for issue %s", issue_id)
        result.errors.append(f"heat {issue_id}: {exc}")
        return 0


def evaluate_candidates(
    store: IssueStore,
    config: PipelineConfig,
    *,
    lexicon: Lexicon = DEFAULT_LEXICON,
    now: datetime | None = None,
) -> GateResult:
    """Cluster recent unlinked news and register the clusters that qualify."""
    now = as_utc(now or datetime.now(UTC))
    since_window = now - timedelta(hours=config.window_hours)
    since_community = now - timedelta(hours=config.community_lookback_hours)
    since_dedup = now - timedelta(hours=config.dedup_hours)
    no_response_cutoff = now - timedelta(hours=config.no_response_hours)

    news = store.unlinked_news(since_window)
    result = GateResult()
    if not news:
        logger.info("No unlinked news in the last %dh; nothing to evaluate.", config.window_hours)
        return result

    # Community reaction lags the news, so it gets the wider lookback and is
    # matched against finished clusters instead of being clustered itself.
    community = [
        (item, tokenize(item.title)) for item in store.unlinked_community(since_community)
    ]

    clusters = cluster_items(news)
    result.evaluated = len(clusters)

    for cluster in clusters:
        if not _passes_volume(cluster, config):
            continue

        title = representative_title(cluster)
        member_ids = [i.id for i in cluster.items]
        news_ids = [i.id for i in cluster.items if i.source_type == SourceType.NEWS]
        community_ids = [i.id for i in cluster.items if i.source_type == SourceType.COMMUNITY]
        community_ids += _match_community(
            title, community, config.community_match_threshold, set(member_ids)
        )

        count = len(cluster.items)
        first_seen = as_utc(cluster.representative.created_at)
        auto_approve = count >= config.auto_approve_threshold and first_seen <= no_response_cutoff
        alert = CandidateAlert(
            title=title,
            count=count,
            news_count=len(news_ids),
            community_count=len(community_ids),
        )

        existing = store.find_issue_by_title(title, since_dedup)
        if existing is not None:
            if existing.approval_status != ApprovalStatus.PENDING:
                logger.debug("Issue '%s' already %s; skipping", title, existing.approval_status.value)
                continue
            _link(store, existing.id, news_ids, community_ids)
            _heat_or_zero(store, existing.id, now, result)
            if auto_approve:
                store.update_issue(
                    existing.id, now,
                    approval_status=ApprovalStatus.APPROVED, approved_at=now,
                )
                result.created += 1
                logger.info("Auto-approved pending issue '%s' (%d items)", title, count)
            else:
                result.alerts.append(alert)
            continue

        issue = store.create_issue(
            title=title,
            category=infer_category(cluster.items, lexicon),
            approval_status=ApprovalStatus.APPROVED if auto_approve else ApprovalStatus.PENDING,
            now=now,
            dedup_hours=config.dedup_hours,
        )
        if issue is None:
            continue

        _link(store, issue.id, news_ids, community_ids)
        heat = _heat_or_zero(store, issue.id, now, result)

        if heat < config.min_heat_to_register:
            store.update_issue(
                issue.id, now, approval_status=ApprovalStatus.REJECTED, approved_at=None
            )
            result.rejected += 1
            logger.info("Rejected '%s': heat %d below %d", title, heat, config.min_heat_to_register)
        elif auto_approve:
            result.created += 1
            logger.info("Created approved issue '%s' (%d items, heat %d)", title, count, heat)
        else:
            result.alerts.append(alert)
            logger.info("Registered pending issue '%s' (%d items, heat %d)", title, count, heat)

    logger.info(
        "Gate: %d clusters → %d approved, %d pending, %d rejected",
        result.evaluated, result.created, len(result.alerts), result.rejected,
    )
    return result
