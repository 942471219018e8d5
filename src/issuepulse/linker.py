"""Attach newly collected, still-unlinked raw items to approved issues."""

from __future__ import annotations

import logging
from datetime import timedelta

from pydantic import BaseModel, Field

from issuepulse.config import PipelineConfig
from issuepulse.keywords import DEFAULT_LEXICON, Lexicon, tokenize
from issuepulse.models import ApprovalStatus, Issue, RawItem, SourceType
from issuepulse.store import IssueStore, StoreError, as_utc

logger = logging.getLogger(__name__)


class LinkResult(BaseModel):
    issue_id: str
    issue_title: str
    news_linked: int = 0
    community_linked: int = 0


class LinkRunResult(BaseModel):
    issues_processed: int = 0
    links: list[LinkResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def total_linked(self) -> int:
        return sum(r.news_linked + r.community_linked for r in self.links)


def overlap(keywords: set[str], title: str) -> tuple[int, float]:
    """Number and fraction of *keywords* present among *title*'s tokens."""
    if not keywords:
        return 0, 0.0
    matched = len(keywords & tokenize(title))
    return matched, matched / len(keywords)


def select_matches(
    keywords: set[str],
    items: list[RawItem],
    min_overlap: float,
    cap: int,
) -> list[str]:
    """Ids of items covering at least *min_overlap* of the keywords, first *cap* only."""
    matched: list[str] = []
    for item in items:
        hits, fraction = overlap(keywords, item.title)
        if hits >= 1 and fraction >= min_overlap:
            matched.append(item.id)
            if len(matched) >= cap:
                break
    return matched


def link_issue(
    store: IssueStore,
    issue: Issue,
    config: PipelineConfig,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> LinkResult:
    """Run one linking pass for a single issue, news and community independently."""
    result = LinkResult(issue_id=issue.id, issue_title=issue.title)
    keywords = lexicon.keywords(issue.title)
    if not keywords:
        logger.debug("Issue '%s' has no usable keywords; skipping", issue.title)
        return result

    created = as_utc(issue.created_at)
    since = created - timedelta(days=config.link_before_days)

    news = store.unlinked_news(
        since,
        created + timedelta(days=config.link_news_after_days),
        category=issue.category.value,
        limit=config.link_fetch_limit,
        newest_first=True,
    )
    news_ids = select_matches(keywords, news, config.link_min_overlap, config.link_max_per_pass)
    result.news_linked = store.link_items(SourceType.NEWS, news_ids, issue.id)

    community = store.unlinked_community(
        since,
        created + timedelta(days=config.link_community_after_days),
        limit=config.link_fetch_limit,
        newest_first=True,
    )
    community_ids = select_matches(
        keywords, community, config.link_min_overlap, config.link_max_per_pass
    )
    result.community_linked = store.link_items(SourceType.COMMUNITY, community_ids, issue.id)
    return result


def link_all(
    store: IssueStore,
    config: PipelineConfig,
    *,
    lexicon: Lexicon = DEFAULT_LEXICON,
) -> LinkRunResult:
    """Link unlinked items to the most recently updated open approved issues."""
    issues = store.list_issues(
        [ApprovalStatus.APPROVED], limit=config.link_batch_size, exclude_closed=True
    )
    run = LinkRunResult(issues_processed=len(issues))

    for issue in issues:
        try:
            result = link_issue(store, issue, config, lexicon)
        except StoreError as exc:
            logger.exception("Linking failed for issue %s", issue.id)
            run.errors.append(f"link {issue.id}: {exc}")
            continue
        if result.news_linked or result.community_linked:
            logger.info(
                "Linked %d news / %d community items to '%s'",
                result.news_linked, result.community_linked, issue.title,
            )
            run.links.append(result)

    logger.info(
        "Linker: %d issues checked, %d items linked",
        run.issues_processed, run.total_linked,
    )
    return run
