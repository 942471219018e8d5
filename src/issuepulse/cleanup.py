"""Retention: delete raw items that never made it into an issue."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel

from issuepulse.config import PipelineConfig
from issuepulse.models import SourceType
from issuepulse.store import IssueStore, as_utc

logger = logging.getLogger(__name__)


class CleanupResult(BaseModel):
    deleted_news: int = 0
    deleted_community: int = 0
    retain_days: int


def cleanup_unlinked(
    store: IssueStore,
    config: PipelineConfig,
    *,
    now: datetime | None = None,
) -> CleanupResult:
    """Delete unlinked news and community rows older than ``retain_days``."""
    now = as_utc(now or datetime.now(UTC))
    cutoff = now - timedelta(days=config.retain_days)

    result = CleanupResult(
        deleted_news=store.delete_unlinked_before(SourceType.NEWS, cutoff),
        deleted_community=store.delete_unlinked_before(SourceType.COMMUNITY, cutoff),
        retain_days=config.retain_days,
    )
    logger.info(
        "Cleanup: deleted %d news and %d community items older than %d days",
        result.deleted_news, result.deleted_community, config.retain_days,
    )
    return result
