"""Unit tests for retention cleanup."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from issuepulse.cleanup import cleanup_unlinked
from issuepulse.config import PipelineConfig
from issuepulse.models import CommunityItem, NewsItem, SourceType
from issuepulse.store import IssueStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestCleanup:
    def test_deletes_only_old_unlinked(self, tmp_path: Path) -> None:
        store = IssueStore(tmp_path / "c.sqlite3")
        store.add_news([
            NewsItem(id="old", title="a", created_at=NOW - timedelta(days=8)),
            NewsItem(id="recent", title="b", created_at=NOW - timedelta(days=6)),
            NewsItem(id="kept", title="c", created_at=NOW - timedelta(days=30)),
        ])
        store.add_community([
            CommunityItem(id="p-old", title="d", created_at=NOW - timedelta(days=9)),
        ])
        store.link_items(SourceType.NEWS, ["kept"], "issue-1")

        result = cleanup_unlinked(store, PipelineConfig(), now=NOW)

        assert (result.deleted_news, result.deleted_community) == (1, 1)
        assert result.retain_days == 7
        remaining = {i.id for i in store.unlinked_news(NOW - timedelta(days=60))}
        assert remaining == {"recent"}
        assert [i.id for i in store.linked_items("issue-1")] == ["kept"]

    def test_custom_retention(self, tmp_path: Path) -> None:
        store = IssueStore(tmp_path / "c.sqlite3")
        store.add_news([NewsItem(id="n", title="a", created_at=NOW - timedelta(days=3))])

        result = cleanup_unlinked(store, PipelineConfig(retain_days=2), now=NOW)

        assert result.deleted_news == 1

    def test_empty_store(self, tmp_path: Path) -> None:
        result = cleanup_unlinked(IssueStore(tmp_path / "c.sqlite3"), PipelineConfig(), now=NOW)
        assert (result.deleted_news, result.deleted_community) == (0, 0)
