"""Unit tests for the heat index."""

from datetime import UTC, datetime
from pathlib import Path

from issuepulse.heat import (
    amplification,
    calculate_heat_index,
    combine,
    community_heat,
    news_credibility,
    score,
)
from issuepulse.models import ApprovalStatus, Category, CommunityItem, NewsItem, RawItem, SourceType
from issuepulse.store import IssueStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _news(item_id: str, source: str) -> RawItem:
    return RawItem(
        id=item_id, title="t", source_type=SourceType.NEWS, created_at=NOW, source=source
    )


def _post(item_id: str, views: int = 0, comments: int = 0) -> RawItem:
    return RawItem(
        id=item_id,
        title="t",
        source_type=SourceType.COMMUNITY,
        created_at=NOW,
        view_count=views,
        comment_count=comments,
    )


class TestCombine:
    def test_news_only_capped_at_thirty_percent(self) -> None:
        assert combine(0, 50) == 15

    def test_full_amplification(self) -> None:
        assert combine(100, 80) == 80

    def test_noise_floor(self) -> None:
        assert combine(10, 100) == 30

    def test_always_int_in_range(self) -> None:
        for community in range(0, 101, 7):
            for news in range(0, 101, 9):
                heat = combine(community, news)
                assert isinstance(heat, int)
                assert 0 <= heat <= 100

    def test_monotonic_in_community(self) -> None:
        values = [combine(c, 60) for c in range(0, 101, 5)]
        assert values == sorted(values)


class TestAmplification:
    def test_bounds(self) -> None:
        assert amplification(0) == 0.0
        assert amplification(10) == 0.0
        assert amplification(100) == 1.0

    def test_concave(self) -> None:
        # halfway above the floor gives more than half the boost
        assert amplification(55) > 0.5


class TestComponents:
    def test_no_community_items(self) -> None:
        assert community_heat([_news("1", "A")]) == 0

    def test_community_engagement(self) -> None:
        # 1000 views → 0.35, 100 comments → 0.45; (0.8) * 100 = 80
        assert community_heat([_post("1", views=1000, comments=100)]) == 80

    def test_community_clamped(self) -> None:
        assert community_heat([_post("1", views=1_000_000)]) == 100

    def test_no_news_items(self) -> None:
        assert news_credibility([_post("1", views=10)]) == 0

    def test_news_diversity(self) -> None:
        # 2 sources → 10 * 0.6 = 6, 2 articles → 4 * 0.4 = 1.6; 7.6 → 8
        assert news_credibility([_news("1", "A"), _news("2", "B")]) == 8

    def test_news_caps(self) -> None:
        items = [_news(str(i), f"source-{i}") for i in range(80)]
        assert news_credibility(items) == 100

    def test_score_empty(self) -> None:
        assert score([]) == 0


class TestCalculateHeatIndex:
    def test_writes_back(self, tmp_path: Path) -> None:
        store = IssueStore(tmp_path / "heat.sqlite3")
        issue = store.create_issue(
            title="태풍 상륙",
            category=Category.SOCIETY,
            approval_status=ApprovalStatus.APPROVED,
            now=NOW,
        )
        assert issue is not None
        store.add_news(
            NewsItem(id=f"n{i}", title="태풍 상륙", source=f"S{i % 4}", created_at=NOW)
            for i in range(10)
        )
        store.add_community([
            CommunityItem(id="c1", title="태풍 상륙 실화", view_count=50_000, comment_count=900,
                          created_at=NOW),
        ])
        store.link_items(SourceType.NEWS, [f"n{i}" for i in range(10)], issue.id)
        store.link_items(SourceType.COMMUNITY, ["c1"], issue.id)

        heat = calculate_heat_index(store, issue.id, NOW)

        # news: 4 sources → 20*0.6=12, 10 articles → 20*0.4=8 → 20; community saturated
        assert heat == 20
        stored = store.get_issue(issue.id)
        assert stored is not None and stored.heat_index == 20
