"""Unit tests for the AI relevance filter (LLM client faked)."""

import json
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from openai import OpenAIError

from issuepulse.config import ConfigError, PipelineConfig
from issuepulse.models import AICandidate, Category, CommunityItem, NewsItem, SourceType
from issuepulse.relevance import (
    RelevanceScorer,
    ScoringError,
    parse_scores,
    prefilter,
    run_relevance_filter,
)
from issuepulse.store import IssueStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


def _reply(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _scorer(respond: Callable[[list[dict[str, str]]], Any]) -> tuple[RelevanceScorer, list]:
    """Scorer over a fake client; *respond* gets the batch payload and returns reply text."""
    calls: list[list[dict[str, str]]] = []

    def create(**kwargs: Any) -> SimpleNamespace:
        user = kwargs["messages"][1]["content"]
        payload = json.loads(user.split("[입력]\n", 1)[1].split("\n\n[응답", 1)[0])
        calls.append(payload)
        return _reply(respond(payload))

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    return RelevanceScorer(api_key="", model="sonar", client=client), calls


def _score_all(score: int) -> Callable[[list[dict[str, str]]], str]:
    return lambda payload: json.dumps(
        [{"id": p["id"], "score": score, "category": "사회", "reason": "r"} for p in payload]
    )


def _store(tmp_path: Path) -> IssueStore:
    return IssueStore(tmp_path / "filter.sqlite3")


def _news(n: int, minutes_ago: int = 2, prefix: str = "n") -> list[NewsItem]:
    return [
        NewsItem(
            id=f"{prefix}{i}",
            title=f"제목 {prefix}{i}",
            created_at=NOW - timedelta(minutes=minutes_ago),
        )
        for i in range(n)
    ]


class TestParseScores:
    def test_valid_entries(self) -> None:
        raw = 'Sure:\n[{"id":"a","score":8.5,"category":"정치","reason":"대형 논란"}]'
        scores = parse_scores(raw, {"a"})
        assert len(scores) == 1
        assert scores[0].score == 9
        assert scores[0].category == Category.POLITICS

    def test_invalid_entries_dropped(self) -> None:
        raw = json.dumps([
            {"id": "a", "score": 8, "category": "사회"},
            {"id": "zzz", "score": 9, "category": "사회"},  # not in batch
            {"id": "b", "score": 11, "category": "사회"},
            {"id": "c", "score": "8", "category": "사회"},
            {"id": "d", "score": 8, "category": "경제"},
            {"id": "e", "score": True, "category": "사회"},
            "junk",
        ])
        scores = parse_scores(raw, {"a", "b", "c", "d", "e"})
        assert [s.id for s in scores] == ["a"]

    def test_reason_truncated(self) -> None:
        raw = json.dumps([{"id": "a", "score": 7, "category": "기술", "reason": "x" * 500}])
        assert len(parse_scores(raw, {"a"})[0].reason) == 200

    def test_missing_reason_defaults(self) -> None:
        raw = json.dumps([{"id": "a", "score": 7, "category": "기술"}])
        assert parse_scores(raw, {"a"})[0].reason == ""

    def test_no_array(self) -> None:
        with pytest.raises(ScoringError):
            parse_scores("I cannot help with that.", {"a"})

    def test_bad_json(self) -> None:
        with pytest.raises(ScoringError):
            parse_scores("[{id: a}]", {"a"})


class TestScorer:
    def test_missing_key(self) -> None:
        with pytest.raises(ConfigError):
            RelevanceScorer(api_key="", model="sonar")

    def test_transport_error_wrapped(self) -> None:
        def fail(payload: list[dict[str, str]]) -> str:
            raise OpenAIError("boom")

        scorer, _ = _scorer(fail)
        item = NewsItem(id="a", title="t", created_at=NOW).to_raw()
        with pytest.raises(ScoringError, match="boom"):
            scorer.score_batch([item])

    def test_empty_choices(self) -> None:
        client = SimpleNamespace(
            chat=SimpleNamespace(
                completions=SimpleNamespace(create=lambda **_: SimpleNamespace(choices=[]))
            )
        )
        scorer = RelevanceScorer(api_key="", model="sonar", client=client)
        item = NewsItem(id="a", title="t", created_at=NOW).to_raw()
        with pytest.raises(ScoringError):
            scorer.score_batch([item])


class TestPrefilter:
    def test_time_window_and_floors(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.add_news([*_news(2), *_news(1, minutes_ago=30, prefix="old")])
        store.add_community([
            CommunityItem(id="views", title="조회 많은 글", view_count=600, created_at=NOW),
            CommunityItem(id="talk", title="댓글 많은 글", comment_count=25, created_at=NOW),
            CommunityItem(id="quiet", title="조용한 글", view_count=10, created_at=NOW),
            CommunityItem(
                id="stale", title="오래된 글", view_count=9000,
                created_at=NOW - timedelta(hours=2),
            ),
        ])

        ids = {i.id for i in prefilter(store, PipelineConfig(), NOW)}

        assert ids == {"n0", "n1", "views", "talk"}

    def test_staged_and_duplicate_titles_removed(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.add_news([
            NewsItem(id="a", title="같은 제목", created_at=NOW),
            NewsItem(id="b", title="같은 제목", created_at=NOW),
            NewsItem(id="c", title="이미 본 제목", created_at=NOW),
        ])
        store.add_candidate(
            AICandidate(
                title="이미 본 제목",
                source_type=SourceType.NEWS,
                ai_score=8,
                ai_category=Category.SOCIETY,
            ),
            NOW - timedelta(hours=3),
        )

        survivors = prefilter(store, PipelineConfig(), NOW)

        assert [i.id for i in survivors] == ["a"]


class TestRunFilter:
    def test_saves_high_scores_only(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.add_news(_news(3))
        store.add_community([
            CommunityItem(id="c0", title="커뮤니티 화제", view_count=1000, created_at=NOW),
        ])

        def respond(payload: list[dict[str, str]]) -> str:
            return json.dumps([
                {"id": p["id"], "score": 9 if p["id"] in ("n0", "c0") else 3,
                 "category": "사회", "reason": "r"}
                for p in payload
            ])

        scorer, calls = _scorer(respond)
        result = run_relevance_filter(store, PipelineConfig(), scorer, now=NOW)

        assert result.stage1_passed == 4
        assert result.ai_queried == 4
        assert result.saved == 2
        assert len(calls) == 1
        saved = {c.title: c for c in store.list_candidates()}
        assert set(saved) == {"제목 n0", "커뮤니티 화제"}
        assert saved["제목 n0"].news_ids == ["n0"]
        assert saved["커뮤니티 화제"].community_ids == ["c0"]
        assert saved["커뮤니티 화제"].source_type == SourceType.COMMUNITY

    def test_failed_batch_does_not_stop_next(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.add_news(_news(4))
        config = PipelineConfig(batch_size=2)
        state = {"n": 0}

        def respond(payload: list[dict[str, str]]) -> str:
            state["n"] += 1
            if state["n"] == 1:
                return "no json here"
            return _score_all(8)(payload)

        scorer, calls = _scorer(respond)
        result = run_relevance_filter(store, config, scorer, now=NOW)

        assert len(calls) == 2
        assert result.ai_queried == 4
        assert result.saved == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("batch 1:")

    def test_duplicate_verdicts_saved_once(self, tmp_path: Path) -> None:
        store = _store(tmp_path)
        store.add_news(_news(1))

        def respond(payload: list[dict[str, str]]) -> str:
            entry = {"id": "n0", "score": 9, "category": "사회"}
            return json.dumps([entry, entry])

        scorer, _ = _scorer(respond)
        result = run_relevance_filter(store, PipelineConfig(), scorer, now=NOW)

        assert result.saved == 1
        assert len(store.list_candidates()) == 1

    def test_nothing_to_score(self, tmp_path: Path) -> None:
        scorer, calls = _scorer(_score_all(9))

        result = run_relevance_filter(_store(tmp_path), PipelineConfig(), scorer, now=NOW)

        assert result.stage1_passed == 0
        assert calls == []
