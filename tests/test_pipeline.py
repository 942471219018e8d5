"""Unit tests for job orchestration and the CLI."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from issuepulse import __main__ as cli
from issuepulse import config as settings
from issuepulse.cleanup import CleanupResult
from issuepulse.config import PipelineConfig
from issuepulse.models import NewsItem
from issuepulse.pipeline import JOBS, run_all, run_job
from issuepulse.store import IssueStore

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


class TestRunJob:
    def test_unknown_job(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unknown job"):
            run_job("collect", IssueStore(tmp_path / "p.sqlite3"), PipelineConfig())

    def test_returns_result(self, tmp_path: Path) -> None:
        store = IssueStore(tmp_path / "p.sqlite3")
        store.add_news([NewsItem(id="n", title="t", created_at=NOW - timedelta(days=10))])

        result = run_job("cleanup", store, PipelineConfig(), now=NOW)

        assert isinstance(result, CleanupResult)
        assert result.deleted_news == 1


class TestRunAll:
    def test_missing_key_fails_only_filter(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "PERPLEXITY_API_KEY", "")

        failed = run_all(IssueStore(tmp_path / "p.sqlite3"), PipelineConfig(), now=NOW)

        assert failed == ["filter"]

    def test_job_order(self) -> None:
        assert JOBS == ("candidates", "link", "heat", "filter", "cleanup")


class TestCli:
    def test_no_command_exits(self) -> None:
        with pytest.raises(SystemExit):
            cli.main([])

    def test_runs_single_job(self, tmp_path: Path) -> None:
        db = tmp_path / "cli.sqlite3"
        cli.main(["--db", str(db), "cleanup"])
        assert db.exists()

    def test_all_exits_nonzero_on_failure(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "PERPLEXITY_API_KEY", "")
        with pytest.raises(SystemExit) as exc:
            cli.main(["--db", str(tmp_path / "cli.sqlite3"), "all"])
        assert exc.value.code == 1
