"""SQLite-backed store for raw items, issues and AI candidates."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from issuepulse.models import (
    AICandidate,
    ApprovalStatus,
    Category,
    CommunityItem,
    Issue,
    IssueStatus,
    NewsItem,
    RawItem,
    SourceType,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS news_data (
    id           TEXT PRIMARY KEY,
    title        TEXT NOT NULL,
    source       TEXT,
    category     TEXT,
    published_at TEXT,
    created_at   TEXT NOT NULL,
    issue_id     TEXT
);
CREATE INDEX IF NOT EXISTS idx_news_unlinked ON news_data (issue_id, created_at);

CREATE TABLE IF NOT EXISTS community_data (
    id            TEXT PRIMARY KEY,
    title         TEXT NOT NULL,
    url           TEXT NOT NULL DEFAULT '',
    view_count    INTEGER NOT NULL DEFAULT 0,
    comment_count INTEGER NOT NULL DEFAULT 0,
    written_at    TEXT,
    created_at    TEXT NOT NULL,
    issue_id      TEXT
);
CREATE INDEX IF NOT EXISTS idx_community_unlinked ON community_data (issue_id, created_at);

CREATE TABLE IF NOT EXISTS issues (
    id              TEXT PRIMARY KEY,
    title           TEXT NOT NULL,
    category        TEXT NOT NULL,
    status          TEXT NOT NULL,
    approval_status TEXT NOT NULL,
    heat_index      INTEGER,
    approved_at     TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    dedup_bucket    INTEGER NOT NULL,
    UNIQUE (title, dedup_bucket)
);

CREATE TABLE IF NOT EXISTS issue_candidates (
    id            TEXT PRIMARY KEY,
    title         TEXT NOT NULL,
    source_type   TEXT NOT NULL,
    news_ids      TEXT NOT NULL DEFAULT '[]',
    community_ids TEXT NOT NULL DEFAULT '[]',
    ai_score      INTEGER NOT NULL,
    ai_category   TEXT NOT NULL,
    ai_reason     TEXT NOT NULL DEFAULT '',
    status        TEXT NOT NULL DEFAULT 'pending',
    created_at    TEXT NOT NULL
);
"""

_TABLES: dict[SourceType, str] = {
    SourceType.NEWS: "news_data",
    SourceType.COMMUNITY: "community_data",
}

_ISSUE_FIELDS = {"heat_index", "status", "approval_status", "approved_at", "category"}


class StoreError(Exception):
    """Raised when the backing database cannot be read or written."""


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _ts(dt: datetime) -> str:
    """Fixed-width UTC ISO string, so text comparison orders by time."""
    return as_utc(dt).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _db_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _ts(value)
    if isinstance(value, (ApprovalStatus, IssueStatus, Category, SourceType)):
        return value.value
    return value


class IssueStore:
    """Raw item / issue tables behind narrow, idempotent read-then-write calls."""

    def __init__(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._init_db()

    # ── raw items ───────────────────────────────────────────────────────

    def add_news(self, items: Iterable[NewsItem]) -> int:
        """Insert collected news; return count of newly inserted rows."""
        rows = [
            (
                item.id,
                item.title,
                item.source,
                item.category,
                _ts(item.published_at) if item.published_at else None,
                _ts(item.created_at),
                item.issue_id,
            )
            for item in items
        ]
        with self._session() as con:
            before = con.total_changes
            con.executemany(
                """
                INSERT OR IGNORE INTO news_data
                    (id, title, source, category, published_at, created_at, issue_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            return con.total_changes - before

    def add_community(self, items: Iterable[CommunityItem]) -> int:
        """Insert collected community posts; return count of newly inserted rows."""
        rows = [
            (
                item.id,
                item.title,
                item.url,
                item.view_count,
                item.comment_count,
                _ts(item.written_at) if item.written_at else None,
                _ts(item.created_at),
                item.issue_id,
            )
            for item in items
        ]
        with self._session() as con:
            before = con.total_changes
            con.executemany(
                """
                INSERT OR IGNORE INTO community_data
                    (id, title, url, view_count, comment_count, written_at, created_at, issue_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            return con.total_changes - before

    def unlinked_news(
        self,
        since: datetime,
        until: datetime | None = None,
        *,
        category: str | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[RawItem]:
        """Unlinked news created in ``[since, until]``.

        With *category*, only that category or uncategorised rows are returned.
        """
        sql = "SELECT * FROM news_data WHERE issue_id IS NULL AND created_at >= ?"
        params: list[Any] = [_ts(since)]
        if until is not None:
            sql += " AND created_at <= ?"
            params.append(_ts(until))
        if category is not None:
            sql += " AND (category = ? OR category IS NULL)"
            params.append(category)
        return self._select_raw(SourceType.NEWS, sql, params, limit, newest_first)

    def unlinked_community(
        self,
        since: datetime,
        until: datetime | None = None,
        *,
        min_views: int | None = None,
        min_comments: int | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[RawItem]:
        """Unlinked community posts created in ``[since, until]``.

        *min_views* / *min_comments* are OR-ed: either floor admits a post.
        """
        sql = "SELECT * FROM community_data WHERE issue_id IS NULL AND created_at >= ?"
        params: list[Any] = [_ts(since)]
        if until is not None:
            sql += " AND created_at <= ?"
            params.append(_ts(until))
        if min_views is not None and min_comments is not None:
            sql += " AND (view_count >= ? OR comment_count >= ?)"
            params.extend([min_views, min_comments])
        elif min_views is not None:
            sql += " AND view_count >= ?"
            params.append(min_views)
        elif min_comments is not None:
            sql += " AND comment_count >= ?"
            params.append(min_comments)
        return self._select_raw(SourceType.COMMUNITY, sql, params, limit, newest_first)

    def linked_items(self, issue_id: str) -> list[RawItem]:
        """All news and community rows currently linked to *issue_id*."""
        items: list[RawItem] = []
        for source_type, table in _TABLES.items():
            items.extend(
                self._select_raw(
                    source_type,
                    f"SELECT * FROM {table} WHERE issue_id = ?",
                    [issue_id],
                    None,
                    False,
                )
            )
        return items

    def count_links_since(self, issue_id: str, since: datetime) -> int:
        """Number of raw items linked to *issue_id* that were created after *since*."""
        total = 0
        with self._session() as con:
            for table in _TABLES.values():
                cur = con.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE issue_id = ? AND created_at >= ?",
                    (issue_id, _ts(since)),
                )
                total += cur.fetchone()[0]
        return total

    def link_items(self, source_type: SourceType, ids: list[str], issue_id: str) -> int:
        """Attach still-unlinked rows to *issue_id*; already-linked rows are left alone."""
        if not ids:
            return 0
        table = _TABLES[source_type]
        placeholders = ", ".join("?" for _ in ids)
        with self._session() as con:
            cur = con.execute(
                f"UPDATE {table} SET issue_id = ? "
                f"WHERE issue_id IS NULL AND id IN ({placeholders})",
                [issue_id, *ids],
            )
            return cur.rowcount

    def delete_unlinked_before(self, source_type: SourceType, cutoff: datetime) -> int:
        """Delete unlinked rows created strictly before *cutoff*; return the count."""
        table = _TABLES[source_type]
        with self._session() as con:
            cur = con.execute(
                f"DELETE FROM {table} WHERE issue_id IS NULL AND created_at < ?",
                (_ts(cutoff),),
            )
            return cur.rowcount

    # ── issues ──────────────────────────────────────────────────────────

    def create_issue(
        self,
        *,
        title: str,
        category: Category,
        approval_status: ApprovalStatus,
        now: datetime,
        dedup_hours: int = 24,
    ) -> Issue | None:
        """Insert a new ``ignite`` issue.

        Returns ``None`` when an issue with the same title already exists in the
        same dedup bucket (a concurrent run got there first).
        """
        issue = Issue(
            id=uuid.uuid4().hex,
            title=title,
            category=category,
            status=IssueStatus.IGNITE,
            approval_status=approval_status,
            approved_at=now if approval_status == ApprovalStatus.APPROVED else None,
            created_at=now,
            updated_at=now,
        )
        bucket = int(as_utc(now).timestamp()) // (max(dedup_hours, 1) * 3600)
        with self._session() as con:
            cur = con.execute(
                """
                INSERT OR IGNORE INTO issues
                    (id, title, category, status, approval_status, heat_index,
                     approved_at, created_at, updated_at, dedup_bucket)
                VALUES (?, ?, ?, ?, ?, NULL, ?, ?, ?, ?)
                """,
                (
                    issue.id,
                    issue.title,
                    issue.category.value,
                    issue.status.value,
                    issue.approval_status.value,
                    _ts(issue.approved_at) if issue.approved_at else None,
                    _ts(now),
                    _ts(now),
                    bucket,
                ),
            )
            if cur.rowcount == 0:
                logger.warning("Issue '%s' already exists in this window; not inserted", title)
                return None
        return issue

    def get_issue(self, issue_id: str) -> Issue | None:
        with self._session() as con:
            row = con.execute("SELECT * FROM issues WHERE id = ?", (issue_id,)).fetchone()
        return self._issue_from_row(row) if row else None

    def find_issue_by_title(self, title: str, since: datetime) -> Issue | None:
        """Most recent issue with exactly *title* created at or after *since*."""
        with self._session() as con:
            row = con.execute(
                "SELECT * FROM issues WHERE title = ? AND created_at >= ? "
                "ORDER BY created_at DESC LIMIT 1",
                (title, _ts(since)),
            ).fetchone()
        return self._issue_from_row(row) if row else None

    def list_issues(
        self,
        approval_statuses: Iterable[ApprovalStatus],
        limit: int,
        *,
        exclude_closed: bool = False,
        oldest_first: bool = False,
    ) -> list[Issue]:
        """Issues in the given moderation states, most recently updated first.

        With *oldest_first* the least recently updated come first, so a pass
        that touches every issue it reads rotates through the whole table.
        """
        statuses = [s.value for s in approval_statuses]
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in statuses)
        sql = f"SELECT * FROM issues WHERE approval_status IN ({placeholders})"
        params: list[Any] = [*statuses]
        if exclude_closed:
            sql += " AND status != ?"
            params.append(IssueStatus.CLOSED.value)
        sql += f" ORDER BY updated_at {'ASC' if oldest_first else 'DESC'}, id ASC LIMIT ?"
        params.append(limit)
        with self._session() as con:
            rows = con.execute(sql, params).fetchall()
        return [self._issue_from_row(r) for r in rows]

    def update_issue(self, issue_id: str, now: datetime, **fields: Any) -> None:
        """Write the given issue columns and bump ``updated_at``."""
        unknown = set(fields) - _ISSUE_FIELDS
        if unknown:
            raise ValueError(f"Unknown issue fields: {sorted(unknown)}")
        assignments = [f"{name} = ?" for name in fields]
        params = [_db_value(v) for v in fields.values()]
        assignments.append("updated_at = ?")
        params.append(_ts(now))
        with self._session() as con:
            con.execute(
                f"UPDATE issues SET {', '.join(assignments)} WHERE id = ?",
                [*params, issue_id],
            )

    # ── AI candidates ───────────────────────────────────────────────────

    def candidate_titles_since(self, since: datetime) -> set[str]:
        with self._session() as con:
            rows = con.execute(
                "SELECT title FROM issue_candidates WHERE created_at >= ?",
                (_ts(since),),
            ).fetchall()
        return {row[0] for row in rows}

    def add_candidate(self, candidate: AICandidate, now: datetime) -> str:
        """Stage an AI candidate for human review; return its id."""
        candidate_id = candidate.id or uuid.uuid4().hex
        with self._session() as con:
            con.execute(
                """
                INSERT INTO issue_candidates
                    (id, title, source_type, news_ids, community_ids,
                     ai_score, ai_category, ai_reason, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    candidate_id,
                    candidate.title,
                    candidate.source_type.value,
                    json.dumps(candidate.news_ids),
                    json.dumps(candidate.community_ids),
                    candidate.ai_score,
                    candidate.ai_category.value,
                    candidate.ai_reason,
                    candidate.status,
                    _ts(candidate.created_at or now),
                ),
            )
        return candidate_id

    def list_candidates(self, status: str = "pending") -> list[AICandidate]:
        with self._session() as con:
            rows = con.execute(
                "SELECT * FROM issue_candidates WHERE status = ? ORDER BY created_at",
                (status,),
            ).fetchall()
        return [
            AICandidate(
                id=row["id"],
                title=row["title"],
                source_type=SourceType(row["source_type"]),
                news_ids=json.loads(row["news_ids"]),
                community_ids=json.loads(row["community_ids"]),
                ai_score=row["ai_score"],
                ai_category=Category(row["ai_category"]),
                ai_reason=row["ai_reason"],
                status=row["status"],
                created_at=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]

    # ── private ─────────────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self._db_path))
        con.row_factory = sqlite3.Row
        return con

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close."""
        try:
            con = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open {self._db_path}: {exc}") from exc
        try:
            yield con
            con.commit()
        except sqlite3.Error as exc:
            con.rollback()
            raise StoreError(str(exc)) from exc
        finally:
            con.close()

    def _init_db(self) -> None:
        with self._session() as con:
            con.executescript(_SCHEMA)

    def _select_raw(
        self,
        source_type: SourceType,
        sql: str,
        params: list[Any],
        limit: int | None,
        newest_first: bool,
    ) -> list[RawItem]:
        sql += f" ORDER BY created_at {'DESC' if newest_first else 'ASC'}, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params = [*params, limit]
        with self._session() as con:
            rows = con.execute(sql, params).fetchall()
        return [self._raw_from_row(source_type, r) for r in rows]

    @staticmethod
    def _raw_from_row(source_type: SourceType, row: sqlite3.Row) -> RawItem:
        if source_type == SourceType.NEWS:
            return NewsItem(
                id=row["id"],
                title=row["title"],
                source=row["source"],
                category=row["category"],
                published_at=_parse_ts(row["published_at"]),
                created_at=datetime.fromisoformat(row["created_at"]),
                issue_id=row["issue_id"],
            ).to_raw()
        return CommunityItem(
            id=row["id"],
            title=row["title"],
            url=row["url"],
            view_count=row["view_count"],
            comment_count=row["comment_count"],
            written_at=_parse_ts(row["written_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            issue_id=row["issue_id"],
        ).to_raw()

    @staticmethod
    def _issue_from_row(row: sqlite3.Row) -> Issue:
        return Issue(
            id=row["id"],
            title=row["title"],
            category=Category(row["category"]),
            status=IssueStatus(row["status"]),
            approval_status=ApprovalStatus(row["approval_status"]),
            heat_index=row["heat_index"],
            approved_at=_parse_ts(row["approved_at"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
