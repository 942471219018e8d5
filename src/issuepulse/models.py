"""Domain models used across the pipeline."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    NEWS = "news"
    COMMUNITY = "community"


class Category(str, Enum):
    ENTERTAINMENT = "연예"
    SPORTS = "스포츠"
    POLITICS = "정치"
    SOCIETY = "사회"
    TECH = "기술"


class IssueStatus(str, Enum):
    IGNITE = "점화"
    DEBATED = "논란중"
    CLOSED = "종결"


class ApprovalStatus(str, Enum):
    PENDING = "대기"
    APPROVED = "승인"
    REJECTED = "반려"


DEFAULT_CATEGORY = Category.SOCIETY


class NewsItem(BaseModel):
    id: str
    title: str
    source: str | None = None
    category: str | None = None
    published_at: datetime | None = None
    created_at: datetime
    issue_id: str | None = None

    def to_raw(self) -> RawItem:
        return RawItem(
            id=self.id,
            title=self.title,
            source_type=SourceType.NEWS,
            created_at=self.created_at,
            category=self.category,
            source=self.source,
            issue_id=self.issue_id,
        )


class CommunityItem(BaseModel):
    id: str
    title: str
    url: str = ""
    view_count: int = 0
    comment_count: int = 0
    written_at: datetime | None = None
    created_at: datetime
    issue_id: str | None = None

    def to_raw(self) -> RawItem:
        return RawItem(
            id=self.id,
            title=self.title,
            source_type=SourceType.COMMUNITY,
            created_at=self.created_at,
            view_count=self.view_count,
            comment_count=self.comment_count,
            issue_id=self.issue_id,
        )


class RawItem(BaseModel):
    """A collected news article or community post, as the pipeline sees it."""

    id: str
    title: str
    source_type: SourceType
    created_at: datetime
    category: str | None = None  # news only
    source: str | None = None  # news only
    view_count: int = 0  # community only
    comment_count: int = 0  # community only
    issue_id: str | None = None


class Cluster(BaseModel):
    """In-run grouping of raw items that share title keywords. Never stored."""

    tokens: set[str] = Field(default_factory=set)
    items: list[RawItem] = Field(default_factory=list)

    @property
    def representative(self) -> RawItem:
        return self.items[0]


class Issue(BaseModel):
    id: str
    title: str
    category: Category = DEFAULT_CATEGORY
    status: IssueStatus = IssueStatus.IGNITE
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    heat_index: int | None = None
    approved_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AICandidate(BaseModel):
    id: str | None = None
    title: str
    source_type: SourceType
    news_ids: list[str] = Field(default_factory=list)
    community_ids: list[str] = Field(default_factory=list)
    ai_score: int
    ai_category: Category
    ai_reason: str = ""
    status: str = "pending"
    created_at: datetime | None = None
