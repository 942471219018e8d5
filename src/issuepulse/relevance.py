"""AI relevance filter: stage raw items an LLM rates as socially significant.

Stage 1 is a free metadata pre-filter over the store. Stage 2 sends titles
only (never article bodies) to the scoring model in bounded batches and keeps
items scoring at least ``min_score`` as AI candidates for human review.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import UTC, datetime, timedelta
from typing import Any

from openai import OpenAI, OpenAIError
from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from issuepulse import config as settings
from issuepulse.config import ConfigError, PipelineConfig
from issuepulse.models import AICandidate, Category, RawItem, SourceType
from issuepulse.store import IssueStore, StoreError, as_utc

logger = logging.getLogger(__name__)

_COMMUNITY_LOOKBACK = timedelta(hours=1)
_CANDIDATE_DEDUP = timedelta(hours=24)
_MAX_REASON_CHARS = 200
_JSON_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)

# ── Prompts ────────────────────────────────────────────────────────────────
_SYSTEM_PROMPT = (
    "당신은 한국 사회 이슈 전문가입니다. "
    "주어진 뉴스·커뮤니티 제목의 사회적 파급력을 평가합니다. "
    "반드시 JSON 배열로만 응답하세요."
)

_USER_TEMPLATE = """\
다음은 한국 뉴스·커뮤니티 제목 목록입니다.
각 항목이 "사회적 파급력이 있는 이슈"인지 평가하세요.

[점수 기준 0~10]
8~10: 전국민이 관심을 가질 사건·사고, 대형 논란, 주요 정치 이슈
5~7: 특정 집단에서 화제가 되는 소식
0~4: 보도자료, 지역 소식, 단순 정보성 기사

[카테고리] 연예 | 스포츠 | 정치 | 사회 | 기술

[입력]
{items}

[응답 형식: JSON 배열만]
[{{"id":"...","score":8,"category":"사회","reason":"짧은 근거"}}]"""


class ScoringError(Exception):
    """Raised when a scoring batch cannot be completed or parsed."""


class AIScore(BaseModel):
    """One validated verdict from the model. Anything that fails validation is dropped."""

    id: str
    score: int
    category: Category
    reason: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _id_in_batch(cls, value: Any, info: ValidationInfo) -> str:
        if not isinstance(value, str):
            raise ValueError("id must be a string")
        batch_ids = (info.context or {}).get("batch_ids")
        if batch_ids is not None and value not in batch_ids:
            raise ValueError(f"id {value!r} is not part of this batch")
        return value

    @field_validator("score", mode="before")
    @classmethod
    def _score_in_range(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError("score must be numeric")
        if math.isnan(value) or not 0 <= value <= 10:
            raise ValueError("score out of range")
        return int(math.floor(value + 0.5))

    @field_validator("category", mode="before")
    @classmethod
    def _category_is_text(cls, value: Any) -> Any:
        if not isinstance(value, str):
            raise ValueError("category must be a string")
        return value

    @field_validator("reason", mode="before")
    @classmethod
    def _trim_reason(cls, value: Any) -> str:
        return value[:_MAX_REASON_CHARS] if isinstance(value, str) else ""


def parse_scores(raw: str, batch_ids: set[str]) -> list[AIScore]:
    """Decode the model's JSON array, keeping only entries that validate.

    Raises ``ScoringError`` when the reply holds no decodable JSON array at all.
    """
    match = _JSON_ARRAY_RE.search(raw)
    if not match:
        raise ScoringError("response contained no JSON array")
    try:
        decoded = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ScoringError(f"unparseable JSON: {exc}") from exc
    if not isinstance(decoded, list):
        raise ScoringError("response JSON is not an array")

    scores: list[AIScore] = []
    for entry in decoded:
        if not isinstance(entry, dict):
            continue
        try:
            scores.append(AIScore.model_validate(entry, context={"batch_ids": batch_ids}))
        except ValidationError as exc:
            logger.debug("Dropping invalid score entry %r: %s", entry, exc.errors())
    return scores


class RelevanceScorer:
    """Batch scorer over an OpenAI-compatible chat endpoint (Perplexity by default)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        client: Any = None,
    ) -> None:
        if not api_key and client is None:
            raise ConfigError("PERPLEXITY_API_KEY is not set; the AI filter cannot run.")
        self._model = model
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=30.0)

    @classmethod
    def from_settings(cls) -> RelevanceScorer:
        return cls(
            api_key=settings.PERPLEXITY_API_KEY,
            model=settings.LLM_MODEL,
            base_url=settings.LLM_BASE_URL,
        )

    def score_batch(self, items: list[RawItem]) -> list[AIScore]:
        """Score one batch; raises ``ScoringError`` if the call or decode fails."""
        payload = json.dumps(
            [{"id": i.id, "title": i.title, "source": i.source_type.value} for i in items],
            ensure_ascii=False,
        )
        try:
            resp = self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": _USER_TEMPLATE.format(items=payload)},
                ],
                temperature=0.2,
                max_tokens=1200,
            )
        except OpenAIError as exc:
            raise ScoringError(f"scoring request failed: {exc}") from exc

        if not resp.choices:
            raise ScoringError("scoring response had no choices")
        raw = resp.choices[0].message.content or ""
        return parse_scores(raw, {i.id for i in items})


class FilterRunResult(BaseModel):
    stage1_passed: int = 0
    ai_queried: int = 0
    saved: int = 0
    errors: list[str] = Field(default_factory=list)


def prefilter(store: IssueStore, config: PipelineConfig, now: datetime) -> list[RawItem]:
    """Stage 1: recent unlinked news plus engaged community posts, minus seen titles."""
    staged = store.candidate_titles_since(now - _CANDIDATE_DEDUP)

    news = store.unlinked_news(
        now - timedelta(minutes=config.collection_window_min),
        limit=config.batch_size * 2,
    )
    community = store.unlinked_community(
        now - _COMMUNITY_LOOKBACK,
        min_views=config.view_threshold,
        min_comments=config.comment_threshold,
        limit=config.batch_size,
    )

    survivors: list[RawItem] = []
    seen: set[str] = set(staged)
    for item in [*news, *community]:
        if item.title in seen:
            continue
        seen.add(item.title)
        survivors.append(item)

    logger.info(
        "Pre-filter: %d news + %d community → %d survivors",
        len(news), len(community), len(survivors),
    )
    return survivors


def run_relevance_filter(
    store: IssueStore,
    config: PipelineConfig,
    scorer: RelevanceScorer,
    *,
    now: datetime | None = None,
) -> FilterRunResult:
    """Run both filter stages once. Batch failures are recorded, not raised."""
    now = as_utc(now or datetime.now(UTC))
    result = FilterRunResult()

    survivors = prefilter(store, config, now)
    result.stage1_passed = len(survivors)
    if not survivors:
        return result

    size = max(config.batch_size, 1)
    for start in range(0, len(survivors), size):
        batch = survivors[start:start + size]
        batch_no = start // size + 1
        result.ai_queried += len(batch)

        try:
            scores = scorer.score_batch(batch)
        except ScoringError as exc:
            logger.warning("Batch %d failed: %s", batch_no, exc)
            result.errors.append(f"batch {batch_no}: {exc}")
            continue

        by_id = {item.id: item for item in batch}
        for verdict in scores:
            if verdict.score < config.min_score or verdict.id not in by_id:
                continue
            item = by_id.pop(verdict.id)
            candidate = AICandidate(
                title=item.title,
                source_type=item.source_type,
                news_ids=[item.id] if item.source_type == SourceType.NEWS else [],
                community_ids=[item.id] if item.source_type == SourceType.COMMUNITY else [],
                ai_score=verdict.score,
                ai_category=verdict.category,
                ai_reason=verdict.reason,
            )
            try:
                store.add_candidate(candidate, now)
            except StoreError as exc:
                logger.exception("Could not stage candidate '%s'", item.title)
                result.errors.append(f"save {item.title}: {exc}")
                continue
            result.saved += 1

    logger.info(
        "AI filter: %d pre-filtered, %d scored, %d staged, %d errors",
        result.stage1_passed, result.ai_queried, result.saved, len(result.errors),
    )
    return result
