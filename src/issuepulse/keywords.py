"""Title tokenisation and the keyword lexicons (stopwords, category dictionary)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from issuepulse.models import Category

logger = logging.getLogger(__name__)

# "[단독][속보] 제목" → "제목"
_MEDIA_PREFIX_RE = re.compile(r"^(\[[^\]]{1,30}\]\s*)+")
# \w is unicode-aware, so Hangul syllables survive alongside latin letters/digits.
_NON_WORD_RE = re.compile(r"[^\w\s]|_")

_MIN_TOKEN_LEN = 2

# Headline filler that says nothing about which event a title is about.
_DEFAULT_STOPWORDS: frozenset[str] = frozenset({
    "논란", "사건", "사고", "통보", "불참", "발표", "확인", "관련", "이후",
    "결국", "충격", "공개", "최초", "단독", "속보", "긴급", "오늘", "어제",
    "지금", "올해", "최근", "현재", "직접", "처음", "마지막", "드디어",
    "알고", "보니", "위해", "대해", "통해", "따라", "의해", "부터", "까지",
    "이번", "해당", "모든", "일부", "전체", "이미", "아직", "더욱", "매우",
})

_DEFAULT_CATEGORY_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.ENTERTAINMENT: (
        "배우", "가수", "아이돌", "드라마", "영화", "방송", "예능", "연기",
        "뮤직비디오", "콘서트", "공연", "데뷔", "컴백", "연예인", "오디션",
        "걸그룹", "보이그룹", "앨범", "뮤지컬", "소속사", "열애", "결혼", "이혼",
    ),
    Category.SPORTS: (
        "야구", "축구", "농구", "배구", "선수", "감독", "경기", "우승", "리그",
        "득점", "올림픽", "월드컵", "코치", "트레이드", "시즌", "챔피언",
        "투수", "타자", "구단", "골프", "테니스", "수영",
    ),
    Category.POLITICS: (
        "대통령", "국회", "정당", "여당", "야당", "선거", "의원", "장관",
        "탄핵", "법안", "총리", "국무", "정치", "당대표", "입법", "개헌",
        "헌법", "공천", "정부", "국정", "외교", "안보",
    ),
    Category.SOCIETY: (
        "사망", "부상", "화재", "범죄", "경찰", "검찰", "재판", "피해",
        "시위", "체포", "수사", "실종", "폭행", "마약", "사기", "횡령",
        "파업", "집회", "구속", "기소", "판결",
    ),
    Category.TECH: (
        "ai", "인공지능", "반도체", "스마트폰", "플랫폼", "스타트업",
        "구글", "애플", "삼성전자", "소프트웨어", "클라우드", "해킹",
        "개발자", "로봇", "드론", "자율주행", "전기차", "배터리", "유튜브",
    ),
}


def strip_media_prefix(title: str) -> str:
    """Drop leading bracketed press tags such as ``[단독]`` or ``[해외연예]``."""
    return _MEDIA_PREFIX_RE.sub("", title).strip()


def tokenize(title: str) -> set[str]:
    """Split a title into lowercase keyword tokens of at least two characters."""
    cleaned = _NON_WORD_RE.sub(" ", title.lower())
    return {w for w in cleaned.split() if len(w) >= _MIN_TOKEN_LEN}


@dataclass(frozen=True)
class Lexicon:
    stopwords: frozenset[str] = _DEFAULT_STOPWORDS
    categories: dict[Category, tuple[str, ...]] = field(
        default_factory=lambda: dict(_DEFAULT_CATEGORY_KEYWORDS)
    )

    def keywords(self, title: str) -> set[str]:
        """Tokens of *title* minus media prefixes and stopwords."""
        return tokenize(strip_media_prefix(title)) - self.stopwords

    def guess_category(self, titles: list[str]) -> Category | None:
        """Return the category whose dictionary matches the most words, if any."""
        text = " ".join(titles).lower()
        best: Category | None = None
        best_hits = 0
        for category, words in self.categories.items():
            hits = sum(1 for w in words if w in text)
            if hits > best_hits:
                best, best_hits = category, hits
        return best


DEFAULT_LEXICON = Lexicon()


def load_lexicon(path: str | Path | None) -> Lexicon:
    """Load a YAML lexicon override, falling back to the built-in lists.

    Expected shape::

        stopwords: [논란, 사건, ...]
        categories:
          연예: [배우, 가수, ...]
          스포츠: [...]

    Either key may be omitted; omitted keys keep the built-in values.
    """
    if not path:
        return DEFAULT_LEXICON
    p = Path(path)
    if not p.exists():
        logger.warning("Keyword file not found, using built-in lexicon: %s", p)
        return DEFAULT_LEXICON

    with open(p, encoding="utf-8") as fh:
        cfg: dict[str, Any] = yaml.safe_load(fh) or {}

    stopwords = _DEFAULT_STOPWORDS
    if cfg.get("stopwords"):
        stopwords = frozenset(str(w).lower() for w in cfg["stopwords"])

    categories = dict(_DEFAULT_CATEGORY_KEYWORDS)
    for name, words in (cfg.get("categories") or {}).items():
        try:
            category = Category(name)
        except ValueError:
            logger.warning("Unknown category '%s' in %s; skipping.", name, p)
            continue
        categories[category] = tuple(str(w).lower() for w in words or [])

    logger.info(
        "Loaded lexicon from %s (%d stopwords, %d categories)",
        p, len(stopwords), len(categories),
    )
    return Lexicon(stopwords=stopwords, categories=categories)
