"""
Duplicate guard run on every generated candidate before it is committed.

Three checks run in increasing cost order and the first hit wins:

1. brand rate limit: committed articles for the brand in a rolling window
2. keyword overlap: Jaccard similarity of title keyword sets
3. semantic similarity: cosine similarity of content embeddings

All three look only at the candidate's own brand.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Sequence, Set, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from autopulse.core.logging import get_logger
from autopulse.core.repositories import get_recent_brand_articles
from autopulse.core.settings import Settings, get_settings
from autopulse.core.time import Clock, utc_now
from autopulse.core.types import Embedding, RecentArticle, Unresolved, Vector
from autopulse.generator.similarity import cosine_similarity

logger = get_logger(__name__)

MAX_CJK_KEYWORDS = 5
KEYWORD_RECENT_LIMIT = 10
SEMANTIC_RECENT_LIMIT = 20

CJK_STOP_WORDS = {
    '的', '與', '和', '或', '是', '在', '將', '為', '了', '年', '月', '日',
    '以及', '我們', '他們', '這個', '那個', '一個', '沒有', '可以', '已經',
}

LATIN_STOP_WORDS = {
    'a', 'an', 'the', 'and', 'or', 'of', 'to', 'in', 'on', 'for', 'with', 'at',
    'by', 'from', 'as', 'is', 'are', 'was', 'be', 'its', 'it', 'new', 'vs',
    'after', 'over', 'into', 'about', 'will', 'has', 'have', 'this', 'that',
}

_CJK_RUN = re.compile(r'[\u4e00-\u9fff]+')
_LATIN_TOKEN = re.compile(r'[A-Za-z0-9]+(?:[-.][A-Za-z0-9]+)*')
_YEAR = re.compile(r'^(19|20)\d{2}$')


@dataclass
class DuplicateVerdict:
    """Outcome of the duplicate guard."""
    is_duplicate: bool
    reason: Optional[str] = None
    related: Optional[RecentArticle] = None
    check: Optional[str] = None  # 'brand_rate' | 'keyword' | 'semantic'

    def to_dict(self) -> dict:
        return {
            'is_duplicate': self.is_duplicate,
            'reason': self.reason,
            'check': self.check,
            'related_id': self.related.id if self.related else None,
        }


NOT_DUPLICATE = DuplicateVerdict(is_duplicate=False)


def _is_latin_keyword(token: str) -> bool:
    if token in LATIN_STOP_WORDS:
        return False
    if token.isdigit():
        # Bare numbers only count as years
        return bool(_YEAR.match(token))
    return True


def extract_keywords(title: str) -> Set[str]:
    """
    Extract a small keyword set from a title.

    CJK runs of two or more characters (up to five, stop words removed),
    4-digit years, and Latin words or model codes such as ``EX30`` or
    ``ID.4``. Latin tokens are lowercased so casing never changes the set.
    """
    if not title:
        return set()

    keywords: List[str] = []

    cjk = [run for run in _CJK_RUN.findall(title) if len(run) >= 2 and run not in CJK_STOP_WORDS]
    keywords.extend(cjk[:MAX_CJK_KEYWORDS])

    for token in _LATIN_TOKEN.findall(title):
        token = token.lower()
        if _is_latin_keyword(token):
            keywords.append(token)

    return set(keywords)


def keyword_overlap(a: Set[str], b: Set[str]) -> float:
    """Jaccard similarity of two keyword sets; 0.0 when either is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def title_overlap(title_a: str, title_b: str) -> float:
    return keyword_overlap(extract_keywords(title_a), extract_keywords(title_b))


def check_brand_frequency(count: int, max_articles: int) -> bool:
    """Rate limit is exceeded once the window already holds ``max_articles``."""
    return count >= max_articles


def _as_vector(embedding: Union[Embedding, Sequence[float], None]) -> Optional[Tuple[float, ...]]:
    if embedding is None:
        return None
    if isinstance(embedding, Vector):
        return embedding.data
    if isinstance(embedding, Unresolved):
        return None
    values = tuple(float(x) for x in embedding)
    return values or None


class DuplicateGuard:
    """Composite duplicate check against a brand's recent committed articles."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.clock = clock or utc_now

    async def check_rate_limit(self, brand: str) -> DuplicateVerdict:
        window_hours = self.settings.brand_window_hours
        max_articles = self.settings.brand_max_articles
        since = self.clock() - timedelta(hours=window_hours)

        recent = await get_recent_brand_articles(self.session, brand, since)
        count = len(recent)

        if check_brand_frequency(count, max_articles):
            return DuplicateVerdict(
                is_duplicate=True,
                reason=f"brand rate limit exceeded ({count}/{max_articles} in {window_hours}h)",
                related=recent[0] if recent else None,
                check='brand_rate',
            )
        return NOT_DUPLICATE

    async def check_keyword_overlap(self, title: str, brand: str) -> DuplicateVerdict:
        candidate = extract_keywords(title)
        if not candidate:
            return NOT_DUPLICATE

        threshold = self.settings.keyword_overlap_threshold
        since = self.clock() - timedelta(days=self.settings.keyword_window_days)
        recent = await get_recent_brand_articles(
            self.session, brand, since, limit=KEYWORD_RECENT_LIMIT
        )

        for article in recent:
            overlap = keyword_overlap(candidate, extract_keywords(article.title))
            if overlap >= threshold:
                logger.info(
                    f"Keyword overlap {overlap:.0%} with {article.id}",
                    extra={'brand': brand, 'candidate': sorted(candidate)}
                )
                return DuplicateVerdict(
                    is_duplicate=True,
                    reason=f"keyword overlap {overlap * 100:.0f}%",
                    related=article,
                    check='keyword',
                )
        return NOT_DUPLICATE

    async def check_semantic(self, embedding: Sequence[float], brand: str) -> DuplicateVerdict:
        threshold = self.settings.semantic_duplicate_threshold
        since = self.clock() - timedelta(days=self.settings.semantic_window_days)
        recent = await get_recent_brand_articles(
            self.session, brand, since,
            limit=SEMANTIC_RECENT_LIMIT,
            published_only=True,
            with_embedding=True,
        )

        for article in recent:
            other = _as_vector(article.embedding)
            if other is None:
                continue
            try:
                similarity = cosine_similarity(embedding, other)
            except ValueError as e:
                logger.debug(f"Skipping {article.id} in semantic check: {e}")
                continue

            if similarity >= threshold:
                logger.info(
                    f"Semantic similarity {similarity:.2f} with {article.id}",
                    extra={'brand': brand}
                )
                return DuplicateVerdict(
                    is_duplicate=True,
                    reason=f"semantic similarity {similarity * 100:.0f}%",
                    related=article,
                    check='semantic',
                )
        return NOT_DUPLICATE

    async def comprehensive_check(
        self,
        title: str,
        embedding: Union[Embedding, Sequence[float], None],
        brand: str
    ) -> DuplicateVerdict:
        """
        Run all duplicate checks for a candidate, cheapest first.

        Args:
            title: Candidate title
            embedding: Candidate content embedding; the semantic check is
                skipped when it is missing
            brand: Candidate primary brand

        Returns:
            The first positive verdict, or a negative one
        """
        verdict = await self.check_rate_limit(brand)
        if verdict.is_duplicate:
            return verdict

        verdict = await self.check_keyword_overlap(title, brand)
        if verdict.is_duplicate:
            return verdict

        vector = _as_vector(embedding)
        if vector is not None:
            verdict = await self.check_semantic(vector, brand)
            if verdict.is_duplicate:
                return verdict

        return NOT_DUPLICATE
