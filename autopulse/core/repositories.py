"""Repository layer for database operations.

Async read/write contracts the generator core needs from the store. Every
function takes the session explicitly; writers commit on success and roll
back before re-raising on failure.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from autopulse.core.logging import get_logger
from autopulse.core.models import RawArticle, GeneratedArticle, DailyTopicLock, CronLog
from autopulse.core.types import RawItem, RecentArticle, UNRESOLVED, parse_embedding

logger = get_logger(__name__)


def _resolve_embedding(raw: Any, row_id: str):
    try:
        return parse_embedding(raw)
    except ValueError as e:
        logger.warning(f"Ignoring malformed embedding on {row_id}: {e}")
        return UNRESOLVED


def to_raw_item(row: RawArticle) -> RawItem:
    """Convert an ORM row into the domain ``RawItem``."""
    return RawItem(
        id=row.id,
        title=row.title or "",
        content=row.content or "",
        url=row.url or "",
        embedding=_resolve_embedding(row.embedding, row.id),
        brand_hint=row.brand_hint,
        scraped_at=row.scraped_at,
        expires_at=row.expires_at,
        consumed_by=row.used_in_article_id,
    )


async def get_unexpired_raw_items(session: AsyncSession, now: datetime) -> List[RawItem]:
    """
    Get every raw item whose expiry lies in the future.

    Args:
        session: Database session
        now: Reference time for the expiry filter

    Returns:
        List of RawItem ordered by scrape time then id
    """
    stmt = (
        select(RawArticle)
        .where(RawArticle.expires_at > now)
        .order_by(RawArticle.scraped_at, RawArticle.id)
    )
    result = await session.execute(stmt)
    items = [to_raw_item(row) for row in result.scalars().all()]

    logger.debug(f"Retrieved {len(items)} unexpired raw items")
    return items


async def update_raw_item_embedding(session: AsyncSession, item_id: str, values: Sequence[float]) -> None:
    """Write a computed embedding back to its raw item."""
    stmt = (
        update(RawArticle)
        .where(RawArticle.id == item_id)
        .values(embedding=[float(v) for v in values])
    )
    try:
        await session.execute(stmt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def mark_raw_items_consumed(session: AsyncSession, item_ids: Sequence[str], article_id: str) -> int:
    """
    Record which generated article consumed the given raw items.

    Returns:
        Number of rows updated
    """
    if not item_ids:
        return 0

    stmt = (
        update(RawArticle)
        .where(RawArticle.id.in_(list(item_ids)))
        .values(used_in_article_id=article_id)
    )
    try:
        result = await session.execute(stmt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.debug(f"Marked {result.rowcount} raw items consumed by {article_id}")
    return result.rowcount


async def insert_generated_article(session: AsyncSession, data: Dict[str, Any]) -> GeneratedArticle:
    """
    Insert a committed article.

    Args:
        session: Database session
        data: Column values for ``GeneratedArticle``

    Returns:
        The persisted article
    """
    article = GeneratedArticle(**data)
    session.add(article)
    try:
        await session.commit()
        await session.refresh(article)
    except Exception as e:
        await session.rollback()
        logger.error(f"Failed to insert generated article {data.get('id')}: {e}")
        raise

    logger.info(
        f"Created generated article: {article.id}",
        extra={'brand': article.primary_brand, 'published': article.published}
    )
    return article


async def get_recent_brand_articles(
    session: AsyncSession,
    brand: str,
    since: datetime,
    limit: Optional[int] = None,
    published_only: bool = False,
    with_embedding: bool = False
) -> List[RecentArticle]:
    """
    Get a brand's committed articles inside a time window, newest first.

    Args:
        session: Database session
        brand: Primary brand to filter on
        since: Window start (created_at, or published_at when published_only)
        limit: Optional row cap
        published_only: Restrict to published articles, windowed on published_at
        with_embedding: Restrict to rows that carry an embedding

    Returns:
        List of RecentArticle
    """
    time_column = GeneratedArticle.published_at if published_only else GeneratedArticle.created_at

    stmt = (
        select(GeneratedArticle)
        .where(GeneratedArticle.primary_brand == brand)
        .where(time_column >= since)
        .order_by(desc(time_column))
    )
    if published_only:
        stmt = stmt.where(GeneratedArticle.published == True)  # noqa: E712
    if with_embedding:
        stmt = stmt.where(GeneratedArticle.embedding.isnot(None))
    if limit:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    return [
        RecentArticle(
            id=row.id,
            title=row.title_zh or "",
            created_at=row.created_at,
            embedding=_resolve_embedding(row.embedding, row.id),
        )
        for row in result.scalars().all()
    ]


async def get_latest_topic_lock(session: AsyncSession, topic_hash: str) -> Optional[DailyTopicLock]:
    """Get the most recent lock recorded for a topic fingerprint."""
    stmt = (
        select(DailyTopicLock)
        .where(DailyTopicLock.topic_hash == topic_hash)
        .order_by(desc(DailyTopicLock.date))
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def insert_topic_lock(
    session: AsyncSession,
    lock_date: date,
    topic_hash: str,
    article_id: Optional[str]
) -> DailyTopicLock:
    """Insert a topic lock row."""
    lock = DailyTopicLock(date=lock_date, topic_hash=topic_hash, article_id=article_id)
    session.add(lock)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return lock


async def insert_cron_log(session: AsyncSession, job_name: str, status: str, details: Dict[str, Any]) -> None:
    """Append a job run record."""
    session.add(CronLog(job_name=job_name, status=status, details=details))
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
