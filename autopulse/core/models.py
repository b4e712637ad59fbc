"""Database models for AutoPulse."""

from sqlalchemy import (
    String, DateTime, Date, Boolean, Text, Integer, BigInteger,
    JSON, Index, UniqueConstraint, Float
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base


class RawArticle(Base):
    """Scraped source articles awaiting clustering."""
    __tablename__ = "raw_articles"

    id = mapped_column(String(64), primary_key=True)
    url = mapped_column(String(1500), nullable=False)
    title = mapped_column(String(800), nullable=False)
    content = mapped_column(Text, nullable=False, default="")
    embedding = mapped_column(JSON, nullable=True)  # list[float]
    brand_hint = mapped_column(String(100), nullable=True)
    scraped_at = mapped_column(DateTime(timezone=True), index=True)
    expires_at = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    used_in_article_id = mapped_column(String(16), nullable=True, index=True)


class GeneratedArticle(Base):
    """Articles committed by the generator."""
    __tablename__ = "generated_articles"

    id = mapped_column(String(16), primary_key=True)  # short base62 id
    title_zh = mapped_column(String(500), nullable=False)
    content_zh = mapped_column(Text, nullable=False)
    slug_en = mapped_column(String(200), nullable=True)
    source_urls = mapped_column(JSON, nullable=False, default=list)
    source_item_ids = mapped_column(JSON, nullable=False, default=list)
    confidence = mapped_column(Float, default=0.0)
    quality_checks = mapped_column(JSON, nullable=True)
    reasoning = mapped_column(Text, nullable=True)
    style_version = mapped_column(String(16), default="v1.0")
    primary_brand = mapped_column(String(100), index=True)
    brands = mapped_column(JSON, nullable=True)
    car_models = mapped_column(JSON, nullable=True)
    categories = mapped_column(JSON, nullable=True)
    tags = mapped_column(JSON, nullable=True)
    embedding = mapped_column(JSON, nullable=True)
    published = mapped_column(Boolean, default=False, index=True)
    publish_reason = mapped_column(String(255), nullable=True)
    published_at = mapped_column(DateTime(timezone=True), index=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class DailyTopicLock(Base):
    """Cross-run record of topics already turned into an article."""
    __tablename__ = "daily_topic_locks"

    id = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    date = mapped_column(Date, nullable=False, index=True)
    topic_hash = mapped_column(String(64), nullable=False, index=True)
    article_id = mapped_column(String(16), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (UniqueConstraint("date", "topic_hash", name="uq_topic_lock_date_hash"),)


class CronLog(Base):
    """One row per scheduled or manual job run."""
    __tablename__ = "cron_logs"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_name = mapped_column(String(100), nullable=False, index=True)
    status = mapped_column(String(32), nullable=False, index=True)
    details = mapped_column("metadata", JSON, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


Index('idx_generated_brand_created', GeneratedArticle.primary_brand, GeneratedArticle.created_at)
Index('idx_generated_brand_published', GeneratedArticle.primary_brand, GeneratedArticle.published_at)
