"""Tests for topic fingerprints and the topic lock ledger."""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest

from autopulse.generator.topic_lock import (
    TopicLockLedger,
    is_lock_active,
    quantize_centroid,
    topic_fingerprint,
)


def _centroid(reverse=False):
    """64-dim vector with well separated magnitudes and alternating signs."""
    magnitudes = np.linspace(1.0, 0.01, 64)
    if reverse:
        magnitudes = magnitudes[::-1]
    signs = np.where(np.arange(64) % 2 == 0, 1.0, -1.0)
    return (magnitudes * signs).tolist()


def test_fingerprint_is_deterministic():
    assert topic_fingerprint(_centroid()) == topic_fingerprint(_centroid())
    assert len(topic_fingerprint(_centroid())) == 64


def test_fingerprint_tolerates_jitter():
    base = np.array(_centroid())
    rng = np.random.default_rng(3)
    jittered = base + rng.uniform(-1e-4, 1e-4, size=base.size)

    assert topic_fingerprint(jittered.tolist()) == topic_fingerprint(base.tolist())


def test_fingerprint_stable_for_recomputed_embedding():
    rng = np.random.default_rng(1536)
    base = rng.normal(size=1536)
    base /= np.linalg.norm(base)
    recomputed = base + rng.normal(scale=1e-6, size=base.size)

    assert topic_fingerprint(recomputed.tolist()) == topic_fingerprint(base.tolist())


def test_fingerprint_ignores_scale():
    scaled = [x * 3.7 for x in _centroid()]
    assert topic_fingerprint(scaled) == topic_fingerprint(_centroid())


def test_fingerprint_differs_for_different_topics():
    assert topic_fingerprint(_centroid()) != topic_fingerprint(_centroid(reverse=True))


def test_quantize_keeps_top_dims_with_signs():
    assert quantize_centroid([0.1, -0.9, 0.5, 0.0], dims=2) == "1:-,2:+"


def test_zero_centroid_has_fixed_fingerprint():
    assert topic_fingerprint([0.0, 0.0]) == topic_fingerprint([0.0, 0.0, 0.0])


def test_quantize_rejects_empty():
    with pytest.raises(ValueError):
        quantize_centroid([])


def test_lock_window_boundaries():
    today = date(2025, 3, 10)
    assert is_lock_active(date(2025, 3, 10), today, 1) is True
    assert is_lock_active(date(2025, 3, 9), today, 1) is False
    assert is_lock_active(date(2025, 3, 9), today, 2) is True
    assert is_lock_active(date(2025, 3, 8), today, 2) is False


def _ledger(now):
    return TopicLockLedger(session=AsyncMock(), window_days=1, clock=lambda: now)


@pytest.mark.asyncio
async def test_check_lock_yesterday_with_two_day_window():
    now = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
    lock = SimpleNamespace(date=date(2025, 3, 9), article_id="abc1234")

    with patch('autopulse.generator.topic_lock.get_latest_topic_lock', AsyncMock(return_value=lock)):
        assert await _ledger(now).check_lock("f" * 64, window_days=2) is True


@pytest.mark.asyncio
async def test_check_lock_after_window_elapsed():
    now = datetime(2025, 3, 11, 0, 30, tzinfo=timezone.utc)
    lock = SimpleNamespace(date=date(2025, 3, 9), article_id="abc1234")

    with patch('autopulse.generator.topic_lock.get_latest_topic_lock', AsyncMock(return_value=lock)):
        assert await _ledger(now).check_lock("f" * 64, window_days=2) is False


@pytest.mark.asyncio
async def test_check_lock_without_row():
    now = datetime(2025, 3, 10, tzinfo=timezone.utc)
    with patch('autopulse.generator.topic_lock.get_latest_topic_lock', AsyncMock(return_value=None)):
        assert await _ledger(now).check_lock("f" * 64) is False


@pytest.mark.asyncio
async def test_create_lock_uses_today():
    now = datetime(2025, 3, 10, 23, 59, tzinfo=timezone.utc)
    insert = AsyncMock()
    ledger = _ledger(now)

    with patch('autopulse.generator.topic_lock.insert_topic_lock', insert):
        assert await ledger.create_lock("a" * 64, "abc1234") is True

    insert.assert_awaited_once_with(ledger.session, date(2025, 3, 10), "a" * 64, "abc1234")


@pytest.mark.asyncio
async def test_create_lock_failure_is_not_fatal():
    now = datetime(2025, 3, 10, tzinfo=timezone.utc)
    insert = AsyncMock(side_effect=RuntimeError("unique violation"))

    with patch('autopulse.generator.topic_lock.insert_topic_lock', insert):
        assert await _ledger(now).create_lock("a" * 64, "abc1234") is False
