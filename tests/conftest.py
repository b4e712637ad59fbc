"""Shared fixtures for generator tests."""

from datetime import datetime, timedelta, timezone

import pytest

from autopulse.core.settings import Settings
from autopulse.core.types import RawItem, UNRESOLVED, to_vector

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        cron_secret="test-secret",
        embeddings_enabled=False,
        priority_brands=["Tesla", "BYD", "BMW"],
    )


@pytest.fixture
def make_item():
    """Factory for raw items; ``vector=None`` leaves the embedding unresolved."""
    counter = {'n': 0}

    def _make(item_id=None, vector=None, title="Untitled", content="", brand_hint=None, url=None):
        counter['n'] += 1
        item_id = item_id or f"item-{counter['n']}"
        return RawItem(
            id=item_id,
            title=title,
            content=content,
            url=url or f"https://example.com/{item_id}",
            embedding=to_vector(vector) if vector is not None else UNRESOLVED,
            brand_hint=brand_hint,
            scraped_at=FIXED_NOW - timedelta(minutes=100 - counter['n']),
            expires_at=FIXED_NOW + timedelta(days=2),
        )

    return _make
