"""Tests for core types, helpers and configuration."""

import json
import logging.config
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from autopulse.core.logging import get_logging_config
from autopulse.core.repositories import insert_topic_lock, mark_raw_items_consumed, to_raw_item
from autopulse.core.settings import Settings
from autopulse.core.time import day_of_year, utc_today
from autopulse.core.types import Unresolved, Vector, parse_embedding
from autopulse.core.utils import BASE62_ALPHABET, generate_short_id, slugify


@pytest.mark.parametrize("raw", [None, "", "   ", [], "[]"])
def test_parse_embedding_unresolved(raw):
    assert isinstance(parse_embedding(raw), Unresolved)


def test_parse_embedding_from_text_and_list():
    assert parse_embedding("[0.5, -1, 2]") == Vector((0.5, -1.0, 2.0))
    assert parse_embedding([1, 2]) == Vector((1.0, 2.0))


@pytest.mark.parametrize("raw", ["not json", '{"a": 1}', ["x", 1], 42])
def test_parse_embedding_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_embedding(raw)


def test_raw_item_vector(make_item):
    item = make_item("a", [1.0, 2.0], title="Title", content="Body")
    assert item.vector == (1.0, 2.0)
    assert item.text == "Title\n\nBody"
    assert make_item("b").vector is None


def test_slugify():
    assert slugify("Tesla Model Y: Price Cut!") == "tesla-model-y-price-cut"
    assert slugify("Citroën ë-C3") == "citroen-e-c3"
    assert slugify("特斯拉") == "article"


def test_short_id():
    short_id = generate_short_id()
    assert len(short_id) == 7
    assert all(ch in BASE62_ALPHABET for ch in short_id)


def test_day_helpers():
    assert day_of_year(date(2025, 1, 1)) == 1
    assert day_of_year(date(2024, 12, 31)) == 366
    assert utc_today(datetime(2025, 3, 10, 23, 30)) == date(2025, 3, 10)
    assert utc_today(datetime(2025, 3, 10, 23, 30, tzinfo=timezone.utc)) == date(2025, 3, 10)


def test_settings_defaults():
    settings = Settings(_env_file=None)
    assert settings.target_articles == 10
    assert settings.max_articles_per_run == 15
    assert settings.max_articles_per_brand == 3
    assert settings.semantic_duplicate_threshold == 0.90
    assert len(settings.priority_brands) == 18


def test_logging_config_switches_to_json_in_production():
    production = Settings(_env_file=None, environment="production")
    development = Settings(_env_file=None, environment="development")

    assert get_logging_config("generator", production)["handlers"]["console"]["formatter"] == "json"
    assert get_logging_config("generator", development)["handlers"]["console"]["formatter"] == "console"


def test_logging_config_quiets_client_libraries():
    config = get_logging_config("generator", Settings(_env_file=None, environment="development"))

    assert set(config["loggers"]) == {"autopulse", "sqlalchemy.engine", "httpx", "httpcore"}
    assert config["loggers"]["sqlalchemy.engine"]["level"] == "WARNING"
    assert list(config["formatters"]) == ["console"]
    assert "[generator]" in config["formatters"]["console"]["format"]


def test_production_logging_emits_service_field():
    settings = Settings(_env_file=None, environment="production")
    logging.config.dictConfig(get_logging_config("generator", settings))
    try:
        handler = logging.getLogger("autopulse").handlers[0]
        record = logging.LogRecord("autopulse.test", logging.INFO, __file__, 1, "run done", None, None)

        payload = json.loads(handler.formatter.format(record))

        assert payload["service"] == "generator"
        assert payload["message"] == "run done"
    finally:
        logging.config.dictConfig(get_logging_config("generator", Settings(_env_file=None)))


@pytest.mark.asyncio
async def test_mark_consumed_without_ids_is_noop():
    session = AsyncMock()

    assert await mark_raw_items_consumed(session, [], "abc1234") == 0
    session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_writers_roll_back_on_failure():
    session = AsyncMock()
    session.add = MagicMock()
    session.commit.side_effect = RuntimeError("unique violation")

    with pytest.raises(RuntimeError):
        await insert_topic_lock(session, date(2025, 3, 10), "a" * 64, "abc1234")

    session.rollback.assert_awaited_once()


def test_to_raw_item_ignores_malformed_embedding():
    row = SimpleNamespace(
        id="r1", title="Tesla", content="Body", url="https://example.com/r1",
        embedding="{broken", brand_hint=None, scraped_at=None, expires_at=None,
        used_in_article_id=None,
    )

    item = to_raw_item(row)

    assert isinstance(item.embedding, Unresolved)
    assert item.title == "Tesla"
