"""Tests for the generator trigger surface."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from autopulse.core.errors import FetchFailure
from autopulse.core.settings import get_settings
from autopulse.generator.app import app, get_pipeline
from autopulse.generator.pipeline import RunSummary

AUTH = {"Authorization": "Bearer test-secret"}


class FakePipeline:
    database = None

    def __init__(self, summary=None, error=None):
        self.run = AsyncMock(return_value=summary, side_effect=error)


@pytest.fixture
def client(settings):
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_pipeline(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline


def test_generator_healthz(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "generator"}


def test_root_lists_endpoints(client):
    data = client.get("/").json()
    assert data["service"] == "generator"
    assert "run" in data["endpoints"]


def test_missing_token_is_rejected(client):
    pipeline = FakePipeline(summary=RunSummary())
    _use_pipeline(pipeline)

    response = client.get("/cron/generator")

    assert response.status_code == 401
    pipeline.run.assert_not_awaited()


def test_wrong_token_is_rejected(client):
    _use_pipeline(FakePipeline(summary=RunSummary()))

    response = client.post("/cron/generator", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_unset_secret_rejects_everything(client, settings):
    app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={'cron_secret': ''})
    _use_pipeline(FakePipeline(summary=RunSummary()))

    response = client.get("/cron/generator", headers={"Authorization": "Bearer "})

    assert response.status_code == 401


@pytest.mark.parametrize("method", ["get", "post"])
def test_successful_run_returns_summary(client, method):
    summary = RunSummary(work_items=3, generated=3, committed=2, duplicates=1, stop_reason="work_exhausted")
    pipeline = FakePipeline(summary=summary)
    _use_pipeline(pipeline)

    response = getattr(client, method)("/cron/generator", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["summary"]["committed"] == 2
    assert data["summary"]["duplicates"] == 1
    assert "duration_ms" in data
    pipeline.run.assert_awaited_once()


def test_partial_failure_is_still_success(client):
    summary = RunSummary(work_items=2, generated=1, committed=1, failed=1)
    _use_pipeline(FakePipeline(summary=summary))

    response = client.get("/cron/generator", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["summary"]["failed"] == 1


def test_fetch_failure_returns_500(client):
    _use_pipeline(FakePipeline(error=FetchFailure("Cannot read raw items: connection refused")))

    response = client.get("/cron/generator", headers=AUTH)

    assert response.status_code == 500
    data = response.json()
    assert data["success"] is False
    assert "connection refused" in data["error"]
    assert isinstance(data["duration_ms"], int)
