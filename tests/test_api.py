# tests/test_api.py
"""
Contract tests for the ingestion admin API.
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from curator.config import get_settings
from curator.main import app
from curator.models import IngestionLog, JobKind
from curator.pipeline import build_pipeline
from curator.routers.ingestion import get_pipeline
from curator.services.extractors import BaseExtractor
from curator.utils.clock import utcnow

AUTH = {"X-API-Key": "test-api-key"}


@pytest.fixture
def pipeline(session_factory):
    feed = MagicMock(spec=BaseExtractor)
    feed.extract = AsyncMock(return_value=[])
    return build_pipeline(session_factory, get_settings(), extractors={JobKind.FEED: feed})


@pytest.fixture
def client(pipeline):
    """Create test client wired to the per-test database."""
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "ok"
        assert data["service"] == "news-curator-ingestion"


class TestAuth:
    """Mutating endpoints require the admin key."""

    @pytest.mark.parametrize(
        "path",
        [
            "/v1/sources/ingest-all",
            f"/v1/sources/{uuid.uuid4()}/ingest",
            "/v1/ingestion/queue/pause",
            "/v1/ingestion/queue/resume",
            "/v1/ingestion/queue/clean",
        ],
    )
    def test_missing_key_rejected(self, client, path):
        assert client.post(path).status_code == 401

    def test_wrong_key_rejected(self, client):
        response = client.post("/v1/ingestion/queue/pause", headers={"X-API-Key": "nope"})
        assert response.status_code == 401


class TestTriggerEndpoints:
    """Test trigger endpoint contracts."""

    def test_trigger_source(self, client, make_source):
        source = make_source(scrape_enabled=True)

        response = client.post(f"/v1/sources/{source.id}/ingest", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["source_id"] == str(source.id)
        assert len(data["job_ids"]) == 2

    def test_trigger_unknown_source_404(self, client):
        response = client.post(f"/v1/sources/{uuid.uuid4()}/ingest", headers=AUTH)
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_trigger_inactive_source_409(self, client, make_source):
        source = make_source(is_active=False)
        response = client.post(f"/v1/sources/{source.id}/ingest", headers=AUTH)
        assert response.status_code == 409

    def test_trigger_source_without_method_422(self, client, make_source):
        source = make_source(feed_url=None, scrape_enabled=False)
        response = client.post(f"/v1/sources/{source.id}/ingest", headers=AUTH)
        assert response.status_code == 422

    def test_trigger_invalid_uuid_422(self, client):
        response = client.post("/v1/sources/not-a-uuid/ingest", headers=AUTH)
        assert response.status_code == 422

    def test_trigger_all(self, client, make_source):
        make_source(name="A")
        bad = make_source(name="B", feed_url=None)

        response = client.post("/v1/sources/ingest-all", headers=AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["total_jobs"] == 1
        assert len(data["job_ids"]) == 1
        assert list(data["failures"]) == [str(bad.id)]


class TestStatsEndpoints:
    """Test stats and logs contracts."""

    def test_stats_empty(self, client):
        response = client.get("/v1/ingestion/stats")
        assert response.status_code == 200
        assert response.json() == {
            "waiting": 0,
            "active": 0,
            "completed": 0,
            "failed": 0,
            "pending": 0,
            "total": 0,
            "paused": False,
        }

    def test_stats_counts(self, client, pipeline, make_source):
        source = make_source(scrape_enabled=True)
        pipeline.scheduler.trigger_source(source.id)
        pipeline.queue.claim_next()

        data = client.get("/v1/ingestion/stats").json()

        assert data["waiting"] == 1
        assert data["active"] == 1
        assert data["pending"] == 2
        assert data["total"] == 2

    def test_logs_newest_first_with_source(self, client, pipeline, source):
        first = pipeline.store.create_log(source.id, "feed")
        second = pipeline.store.create_log(source.id, "scrape")
        with pipeline.store._session_factory() as db:
            db.get(IngestionLog, first).created_at = utcnow() - timedelta(minutes=5)
            db.commit()

        response = client.get("/v1/ingestion/logs", params={"limit": 10})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [entry["id"] for entry in data["logs"]] == [str(second), str(first)]
        assert data["logs"][0]["source_name"] == source.name
        assert data["logs"][0]["source_url"] == source.url

    def test_logs_limit(self, client, pipeline, source):
        for _ in range(3):
            pipeline.store.create_log(source.id, "feed")

        data = client.get("/v1/ingestion/logs", params={"limit": 2}).json()

        assert len(data["logs"]) == 2

    def test_logs_limit_validated(self, client):
        assert client.get("/v1/ingestion/logs", params={"limit": 0}).status_code == 422


class TestQueueControls:
    """Test pause/resume/clean contracts."""

    def test_pause_and_resume(self, client, pipeline):
        response = client.post("/v1/ingestion/queue/pause", headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"status": "paused", "paused": True}
        assert client.get("/v1/ingestion/stats").json()["paused"] is True

        response = client.post("/v1/ingestion/queue/resume", headers=AUTH)
        assert response.json() == {"status": "resumed", "paused": False}
        assert pipeline.queue.is_paused() is False

    def test_clean(self, client, pipeline, source):
        pipeline.queue.enqueue(source.id, JobKind.FEED, source.feed_url, "k1")
        job = pipeline.queue.claim_next()
        pipeline.queue.complete(job.id, {}, now=utcnow() - timedelta(days=10))

        response = client.post("/v1/ingestion/queue/clean", headers=AUTH, json={"age_days": 7})

        assert response.status_code == 200
        assert response.json() == {"completed_removed": 1, "failed_removed": 0}
        assert pipeline.queue.get(job.id) is None

    def test_clean_defaults(self, client):
        response = client.post("/v1/ingestion/queue/clean", headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"completed_removed": 0, "failed_removed": 0}
