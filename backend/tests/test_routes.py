"""
Tests for the admin API routes.

The lifespan (database, scheduler) is not started; a stub pipeline is
injected through the dependency instead.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from newswire.api.routes import get_pipeline
from newswire.core.exceptions import (
    ArticleNotFoundError,
    EnrichmentAuthInvalid,
    EnrichmentRateLimited,
    EnrichmentUpstreamError,
    PersistenceError,
)
from newswire.main import app
from newswire.models.domain import CycleReport, EnrichmentResult, EnrichmentRun, EnrichmentStatus


def make_client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def pipeline():
    stub = SimpleNamespace(
        cycle=MagicMock(),
        repository=MagicMock(),
        enricher=MagicMock(),
        dispatcher=MagicMock(),
    )
    stub.cycle.run_cycle = AsyncMock(return_value=CycleReport(fetched=3, deduped=2, written=2))
    stub.cycle.run_cleanup = AsyncMock(return_value=4)
    stub.cycle.get_status.return_value = {"state": "idle", "running": False}
    stub.cycle.translator = None
    stub.repository.count = AsyncMock(return_value=12)
    stub.enricher.enrich = AsyncMock()
    stub.dispatcher.get_status.return_value = {"running": False, "current": None, "recent": []}
    return stub


@pytest.fixture
async def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    async with make_client() as ac:
        yield ac
    app.dependency_overrides.clear()


async def test_health():
    async with make_client() as ac:
        response = await ac.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_uninitialized_pipeline_is_503():
    async with make_client() as ac:
        response = await ac.get("/api/v1/admin/status")

    assert response.status_code == 503


class TestCycleRoutes:

    async def test_trigger_cycle(self, client):
        response = await client.post("/api/v1/admin/cycles")

        assert response.status_code == 200
        body = response.json()
        assert body["fetched"] == 3
        assert body["written"] == 2
        assert body["success"] is True
        assert body["message"] == "Fetched 3 articles, 2 unique, saved 2"

    async def test_persistence_failure_is_500(self, client, pipeline):
        pipeline.cycle.run_cycle.return_value = CycleReport(success=False, error="disk full")

        response = await client.post("/api/v1/admin/cycles")

        assert response.status_code == 500
        assert "disk full" in response.json()["detail"]

    async def test_cleanup(self, client):
        response = await client.post("/api/v1/admin/cleanup")

        assert response.status_code == 200
        assert response.json() == {"deleted": 4}

    async def test_cleanup_failure_is_500(self, client, pipeline):
        pipeline.cycle.run_cleanup.side_effect = PersistenceError("locked")

        response = await client.post("/api/v1/admin/cleanup")

        assert response.status_code == 500

    async def test_status(self, client):
        response = await client.get("/api/v1/admin/status")

        assert response.status_code == 200
        assert response.json()["articles"] == 12


class TestEnrichmentRoutes:

    async def test_enrich_article(self, client, pipeline):
        pipeline.enricher.enrich.return_value = EnrichmentResult(
            article_id="abc", status=EnrichmentStatus.ENRICHED, summary="AI"
        )

        response = await client.post("/api/v1/admin/articles/abc/enrich")

        assert response.status_code == 200
        assert response.json()["status"] == "enriched"
        pipeline.enricher.enrich.assert_awaited_once_with("abc")

    @pytest.mark.parametrize(
        "error, status_code",
        [
            (ArticleNotFoundError("abc"), 404),
            (EnrichmentRateLimited("slow down"), 429),
            (EnrichmentAuthInvalid("bad key"), 403),
            (EnrichmentAuthInvalid("expired", status_code=401), 403),
            (EnrichmentUpstreamError("overloaded", status_code=500), 502),
            (EnrichmentUpstreamError("boom"), 502),
            (PersistenceError("locked"), 500),
        ],
    )
    async def test_error_mapping(self, client, pipeline, error, status_code):
        pipeline.enricher.enrich.side_effect = error

        response = await client.post("/api/v1/admin/articles/abc/enrich")

        assert response.status_code == status_code

    async def test_enrichment_not_configured(self, client, pipeline):
        pipeline.enricher = None

        response = await client.post("/api/v1/admin/articles/abc/enrich")

        assert response.status_code == 503

    async def test_enrichment_status(self, client):
        response = await client.get("/api/v1/admin/enrichment")

        assert response.status_code == 200
        assert response.json()["enabled"] is True

    async def test_trigger_enrichment_run(self, client, pipeline):
        pipeline.dispatcher.submit.return_value = EnrichmentRun(run_id="run-1")

        response = await client.post("/api/v1/admin/enrichment")

        assert response.status_code == 202
        assert response.json()["run_id"] == "run-1"
        pipeline.dispatcher.submit.assert_called_once_with()
