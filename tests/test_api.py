"""
HTTP API tests with the store and pipeline runner swapped for in-memory fakes.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes import get_pipeline_runner, get_store
from db.models import Query, utcnow
from utils.pipeline import run_pipeline
from conftest import StaticRetriever, sleep_llm, SLEEP_MENTIONS


@pytest.fixture
def client(store):
    async def runner(query_id):
        return await run_pipeline(
            query_id, store=store, llm=sleep_llm(), retrievers=[StaticRetriever(SLEEP_MENTIONS)],
        )

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_pipeline_runner] = lambda: runner
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestSystemEndpoints:
    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"


class TestSearchEndpoints:
    @pytest.mark.parametrize("body", [{"query": ""}, {"query": "   "}, {}])
    def test_blank_query_is_rejected(self, client, body):
        resp = client.post("/api/v1/search", json=body)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Query is required"

    def test_search_runs_pipeline_in_background(self, client, store):
        resp = client.post("/api/v1/search", json={"query": "  headphones for sleeping "})
        assert resp.status_code == 200
        body = resp.json()
        assert body["cached"] is False

        status = client.get(f"/api/v1/search/{body['query_id']}").json()
        assert status["status"] == "COMPLETED"
        assert status["raw_query"] == "headphones for sleeping"
        assert status["has_results"] is True
        assert status["candidate_count"] == 2
        assert status["top10"][0]["brand"] == "Sony"
        assert status["parsed_intent"]["useCase"] == "sleeping with headphones"

        statuses = [log.status for log in store.search_logs(body["query_id"])]
        assert statuses == ["initiated", "completed"]

    def test_recent_completed_query_is_reused(self, client, store):
        first = client.post("/api/v1/search", json={"query": "headphones for sleeping"}).json()
        second = client.post("/api/v1/search", json={"query": "headphones for sleeping"}).json()
        assert second == {"query_id": first["query_id"], "cached": True}
        assert store.search_logs(first["query_id"])[-1].status == "cached"

    def test_stale_query_is_not_reused(self, client, store):
        first = client.post("/api/v1/search", json={"query": "headphones for sleeping"}).json()
        with store.session_factory() as db:
            db.get(Query, first["query_id"]).created_at = utcnow() - timedelta(days=8)
            db.commit()

        second = client.post("/api/v1/search", json={"query": "headphones for sleeping"}).json()
        assert second["cached"] is False
        assert second["query_id"] != first["query_id"]

    def test_unknown_query_is_404(self, client):
        resp = client.get("/api/v1/search/nope")
        assert resp.status_code == 404
