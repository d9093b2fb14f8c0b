"""Unit tests for the serving layer."""

from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from knowledge_rag.ingestion.models import SyncJob, SyncMode
from knowledge_rag.serving.app import app, get_retriever, get_sync_service


class FakeSyncService:
    def __init__(self) -> None:
        self.jobs: dict[str, SyncJob] = {}
        self.modes: list[SyncMode] = []

    def trigger_sync(self, mode: SyncMode) -> SyncJob:
        self.modes.append(mode)
        job = SyncJob(mode=mode)
        self.jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> SyncJob | None:
        return self.jobs.get(job_id)

    def cancel_sync(self, job_id: str) -> bool:
        return job_id in self.jobs


class FakeRetriever:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.filters: list = []

    def build_context(self, query, k=None, min_score=None, max_length=None, filters=None) -> str:  # noqa: ANN001
        self.calls.append((query, k, min_score, max_length))
        self.filters.append(filters)
        return f"context for {query}"


@pytest.fixture()
def sync_service() -> FakeSyncService:
    return FakeSyncService()


@pytest.fixture()
def retriever() -> FakeRetriever:
    return FakeRetriever()


@pytest.fixture()
def client(sync_service: FakeSyncService, retriever: FakeRetriever) -> Iterator[TestClient]:
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[get_retriever] = lambda: retriever
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_trigger_sync_returns_pending_job(client: TestClient, sync_service: FakeSyncService) -> None:
    response = client.post("/sync", json={"mode": "full"})
    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["mode"] == "full"
    assert sync_service.modes == [SyncMode.FULL]


def test_trigger_sync_defaults_to_incremental(client: TestClient, sync_service: FakeSyncService) -> None:
    assert client.post("/sync", json={}).status_code == 202
    assert sync_service.modes == [SyncMode.INCREMENTAL]


def test_invalid_mode_rejected(client: TestClient) -> None:
    assert client.post("/sync", json={"mode": "sideways"}).status_code == 422


def test_get_job(client: TestClient) -> None:
    job_id = client.post("/sync", json={}).json()["id"]
    response = client.get(f"/sync/jobs/{job_id}")
    assert response.status_code == 200
    assert response.json()["id"] == job_id


def test_unknown_job_is_404(client: TestClient) -> None:
    assert client.get("/sync/jobs/nope").status_code == 404


def test_cancel(client: TestClient) -> None:
    job_id = client.post("/sync", json={}).json()["id"]
    assert client.post(f"/sync/jobs/{job_id}/cancel").json() == {"cancelled": True}
    assert client.post("/sync/jobs/nope/cancel").json() == {"cancelled": False}


def test_context(client: TestClient, retriever: FakeRetriever) -> None:
    response = client.post("/context", json={"query": "如何退款?", "k": 3})
    assert response.status_code == 200
    assert response.json() == {"context": "context for 如何退款?"}
    assert retriever.calls == [("如何退款?", 3, None, None)]
    assert retriever.filters == [[]]


def test_context_scoped_to_category_and_path(client: TestClient, retriever: FakeRetriever) -> None:
    response = client.post("/context", json={"query": "q", "category_id": "faq", "path": "root/售后"})
    assert response.status_code == 200
    (filters,) = retriever.filters
    assert [(f.field, f.value) for f in filters] == [("category_id", "faq"), ("path", "root/售后")]
