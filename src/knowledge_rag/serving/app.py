"""FastAPI application exposing sync control and context assembly as a REST API."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from knowledge_rag.config import settings
from knowledge_rag.ingestion.models import SyncJob, SyncMode
from knowledge_rag.ingestion.sync import SyncService
from knowledge_rag.retrieval.models import MetadataFilter
from knowledge_rag.retrieval.retriever import SemanticRetriever

logging.basicConfig(level=settings.log_level)

app = FastAPI(
    title="Knowledge RAG API",
    version="0.1.0",
    description="Trigger catalog syncs and assemble retrieval context for answer generation.",
)


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def _vector_store():
    from knowledge_rag.ingestion.embedder import get_embeddings
    from knowledge_rag.retrieval.chroma_store import ChromaVectorStore

    embedder = get_embeddings(settings)
    return ChromaVectorStore.from_settings(settings, embedder), embedder


@lru_cache(maxsize=1)
def get_sync_service() -> SyncService:
    """Process-wide sync service (jobs live in its registry)."""
    from knowledge_rag.store import FileDocumentStore

    store, _ = _vector_store()
    return SyncService.from_settings(settings, FileDocumentStore(settings.articles_dir), store)


@lru_cache(maxsize=1)
def get_retriever() -> SemanticRetriever:
    store, embedder = _vector_store()
    return SemanticRetriever.from_settings(settings, store, embedder)


# ── Request / Response schemas ────────────────────────────────────────
class SyncRequest(BaseModel):
    """Which kind of sync to run."""

    mode: SyncMode = SyncMode.INCREMENTAL


class CancelResponse(BaseModel):
    cancelled: bool


class ContextRequest(BaseModel):
    """Question to assemble context for; omitted fields use settings defaults."""

    query: str
    k: int | None = None
    min_score: float | None = None
    max_length: int | None = None
    category_id: str | None = None
    path: str | None = None


class ContextResponse(BaseModel):
    context: str


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok"}


@app.post("/sync", response_model=SyncJob, status_code=202)
def trigger_sync(request: SyncRequest, service: SyncService = Depends(get_sync_service)) -> SyncJob:
    """Start a background sync and return its job record."""
    return service.trigger_sync(request.mode)


@app.get("/sync/jobs/{job_id}", response_model=SyncJob)
def get_sync_job(job_id: str, service: SyncService = Depends(get_sync_service)) -> SyncJob:
    job = service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Sync job {job_id} not found")
    return job


@app.post("/sync/jobs/{job_id}/cancel", response_model=CancelResponse)
def cancel_sync_job(job_id: str, service: SyncService = Depends(get_sync_service)) -> CancelResponse:
    """Stop a running sync after its current round drains."""
    return CancelResponse(cancelled=service.cancel_sync(job_id))


@app.post("/context", response_model=ContextResponse)
def build_context(
    request: ContextRequest, retriever: SemanticRetriever = Depends(get_retriever)
) -> ContextResponse:
    """Assemble the context block for a question."""
    context = retriever.build_context(
        request.query,
        k=request.k,
        min_score=request.min_score,
        max_length=request.max_length,
        filters=MetadataFilter.scope(category_id=request.category_id, path=request.path),
    )
    return ContextResponse(context=context)
