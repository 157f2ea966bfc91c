"""
FastAPI Route Handlers
Social Product Discovery
"""

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import APIRouter, HTTPException, Depends, BackgroundTasks

from api.schemas import SearchRequest, SearchResponse, QueryStatusResponse, HealthResponse
from config.settings import settings
from db.store import PipelineStore
from models.schemas import PipelineResult
from utils.pipeline import run_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()

PipelineRunner = Callable[[str], Awaitable[PipelineResult]]


# ─── Dependencies ────────────────────────────────────────────────────────────

def get_store() -> PipelineStore:
    return PipelineStore()


def get_pipeline_runner() -> PipelineRunner:
    return run_pipeline


async def _run_in_background(runner: PipelineRunner, query_id: str) -> None:
    try:
        result = await runner(query_id)
    except Exception as e:
        logger.error(f"Pipeline background error for {query_id}: {e}")
        return
    logger.info(f"Pipeline finished for {query_id}: {result.to_dict()}")


# ─── Health ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        timestamp=datetime.now(timezone.utc),
    )


# ─── Search ──────────────────────────────────────────────────────────────────

@router.post("/search", response_model=SearchResponse, tags=["Search"])
async def create_search(
    request: SearchRequest,
    background_tasks: BackgroundTasks,
    store: PipelineStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_pipeline_runner),
):
    """
    Start a discovery run for a query, or return the id of the same query
    completed within the cache window.
    """
    start = time.monotonic()
    if not request.query or not request.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")
    raw_query = request.query.strip()

    cached = store.find_recent_completed(raw_query)
    if cached is not None:
        store.log_search(
            "cached", raw_query, query_id=cached.id,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return SearchResponse(query_id=cached.id, cached=True)

    query = store.create_query(raw_query)
    store.log_search(
        "initiated", raw_query, query_id=query.id,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
    background_tasks.add_task(_run_in_background, runner, query.id)
    return SearchResponse(query_id=query.id, cached=False)


@router.get("/search/{query_id}", response_model=QueryStatusResponse, tags=["Search"])
async def get_search(query_id: str, store: PipelineStore = Depends(get_store)):
    """Status of a query plus its latest ranking, once there is one."""
    query = store.get_query(query_id)
    if query is None:
        raise HTTPException(status_code=404, detail="Query not found")

    ranking = store.latest_ranking(query_id)
    return QueryStatusResponse(
        query_id=query.id,
        status=query.status,
        raw_query=query.raw_query,
        parsed_intent=query.parsed_intent,
        has_results=ranking is not None,
        candidate_count=ranking.candidate_count if ranking else None,
        top10=ranking.top10 if ranking else [],
    )
