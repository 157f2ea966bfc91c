"""
FastAPI Application Entry Point
Social Product Discovery
"""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from config.settings import settings
from db.database import init_db

# ─── Logging ─────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# ─── App ─────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Turns a free-text product query into a ranked, evidence-backed top-10 list. "
        "Discovers candidates across Reddit and the web, merges duplicates, "
        "extracts sentiment evidence and scores each product against the query intent."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── CORS ────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Startup ─────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    log = logging.getLogger(__name__)
    log.info(f"🚀 Starting Social Product Discovery API (db: {settings.DATABASE_URL})")
    init_db()
    if not settings.LLM_API_KEY:
        log.warning("LLM_API_KEY not set: intent parsing falls back to the raw query and no products will be extracted")
    if not settings.SERPAPI_API_KEY:
        log.warning("SERPAPI_API_KEY not set: discovery runs on Reddit only")


# ─── Routes ──────────────────────────────────────────────────────────────────

app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["System"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "stages": [
            "IntentParserAgent", "CandidateGeneratorAgent", "EntityResolverAgent",
            "EvidenceExtractorAgent", "RankerAgent",
        ],
        "status": "running",
    }


# ─── Run ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
