"""
Pydantic schemas for API request/response validation.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime


# ─── Request Schemas ─────────────────────────────────────────────────────────

class SearchRequest(BaseModel):
    # validated in the route so a blank query gets a 400, not a 422
    query: Optional[str] = Field(None, description="Free-text product query")


# ─── Response Schemas ────────────────────────────────────────────────────────

class SearchResponse(BaseModel):
    query_id: str
    cached: bool


class QueryStatusResponse(BaseModel):
    query_id: str
    status: str
    raw_query: str
    parsed_intent: Optional[Dict[str, Any]] = None
    has_results: bool
    candidate_count: Optional[int] = None
    top10: List[Dict[str, Any]] = []


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
