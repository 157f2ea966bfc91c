"""
Core data models / schemas for the Social Product Discovery pipeline.
"""

from __future__ import annotations
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any


SENTIMENTS = ("positive", "neutral", "negative")


def slugify(brand: str, model: str) -> str:
    """'Sony', 'WF-1000XM5' → 'sony-wf-1000xm5'"""
    slug = f"{brand}-{model}".lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


class QueryStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (QueryStatus.COMPLETED, QueryStatus.FAILED)


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedIntent:
    use_case: str
    constraints: List[str] = field(default_factory=list)
    must_haves: List[str] = field(default_factory=list)
    nice_to_haves: List[str] = field(default_factory=list)

    @property
    def terms(self) -> List[str]:
        return [*self.constraints, *self.must_haves, *self.nice_to_haves]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "useCase": self.use_case,
            "constraints": list(self.constraints),
            "mustHaves": list(self.must_haves),
            "niceToHaves": list(self.nice_to_haves),
        }


@dataclass
class IntentParseResult:
    intent: ParsedIntent
    seed_terms: List[str]
    inferred_category: str = "general"


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Mention:
    """One retrieved passage of external text with its provenance."""
    platform: str                   # "reddit" | "web" | "trustpilot" | "amazon" | ...
    url: str
    text: str
    title: Optional[str] = None
    author_handle: Optional[str] = None
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Candidates
# ---------------------------------------------------------------------------

@dataclass
class CandidateProduct:
    brand: str
    model: str
    category: str = "general"
    variant: Optional[str] = None
    mention_count: int = 1
    sources: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.brand}|{self.model}"

    @property
    def slug(self) -> str:
        return slugify(self.brand, self.model)

    @property
    def display_name(self) -> str:
        return f"{self.brand} {self.model}"


@dataclass
class CandidateGenerationResult:
    candidates: List[CandidateProduct]
    mentions: List[Mention]
    stats: Dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Evidence & ranking
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExtractedEvidence:
    product_ref: str
    sentiment: str                  # positive / neutral / negative
    themes: List[str]
    claim_tags: List[str]
    quote: str                      # at most 150 chars
    source_url: str
    platform: str


@dataclass
class ScoringDimensions:
    query_fit: int
    reddit_endorsement: int
    social_proof_coverage: int
    risk_score: int
    confidence_score: int
    overall: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "queryFit": self.query_fit,
            "redditEndorsement": self.reddit_endorsement,
            "socialProofCoverage": self.social_proof_coverage,
            "riskScore": self.risk_score,
            "confidenceScore": self.confidence_score,
            "overall": self.overall,
        }


@dataclass
class CitationRef:
    url: str
    platform: str
    snippet: str
    captured_at: datetime
    source_id: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source_id or "",
            "url": self.url,
            "platform": self.platform,
            "title": self.title,
            "snippet": self.snippet,
            "capturedAt": self.captured_at.isoformat(),
        }


@dataclass
class RankedProduct:
    rank: int
    scores: ScoringDimensions
    rationale: str
    citations: List[CitationRef]
    candidate: CandidateProduct
    product_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id or "",
            "rank": self.rank,
            "brand": self.candidate.brand,
            "model": self.candidate.model,
            "scores": self.scores.to_dict(),
            "rationale": self.rationale,
            "citations": [c.to_dict() for c in self.citations],
        }


@dataclass
class RankingResult:
    ranked_products: List[RankedProduct]
    candidate_count: int


# ---------------------------------------------------------------------------
# Pipeline run summary
# ---------------------------------------------------------------------------

@dataclass
class PipelineResult:
    query_id: str
    success: bool
    candidate_count: int = 0
    top10_count: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "queryId": self.query_id,
            "success": self.success,
            "candidateCount": self.candidate_count,
            "top10Count": self.top10_count,
            "durationMs": self.duration_ms,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
