"""
Ranker Agent
-------------
Scores every resolved candidate on five independent 0-100 dimensions:

  queryFit            intent terms found in evidence themes / claim tags
  redditEndorsement   reddit evidence volume + positive ratio
  socialProofCoverage platform diversity + evidence volume + mention count
  riskScore           100 - complaint_ratio * 150   (inverted complaint rate)
  confidenceScore     evidence volume + source diversity + mention count

  overall = w · [fit, reddit, coverage, risk, confidence]

with weights 0.30 / 0.25 / 0.15 / 0.15 / 0.15. Candidates are sorted by
overall (stable, so ties keep mention-count order), truncated to the
top N, and the LLM writes one short rationale per rank.

Input:  resolved candidates + evidence map + ParsedIntent
Output: RankingResult
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from agents.base import Agent
from agents.state import PipelineState
from config.settings import settings
from models.schemas import (
    CandidateProduct, CitationRef, ExtractedEvidence, ParsedIntent,
    RankedProduct, RankingResult, ScoringDimensions,
)
from services.llm import JSONCompletionService

logger = logging.getLogger(__name__)

DIMENSIONS = (
    "query_fit", "reddit_endorsement", "social_proof_coverage",
    "risk_score", "confidence_score",
)


def default_weights() -> np.ndarray:
    return np.array([
        settings.WEIGHT_QUERY_FIT,
        settings.WEIGHT_REDDIT,
        settings.WEIGHT_SOCIAL,
        settings.WEIGHT_RISK,
        settings.WEIGHT_CONFIDENCE,
    ])


def round_half_up(value: float) -> int:
    """Half-up rounding (2.5 → 3), unlike Python's banker's round()."""
    return int(np.floor(value + 0.5))


# ─── Dimension Scores ────────────────────────────────────────────────────────


def query_fit(evidence: Sequence[ExtractedEvidence], intent: ParsedIntent) -> float:
    if not evidence:
        return 20.0

    tags = [t.lower() for e in evidence for t in (*e.themes, *e.claim_tags)]
    terms = [t.lower() for t in intent.terms]
    if not terms:
        return 50.0

    matched = sum(
        1 for term in terms
        if any(token in tag for token in term.split() for tag in tags)
    )
    return min(100.0, 20 + (matched / len(terms)) * 80)


def reddit_endorsement(evidence: Sequence[ExtractedEvidence]) -> float:
    reddit = [e for e in evidence if e.platform == "reddit"]
    if not reddit:
        return 10.0
    positive = sum(1 for e in reddit if e.sentiment == "positive")
    return min(100.0, min(50, len(reddit) * 5) + (positive / len(reddit)) * 50)


def social_proof_coverage(candidate: CandidateProduct, evidence: Sequence[ExtractedEvidence]) -> float:
    platforms = {e.platform for e in evidence}
    score = len(platforms) * 20
    score += min(40, len(evidence) * 3)
    score += min(20, candidate.mention_count * 2)
    return float(min(100, score))


def risk_score(evidence: Sequence[ExtractedEvidence]) -> float:
    if not evidence:
        return 50.0
    negative = sum(1 for e in evidence if e.sentiment == "negative")
    complaint_ratio = negative / len(evidence)
    return float(round_half_up(max(0.0, 100 - complaint_ratio * 150)))


def confidence_score(candidate: CandidateProduct, evidence: Sequence[ExtractedEvidence]) -> float:
    score = min(50, len(evidence) * 5)
    score += min(30, len({e.source_url for e in evidence}) * 5)
    score += min(20, candidate.mention_count * 2)
    return float(min(100, score))


def dimension_vector(
    candidate: CandidateProduct, evidence: Sequence[ExtractedEvidence], intent: ParsedIntent
) -> np.ndarray:
    raw = np.array([
        query_fit(evidence, intent),
        reddit_endorsement(evidence),
        social_proof_coverage(candidate, evidence),
        risk_score(evidence),
        confidence_score(candidate, evidence),
    ])
    return np.clip(raw, 0, 100)


def compute_scores(
    candidate: CandidateProduct,
    evidence: Sequence[ExtractedEvidence],
    intent: ParsedIntent,
    weights: Optional[np.ndarray] = None,
) -> ScoringDimensions:
    """Score a single candidate. `overall` uses the unrounded dimensions."""
    weights = default_weights() if weights is None else weights
    dims = dimension_vector(candidate, evidence, intent)
    values = {name: round_half_up(v) for name, v in zip(DIMENSIONS, dims)}
    return ScoringDimensions(**values, overall=round_half_up(float(dims @ weights)))


# ─── Rationales ──────────────────────────────────────────────────────────────


def fallback_rationale(rank: int) -> str:
    return f"Ranked #{rank} based on social proof analysis."


def _summary(rank: int, candidate: CandidateProduct, scores: ScoringDimensions,
             evidence: Sequence[ExtractedEvidence]) -> str:
    themes: List[str] = []
    for e in evidence:
        for theme in e.themes:
            if theme not in themes:
                themes.append(theme)
    positive = sum(1 for e in evidence if e.sentiment == "positive")
    negative = sum(1 for e in evidence if e.sentiment == "negative")
    return (
        f"[{rank}] {candidate.display_name} ({candidate.category})\n"
        f"    Scores: fit={scores.query_fit}, reddit={scores.reddit_endorsement}, "
        f"coverage={scores.social_proof_coverage}, risk={scores.risk_score}, "
        f"confidence={scores.confidence_score}, overall={scores.overall}\n"
        f"    Evidence count: {len(evidence)}\n"
        f"    Top themes: {', '.join(themes[:5])}\n"
        f"    Positive evidence: {positive}\n"
        f"    Negative evidence: {negative}"
    )


def build_rationale_prompt(summaries: List[str], intent: ParsedIntent) -> str:
    constraints = ", ".join(intent.constraints) or "none specified"
    must_haves = ", ".join(intent.must_haves) or "none specified"
    products = "\n\n".join(summaries)
    return f"""Generate a brief ranking rationale for each of these top 10 products.
The user is looking for: "{intent.use_case}"
Constraints: {constraints}
Must-haves: {must_haves}

Products:
{products}

Return JSON:
{{
  "rationales": [
    "1-2 sentence rationale for why this product ranked #1",
    "1-2 sentence rationale for #2",
    ...
  ]
}}

Be specific about WHY each product fits the user's needs. Reference social proof and evidence themes."""


def parse_rationales(payload: Any) -> List[Optional[str]]:
    items = payload.get("rationales") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []
    return [r.strip() if isinstance(r, str) and r.strip() else None for r in items]


def build_citations(evidence: Sequence[ExtractedEvidence], limit: int = settings.MAX_CITATIONS) -> List[CitationRef]:
    captured_at = datetime.now(timezone.utc)
    return [
        CitationRef(url=e.source_url, platform=e.platform, snippet=e.quote, captured_at=captured_at)
        for e in evidence[:limit]
    ]


# ─── RankerAgent ─────────────────────────────────────────────────────────────


class RankerAgent(Agent):
    """
    Stage 5: Scoring & Ranking

    Input:  PipelineState.resolved + PipelineState.evidence
    Output: PipelineState.ranking
    """

    def __init__(
        self,
        llm: JSONCompletionService,
        top_n: int = settings.TOP_N,
        weights: Optional[Dict[str, float]] = None,
    ):
        super().__init__(name="RankerAgent")
        self.llm = llm
        self.top_n = top_n
        self.weights = (
            np.array([weights[name] for name in DIMENSIONS]) if weights else default_weights()
        )

    def score_all(
        self,
        candidates: Sequence[CandidateProduct],
        evidence_map: Dict[str, List[ExtractedEvidence]],
        intent: ParsedIntent,
    ) -> List[ScoringDimensions]:
        return [
            compute_scores(c, evidence_map.get(c.key, []), intent, self.weights)
            for c in candidates
        ]

    async def generate_rationales(self, summaries: List[str], intent: ParsedIntent) -> List[Optional[str]]:
        try:
            payload = await self.llm.generate_json(build_rationale_prompt(summaries, intent))
        except Exception as e:
            self.logger.warning(f"Rationale generation failed: {e}")
            return []
        return parse_rationales(payload)

    async def rank(
        self,
        candidates: List[CandidateProduct],
        evidence_map: Dict[str, List[ExtractedEvidence]],
        intent: ParsedIntent,
    ) -> RankingResult:
        if not candidates:
            return RankingResult(ranked_products=[], candidate_count=0)

        scores = self.score_all(candidates, evidence_map, intent)
        overall = np.array([s.overall for s in scores])
        # stable descending sort keeps earlier (higher mention count) candidates first on ties
        order = np.argsort(-overall, kind="stable")[: self.top_n]

        top = [(candidates[i], scores[i], evidence_map.get(candidates[i].key, [])) for i in order]
        summaries = [_summary(rank, c, s, ev) for rank, (c, s, ev) in enumerate(top, start=1)]
        rationales = await self.generate_rationales(summaries, intent)

        ranked = []
        for rank, (candidate, dims, evidence) in enumerate(top, start=1):
            rationale = rationales[rank - 1] if rank - 1 < len(rationales) else None
            ranked.append(RankedProduct(
                rank=rank,
                scores=dims,
                rationale=rationale or fallback_rationale(rank),
                citations=build_citations(evidence),
                candidate=candidate,
            ))

        return RankingResult(ranked_products=ranked, candidate_count=len(candidates))

    async def run(self, state: PipelineState) -> PipelineState:
        state.ranking = await self.rank(state.resolved, state.evidence, state.intent_result.intent)
        self.logger.info(
            f"Ranked {len(state.ranking.ranked_products)} products "
            f"from {state.ranking.candidate_count} candidates"
        )
        return state
