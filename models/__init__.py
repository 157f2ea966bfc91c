"""
Core data models for the Social Product Discovery pipeline.
"""

from .schemas import (
    QueryStatus,
    ParsedIntent,
    IntentParseResult,
    Mention,
    CandidateProduct,
    CandidateGenerationResult,
    ExtractedEvidence,
    ScoringDimensions,
    CitationRef,
    RankedProduct,
    RankingResult,
    PipelineResult,
)

__all__ = [
    "QueryStatus",
    "ParsedIntent",
    "IntentParseResult",
    "Mention",
    "CandidateProduct",
    "CandidateGenerationResult",
    "ExtractedEvidence",
    "ScoringDimensions",
    "CitationRef",
    "RankedProduct",
    "RankingResult",
    "PipelineResult",
]
