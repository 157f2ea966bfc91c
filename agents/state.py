"""
Per-run pipeline state handed from stage to stage.
One instance per Query run; nothing in it is shared between runs.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.schemas import (
    CandidateGenerationResult, CandidateProduct, ExtractedEvidence,
    IntentParseResult, RankingResult,
)


@dataclass
class PipelineState:
    query_id: str
    raw_query: str
    intent_result: Optional[IntentParseResult] = None
    generation: Optional[CandidateGenerationResult] = None
    resolved: List[CandidateProduct] = field(default_factory=list)
    evidence: Dict[str, List[ExtractedEvidence]] = field(default_factory=dict)
    ranking: Optional[RankingResult] = None

    @property
    def candidates(self) -> List[CandidateProduct]:
        return self.generation.candidates if self.generation else []

    @property
    def total_evidence(self) -> int:
        return sum(len(items) for items in self.evidence.values())
