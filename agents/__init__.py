from .base import Agent, AgentResult
from .state import PipelineState
from .intent_parser import IntentParserAgent
from .candidate_generator import CandidateGeneratorAgent
from .entity_resolver import EntityResolverAgent
from .evidence_extractor import EvidenceExtractorAgent
from .ranker import RankerAgent
from .orchestrator import Orchestrator, PipelineError

__all__ = [
    "Agent", "AgentResult", "PipelineState",
    "IntentParserAgent", "CandidateGeneratorAgent", "EntityResolverAgent",
    "EvidenceExtractorAgent", "RankerAgent",
    "Orchestrator", "PipelineError",
]
