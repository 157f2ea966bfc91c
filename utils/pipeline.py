"""
Pipeline runner: wires the five agents, the retrievers, the LLM and the
store into an Orchestrator and runs it for one query id.

Architecture:
  IntentParser → CandidateGenerator → EntityResolver → EvidenceExtractor → Ranker
"""

from __future__ import annotations

import logging
from typing import List, Optional

from agents.candidate_generator import CandidateGeneratorAgent
from agents.entity_resolver import EntityResolverAgent
from agents.evidence_extractor import EvidenceExtractorAgent
from agents.intent_parser import IntentParserAgent
from agents.orchestrator import Orchestrator
from agents.ranker import RankerAgent
from db.store import PipelineStore
from models.schemas import PipelineResult
from retrievers import BaseRetriever, RedditRetriever, WebSearchRetriever
from services.llm import JSONCompletionService, LLMClient, RetryingLLM

logger = logging.getLogger(__name__)


def default_retrievers() -> List[BaseRetriever]:
    return [RedditRetriever(), WebSearchRetriever()]


def build_orchestrator(
    store: Optional[PipelineStore] = None,
    llm: Optional[JSONCompletionService] = None,
    retrievers: Optional[List[BaseRetriever]] = None,
) -> Orchestrator:
    """Assemble an Orchestrator; any collaborator left as None gets its default."""
    llm = llm or RetryingLLM(LLMClient())
    return Orchestrator(
        store=store or PipelineStore(),
        intent_parser=IntentParserAgent(llm),
        candidate_generator=CandidateGeneratorAgent(
            retrievers if retrievers is not None else default_retrievers(), llm
        ),
        entity_resolver=EntityResolverAgent(llm),
        evidence_extractor=EvidenceExtractorAgent(llm),
        ranker=RankerAgent(llm),
    )


async def run_pipeline(
    query_id: str,
    store: Optional[PipelineStore] = None,
    llm: Optional[JSONCompletionService] = None,
    retrievers: Optional[List[BaseRetriever]] = None,
) -> PipelineResult:
    """
    Run the full discovery pipeline for an existing Query.
    Never raises; failures come back as PipelineResult(success=False).
    """
    orchestrator = build_orchestrator(store=store, llm=llm, retrievers=retrievers)
    result = await orchestrator.run(query_id)
    logger.info(orchestrator.summary())
    return result
