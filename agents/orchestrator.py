"""
Pipeline Orchestrator
----------------------
Runs one persisted Query through the five stages:

  IntentParser → CandidateGenerator → EntityResolver → EvidenceExtractor → Ranker

and owns the Query status machine:

  PENDING → PROCESSING → COMPLETED
                       ↘ FAILED

run() never raises: every outcome is reported as a PipelineResult.
A failed run is not resumable; start a fresh Query instead.
"""

import asyncio
import logging
import time
from typing import Dict, List

from agents.base import Agent, AgentResult
from agents.candidate_generator import CandidateGeneratorAgent
from agents.entity_resolver import EntityResolverAgent
from agents.evidence_extractor import EvidenceExtractorAgent
from agents.intent_parser import IntentParserAgent
from agents.ranker import RankerAgent
from agents.state import PipelineState
from config.settings import settings
from db.store import PipelineStore, QueryNotFoundError
from models.schemas import PipelineResult, QueryStatus

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """A pipeline stage failed; carries the stage name."""

    def __init__(self, stage: str, message: str):
        super().__init__(message)
        self.stage = stage


class Orchestrator:
    """
    Sequential stage runner bound to a PipelineStore.
    Each stage reads and extends the shared PipelineState.
    """

    def __init__(
        self,
        store: PipelineStore,
        intent_parser: IntentParserAgent,
        candidate_generator: CandidateGeneratorAgent,
        entity_resolver: EntityResolverAgent,
        evidence_extractor: EvidenceExtractorAgent,
        ranker: RankerAgent,
    ):
        self.store = store
        self.intent_parser = intent_parser
        self.candidate_generator = candidate_generator
        self.entity_resolver = entity_resolver
        self.evidence_extractor = evidence_extractor
        self.ranker = ranker
        self.logger = logging.getLogger("orchestrator")
        self.run_history: List[AgentResult] = []

    async def _run_stage(self, agent: Agent, state: PipelineState) -> PipelineState:
        result = await agent.execute(state)
        self.run_history.append(result)
        if not result.success:
            raise PipelineError(agent.name, result.error or f"{agent.name} failed")
        return result.data

    async def run(self, query_id: str) -> PipelineResult:
        self.run_history = []
        start = time.monotonic()
        raw_query = "unknown"
        user_id = None

        def elapsed_ms() -> int:
            return int((time.monotonic() - start) * 1000)

        try:
            query = self.store.get_query(query_id)
            if query is None:
                raise QueryNotFoundError(query_id)
            raw_query, user_id = query.raw_query, query.user_id
            status = QueryStatus(query.status)
            if status.is_terminal:
                self.logger.warning(f"Query {query_id} is already {status.value}, not re-running")
                return PipelineResult(
                    query_id=query_id, success=False, duration_ms=elapsed_ms(),
                    error=f"Query {query_id} is already {status.value}",
                )

            self.store.update_query_status(query_id, QueryStatus.PROCESSING)
            self.logger.info(f"🚀 Pipeline starting for query: \"{raw_query}\"")
            state = PipelineState(query_id=query_id, raw_query=raw_query)

            state = await self._run_stage(self.intent_parser, state)
            intent = state.intent_result.intent
            self.store.save_parsed_intent(query_id, intent.to_dict())

            state = await self._run_stage(self.candidate_generator, state)
            stats = state.generation.stats
            self.logger.info(
                f"  Found {stats.get('total_mentions', 0)} mentions "
                f"→ {stats.get('unique_candidates', 0)} candidates"
            )

            if not state.candidates:
                self.store.update_query_status(query_id, QueryStatus.COMPLETED)
                duration_ms = elapsed_ms()
                self.store.log_search(
                    "completed_empty", raw_query, query_id=query_id, user_id=user_id,
                    parsed_intent=intent.to_dict(), result_count=0, duration_ms=duration_ms,
                )
                self.logger.info("✅ Pipeline complete with no candidates")
                return PipelineResult(query_id=query_id, success=True, duration_ms=duration_ms)

            state = await self._run_stage(self.entity_resolver, state)
            self.logger.info(f"  Resolved to {len(state.resolved)} unique products")

            state = await self._run_stage(self.evidence_extractor, state)
            state = await self._run_stage(self.ranker, state)

            await asyncio.to_thread(self.persist_results, state)
            self.store.update_query_status(query_id, QueryStatus.COMPLETED)

            ranked = state.ranking.ranked_products
            duration_ms = elapsed_ms()
            self.store.log_search(
                "completed", raw_query, query_id=query_id, user_id=user_id,
                parsed_intent=intent.to_dict(), result_count=len(ranked), duration_ms=duration_ms,
            )
            self.logger.info(f"✅ Pipeline complete in {duration_ms}ms")
            return PipelineResult(
                query_id=query_id,
                success=True,
                candidate_count=state.ranking.candidate_count,
                top10_count=len(ranked),
                duration_ms=duration_ms,
            )

        except Exception as e:
            duration_ms = elapsed_ms()
            self.logger.error(f"❌ Pipeline failed: {e}")
            try:
                self.store.update_query_status(query_id, QueryStatus.FAILED)
            except Exception as status_error:
                self.logger.warning(f"Could not mark query {query_id} FAILED: {status_error}")
            self.store.log_search(
                "failed", raw_query, query_id=query_id, user_id=user_id, duration_ms=duration_ms,
            )
            return PipelineResult(
                query_id=query_id, success=False, duration_ms=duration_ms, error=str(e) or type(e).__name__,
            )

    def persist_results(self, state: PipelineState) -> None:
        """Write products, sources, evidence and the ranking for one run."""
        ranked = state.ranking.ranked_products
        product_ids: Dict[str, str] = {}

        # 1. Products for the ranked set
        for item in ranked:
            product = self.store.upsert_product_by_slug(item.candidate)
            item.product_id = product.id
            product_ids[item.candidate.key] = product.id

        # 2. Sources from mentions
        source_ids: Dict[str, str] = {}
        for mention in state.generation.mentions[: settings.MAX_PERSISTED_SOURCES]:
            try:
                source = self.store.create_source(mention)
            except Exception as e:
                self.logger.warning(f"Source create failed for {mention.url}: {e}")
                continue
            source_ids.setdefault(mention.url, source.id)

        for item in ranked:
            for citation in item.citations:
                citation.source_id = source_ids.get(citation.url)

        # 3. Evidence for ranked products whose source was stored
        for key, items in state.evidence.items():
            product_id = product_ids.get(key)
            if product_id is None:
                continue
            for ev in items[: settings.MAX_PERSISTED_EVIDENCE]:
                source_id = source_ids.get(ev.source_url)
                if source_id is None:
                    continue
                try:
                    self.store.create_evidence(product_id, state.query_id, source_id, ev)
                except Exception as e:
                    self.logger.warning(f"Evidence create failed: {e}")

        # 4. Ranking payload
        self.store.create_ranking_result(
            state.query_id,
            state.ranking.candidate_count,
            [item.to_dict() for item in ranked],
        )

    def summary(self) -> str:
        lines = ["Pipeline Summary:"]
        for r in self.run_history:
            lines.append(f"  {r}")
        return "\n".join(lines)
