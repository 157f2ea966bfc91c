"""
PipelineStore: the persistence operations the orchestrator and API need.

Each method opens its own short session; returned ORM objects are
detached but fully loaded.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from config.settings import settings
from db.database import SessionLocal, session_scope
from db.models import Evidence, Product, Query, RankingResult, SearchLog, Source, utcnow
from models.schemas import CandidateProduct, ExtractedEvidence, Mention, QueryStatus

logger = logging.getLogger(__name__)


class QueryNotFoundError(LookupError):
    def __init__(self, query_id: str):
        super().__init__(f"Query {query_id} not found")
        self.query_id = query_id


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


class PipelineStore:

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _session(self):
        return session_scope(self.session_factory)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_query(self, query_id: str) -> Optional[Query]:
        with self._session() as db:
            return db.get(Query, query_id)

    def create_query(self, raw_query: str, user_id: Optional[str] = None) -> Query:
        with self._session() as db:
            query = Query(raw_query=raw_query, status=QueryStatus.PENDING.value, user_id=user_id)
            db.add(query)
            db.flush()
            return query

    def find_recent_completed(
        self,
        raw_query: str,
        window_days: int = settings.CACHE_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> Optional[Query]:
        """Newest COMPLETED query with the same text inside the cache window."""
        cutoff = (now or utcnow()) - timedelta(days=window_days)
        with self._session() as db:
            return (
                db.query(Query)
                .filter(
                    Query.raw_query == raw_query,
                    Query.status == QueryStatus.COMPLETED.value,
                    Query.created_at >= cutoff,
                )
                .order_by(Query.created_at.desc())
                .first()
            )

    def update_query_status(self, query_id: str, status: QueryStatus) -> None:
        with self._session() as db:
            query = db.get(Query, query_id)
            if query is None:
                raise QueryNotFoundError(query_id)
            query.status = QueryStatus(status).value

    def save_parsed_intent(self, query_id: str, intent: Dict[str, Any]) -> None:
        with self._session() as db:
            query = db.get(Query, query_id)
            if query is None:
                raise QueryNotFoundError(query_id)
            query.parsed_intent = intent

    # ── Products, sources, evidence ──────────────────────────────────────

    def upsert_product_by_slug(self, candidate: CandidateProduct) -> Product:
        slug = candidate.slug
        with self._session() as db:
            product = db.query(Product).filter(Product.canonical_slug == slug).first()
            if product is None:
                product = Product(
                    canonical_slug=slug,
                    brand=candidate.brand,
                    model=candidate.model,
                    variant=candidate.variant,
                    category=candidate.category,
                )
                db.add(product)
            else:
                product.brand = candidate.brand
                product.model = candidate.model
                product.category = candidate.category
            db.flush()
            return product

    def create_source(self, mention: Mention) -> Source:
        with self._session() as db:
            source = Source(
                platform=mention.platform.upper(),
                url=mention.url,
                title=mention.title,
                author_handle=mention.author_handle,
                source_created_at=_parse_timestamp(mention.created_at),
                snippet=mention.text[:500],
            )
            db.add(source)
            db.flush()
            return source

    def create_evidence(self, product_id: str, query_id: str, source_id: str,
                        evidence: ExtractedEvidence) -> Evidence:
        with self._session() as db:
            row = Evidence(
                product_id=product_id,
                query_id=query_id,
                source_id=source_id,
                sentiment=evidence.sentiment.upper(),
                themes=list(evidence.themes),
                claim_tags=list(evidence.claim_tags),
                quote=evidence.quote,
                quote_char_count=len(evidence.quote),
            )
            db.add(row)
            db.flush()
            return row

    def evidence_for_query(self, query_id: str) -> List[Evidence]:
        with self._session() as db:
            return db.query(Evidence).filter(Evidence.query_id == query_id).all()

    # ── Rankings ─────────────────────────────────────────────────────────

    def create_ranking_result(self, query_id: str, candidate_count: int,
                              top10: List[Dict[str, Any]]) -> RankingResult:
        with self._session() as db:
            result = RankingResult(query_id=query_id, candidate_count=candidate_count, top10=top10)
            db.add(result)
            db.flush()
            return result

    def latest_ranking(self, query_id: str) -> Optional[RankingResult]:
        with self._session() as db:
            return (
                db.query(RankingResult)
                .filter(RankingResult.query_id == query_id)
                .order_by(RankingResult.created_at.desc())
                .first()
            )

    # ── Search log ───────────────────────────────────────────────────────

    def log_search(
        self,
        status: str,
        raw_query: str,
        query_id: Optional[str] = None,
        user_id: Optional[str] = None,
        parsed_intent: Optional[Dict[str, Any]] = None,
        result_count: Optional[int] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Best effort: a logging failure never reaches the caller."""
        try:
            with self._session() as db:
                db.add(SearchLog(
                    query_id=query_id,
                    user_id=user_id,
                    raw_query=raw_query,
                    parsed_intent=parsed_intent or {},
                    result_count=result_count,
                    duration_ms=duration_ms,
                    status=status,
                ))
        except Exception as e:
            logger.error(f"Failed to log search ({status}): {e}")

    def search_logs(self, query_id: Optional[str] = None) -> List[SearchLog]:
        with self._session() as db:
            q = db.query(SearchLog)
            if query_id is not None:
                q = q.filter(SearchLog.query_id == query_id)
            return q.order_by(SearchLog.id).all()
