from .database import (
    init_db, session_scope, make_engine, make_session_factory, engine, SessionLocal,
)
from .models import Base, Query, Product, Source, Evidence, RankingResult, SearchLog
from .store import PipelineStore, QueryNotFoundError

__all__ = [
    "init_db", "session_scope", "make_engine", "make_session_factory",
    "engine", "SessionLocal",
    "Base", "Query", "Product", "Source", "Evidence", "RankingResult", "SearchLog",
    "PipelineStore", "QueryNotFoundError",
]
