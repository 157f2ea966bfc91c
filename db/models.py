"""
SQLAlchemy ORM Models
Social Product Discovery
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC; SQLite drops tzinfo on round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class Query(Base):
    __tablename__ = "query"

    id = Column(String(32), primary_key=True, default=new_id)
    raw_query = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    parsed_intent = Column(JSON)
    user_id = Column(String(64))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    ranking_results = relationship("RankingResult", back_populates="query", cascade="all, delete-orphan")
    evidence = relationship("Evidence", back_populates="query", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_query_raw_status", "raw_query", "status"),
        Index("ix_query_created", "created_at"),
    )


class Product(Base):
    __tablename__ = "product"

    id = Column(String(32), primary_key=True, default=new_id)
    canonical_slug = Column(String(255), nullable=False, unique=True)
    brand = Column(String(255), nullable=False)
    model = Column(String(255), nullable=False)
    variant = Column(String(255))
    category = Column(String(255), default="general")
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    evidence = relationship("Evidence", back_populates="product")


class Source(Base):
    __tablename__ = "source"

    id = Column(String(32), primary_key=True, default=new_id)
    platform = Column(String(20), nullable=False)   # REDDIT, WEB, TRUSTPILOT, ...
    url = Column(String(2000), nullable=False)
    title = Column(String(500))
    author_handle = Column(String(255))
    source_created_at = Column(DateTime)
    snippet = Column(Text)
    captured_at = Column(DateTime, default=utcnow)

    evidence = relationship("Evidence", back_populates="source")

    __table_args__ = (Index("ix_source_url", "url"),)


class Evidence(Base):
    __tablename__ = "evidence"

    id = Column(String(32), primary_key=True, default=new_id)
    product_id = Column(String(32), ForeignKey("product.id"), nullable=False)
    query_id = Column(String(32), ForeignKey("query.id"), nullable=False)
    source_id = Column(String(32), ForeignKey("source.id"), nullable=False)
    sentiment = Column(String(10), nullable=False)  # POSITIVE / NEUTRAL / NEGATIVE
    themes = Column(JSON)
    claim_tags = Column(JSON)
    quote = Column(String(150))
    quote_char_count = Column(Integer)
    created_at = Column(DateTime, default=utcnow)

    product = relationship("Product", back_populates="evidence")
    query = relationship("Query", back_populates="evidence")
    source = relationship("Source", back_populates="evidence")

    __table_args__ = (
        Index("ix_evidence_product", "product_id"),
        Index("ix_evidence_query", "query_id"),
    )


class RankingResult(Base):
    __tablename__ = "ranking_result"

    id = Column(String(32), primary_key=True, default=new_id)
    query_id = Column(String(32), ForeignKey("query.id"), nullable=False)
    candidate_count = Column(Integer, default=0)
    top10 = Column(JSON)
    created_at = Column(DateTime, default=utcnow)

    query = relationship("Query", back_populates="ranking_results")

    __table_args__ = (Index("ix_ranking_query", "query_id"),)


class SearchLog(Base):
    __tablename__ = "search_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    query_id = Column(String(32))
    user_id = Column(String(64))
    raw_query = Column(Text)
    parsed_intent = Column(JSON)
    result_count = Column(Integer)
    duration_ms = Column(Integer)
    status = Column(String(30), nullable=False)   # initiated / cached / completed / completed_empty / failed
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("ix_search_log_status", "status"),)
