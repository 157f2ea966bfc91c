"""
Configuration & Settings
Social Product Discovery
"""

from pydantic import BaseModel
from typing import Dict, Optional
import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


class Settings(BaseModel):
    # App
    APP_NAME: str = "Social Product Discovery"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "").lower() in ("1", "true", "yes")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./product_discovery.db")

    # LLM (any OpenAI-compatible JSON completion endpoint)
    LLM_API_KEY: Optional[str] = os.getenv("LLM_API_KEY")
    LLM_BASE_URL: Optional[str] = os.getenv("LLM_BASE_URL")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_TIMEOUT_SECONDS: float = _env_float("LLM_TIMEOUT_SECONDS", 60.0)
    LLM_MAX_RETRIES: int = _env_int("LLM_MAX_RETRIES", 2)

    # Retrieval
    SERPAPI_API_KEY: Optional[str] = os.getenv("SERPAPI_API_KEY")
    REDDIT_USER_AGENT: str = "SocialProductReviews/1.0 (research bot)"
    REQUEST_TIMEOUT: int = 15
    MAX_RETRIES: int = 2
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 30.0

    # Token-bucket limits per domain: (requests per second, burst capacity)
    RATE_LIMITS: Dict[str, tuple] = {
        "reddit.com": (0.17, 3),
        "serpapi.com": (0.5, 2),
    }
    DEFAULT_RATE_LIMIT: tuple = (1.0, 5)

    # Circuit breaker
    CIRCUIT_FAILURE_THRESHOLD: int = 5
    CIRCUIT_RESET_SECONDS: float = 300.0

    # Pipeline caps
    SEED_TERM_FANOUT: int = 5
    EXTRACTION_BATCH_SIZE: int = 30
    RESOLVER_LLM_THRESHOLD: int = 20
    RESOLVER_LLM_WINDOW: int = 80
    EVIDENCE_TOP_CANDIDATES: int = 30
    EVIDENCE_MAX_MENTIONS: int = 20
    TOP_N: int = 10
    MAX_CITATIONS: int = 5
    MAX_PERSISTED_SOURCES: int = 200
    MAX_PERSISTED_EVIDENCE: int = 20
    CACHE_WINDOW_DAYS: int = 7

    # Ranking weights
    WEIGHT_QUERY_FIT: float = 0.30
    WEIGHT_REDDIT: float = 0.25
    WEIGHT_SOCIAL: float = 0.15
    WEIGHT_RISK: float = 0.15
    WEIGHT_CONFIDENCE: float = 0.15

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000


settings = Settings()
