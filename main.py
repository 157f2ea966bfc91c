"""
Entry point for Social Product Discovery.

Usage:
  # Run a quick offline demo (mock retrievers + keyword LLM, in-memory DB):
  python main.py demo ["headphones for sleeping"]

  # Start the FastAPI server:
  python main.py api

  # Run tests:
  python main.py test
"""

from __future__ import annotations

import asyncio
import os
import sys
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("main")


def demo(raw_query: str = "headphones for sleeping"):
    """
    End-to-end offline run. Prints the ranked top-10 to stdout.
    """
    from sqlalchemy.pool import StaticPool

    from db import PipelineStore, init_db, make_engine, make_session_factory
    from retrievers import MockRetriever
    from retrievers.mock import PRODUCTS
    from services import OfflineLLM
    from utils.pipeline import run_pipeline

    logger.info("=== Social Product Discovery — Demo Run ===")

    engine = make_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    store = PipelineStore(make_session_factory(engine))
    query = store.create_query(raw_query)

    result = asyncio.run(run_pipeline(
        query.id,
        store=store,
        llm=OfflineLLM(PRODUCTS),
        retrievers=[MockRetriever(platform="reddit"), MockRetriever(platform="web", mentions_per_term=3)],
    ))

    # ── Print report ──────────────────────────────────────────────────────
    print("\n" + "=" * 70)
    print("  PRODUCT DISCOVERY REPORT")
    print("=" * 70)
    print(f"  Query      : {raw_query}")
    print(f"  Query ID   : {result.query_id}")
    print(f"  Success    : {result.success}")
    print(f"  Candidates : {result.candidate_count}")
    print(f"  Ranked     : {result.top10_count}")
    print(f"  Duration   : {result.duration_ms}ms")
    print("=" * 70)

    if not result.success:
        print(f"\n❌ Pipeline failed: {result.error}")
        return result

    ranking = store.latest_ranking(result.query_id)
    print("\n🏆 TOP PRODUCTS")
    print("-" * 70)
    for item in (ranking.top10 if ranking else []):
        scores = item["scores"]
        print(
            f"  #{item['rank']:<2} {item['brand']} {item['model']:<24} "
            f"overall={scores['overall']:>3}  fit={scores['queryFit']:>3}  "
            f"reddit={scores['redditEndorsement']:>3}  risk={scores['riskScore']:>3}"
        )
        print(f"      {item['rationale']}")
        for citation in item["citations"][:2]:
            print(f"      ↳ \"{citation['snippet']}\" ({citation['platform']})")
    print("=" * 70)

    return result


def start_api():
    """Start the FastAPI server."""
    import uvicorn
    from config.settings import settings
    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT, reload=settings.DEBUG)


def run_tests():
    """Run pytest."""
    import subprocess
    result = subprocess.run(
        ["pytest", "tests/", "-v", "--tb=short"],
        cwd=os.path.dirname(os.path.abspath(__file__)),
    )
    sys.exit(result.returncode)


if __name__ == "__main__":
    command = sys.argv[1] if len(sys.argv) > 1 else "demo"

    if command == "demo":
        demo(" ".join(sys.argv[2:]) or "headphones for sleeping")
    elif command == "api":
        start_api()
    elif command == "test":
        run_tests()
    else:
        print(f"Unknown command: {command}")
        print("Usage: python main.py [demo|api|test]")
        sys.exit(1)
