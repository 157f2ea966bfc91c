"""
Intent Parser Agent
--------------------
Turns a raw product query into a structured intent, a list of expanded
search terms and a broad product category.

The LLM reply is never trusted as-is: every field is validated and
repaired, and a total failure yields a deterministic fallback, so this
stage never raises.

Input:  raw query string
Output: IntentParseResult
"""

import logging
from datetime import datetime
from typing import Any, List

from agents.base import Agent
from agents.state import PipelineState
from models.schemas import IntentParseResult, ParsedIntent
from services.llm import JSONCompletionService

logger = logging.getLogger(__name__)

MIN_SEED_TERMS = 5


def fallback_terms(raw_query: str) -> List[str]:
    base = raw_query.strip()
    return [
        base,
        f"best {base}",
        f"{base} reddit",
        f"{base} review",
        f"{base} recommendation",
        f"top {base} {datetime.now().year}",
        f"{base} vs",
        f"{base} buying guide",
    ]


def fallback_result(raw_query: str) -> IntentParseResult:
    return IntentParseResult(
        intent=ParsedIntent(use_case=raw_query),
        seed_terms=fallback_terms(raw_query),
        inferred_category="general",
    )


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def build_prompt(raw_query: str) -> str:
    return f"""You are a product research assistant. Analyze this user query and extract structured information.

User query: "{raw_query}"

Return a JSON object with these exact fields:
{{
  "intent": {{
    "useCase": "primary use case described (e.g. 'sleeping with headphones')",
    "constraints": ["constraints mentioned or implied (e.g. 'comfortable for side sleeping', 'low profile')"],
    "mustHaves": ["features that are required (e.g. 'wireless', 'noise cancellation')"],
    "niceToHaves": ["features that would be nice but not required (e.g. 'long battery life')"]
  }},
  "seedTerms": [
    "10-15 diverse search terms to find relevant products. Include:",
    "- The original query rephrased",
    "- Specific product category terms (e.g. 'sleep earbuds', 'headband headphones')",
    "- Reddit-style queries (e.g. 'best earbuds for sleeping reddit')",
    "- Comparison queries (e.g. 'sleep headphones vs earbuds')",
    "- Specific feature queries (e.g. 'low profile earbuds side sleeper')"
  ],
  "inferredCategory": "the broad product category (e.g. 'headphones', 'earbuds', 'keyboards', 'shoes')"
}}

Be thorough with seed terms: we need to discover 100+ candidate products. Generate at least 12 diverse search terms."""


def repair_result(raw_query: str, payload: Any) -> IntentParseResult:
    """Apply the defaulting rules to whatever the LLM returned."""
    if not isinstance(payload, dict):
        return fallback_result(raw_query)

    seed_terms = _string_list(payload.get("seedTerms"))
    if len(seed_terms) < MIN_SEED_TERMS:
        seed_terms = fallback_terms(raw_query)

    raw_intent = payload.get("intent")
    if isinstance(raw_intent, dict):
        use_case = raw_intent.get("useCase")
        intent = ParsedIntent(
            use_case=use_case.strip() if isinstance(use_case, str) and use_case.strip() else raw_query,
            constraints=_string_list(raw_intent.get("constraints")),
            must_haves=_string_list(raw_intent.get("mustHaves")),
            nice_to_haves=_string_list(raw_intent.get("niceToHaves")),
        )
    else:
        intent = ParsedIntent(use_case=raw_query)

    category = payload.get("inferredCategory")
    if not isinstance(category, str) or not category.strip():
        category = "general"

    return IntentParseResult(intent=intent, seed_terms=seed_terms, inferred_category=category.strip())


class IntentParserAgent(Agent):
    """
    Stage 1: Intent Parser

    Input:  PipelineState.raw_query
    Output: PipelineState.intent_result
    """

    def __init__(self, llm: JSONCompletionService):
        super().__init__(name="IntentParserAgent")
        self.llm = llm

    async def parse(self, raw_query: str) -> IntentParseResult:
        try:
            payload = await self.llm.generate_json(build_prompt(raw_query))
        except Exception as e:
            self.logger.warning(f"Intent parsing failed, using fallback: {e}")
            return fallback_result(raw_query)
        return repair_result(raw_query, payload)

    async def run(self, state: PipelineState) -> PipelineState:
        result = await self.parse(state.raw_query)
        self.logger.info(
            f"Intent parsed. Category: {result.inferred_category}, "
            f"{len(result.seed_terms)} seed terms"
        )
        state.intent_result = result
        return state
