"""
Evidence Extractor Agent
-------------------------
For the top resolved candidates, selects the mentions that talk about the
product and asks the LLM for sentiment, themes and claim tags with a
short supporting quote. Every evidence item points back at exactly one
mention URL.

Failures are isolated per candidate: a failed candidate gets [] and the
loop moves on.
"""

import logging
import re
from typing import Any, Dict, List, Sequence

from agents.base import Agent
from agents.state import PipelineState
from config.settings import settings
from models.schemas import SENTIMENTS, CandidateProduct, ExtractedEvidence, Mention
from services.llm import JSONCompletionService

logger = logging.getLogger(__name__)

QUOTE_MAX_CHARS = 150
MENTION_TEXT_CHARS = 400


def model_tokens(model: str) -> List[str]:
    # "WF-1000XM5" → ["wf", "1000xm5"]
    return [t for t in re.split(r"[\s\-_]+", model.lower()) if len(t) > 1]


def find_relevant_mentions(candidate: CandidateProduct, mentions: Sequence[Mention]) -> List[Mention]:
    brand = candidate.brand.lower()
    tokens = model_tokens(candidate.model)

    relevant = []
    for m in mentions:
        text = m.text.lower()
        if (brand and brand in text) or any(t in text for t in tokens):
            relevant.append(m)
    return relevant


def build_evidence_prompt(candidate: CandidateProduct, mentions: Sequence[Mention]) -> str:
    texts = "\n\n".join(
        f"[{i}] ({m.platform}, {m.url})\n{m.text[:MENTION_TEXT_CHARS]}"
        for i, m in enumerate(mentions)
    )
    return f"""Analyze these mentions of "{candidate.display_name}" and extract evidence.

Mentions:
{texts}

For each meaningful piece of evidence found, return:
{{
  "evidence": [
    {{
      "sentiment": "positive" | "neutral" | "negative",
      "themes": ["comfort", "durability", "sound_quality", etc.],
      "claimTags": ["side_sleep", "noise_cancellation", "battery_life", etc.],
      "quote": "short representative quote (max 150 chars)",
      "sourceIndex": 0
    }}
  ]
}}

Rules:
- Extract 1-3 evidence items per mention (only if the mention actually discusses this product)
- "themes" should be general categories (comfort, durability, sound_quality, build_quality, battery, connectivity, price_value, noise_control, fit, design)
- "claimTags" should be specific claims relevant to user needs
- "quote" should be the most representative short excerpt (under 150 characters)
- Skip mentions that don't actually discuss this specific product
- Be accurate with sentiment — don't default to positive"""


def _tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def parse_evidence(payload: Any, candidate: CandidateProduct, mentions: Sequence[Mention]) -> List[ExtractedEvidence]:
    """Map LLM evidence items back onto their mentions, dropping unusable ones."""
    items = payload.get("evidence") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        return []

    evidence = []
    for item in items:
        if not isinstance(item, dict):
            continue
        index = item.get("sourceIndex")
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(mentions):
            continue
        mention = mentions[index]

        sentiment = item.get("sentiment")
        if sentiment not in SENTIMENTS:
            sentiment = "neutral"
        quote = item.get("quote")
        quote = quote.strip()[:QUOTE_MAX_CHARS] if isinstance(quote, str) else ""

        evidence.append(ExtractedEvidence(
            product_ref=candidate.display_name,
            sentiment=sentiment,
            themes=_tags(item.get("themes")),
            claim_tags=_tags(item.get("claimTags")),
            quote=quote,
            source_url=mention.url,
            platform=mention.platform,
        ))
    return evidence


class EvidenceExtractorAgent(Agent):
    """
    Stage 4: Evidence Extraction

    Input:  PipelineState.resolved + PipelineState.generation.mentions
    Output: PipelineState.evidence  (keyed by candidate.key)
    """

    def __init__(
        self,
        llm: JSONCompletionService,
        top_candidates: int = settings.EVIDENCE_TOP_CANDIDATES,
        max_mentions: int = settings.EVIDENCE_MAX_MENTIONS,
    ):
        super().__init__(name="EvidenceExtractorAgent")
        self.llm = llm
        self.top_candidates = top_candidates
        self.max_mentions = max_mentions

    async def extract_for_product(
        self, candidate: CandidateProduct, mentions: Sequence[Mention]
    ) -> List[ExtractedEvidence]:
        capped = list(mentions[: self.max_mentions])
        try:
            payload = await self.llm.generate_json(build_evidence_prompt(candidate, capped))
        except Exception as e:
            self.logger.warning(f"Evidence extraction failed for {candidate.display_name}: {e}")
            return []
        return parse_evidence(payload, candidate, capped)

    async def extract(
        self, candidates: List[CandidateProduct], mentions: List[Mention]
    ) -> Dict[str, List[ExtractedEvidence]]:
        evidence_map: Dict[str, List[ExtractedEvidence]] = {}

        for candidate in candidates[: self.top_candidates]:
            relevant = find_relevant_mentions(candidate, mentions)
            if not relevant:
                evidence_map[candidate.key] = []
                continue
            evidence_map[candidate.key] = await self.extract_for_product(candidate, relevant)

        return evidence_map

    async def run(self, state: PipelineState) -> PipelineState:
        mentions = state.generation.mentions if state.generation else []
        state.evidence = await self.extract(state.resolved, mentions)
        self.logger.info(
            f"Extracted {state.total_evidence} evidence items "
            f"for {len(state.evidence)} candidates"
        )
        return state
