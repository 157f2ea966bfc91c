"""
Candidate Generator Agent
--------------------------
Discovers candidate products:
  1. Fans out to every retriever concurrently with the first few seed terms.
     Each retriever runs in a worker thread behind its own rate limiter and
     circuit breaker; a failing retriever contributes nothing.
  2. Sends the combined mentions to the LLM in fixed-size chunks to extract
     brand/model references. A failing chunk contributes nothing.
  3. Aggregates references by lowercase brand|model, counting mentions and
     collecting the URLs they came from.

Input:  seed terms + ParsedIntent + inferred category
Output: CandidateGenerationResult
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from agents.base import Agent
from agents.state import PipelineState
from config.settings import settings
from models.schemas import CandidateGenerationResult, CandidateProduct, Mention, ParsedIntent
from retrievers.base import BaseRetriever, deduplicate_mentions
from services.llm import JSONCompletionService

logger = logging.getLogger(__name__)


@dataclass
class ProductRef:
    """One product reference found in one mention."""
    brand: str
    model: str
    category: str
    source: str
    variant: Optional[str] = None


def build_extraction_prompt(batch: Sequence[Mention], intent: ParsedIntent) -> str:
    texts = "\n\n".join(
        f"[{i}] ({m.platform}) {m.text[:300]}" for i, m in enumerate(batch)
    )
    return f"""Extract all specific product mentions from these texts. The user is looking for: "{intent.use_case}".

Texts:
{texts}

For each product mentioned, return:
{{
  "products": [
    {{
      "brand": "brand name",
      "model": "model name",
      "variant": "variant if specified or null",
      "category": "product category (e.g. earbuds, headband, on-ear)",
      "sourceIndex": 0
    }}
  ]
}}

Rules:
- Only extract SPECIFIC products with brand + model names (not generic terms like "earbuds" or "headphones")
- Include ALL products mentioned, even if briefly
- sourceIndex should reference which text [index] the product was found in
- If the same product appears in multiple texts, list it once per text
- Normalize brand names (e.g. "Sony" not "sony")"""


def parse_product_refs(payload: Any, batch: Sequence[Mention]) -> List[ProductRef]:
    """Keep only well-formed references; map sourceIndex to the mention URL."""
    if not isinstance(payload, dict) or not isinstance(payload.get("products"), list):
        return []

    refs: List[ProductRef] = []
    for item in payload["products"]:
        if not isinstance(item, dict):
            continue
        brand, model = item.get("brand"), item.get("model")
        if not isinstance(brand, str) or not isinstance(model, str):
            continue
        if not brand.strip() or not model.strip():
            continue

        index = item.get("sourceIndex")
        source = ""
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(batch):
            source = batch[index].url

        variant = item.get("variant")
        category = item.get("category")
        refs.append(ProductRef(
            brand=brand.strip(),
            model=model.strip(),
            variant=variant.strip() if isinstance(variant, str) and variant.strip() else None,
            category=category.strip() if isinstance(category, str) and category.strip() else "general",
            source=source,
        ))
    return refs


def aggregate_products(refs: List[ProductRef]) -> List[CandidateProduct]:
    """Count references per lowercase brand|model, sorted by count descending."""
    products: Dict[str, CandidateProduct] = {}

    for ref in refs:
        key = f"{ref.brand.lower()}|{ref.model.lower()}"
        existing = products.get(key)
        if existing is None:
            products[key] = CandidateProduct(
                brand=ref.brand,
                model=ref.model,
                variant=ref.variant,
                category=ref.category,
                mention_count=1,
                sources=[ref.source] if ref.source else [],
            )
            continue
        existing.mention_count += 1
        if ref.source and ref.source not in existing.sources:
            existing.sources.append(ref.source)

    return sorted(products.values(), key=lambda c: c.mention_count, reverse=True)


class CandidateGeneratorAgent(Agent):
    """
    Stage 2: Candidate Generation

    Input:  PipelineState.intent_result
    Output: PipelineState.generation
    """

    def __init__(
        self,
        retrievers: List[BaseRetriever],
        llm: JSONCompletionService,
        fanout_terms: int = settings.SEED_TERM_FANOUT,
        batch_size: int = settings.EXTRACTION_BATCH_SIZE,
    ):
        super().__init__(name="CandidateGeneratorAgent")
        self.retrievers = retrievers
        self.llm = llm
        self.fanout_terms = fanout_terms
        self.batch_size = batch_size

    async def _retrieve_one(self, retriever: BaseRetriever, terms: List[str], category: str) -> List[Mention]:
        try:
            mentions = await asyncio.to_thread(retriever.guarded_retrieve, terms, category=category)
        except Exception as e:
            self.logger.warning(f"Retriever {retriever.name} failed: {e}")
            return []
        self.logger.info(f"  → {len(mentions)} mentions from {retriever.name}")
        return mentions

    async def retrieve_mentions(self, seed_terms: List[str], category: str) -> Dict[str, List[Mention]]:
        terms = seed_terms[: self.fanout_terms]
        results = await asyncio.gather(
            *(self._retrieve_one(r, terms, category) for r in self.retrievers)
        )
        return {r.name: mentions for r, mentions in zip(self.retrievers, results)}

    async def _extract_batch(self, batch: Sequence[Mention], intent: ParsedIntent) -> List[ProductRef]:
        try:
            payload = await self.llm.generate_json(build_extraction_prompt(batch, intent))
        except Exception as e:
            self.logger.warning(f"Batch extraction failed: {e}")
            return []
        return parse_product_refs(payload, batch)

    async def extract_products(self, mentions: List[Mention], intent: ParsedIntent) -> List[CandidateProduct]:
        refs: List[ProductRef] = []
        for start in range(0, len(mentions), self.batch_size):
            refs.extend(await self._extract_batch(mentions[start:start + self.batch_size], intent))
        return aggregate_products(refs)

    async def generate(
        self, seed_terms: List[str], intent: ParsedIntent, inferred_category: str
    ) -> CandidateGenerationResult:
        self.logger.info(
            f"Starting retrieval with {len(seed_terms)} seed terms "
            f"across {len(self.retrievers)} retrievers"
        )
        by_retriever = await self.retrieve_mentions(seed_terms, inferred_category)
        mentions = deduplicate_mentions(m for batch in by_retriever.values() for m in batch)

        stats: Dict[str, int] = {f"{name}_results": len(batch) for name, batch in by_retriever.items()}
        platform_counts = Counter(m.platform for m in mentions)
        stats.update({f"{platform}_mentions": n for platform, n in platform_counts.items()})
        stats["total_mentions"] = len(mentions)

        if not mentions:
            self.logger.info("No mentions retrieved, skipping extraction")
            stats["unique_candidates"] = 0
            return CandidateGenerationResult(candidates=[], mentions=[], stats=stats)

        candidates = await self.extract_products(mentions, intent)
        stats["unique_candidates"] = len(candidates)
        self.logger.info(f"Extracted {len(candidates)} candidate products from {len(mentions)} mentions")
        return CandidateGenerationResult(candidates=candidates, mentions=mentions, stats=stats)

    async def run(self, state: PipelineState) -> PipelineState:
        parsed = state.intent_result
        state.generation = await self.generate(parsed.seed_terms, parsed.intent, parsed.inferred_category)
        return state

    def describe(self, state: PipelineState) -> Dict[str, Any]:
        return {
            "mentions": len(state.generation.mentions),
            "candidates": len(state.generation.candidates),
        }
