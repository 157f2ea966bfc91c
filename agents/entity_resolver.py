"""
Entity Resolver Agent
----------------------
Merges candidates that name the same physical product differently
("Sony WF-1000XM5" / "sony wf1000xm5" / "Sony WF-1000XM5 earbuds").

Phase 1 is a cheap lexical pass (exact, substring or token Jaccard > 0.7).
Phase 2 asks the LLM to group the residue, and only runs when phase 1
leaves more than RESOLVER_LLM_THRESHOLD candidates.

The input list and its items are never mutated; merged candidates are
fresh copies.
"""

import logging
import re
from dataclasses import replace
from typing import Any, Dict, List, Sequence, Set

from agents.base import Agent
from agents.state import PipelineState
from config.settings import settings
from models.schemas import CandidateProduct
from services.llm import JSONCompletionService

logger = logging.getLogger(__name__)

JACCARD_THRESHOLD = 0.7


def normalize(brand: str, model: str) -> str:
    text = f"{brand or ''} {model or ''}".lower()
    text = re.sub(r"[^a-z0-9\s]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def is_similar(a: str, b: str) -> bool:
    if a == b:
        return True
    if a in b or b in a:
        return True
    tokens_a, tokens_b = set(a.split(" ")), set(b.split(" "))
    union = tokens_a | tokens_b
    if not union:
        return False
    return len(tokens_a & tokens_b) / len(union) > JACCARD_THRESHOLD


def _union_sources(groups: Sequence[Sequence[str]]) -> List[str]:
    seen: Set[str] = set()
    merged: List[str] = []
    for sources in groups:
        for source in sources:
            if source not in seen:
                seen.add(source)
                merged.append(source)
    return merged


def merge_group(group: Sequence[CandidateProduct]) -> CandidateProduct:
    """Most-mentioned member wins the name; counts sum, sources union."""
    ordered = sorted(group, key=lambda c: c.mention_count, reverse=True)
    canonical = ordered[0]
    return replace(
        canonical,
        mention_count=sum(c.mention_count for c in ordered),
        sources=_union_sources([c.sources for c in ordered]),
    )


def fuzzy_merge(candidates: Sequence[CandidateProduct]) -> List[CandidateProduct]:
    groups: List[List[CandidateProduct]] = []
    group_keys: List[str] = []

    for candidate in candidates:
        key = normalize(candidate.brand, candidate.model)
        for i, group_key in enumerate(group_keys):
            if is_similar(key, group_key):
                groups[i].append(candidate)
                break
        else:
            groups.append([candidate])
            group_keys.append(key)

    return [merge_group(g) for g in groups]


def merge_same_slug(candidates: Sequence[CandidateProduct]) -> List[CandidateProduct]:
    """Collapse candidates that would persist as the same product row."""
    groups: Dict[str, List[CandidateProduct]] = {}
    for candidate in candidates:
        groups.setdefault(candidate.slug, []).append(candidate)
    return [merge_group(g) if len(g) > 1 else g[0] for g in groups.values()]


def build_merge_prompt(candidates: Sequence[CandidateProduct]) -> str:
    lines = []
    for i, c in enumerate(candidates):
        variant = f" ({c.variant})" if c.variant else ""
        lines.append(f"[{i}] {c.brand} {c.model}{variant} - {c.category}")
    listing = "\n".join(lines)
    return f"""These are product candidates that may contain duplicates (same product listed under different names/variations).
Group them by identical product, returning the index of the canonical (best) name and the indices to merge into it.

Products:
{listing}

Return JSON:
{{
  "groups": [
    {{
      "canonicalIndex": 0,
      "mergeIndices": [3, 7]
    }}
  ]
}}

Rules:
- Only group products that are TRULY the same product (same brand, same model, just name variations)
- "Sony WF-1000XM5" and "Sony XM5" = same product → merge
- "Sony WF-1000XM5" and "Sony WF-1000XM4" = different products → do NOT merge
- If a product has no duplicates, don't include it in groups"""


def _valid_index(value: Any, size: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < size


def apply_merge_groups(candidates: Sequence[CandidateProduct], payload: Any) -> List[CandidateProduct]:
    """
    Apply LLM merge groups to `candidates`. Invalid or self indices are
    ignored and an entry is absorbed at most once; an absorbed entry can
    no longer act as a canonical.
    """
    resolved = [replace(c, sources=list(c.sources)) for c in candidates]
    groups = payload.get("groups") if isinstance(payload, dict) else None
    if not isinstance(groups, list):
        return resolved

    merged: Set[int] = set()
    for group in groups:
        if not isinstance(group, dict):
            continue
        canonical_index = group.get("canonicalIndex")
        if not _valid_index(canonical_index, len(resolved)) or canonical_index in merged:
            continue
        indices = group.get("mergeIndices")
        if not isinstance(indices, list):
            continue

        canonical = resolved[canonical_index]
        for idx in indices:
            if not _valid_index(idx, len(resolved)) or idx == canonical_index or idx in merged:
                continue
            dup = resolved[idx]
            canonical.mention_count += dup.mention_count
            canonical.sources = _union_sources([canonical.sources, dup.sources])
            merged.add(idx)

    return [c for i, c in enumerate(resolved) if i not in merged]


class EntityResolverAgent(Agent):
    """
    Stage 3: Entity Resolution

    Input:  PipelineState.generation.candidates
    Output: PipelineState.resolved
    """

    def __init__(
        self,
        llm: JSONCompletionService,
        llm_threshold: int = settings.RESOLVER_LLM_THRESHOLD,
        llm_window: int = settings.RESOLVER_LLM_WINDOW,
    ):
        super().__init__(name="EntityResolverAgent")
        self.llm = llm
        self.llm_threshold = llm_threshold
        self.llm_window = llm_window

    async def _llm_resolve(self, candidates: List[CandidateProduct]) -> List[CandidateProduct]:
        # Window covers the most-mentioned candidates
        candidates = sorted(candidates, key=lambda c: c.mention_count, reverse=True)
        top, rest = candidates[: self.llm_window], candidates[self.llm_window:]
        try:
            payload = await self.llm.generate_json(build_merge_prompt(top))
        except Exception as e:
            self.logger.warning(f"LLM resolve failed, keeping fuzzy result: {e}")
            return candidates
        resolved = apply_merge_groups(top, payload) + rest
        return sorted(resolved, key=lambda c: c.mention_count, reverse=True)

    async def resolve(self, candidates: List[CandidateProduct]) -> List[CandidateProduct]:
        if len(candidates) <= 1:
            return list(candidates)

        merged = fuzzy_merge(candidates)
        self.logger.info(f"Fuzzy merge: {len(candidates)} → {len(merged)} candidates")

        if len(merged) > self.llm_threshold:
            merged = await self._llm_resolve(merged)
            self.logger.info(f"LLM merge: {len(merged)} candidates remain")

        merged = merge_same_slug(merged)
        return sorted(merged, key=lambda c: c.mention_count, reverse=True)

    async def run(self, state: PipelineState) -> PipelineState:
        state.resolved = await self.resolve(state.candidates)
        return state

    def describe(self, state: PipelineState) -> Dict[str, Any]:
        return {"before": len(state.candidates), "after": len(state.resolved)}
