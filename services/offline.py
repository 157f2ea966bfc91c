"""
Offline JSON completion service.

Answers the pipeline's five prompt types with keyword heuristics over the
prompt text itself, so the whole pipeline can run without network access
(demo mode and local development). It only recognizes products from the
catalog it is given.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Tuple

from services.llm import LLMError

logger = logging.getLogger(__name__)

NEGATIVE_WORDS = ("returned", "hurt", "died", "disappointed", "falling out", "not worth", "broke")
POSITIVE_WORDS = ("best", "great", "comfortable", "improved", "love", "lasts all night", "fits flush")

THEME_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "comfort": ("comfortable", "comfort", "hurt"),
    "battery": ("battery",),
    "fit": ("fits", "falling out", "flush"),
    "noise_control": ("noise",),
    "price_value": ("price", "worth"),
    "design": ("low profile",),
}

CLAIM_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "side_sleep": ("side sleep",),
    "all_night_battery": ("lasts all night",),
    "low_profile": ("low profile", "flush"),
    "noise_masking": ("noise masking",),
}

_QUERY_RE = re.compile(r'User query: "(.*)"')
_ITEM_RE = re.compile(r"^\[(\d+)\] \(([^)]*)\)\s*(.*)$")
_SUMMARY_RE = re.compile(r"^\[(\d+)\] (.+?) \(")


def _tags(text: str, table: Dict[str, Tuple[str, ...]]) -> List[str]:
    return [tag for tag, words in table.items() if any(w in text for w in words)]


def _sentiment(text: str) -> str:
    if any(w in text for w in NEGATIVE_WORDS):
        return "negative"
    if any(w in text for w in POSITIVE_WORDS):
        return "positive"
    return "neutral"


class OfflineLLM:

    def __init__(self, catalog: Iterable[Tuple[str, str]]):
        self.catalog = [(brand, model) for brand, model, *_ in catalog]
        self.calls = 0

    async def generate_json(self, prompt: str) -> Any:
        self.calls += 1
        if prompt.startswith("You are a product research assistant"):
            return self._intent(prompt)
        if prompt.startswith("Extract all specific product mentions"):
            return self._products(prompt)
        if prompt.startswith("These are product candidates"):
            return {"groups": []}
        if prompt.startswith("Analyze these mentions of"):
            return self._evidence(prompt)
        if prompt.startswith("Generate a brief ranking rationale"):
            return self._rationales(prompt)
        raise LLMError("OfflineLLM: unrecognized prompt")

    def _intent(self, prompt: str) -> Dict[str, Any]:
        match = _QUERY_RE.search(prompt)
        query = match.group(1) if match else "products"
        year = datetime.now().year
        return {
            "intent": {
                "useCase": query,
                "constraints": ["comfortable for side sleeping", "low profile"],
                "mustHaves": ["comfort"],
                "niceToHaves": ["long battery life"],
            },
            "seedTerms": [
                query, f"best {query}", f"{query} reddit", f"{query} review",
                f"{query} {year}", f"{query} side sleeper",
            ],
            "inferredCategory": query.split()[0].lower() if query.split() else "general",
        }

    def _products(self, prompt: str) -> Dict[str, Any]:
        products = []
        for line in prompt.splitlines():
            match = _ITEM_RE.match(line)
            if not match:
                continue
            index, text = int(match.group(1)), match.group(3)
            for brand, model in self.catalog:
                if f"{brand} {model}".lower() in text.lower():
                    products.append({
                        "brand": brand, "model": model, "variant": None,
                        "category": "earbuds", "sourceIndex": index,
                    })
        return {"products": products}

    def _evidence(self, prompt: str) -> Dict[str, Any]:
        evidence = []
        lines = prompt.splitlines()
        for i, line in enumerate(lines):
            match = _ITEM_RE.match(line)
            if not match or i + 1 >= len(lines):
                continue
            text = lines[i + 1].lower()
            evidence.append({
                "sentiment": _sentiment(text),
                "themes": _tags(text, THEME_KEYWORDS),
                "claimTags": _tags(text, CLAIM_KEYWORDS),
                "quote": lines[i + 1][:150],
                "sourceIndex": int(match.group(1)),
            })
        return {"evidence": evidence}

    def _rationales(self, prompt: str) -> Dict[str, Any]:
        rationales = []
        for line in prompt.splitlines():
            match = _SUMMARY_RE.match(line)
            if match:
                rationales.append(
                    f"{match.group(2)} is frequently recommended in community discussions "
                    f"and holds up well against the stated needs."
                )
        return {"rationales": rationales}
