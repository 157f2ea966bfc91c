"""
Mock retriever: deterministic synthetic mentions for development and demos.
Produces a realistic spread of praise and complaints across a small set of
well-known products so the whole pipeline can run offline.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

from models.schemas import Mention
from retrievers.base import BaseRetriever

PRODUCTS: List[Tuple[str, str, float]] = [
    # (brand, model, complaint rate)
    ("Sony", "WF-1000XM5", 0.15),
    ("Bose", "Sleepbuds II", 0.35),
    ("Anker", "Soundcore Sleep A20", 0.20),
    ("Kokoon", "Nightbuds", 0.30),
    ("Ozlo", "Sleepbuds", 0.18),
    ("Apple", "AirPods Pro 2", 0.40),
]

POSITIVE_TEMPLATES = [
    "I've been using the {product} every night for months. Super comfortable for side sleeping.",
    "The {product} is the best thing I bought this year, noise masking works great.",
    "Honestly the {product} fits flush in my ear and the battery lasts all night.",
    "Switched to the {product} and my sleep improved. Low profile and very comfortable.",
]

NEGATIVE_TEMPLATES = [
    "Returned my {product}, it hurt after an hour of side sleeping.",
    "The {product} battery died halfway through the night, really disappointed.",
    "{product} keeps falling out when I roll over. Not worth the price.",
]


class MockRetriever(BaseRetriever):
    name = "mock"
    platform = "reddit"

    def __init__(self, mentions_per_term: int = 6, platform: str = "reddit", **kwargs):
        super().__init__(**kwargs)
        self.mentions_per_term = mentions_per_term
        self.platform = platform
        self.name = f"mock-{platform}"

    def retrieve(self, search_terms: List[str], **options) -> List[Mention]:
        mentions: List[Mention] = []
        base_date = datetime(2026, 1, 1, tzinfo=timezone.utc)
        for t_index, term in enumerate(search_terms):
            rng = random.Random(f"{self.platform}:{term}")
            for i in range(self.mentions_per_term):
                brand, model, complaint_rate = rng.choice(PRODUCTS)
                product = f"{brand} {model}"
                templates = NEGATIVE_TEMPLATES if rng.random() < complaint_rate else POSITIVE_TEMPLATES
                text = rng.choice(templates).format(product=product)
                mentions.append(Mention(
                    platform=self.platform,
                    url=f"https://mock.{self.platform}.example/{t_index}/{i}",
                    title=term,
                    author_handle=f"user_{t_index}_{i}",
                    created_at=(base_date - timedelta(days=rng.randint(1, 365))).isoformat(),
                    text=text,
                ))
        return mentions
