"""
Entity resolution: fuzzy merge, LLM merge groups and conservation properties.
"""

import random

import pytest

from agents.entity_resolver import (
    EntityResolverAgent, apply_merge_groups, fuzzy_merge, is_similar, merge_same_slug, normalize,
)
from models.schemas import CandidateProduct
from conftest import FailingLLM, ScriptedLLM


def cp(brand, model, count=1, sources=None, category="earbuds"):
    return CandidateProduct(brand=brand, model=model, category=category,
                            mention_count=count, sources=sources or [])


def many_distinct(n):
    return [cp(f"Brand{i}", f"Model{i}", count=n - i, sources=[f"u{i}"]) for i in range(n)]


class TestLexicalHelpers:
    def test_normalize(self):
        assert normalize("Sony", "WF-1000XM5 ") == "sony wf1000xm5"
        assert normalize("Bose", "Sleepbuds  II") == "bose sleepbuds ii"

    def test_similarity_rules(self):
        assert is_similar("sony wf1000xm5", "sony wf1000xm5")
        assert is_similar("sony wf1000xm5", "sony wf1000xm5 earbuds")
        assert not is_similar("sony wf1000xm5", "sony wf1000xm4")
        # 3 shared of 4 total tokens = 0.75
        assert is_similar("soundcore anker a20", "anker soundcore a20 sleep")
        assert is_similar("anker soundcore sleep a20", "anker soundcore a20 sleep")
        # 2 of 4 = 0.5
        assert not is_similar("anker soundcore a20", "anker soundcore a10")


class TestFuzzyMerge:
    def test_same_product_counts_are_summed(self):
        merged = fuzzy_merge([cp("Sony", "WF-1000XM5", 5, ["a"]), cp("Sony", "WF-1000XM5", 3, ["b", "a"])])
        assert len(merged) == 1
        assert merged[0].mention_count == 8
        assert merged[0].sources == ["a", "b"]

    def test_canonical_is_most_mentioned_member(self):
        merged = fuzzy_merge([cp("sony", "wf1000xm5", 1), cp("Sony", "WF-1000XM5", 4)])
        assert (merged[0].brand, merged[0].model) == ("Sony", "WF-1000XM5")
        assert merged[0].mention_count == 5

    def test_different_generations_stay_apart(self):
        merged = fuzzy_merge([cp("Sony", "WF-1000XM5", 2), cp("Sony", "WF-1000XM4", 2)])
        assert len(merged) == 2

    def test_inputs_are_not_mutated(self):
        a, b = cp("Sony", "WF-1000XM5", 5, ["a"]), cp("Sony", "WF-1000XM5", 3, ["b"])
        fuzzy_merge([a, b])
        assert a.mention_count == 5 and a.sources == ["a"]
        assert b.mention_count == 3 and b.sources == ["b"]

    def test_merge_same_slug_keeps_first_appearance_order(self):
        out = merge_same_slug([
            cp("Bose", "Sleepbuds II", 1),
            cp("Sony", "WF 1000XM5", 1, ["b"]),
            cp("Sony", "WF-1000XM5", 2, ["a"]),
        ])
        assert [c.display_name for c in out] == ["Bose Sleepbuds II", "Sony WF-1000XM5"]
        assert out[1].mention_count == 3


class TestApplyMergeGroups:
    def test_merges_into_canonical(self):
        items = [cp("Sony", "WF-1000XM5", 4, ["a"]), cp("Bose", "QC", 2), cp("Sony", "XM5", 1, ["b"])]
        out = apply_merge_groups(items, {"groups": [{"canonicalIndex": 0, "mergeIndices": [2]}]})
        assert [(c.model, c.mention_count) for c in out] == [("WF-1000XM5", 5), ("QC", 2)]
        assert out[0].sources == ["a", "b"]
        assert items[0].mention_count == 4

    def test_ignores_invalid_self_and_repeated_indices(self):
        items = [cp("A", "1", 1), cp("B", "2", 1), cp("C", "3", 1)]
        payload = {"groups": [
            {"canonicalIndex": 0, "mergeIndices": [0, 99, -1, "1", 2]},
            {"canonicalIndex": 1, "mergeIndices": [2]},
            {"canonicalIndex": 2, "mergeIndices": [1]},
            {"canonicalIndex": 42, "mergeIndices": [1]},
            "junk",
        ]}
        out = apply_merge_groups(items, payload)
        assert sum(c.mention_count for c in out) == 3
        assert [c.brand for c in out] == ["A", "B"]
        assert out[0].mention_count == 2

    def test_malformed_payload_changes_nothing(self):
        items = [cp("A", "1", 1), cp("B", "2", 1)]
        assert len(apply_merge_groups(items, {"groups": "nope"})) == 2
        assert len(apply_merge_groups(items, None)) == 2


class TestEntityResolverAgent:
    @pytest.mark.asyncio
    async def test_empty_and_single(self):
        agent = EntityResolverAgent(ScriptedLLM())
        assert await agent.resolve([]) == []
        single = cp("Sony", "WF-1000XM5", 3, ["a"])
        assert await agent.resolve([single]) == [single]

    @pytest.mark.asyncio
    async def test_llm_phase_skipped_at_or_below_threshold(self):
        llm = ScriptedLLM()
        await EntityResolverAgent(llm, llm_threshold=20).resolve(many_distinct(20))
        assert llm.prompts == []

    @pytest.mark.asyncio
    async def test_llm_phase_runs_above_threshold(self):
        llm = ScriptedLLM({"These are product candidates": {
            "groups": [{"canonicalIndex": 0, "mergeIndices": [1]}],
        }})
        out = await EntityResolverAgent(llm, llm_threshold=20).resolve(many_distinct(25))
        assert len(llm.prompts) == 1
        assert len(out) == 24
        assert out[0].brand == "Brand0"
        assert out[0].mention_count == 25 + 24

    @pytest.mark.asyncio
    async def test_only_top_window_goes_to_llm(self):
        llm = ScriptedLLM({"These are product candidates": {"groups": []}})
        out = await EntityResolverAgent(llm, llm_threshold=20, llm_window=80).resolve(many_distinct(90))
        assert "[79]" in llm.prompts[0] and "[80]" not in llm.prompts[0]
        assert len(out) == 90

    @pytest.mark.asyncio
    async def test_window_is_chosen_by_merged_mention_count(self):
        candidates = [cp(f"Brand{i}", f"Model{i}", 10, [f"u{i}"]) for i in range(80)]
        candidates += [cp("Quietcomfy", "Dreamer", 5, [f"q{j}"]) for j in range(10)]
        llm = ScriptedLLM({"These are product candidates": {"groups": []}})

        out = await EntityResolverAgent(llm, llm_threshold=20, llm_window=80).resolve(candidates)

        assert "[0] Quietcomfy Dreamer" in llm.prompts[0]
        assert "Brand79 Model79" not in llm.prompts[0]
        assert out[0].mention_count == 50
        assert len(out) == 81

    @pytest.mark.asyncio
    async def test_candidates_sharing_a_slug_are_merged(self):
        dashed = cp("Sony", "WF-1000XM5", 3, ["a"])
        spaced = cp("Sony", "WF 1000XM5", 1, ["b"])
        assert not is_similar(normalize(dashed.brand, dashed.model), normalize(spaced.brand, spaced.model))
        assert dashed.slug == spaced.slug == "sony-wf-1000xm5"

        out = await EntityResolverAgent(ScriptedLLM()).resolve([spaced, dashed])

        assert len(out) == 1
        assert out[0].model == "WF-1000XM5"
        assert out[0].mention_count == 4
        assert sorted(out[0].sources) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_llm_failure_returns_fuzzy_result(self):
        candidates = many_distinct(24) + [cp("Brand0", "Model0", 1, ["dup"])]
        out = await EntityResolverAgent(FailingLLM(), llm_threshold=20).resolve(candidates)
        assert len(out) == 24
        assert out[0].mention_count == 25

    @pytest.mark.asyncio
    async def test_conservation_properties(self):
        rng = random.Random(7)
        brands = ["Sony", "Bose", "Anker", "Apple"]
        models = ["WF-1000XM5", "WF-1000XM4", "Sleepbuds II", "Soundcore A20", "AirPods Pro 2"]
        for _ in range(20):
            candidates = [
                cp(rng.choice(brands), rng.choice(models), rng.randint(1, 9))
                for _ in range(rng.randint(0, 30))
            ]
            llm = ScriptedLLM({"These are product candidates": {
                "groups": [{"canonicalIndex": 0, "mergeIndices": [1, 2]}],
            }})
            out = await EntityResolverAgent(llm, llm_threshold=3).resolve(candidates)
            assert len(out) <= len(candidates)
            assert sum(c.mention_count for c in out) == sum(c.mention_count for c in candidates)
            counts = [c.mention_count for c in out]
            assert counts == sorted(counts, reverse=True)
