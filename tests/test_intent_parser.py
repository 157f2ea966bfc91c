"""
Intent parser: validation, repair and fallback behaviour.
"""

from datetime import datetime

import pytest

from agents.intent_parser import IntentParserAgent, fallback_terms, repair_result
from agents.state import PipelineState
from conftest import FailingLLM, ScriptedLLM, sleep_intent_reply


class TestRepairRules:
    def test_valid_payload_is_kept(self):
        result = repair_result("headphones for sleeping", sleep_intent_reply(""))
        assert result.intent.use_case == "sleeping with headphones"
        assert result.intent.constraints == ["comfortable for side sleeping"]
        assert len(result.seed_terms) == 6
        assert result.inferred_category == "headphones"

    def test_too_few_seed_terms_fall_back(self):
        payload = {**sleep_intent_reply(""), "seedTerms": ["a", "b", "c", "d"]}
        result = repair_result("desk chair", payload)
        assert result.seed_terms == fallback_terms("desk chair")
        assert result.intent.use_case == "sleeping with headphones"

    def test_missing_intent_defaults_to_raw_query(self):
        payload = {"seedTerms": ["a", "b", "c", "d", "e"], "inferredCategory": "chairs"}
        result = repair_result("desk chair", payload)
        assert result.intent.use_case == "desk chair"
        assert result.intent.constraints == []
        assert result.intent.must_haves == []
        assert result.intent.nice_to_haves == []
        assert result.inferred_category == "chairs"

    def test_missing_category_defaults_to_general(self):
        payload = {k: v for k, v in sleep_intent_reply("").items() if k != "inferredCategory"}
        assert repair_result("q", payload).inferred_category == "general"

    def test_non_dict_payload_is_full_fallback(self):
        result = repair_result("desk chair", ["not", "an", "object"])
        assert result.intent.use_case == "desk chair"
        assert result.inferred_category == "general"
        assert result.seed_terms == fallback_terms("desk chair")

    def test_fallback_terms_shape(self):
        terms = fallback_terms("  running shoes ")
        assert terms[0] == "running shoes"
        assert "best running shoes" in terms
        assert "running shoes reddit" in terms
        assert f"top running shoes {datetime.now().year}" in terms
        assert "running shoes buying guide" in terms
        assert len(terms) >= 5


class TestIntentParserAgent:
    @pytest.mark.asyncio
    async def test_parse_uses_llm_reply(self):
        llm = ScriptedLLM({"You are a product research assistant": sleep_intent_reply})
        result = await IntentParserAgent(llm).parse("headphones for sleeping")
        assert result.intent.use_case == "sleeping with headphones"
        assert len(result.seed_terms) >= 5
        assert 'User query: "headphones for sleeping"' in llm.prompts[0]

    @pytest.mark.asyncio
    async def test_llm_failure_never_raises(self):
        result = await IntentParserAgent(FailingLLM()).parse("headphones for sleeping")
        assert result.intent.use_case == "headphones for sleeping"
        assert result.inferred_category == "general"
        assert result.seed_terms == fallback_terms("headphones for sleeping")

    @pytest.mark.asyncio
    async def test_execute_sets_state(self):
        agent = IntentParserAgent(ScriptedLLM({"You are": sleep_intent_reply}))
        outcome = await agent.execute(PipelineState(query_id="q1", raw_query="headphones for sleeping"))
        assert outcome.success
        assert outcome.data.intent_result.inferred_category == "headphones"
