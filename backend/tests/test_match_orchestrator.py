"""
Tests for MatchOrchestrator

Covers the placeholder -> background explanation -> ready lifecycle,
single-flight per match key, and that ready entries are never
replaced by placeholders.
"""

import asyncio

import pytest

from jobscout.schemas import NormalizedFields, NormalizedJob
from jobscout.services.cache_keys import match_key
from jobscout.services.match_explanation import MatchExplanationAgent
from jobscout.services.match_orchestrator import PENDING_SUMMARY, MatchOrchestrator, parse_match

from conftest import FakeCache, FakeLLM, make_job

PROFILE = {"skills": ["python"], "experience_years": 5}
LLM_RESULT = {
    "score": 88,
    "summary": "Strong Python background.",
    "missing_skills": ["go"],
    "reasoning": ["Python matches"],
    "suggestions": ["Learn Go"],
}


def normalized(job):
    return NormalizedJob(**job.model_dump(), normalized=NormalizedFields(required_skills=["Python", "Go"]))


def make_orchestrator(cache, llm, pool=3):
    return MatchOrchestrator(cache, [MatchExplanationAgent(llm) for _ in range(pool)], match_ttl=900)


class TestParseMatch:
    def test_missing_status_defaults_to_ready(self):
        match = parse_match({"score": 50, "summary": "ok"})
        assert match.status == "ready"

    def test_invalid_entries(self):
        assert parse_match(None) is None
        assert parse_match("text") is None
        assert parse_match({"status": "pending", "score": 500}) is None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_miss_returns_placeholder_then_ready(self):
        cache = FakeCache()
        llm = FakeLLM({"match_explanation": LLM_RESULT})
        orchestrator = make_orchestrator(cache, llm)
        job = make_job("job-1")
        key = match_key("p-1", "job-1")

        placeholder = await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 0, 61)

        assert placeholder.status == "pending"
        assert placeholder.score == 61
        assert placeholder.summary == PENDING_SUMMARY
        assert placeholder.missing_skills == ["go"]
        assert placeholder.reasoning

        await orchestrator.drain()

        statuses = await orchestrator.get_match_statuses([key])
        assert statuses[key].status == "ready"
        assert statuses[key].score == 88
        assert statuses[key].summary == "Strong Python background."
        assert orchestrator.pending_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_requests_compute_once(self):
        """Ten concurrent searches for the same pair trigger one explanation."""
        cache = FakeCache()
        llm = FakeLLM({"match_explanation": LLM_RESULT}, delay=0.01)
        orchestrator = make_orchestrator(cache, llm)
        job = make_job("job-1")

        results = await asyncio.gather(*(
            orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), i, 61)
            for i in range(10)
        ))
        await orchestrator.drain()

        assert all(r.status == "pending" for r in results)
        assert llm.count("match_explanation") == 1

    @pytest.mark.asyncio
    async def test_ready_entry_served_from_cache(self):
        cache = FakeCache()
        llm = FakeLLM({"match_explanation": LLM_RESULT})
        orchestrator = make_orchestrator(cache, llm)
        job = make_job("job-1")
        key = match_key("p-1", "job-1")
        await cache.set_json(key, {"status": "ready", "score": 70, "summary": "cached"})

        match = await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 0, 40)

        assert match.status == "ready"
        assert match.summary == "cached"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_placeholder_never_overwrites_ready(self):
        """A ready entry that lands between the miss and the write wins."""
        cache = FakeCache()
        llm = FakeLLM({"match_explanation": LLM_RESULT})
        orchestrator = make_orchestrator(cache, llm)
        job = make_job("job-1")
        key = match_key("p-1", "job-1")

        original_get = cache.get_json
        reads = []

        async def racing_get(k):
            reads.append(k)
            if len(reads) == 1:
                # Another process finishes just after our read
                await cache.set_json(key, {"status": "ready", "score": 90, "summary": "elsewhere"})
                return None
            return await original_get(k)

        cache.get_json = racing_get

        match = await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 0, 40)
        await orchestrator.drain()

        assert match.status == "ready"
        assert match.summary == "elsewhere"
        assert (await original_get(key))["summary"] == "elsewhere"
        assert llm.calls == []
        assert not orchestrator.is_pending(key)

    @pytest.mark.asyncio
    async def test_failed_explanation_keeps_placeholder_and_reschedules(self):
        cache = FakeCache()
        orchestrator = make_orchestrator(cache, None)
        job = make_job("job-1")
        key = match_key("p-1", "job-1")

        async def boom(profile, job):
            raise RuntimeError("explanation failed")

        for agent in orchestrator.agents:
            agent.explain_match = boom

        await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 0, 55)
        await orchestrator.drain()

        assert (await cache.get_json(key))["status"] == "pending"
        assert not orchestrator.is_pending(key)

        # A later request finds the stale placeholder and tries again
        calls = []

        async def recovered(profile, job):
            calls.append(job.id)
            return dict(LLM_RESULT)

        for agent in orchestrator.agents:
            agent.explain_match = recovered

        again = await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 0, 55)
        await orchestrator.drain()

        assert again.status == "pending"
        assert calls == ["job-1"]
        assert (await cache.get_json(key))["status"] == "ready"

    @pytest.mark.asyncio
    async def test_fallback_explanation_without_llm(self):
        cache = FakeCache()
        orchestrator = make_orchestrator(cache, None)
        job = make_job("job-1")
        key = match_key("p-1", "job-1")

        await orchestrator.get_match_or_schedule(PROFILE, "p-1", job, normalized(job), 4, 55)
        await orchestrator.drain()

        stored = await cache.get_json(key)
        assert stored["status"] == "ready"
        assert stored["summary"]
        assert stored["reasoning"]

    @pytest.mark.asyncio
    async def test_unknown_keys_report_none(self):
        orchestrator = make_orchestrator(FakeCache(), None)

        statuses = await orchestrator.get_match_statuses(["match:p:missing"])

        assert statuses == {"match:p:missing": None}

    def test_requires_agents(self):
        with pytest.raises(ValueError):
            MatchOrchestrator(FakeCache(), [])
