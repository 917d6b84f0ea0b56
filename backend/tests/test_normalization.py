"""Tests for JobNormalizationAgent."""

import pytest

from jobscout.services.llm import LLMResponseError, LLMUnavailableError
from jobscout.services.normalization import MAX_DESCRIPTION_CHARS, JobNormalizationAgent

from conftest import FakeLLM, make_job


class TestNormalizeJob:
    @pytest.mark.asyncio
    async def test_requires_llm(self):
        agent = JobNormalizationAgent(None)

        with pytest.raises(LLMUnavailableError):
            await agent.normalize_job(make_job("job-1"))

    @pytest.mark.asyncio
    async def test_maps_llm_output(self):
        llm = FakeLLM({"normalization": {
            "normalized_title": "Backend Engineer",
            "required_skills": ["Python", "PostgreSQL"],
            "nice_to_have": ["Docker"],
            "level": "Senior",
            "employment_type": "Full-Time",
            "work_mode": "On-Site",
            "red_flags": [],
            "green_flags": ["4-day week"],
            "salary_range": "null",
            "summary": "Own the billing APIs.",
        }})
        agent = JobNormalizationAgent(llm)
        job = make_job("job-1", remote=True)

        result = await agent.normalize_job(job)

        assert result.id == "job-1"
        assert result.remote is True
        assert result.normalized.title == "Backend Engineer"
        assert result.normalized.required_skills == ["Python", "PostgreSQL"]
        assert result.normalized.level == "senior"
        assert result.normalized.employment_type == "full-time"
        assert result.normalized.work_mode == "onsite"
        assert result.normalized.salary_range is None
        assert result.normalized.green_flags == ["4-day week"]

    @pytest.mark.asyncio
    async def test_truncates_description(self):
        llm = FakeLLM({"normalization": {}})
        agent = JobNormalizationAgent(llm)

        await agent.normalize_job(make_job("job-1", description="x" * 5000))

        prompt = llm.calls[0]["user"]
        assert "x" * MAX_DESCRIPTION_CHARS in prompt
        assert "x" * (MAX_DESCRIPTION_CHARS + 1) not in prompt

    @pytest.mark.asyncio
    async def test_missing_fields_fall_back_to_raw_job(self):
        llm = FakeLLM({"normalization": {"required_skills": "Python"}})
        agent = JobNormalizationAgent(llm)
        job = make_job("job-1", title="Dev", description="A" * 300)

        result = await agent.normalize_job(job)

        assert result.normalized.title == "Dev"
        assert result.normalized.required_skills == []
        assert result.normalized.summary == "A" * 200
        assert result.normalized.level is None

    @pytest.mark.asyncio
    async def test_llm_errors_propagate(self):
        agent = JobNormalizationAgent(FakeLLM({"normalization": LLMResponseError("bad json")}))

        with pytest.raises(LLMResponseError):
            await agent.normalize_job(make_job("job-1"))
