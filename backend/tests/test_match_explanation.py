"""
Tests for MatchExplanationAgent

Covers the deterministic base score, the fallback generators and the
LLM explanation path with its fallbacks.
"""

import pytest

from jobscout.schemas import NormalizedFields, NormalizedJob
from jobscout.services.match_explanation import MatchExplanationAgent, experience_band_matches

from conftest import FakeLLM, make_job


def normalized_job(job_id="job-1", **fields):
    overrides = fields.pop("job", {})
    job = make_job(job_id, **overrides)
    return NormalizedJob(**job.model_dump(), normalized=NormalizedFields(**fields))


@pytest.fixture
def agent():
    return MatchExplanationAgent()


class TestExperienceBands:
    @pytest.mark.parametrize("level,years,expected", [
        ("intern", 1, True),
        ("intern", 2, False),
        ("junior", 0.5, True),
        ("junior", 3, False),
        ("mid", 4, True),
        ("senior", 4, True),
        ("senior", 1, False),
        ("lead", 6, True),
        (None, 10, False),
    ])
    def test_bands(self, level, years, expected):
        assert experience_band_matches(level, years) is expected


class TestBaseScore:
    def test_full_match_is_clamped(self, agent):
        profile = {
            "skills": ["Python", "FastAPI"],
            "experience_years": 5,
            "preferred_locations": ["Austin"],
            "inferred_preferences": {"work_mode_preference": "hybrid"},
        }
        job = normalized_job(
            required_skills=["Python", "FastAPI"],
            nice_to_have=["Docker"],
            level="senior",
            work_mode="hybrid",
        )

        result = agent.compute_base_score(profile, job, include_details=True)

        assert result.score == 100
        assert result.details["skills"] == 30
        assert result.details["nice_to_have"] == 0
        assert result.details["experience"] == 20
        assert result.details["location"] == 15
        assert result.details["work_mode"] == 15
        assert not result.excluded

    def test_senior_role_with_one_year(self, agent):
        """A senior role does not award experience points to a one-year profile."""
        profile = {"skills": ["Python"], "experience_years": 1}
        job = normalized_job(required_skills=["Python"], level="senior")

        result = agent.compute_base_score(profile, job, include_details=True)

        assert result.details["experience"] == 0

    def test_partial_skills(self, agent):
        profile = {"skills": ["python"], "experience_years": 0}
        job = normalized_job(required_skills=["Python 3", "Go"], nice_to_have=["Docker", "AWS"])

        result = agent.compute_base_score(profile, job, include_details=True)

        assert result.details["skills"] == 15
        assert result.details["nice_to_have"] == 0

    def test_no_work_mode_preference_gets_partial_points(self, agent):
        result = agent.compute_base_score({"skills": []}, normalized_job(), include_details=True)
        assert result.details["work_mode"] == 10

    def test_remote_job_without_location_preferences(self, agent):
        job = normalized_job(job={"location": "Remote", "remote": True})
        result = agent.compute_base_score({"skills": []}, job, include_details=True)
        assert result.details["location"] == 15

    def test_empty_location_never_matches(self, agent):
        job = normalized_job(job={"location": ""})
        result = agent.compute_base_score({"preferred_locations": ["Austin"]}, job, include_details=True)
        assert result.details["location"] == 0

    def test_preference_adjustment_applied(self, agent):
        profile = {"preference_work_modes": ["remote"], "inferred_preferences": {"work_mode_preference": "remote"}}
        job = normalized_job(work_mode="onsite")

        result = agent.compute_base_score(profile, job, include_details=True)

        assert result.details["preference_adjustment"] == -24
        # 50 base, no work mode points, -24 adjustment
        assert result.score == 26

    def test_plain_int_without_details(self, agent):
        assert isinstance(agent.compute_base_score({}, normalized_job()), int)

    def test_raw_job_scores_without_normalized_fields(self, agent):
        score = agent.compute_base_score({"skills": ["Python"]}, make_job("raw"))
        assert 0 <= score <= 100


class TestFallbackGenerators:
    def test_missing_and_matched_skills(self, agent):
        job = normalized_job(required_skills=["Python", "Kubernetes"])
        profile = {"skills": ["python"]}
        assert agent.get_missing_skills(profile, job) == ["kubernetes"]
        assert agent.get_matched_skills(profile, job) == ["python"]

    def test_summary_is_grounded(self, agent):
        profile = {"skills": ["python"], "experience_years": 4}
        job = normalized_job(title="Backend Developer", required_skills=["Python", "Go"], level="senior")

        summary = agent.generate_basic_summary(72, profile, job)

        assert summary.startswith("Good match for Backend Developer (72/100)")
        assert "python" in summary
        assert "go is not yet on your profile" in summary
        assert "4 years of experience against a senior-level role" in summary

    def test_reasoning_never_empty(self, agent):
        job = normalized_job(job={"location": ""})
        reasoning = agent.generate_basic_reasoning({}, job)
        assert reasoning
        assert reasoning[0].startswith("Context:")

    def test_reasoning_location_outside_preferences(self, agent):
        job = normalized_job(job={"location": "Paris, France"})
        reasoning = agent.generate_basic_reasoning({"preferred_locations": ["Austin"]}, job)
        assert any("outside your preferred locations" in r for r in reasoning)

    def test_suggestions_never_empty(self, agent):
        assert agent.generate_basic_suggestions({}, normalized_job())


class TestExplainMatch:
    @pytest.mark.asyncio
    async def test_without_llm_uses_fallback(self, agent):
        profile = {"skills": ["python"], "experience_years": 5}
        job = normalized_job(required_skills=["Python"], level="senior")

        result = await agent.explain_match(profile, job)

        assert result["score"] == agent.compute_base_score(profile, job)
        assert result["summary"]
        assert result["reasoning"]
        assert result["suggestions"]

    @pytest.mark.asyncio
    async def test_llm_result_is_clamped_and_coerced(self):
        llm = FakeLLM({"match_explanation": {
            "score": 140,
            "summary": "Strong fit.",
            "missing_skills": ["Go"],
            "reasoning": ["Python matches", 7],
            "suggestions": "not a list",
        }})
        agent = MatchExplanationAgent(llm)

        result = await agent.explain_match({"skills": ["python"]}, normalized_job(required_skills=["Python", "Go"]))

        assert result["score"] == 100
        assert result["summary"] == "Strong fit."
        assert result["missing_skills"] == ["Go"]
        assert result["reasoning"] == ["Python matches", "7"]
        assert result["suggestions"] == []
        assert llm.count("match_explanation") == 1

    @pytest.mark.asyncio
    async def test_llm_bad_score_uses_base(self):
        llm = FakeLLM({"match_explanation": {"score": "NaN", "summary": "ok"}})
        agent = MatchExplanationAgent(llm)
        profile = {"skills": ["python"]}
        job = normalized_job(required_skills=["Python"])

        result = await agent.explain_match(profile, job)

        assert result["score"] == agent.compute_base_score(profile, job)

    @pytest.mark.asyncio
    async def test_llm_error_falls_back(self):
        agent = MatchExplanationAgent(FakeLLM({"match_explanation": RuntimeError("timeout")}))

        result = await agent.explain_match({"skills": ["python"]}, normalized_job(required_skills=["Python"]))

        assert result["summary"]
        assert result["reasoning"]

    @pytest.mark.asyncio
    async def test_llm_non_object_falls_back(self):
        agent = MatchExplanationAgent(FakeLLM({"match_explanation": ["not", "an", "object"]}))

        result = await agent.explain_match({}, normalized_job())

        assert isinstance(result["reasoning"], list) and result["reasoning"]
