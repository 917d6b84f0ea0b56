"""Tests for the JSearch job source."""

import httpx
import pytest

from jobscout.schemas import SearchCriteria
from jobscout.services.sources.base import RateLimitCooldown
from jobscout.services.sources.jsearch import JSearchSource, build_query

RAW_JOB = {
    "job_id": "abc123",
    "job_title": "Backend Developer",
    "employer_name": "Acme",
    "job_city": "Austin",
    "job_state": "TX",
    "job_country": "US",
    "job_is_remote": False,
    "job_description": "Build APIs.",
    "job_publisher": "LinkedIn",
    "job_apply_link": "https://acme.example/apply",
    "job_posted_at_datetime_utc": "2026-10-01T00:00:00.000Z",
    "job_employment_type": "FULLTIME",
    "job_salary_currency": "USD",
    "job_min_salary": 100000,
    "job_max_salary": 150000,
}


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_source(handler, cooldown=None, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JSearchSource(
        api_key=api_key,
        base_url="https://jsearch.test",
        cooldown=cooldown,
        client=client,
    )


class TestBuildQuery:
    def test_query_and_location(self):
        assert build_query(SearchCriteria(query="Dev", location="usa")) == "Dev in United States"

    def test_query_only(self):
        assert build_query(SearchCriteria(query="Dev")) == "Dev"

    def test_location_only(self):
        assert build_query(SearchCriteria(location="Berlin")) == "jobs in Berlin"

    def test_empty(self):
        assert build_query(SearchCriteria()) == "jobs"


class TestBuildParams:
    def test_params(self):
        source = make_source(lambda request: httpx.Response(200, json={"data": []}))
        criteria = SearchCriteria(
            query="Dev",
            location="United States",
            limit=50,
            remote_only=True,
            employment_types=["FULLTIME", "CONTRACT"],
            job_requirements=["no_degree"],
        )

        params = source.build_params(criteria, page=2)

        assert params["query"] == "Dev in United States"
        assert params["page"] == 2
        assert params["num_pages"] == 3
        assert params["country"] == "us"
        assert params["date_posted"] == "week"
        assert params["employment_types"] == "FULLTIME,CONTRACT"
        assert params["job_requirements"] == "no_degree"
        assert params["remote_jobs_only"] == "true"

    def test_small_limit_requests_one_page(self):
        source = make_source(lambda request: httpx.Response(200, json={"data": []}))

        params = source.build_params(SearchCriteria(query="Dev", limit=5))

        assert params["num_pages"] == 1
        assert "remote_jobs_only" not in params


class TestSearch:
    @pytest.mark.asyncio
    async def test_parses_jobs(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": [RAW_JOB]})

        source = make_source(handler)
        jobs = await source.search(SearchCriteria(query="Backend Developer", location="Austin"))

        assert len(jobs) == 1
        job = jobs[0]
        assert job.id == "abc123"
        assert job.location == "Austin, TX, US"
        assert job.source == "linkedin"
        assert job.salary == "USD 100000 - 150000"
        assert job.external_url == "https://acme.example/apply"
        assert job.posted_at == "2026-10-01T00:00:00.000Z"
        assert seen[0].headers["x-rapidapi-key"] == "test-key"
        assert seen[0].url.path == "/search"

    @pytest.mark.asyncio
    async def test_missing_id_gets_stable_synthetic_id(self):
        raw = {k: v for k, v in RAW_JOB.items() if k != "job_id"}
        source = make_source(lambda request: httpx.Response(200, json={"data": [raw]}))

        first = await source.search(SearchCriteria(query="Dev"))
        second = await source.search(SearchCriteria(query="Dev"))

        assert first[0].id.startswith("jsearch-")
        assert first[0].id == second[0].id

    @pytest.mark.asyncio
    async def test_remote_job_without_location(self):
        raw = {"job_id": "r1", "job_title": "Dev", "employer_name": "Acme", "job_is_remote": True}
        source = make_source(lambda request: httpx.Response(200, json={"data": [raw]}))

        jobs = await source.search(SearchCriteria(query="Dev"))

        assert jobs[0].location == "Remote"
        assert jobs[0].remote is True

    @pytest.mark.asyncio
    async def test_no_api_key_returns_empty(self):
        calls = []
        source = make_source(lambda request: calls.append(request) or httpx.Response(200, json={}), api_key="")

        assert await source.search(SearchCriteria(query="Dev")) == []
        assert calls == []

    @pytest.mark.asyncio
    async def test_server_error_returns_empty(self):
        source = make_source(lambda request: httpx.Response(500, text="boom"))

        assert await source.search(SearchCriteria(query="Dev")) == []
        assert not source.is_cooling_down()

    @pytest.mark.asyncio
    async def test_rate_limit_starts_cooldown(self):
        """A 429 pauses upstream calls until the cooldown elapses."""
        clock = FakeClock()
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, text="Too Many Requests")
            return httpx.Response(200, json={"data": [RAW_JOB]})

        source = make_source(handler, cooldown=RateLimitCooldown(60, clock=clock))

        assert await source.search(SearchCriteria(query="Dev")) == []
        assert source.is_cooling_down()

        assert await source.search(SearchCriteria(query="Dev")) == []
        assert len(calls) == 1

        clock.now += 61
        assert not source.is_cooling_down()
        assert len(await source.search(SearchCriteria(query="Dev"))) == 1
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_forbidden_also_starts_cooldown(self):
        source = make_source(lambda request: httpx.Response(403, text="quota"))

        await source.search(SearchCriteria(query="Dev"))

        assert source.is_cooling_down()
