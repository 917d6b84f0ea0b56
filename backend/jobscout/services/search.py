"""
Search Pipeline - aggregate, normalize, score, page and match

One call of SearchService.search serves POST /api/jobs/search:

    SearchRequest
      -> profile (ProfileStore, optional)
      -> SearchCriteria derived from request + profile preferences
      -> AggregateResult (jobs:aggregate cache, else JobAggregator)
      -> recent jobs recorded on the profile
      -> per job, concurrently: normalize (job:normalized cache) + base score
      -> drop excluded, rank by base score, slice the requested page
      -> per page job: cached match or placeholder + background explanation

Without a profile the page is served straight from the aggregate result
with no scoring. Page size is fixed at 5 and at most 60 jobs are scored.
"""

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from jobscout.config import Settings, get_settings
from jobscout.schemas import (
    AggregateResult,
    CompanyResearch,
    Job,
    NormalizedJob,
    ScoredJob,
    SearchCriteria,
    SearchMeta,
    SearchRequest,
    SearchResponse,
)
from jobscout.services.aggregator import JobAggregator
from jobscout.services.cache import JsonCache, get_cache
from jobscout.services.cache_keys import (
    aggregate_key,
    company_research_key,
    get_aggregate_fingerprint,
    get_job_cache_key,
    get_profile_cache_key,
    match_key,
    normalized_job_key,
)
from jobscout.services.company_research import CompanyResearchAgent
from jobscout.services.glassdoor import GlassdoorService
from jobscout.services.llm import get_llm_client
from jobscout.services.match_explanation import BaseScore, MatchExplanationAgent
from jobscout.services.match_orchestrator import MatchOrchestrator
from jobscout.services.normalization import JobNormalizationAgent
from jobscout.services.preferences import build_preference_signals, normalize_string_array
from jobscout.services.profiles import ProfileStore
from jobscout.services.sources import JSearchSource

logger = logging.getLogger(__name__)

PAGE_SIZE = 5
DEFAULT_MAX_RESULTS = 50
MAX_JOBS_TO_SCORE = 60

EMPLOYMENT_TYPE_MAP = {
    "full-time": "FULLTIME",
    "fulltime": "FULLTIME",
    "part-time": "PARTTIME",
    "parttime": "PARTTIME",
    "contract": "CONTRACT",
    "contractor": "CONTRACT",
    "internship": "INTERNSHIP",
    "intern": "INTERNSHIP",
    "temporary": "TEMPORARY",
    "temp": "TEMPORARY",
}

JOB_REQUIREMENT_MAP = {
    "no_degree": "no_degree",
    "no degree": "no_degree",
    "no_experience": "no_experience",
    "no experience": "no_experience",
}

_TOP_N = re.compile(r"top\s*(\d+)")


@dataclass
class AggregatorFilters:
    work_modes: List[str]
    remote_only: bool = False
    allow_remote: bool = False
    employment_types: Optional[List[str]] = None
    job_requirements: Optional[List[str]] = None
    preferred_locations: Optional[List[str]] = None
    primary_location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workModes": self.work_modes,
            "remoteOnly": self.remote_only,
            "allowRemote": self.allow_remote,
            "employmentTypes": self.employment_types or [],
            "jobRequirements": self.job_requirements or [],
            "preferredLocations": self.preferred_locations or [],
            "primaryLocation": self.primary_location,
        }


def _map_values(values: Any, mapping: Mapping[str, str]) -> List[str]:
    mapped = []
    for value in normalize_string_array(values):
        target = mapping.get(value.lower())
        if target and target not in mapped:
            mapped.append(target)
    return mapped


def derive_aggregator_criteria(profile: Optional[Mapping[str, Any]]) -> AggregatorFilters:
    """Search filters implied by a profile's stored preferences."""
    filters = AggregatorFilters(work_modes=[])
    if not profile:
        return filters

    modes = []
    for mode in normalize_string_array(profile.get("preference_work_modes")):
        if mode.lower() not in modes:
            modes.append(mode.lower())
    filters.work_modes = modes
    filters.remote_only = modes == ["remote"]
    filters.allow_remote = "remote" in modes

    filters.employment_types = _map_values(profile.get("preference_employment_types"), EMPLOYMENT_TYPE_MAP)
    filters.job_requirements = _map_values(profile.get("preference_job_requirements"), JOB_REQUIREMENT_MAP)

    inferred = profile.get("inferred_preferences") or {}
    locations = normalize_string_array(
        profile.get("preference_locations")
        or profile.get("preferred_locations")
        or profile.get("locations")
        or profile.get("location_preferences")
        or inferred.get("preferred_locations")
    )
    if locations:
        filters.preferred_locations = locations
        filters.primary_location = locations[0]
    return filters


def parse_preference_notes(notes: Optional[str]) -> Optional[int]:
    """'top 10 remote roles' -> 10"""
    if not notes:
        return None
    match = _TOP_N.search(notes.lower())
    if not match:
        return None
    return max(1, int(match.group(1)))


@dataclass
class _ScoredEntry:
    raw: Job
    normalized: NormalizedJob
    base: BaseScore
    index: int


class SearchService:
    def __init__(
        self,
        cache: JsonCache,
        aggregator: JobAggregator,
        normalization_agent: JobNormalizationAgent,
        orchestrator: MatchOrchestrator,
        profiles: ProfileStore,
        research_agent: CompanyResearchAgent,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.cache = cache
        self.aggregator = aggregator
        self.normalization_agent = normalization_agent
        self.orchestrator = orchestrator
        self.profiles = profiles
        self.research_agent = research_agent
        self.cache_ttl = settings.match_ttl_seconds
        self.aggregate_ttl = settings.aggregate_cache_ttl_seconds
        self._normalize_semaphore = asyncio.Semaphore(max(1, settings.normalization_concurrency))

    @property
    def scoring_agent(self) -> MatchExplanationAgent:
        return self.orchestrator.agents[0]

    # ==================== Cached stages ====================

    async def normalize_job_with_cache(self, job: Job) -> NormalizedJob:
        """
        Normalized job from cache, else from the agent (then cached).

        A failed normalization degrades to the raw job with empty
        normalized fields and is not cached, so it is retried next time.
        """
        key = normalized_job_key(get_job_cache_key(job))
        cached = await self.cache.get_json(key)
        if cached:
            try:
                return NormalizedJob.model_validate(cached)
            except ValueError:
                logger.warning(f"Ignoring malformed normalized job {key}")

        try:
            async with self._normalize_semaphore:
                normalized = await self.normalization_agent.normalize_job(job)
        except Exception as e:
            logger.error(f"Failed to normalize job {job.id}: {e}")
            return NormalizedJob(**job.model_dump())

        await self.cache.set_json(key, normalized.model_dump(mode="json", by_alias=True), self.cache_ttl)
        logger.info(f"Normalized job stored {key}")
        return normalized

    async def aggregate_with_cache(self, criteria: SearchCriteria) -> AggregateResult:
        key = aggregate_key(get_aggregate_fingerprint(criteria))
        cached = await self.cache.get_json(key)
        if cached:
            try:
                logger.info(f"Aggregate cache hit {key}")
                return AggregateResult.model_validate(cached)
            except ValueError:
                logger.warning(f"Ignoring malformed aggregate {key}")

        result = await self.aggregator.aggregate(criteria)
        if result.results:
            await self.cache.set_json(key, result.model_dump(mode="json", by_alias=True), self.aggregate_ttl)
            logger.info(f"Aggregate results stored {key} ({len(result.results)} jobs)")
        return result

    # ==================== Search ====================

    def build_criteria(self, request: SearchRequest, filters: AggregatorFilters, max_results: int) -> SearchCriteria:
        location = request.location or filters.primary_location
        if not location and filters.remote_only:
            location = "Remote"

        return SearchCriteria(
            query=request.role,
            location=location,
            limit=max_results,
            remote_only=filters.remote_only,
            allow_remote=filters.allow_remote,
            work_modes=filters.work_modes,
            employment_types=filters.employment_types or [],
            job_requirements=filters.job_requirements or [],
            preferred_locations=filters.preferred_locations or [],
        )

    async def _load_profile(self, profile_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not profile_id:
            return None
        try:
            return await self.profiles.load_profile_by_id(profile_id)
        except Exception as e:
            logger.warning(f"Failed to load profile {profile_id}: {e}")
            return None

    async def _record_recent_jobs(self, profile_id: str, jobs: List[Job]) -> None:
        try:
            await self.profiles.update_recent_jobs(profile_id, jobs)
        except Exception as e:
            logger.warning(f"Failed to update recent jobs for {profile_id}: {e}")

    async def _score(self, profile: Mapping[str, Any], signals, job: Job, index: int) -> Optional[_ScoredEntry]:
        normalized = await self.normalize_job_with_cache(job)
        base = self.scoring_agent.compute_base_score(
            profile, normalized, raw_job=job, include_details=True, preference_signals=signals
        )
        if base.excluded:
            logger.info(f"Skipping job after preference exclusion: {job.title} at {job.company}")
            return None
        return _ScoredEntry(raw=job, normalized=normalized, base=base, index=index)

    async def search(self, request: SearchRequest) -> SearchResponse:
        top_limit = parse_preference_notes(request.preference_notes)
        max_results = min(MAX_JOBS_TO_SCORE, top_limit or DEFAULT_MAX_RESULTS)

        profile = await self._load_profile(request.profile_id)
        filters = derive_aggregator_criteria(profile)
        criteria = self.build_criteria(request, filters, max_results)

        result = await self.aggregate_with_cache(criteria)
        jobs = result.results

        if request.profile_id and profile and jobs:
            await self._record_recent_jobs(request.profile_id, jobs)

        total_available = result.meta.total
        scoring_limit = min(MAX_JOBS_TO_SCORE, total_available, max_results, len(jobs))
        total_pages = max(1, math.ceil(scoring_limit / PAGE_SIZE))
        page = min(request.page, total_pages)
        start = (page - 1) * PAGE_SIZE
        end = min(start + PAGE_SIZE, scoring_limit)

        meta = SearchMeta(
            total=scoring_limit,
            available_total=total_available,
            page=page,
            page_size=PAGE_SIZE,
            total_pages=total_pages,
            preference=request.preference_notes,
            returned=result.meta.returned,
            suggestions=result.meta.suggestions,
            source_counts=result.meta.source_counts,
        )

        if not profile:
            page_jobs = [ScoredJob(**job.model_dump()) for job in jobs[start:end]]
            return SearchResponse(
                data=page_jobs,
                meta=meta.model_copy(update={"returned": len(page_jobs), "filters": filters.to_dict()}),
            )

        profile_key = get_profile_cache_key(profile, request.profile_id)
        signals = build_preference_signals(profile)

        try:
            scored = await asyncio.gather(*(
                self._score(profile, signals, job, index)
                for index, job in enumerate(jobs[:scoring_limit])
            ))
            ranked = sorted((e for e in scored if e is not None), key=lambda e: e.base.score, reverse=True)
            page_entries = ranked[start:end]

            matches = await asyncio.gather(*(
                self.orchestrator.get_match_or_schedule(
                    profile, profile_key, e.raw, e.normalized, e.index, e.base.score
                )
                for e in page_entries
            ))
        except Exception as e:
            logger.error(f"Error in normalization/matching: {e}")
            page_jobs = [ScoredJob(**job.model_dump()) for job in jobs[start:end]]
            return SearchResponse(
                data=page_jobs,
                meta=meta.model_copy(update={"returned": len(page_jobs), "error": str(e)}),
            )

        data = [
            ScoredJob(
                **entry.normalized.model_dump(),
                match=match,
                base_score=entry.base.score,
                base_score_details=entry.base.details,
                match_cache_key=match_key(profile_key, get_job_cache_key(entry.raw)),
            )
            for entry, match in zip(page_entries, matches)
        ]
        return SearchResponse(
            data=data,
            meta=meta.model_copy(update={
                "returned": len(data),
                "matched": True,
                "async_match_explanations": True,
            }),
        )

    # ==================== Match status & research ====================

    async def get_match_statuses(self, keys: List[str]):
        return await self.orchestrator.get_match_statuses(keys)

    async def research_company(self, company: str, profile_id: Optional[str] = None) -> CompanyResearch:
        profile = await self._load_profile(profile_id)
        key = company_research_key(company, get_profile_cache_key(profile, profile_id))

        cached = await self.cache.get_json(key)
        if cached:
            logger.info(f"Company research cache hit {key}")
            return CompanyResearch.model_validate(cached)

        research = await self.research_agent.research_company(company, profile)
        await self.cache.set_json(key, research.model_dump(mode="json", by_alias=True), self.cache_ttl)
        return research


# ==================== Factory Function ====================

_search_service: Optional[SearchService] = None


async def get_search_service() -> SearchService:
    """
    Get or create the search service singleton.

    All collaborators share one cache, one LLM client and one job
    source, so the rate-limit cooldown and the pending-match set are
    process-wide.
    """
    global _search_service

    if _search_service is None:
        settings = get_settings()
        cache = await get_cache()
        llm = get_llm_client()
        glassdoor = GlassdoorService(cache)
        agents = [MatchExplanationAgent(llm) for _ in range(max(1, settings.match_agent_pool_size))]

        _search_service = SearchService(
            cache=cache,
            aggregator=JobAggregator(JSearchSource(), llm=llm, glassdoor=glassdoor),
            normalization_agent=JobNormalizationAgent(llm),
            orchestrator=MatchOrchestrator(cache, agents, match_ttl=settings.match_ttl_seconds),
            profiles=ProfileStore(cache),
            research_agent=CompanyResearchAgent(llm, glassdoor),
            settings=settings,
        )
        logger.info("Created singleton SearchService")

    return _search_service


def peek_search_service() -> Optional[SearchService]:
    """The search service if it has been created, without creating it."""
    return _search_service
