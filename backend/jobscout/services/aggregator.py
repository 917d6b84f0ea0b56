"""
Job Aggregator - widening fetch, filtering and ranking of job listings

Turns SearchCriteria into an AggregateResult by querying the job source
and progressively widening the search until there are enough results:

    1. base fetch (requested date window, default "week")
    2. relax the window to "month"        if < min(limit, 10) results
    3. pages 2 and 3                      if < min(limit, 20) / min(limit, 30)
                                          and the source is not cooling down
    4. dedupe by id
    5. location/remote filter against request location + preferred locations;
       when nothing passes, expand the primary location (country -> states,
       state -> cities), offer up to 5 as suggestions and search up to 3
    6. similar-role retries (max 2)       if < 2 results remain
    7. dedupe, newest first, truncate to limit
    8. attach company ratings (best-effort)

Fetches are strictly sequential. Every fetch is wrapped so a failing call
counts as zero results; the aggregator itself never raises for upstream
errors. While the source is cooling down after a rate limit, optional
widening steps are skipped.
"""

import asyncio
import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from jobscout.schemas import AggregateMeta, AggregateResult, Job, SearchCriteria
from jobscout.services.glassdoor import GlassdoorService
from jobscout.services.llm import LLMClient
from jobscout.services.locations import expand_location_patterns, is_remote_job, job_matches_any_location
from jobscout.services.sources.base import BaseJobSource

logger = logging.getLogger(__name__)

DEFAULT_RESULT_LIMIT = 50
MAX_RESULT_LIMIT = 60
MAX_LOCATION_SUGGESTIONS = 5
MAX_ALTERNATE_LOCATIONS = 3
MAX_SIMILAR_ROLE_RETRIES = 2
RETRY_LIMIT = 5

SIMILAR_ROLES_SYSTEM_PROMPT = "You suggest related job titles. Return ONLY a JSON array of strings, no explanation."
SIMILAR_ROLES_PROMPT = (
    'Given the job role "{query}", suggest 3-5 similar or related job titles that someone '
    "searching for this role might also be interested in. Return ONLY a JSON array of strings, "
    'no explanation. Example: ["Backend Developer", "Full Stack Engineer", "Software Developer"]'
)

_SENIORITY = re.compile(r"\b(senior|junior|lead|principal|staff)\b", re.IGNORECASE)


def unique_by_id(jobs: Iterable[Optional[Job]]) -> List[Job]:
    """Drop repeated jobs, keeping the first occurrence and input order."""
    seen = set()
    result: List[Job] = []
    for job in jobs:
        if job is None:
            continue
        key = job.id or f"{job.title or 'unknown'}-{job.company or 'unknown'}-{job.location or 'na'}-{len(result)}"
        if key in seen:
            continue
        seen.add(key)
        result.append(job)
    return result


def posted_timestamp(job: Job) -> float:
    if not job.posted_at:
        return 0.0
    try:
        parsed = datetime.fromisoformat(job.posted_at.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def deterministic_similar_roles(query: str) -> List[str]:
    """Broader variants of a role: no seniority, engineer/developer swapped, no 'software'."""
    original = " ".join(query.lower().split())
    broader = " ".join(_SENIORITY.sub("", original).split())
    variants = [
        broader,
        re.sub(r"\bengineer\b", "developer", broader),
        re.sub(r"\bdeveloper\b", "engineer", broader),
        re.sub(r"\bsoftware\b", "", broader),
    ]

    result: List[str] = []
    for variant in variants:
        variant = " ".join(variant.split())
        if len(variant) > 2 and variant != original and variant not in result:
            result.append(variant)
    return result


def location_candidates(criteria: SearchCriteria) -> List[str]:
    candidates: List[str] = []
    for location in [criteria.location] + list(criteria.preferred_locations):
        if not location or not location.strip():
            continue
        location = location.strip()
        if not any(existing.lower() == location.lower() for existing in candidates):
            candidates.append(location)
    return candidates


def passes_filter(job: Job, candidates: Sequence[str], remote_only: bool, allow_remote: bool) -> bool:
    remote = is_remote_job(job)
    if remote_only and not remote:
        return False
    if not candidates:
        return True
    if job_matches_any_location(job, candidates):
        return True
    return allow_remote and remote


class JobAggregator:
    def __init__(
        self,
        source: BaseJobSource,
        llm: Optional[LLMClient] = None,
        glassdoor: Optional[GlassdoorService] = None,
    ):
        self.source = source
        self.llm = llm
        self.glassdoor = glassdoor

    async def _safe_search(self, criteria: SearchCriteria, page: int = 1) -> List[Job]:
        try:
            return await self.source.search(criteria, page=page)
        except Exception as e:
            logger.warning(f"Job source search failed (query={criteria.query!r}, page={page}): {e}")
            return []

    async def suggest_similar_roles(self, query: str) -> List[str]:
        """Related job titles from the LLM, or deterministic variants."""
        original = query.strip().lower()
        if self.llm is not None:
            try:
                data = await self.llm.complete_json(
                    SIMILAR_ROLES_SYSTEM_PROMPT,
                    SIMILAR_ROLES_PROMPT.format(query=query),
                    agent="similar_roles",
                    temperature=0.3,
                )
                if isinstance(data, list):
                    roles = []
                    for item in data:
                        if isinstance(item, str) and item.strip() and item.strip().lower() != original:
                            if item.strip() not in roles:
                                roles.append(item.strip())
                    if roles:
                        logger.info(f"LLM suggested similar roles: {roles}")
                        return roles[:5]
            except Exception as e:
                logger.warning(f"Failed to get similar roles from LLM: {e}")

        return deterministic_similar_roles(query)

    async def _decorate(self, jobs: List[Job]) -> List[Job]:
        if self.glassdoor is None or not jobs:
            return jobs
        return list(await asyncio.gather(*(self.glassdoor.attach_rating(job, "company") for job in jobs)))

    async def aggregate(self, raw_criteria: SearchCriteria) -> AggregateResult:
        limit = max(1, min(raw_criteria.limit or DEFAULT_RESULT_LIMIT, MAX_RESULT_LIMIT))
        criteria = raw_criteria.model_copy(update={
            "limit": limit,
            "date_posted": raw_criteria.date_posted or "week",
            "sort_by": raw_criteria.sort_by or "date_posted",
            "order": raw_criteria.order or "desc",
        })
        logger.info(f"Aggregating jobs for {criteria.query!r} in {criteria.location!r} (limit={limit})")

        base_results = await self._safe_search(criteria)
        combined = list(base_results)

        if len(combined) < min(limit, 10) and criteria.date_posted != "month":
            relaxed = await self._safe_search(criteria.model_copy(update={"date_posted": "month"}))
            combined = unique_by_id(combined + relaxed)
            logger.info(f"Relaxed date window to month -> {len(relaxed)} additional jobs")

        if len(combined) < min(limit, 20) and not self.source.is_cooling_down():
            combined = unique_by_id(combined + await self._safe_search(criteria, page=2))
            if len(combined) < min(limit, 30):
                combined = unique_by_id(combined + await self._safe_search(criteria, page=3))

        combined = unique_by_id(combined)
        logger.info(f"Results from source (combined): {len(combined)}")

        candidates = location_candidates(criteria)
        suggestions: List[str] = []
        filtered = combined

        if candidates or criteria.remote_only:
            filtered = [
                job for job in combined
                if passes_filter(job, candidates, criteria.remote_only, criteria.allow_remote)
            ]
            logger.info(f"After location/preference filter: {len(filtered)} jobs")

            # Only expand when the source returned jobs that all failed the filter
            if not filtered and combined and candidates:
                expanded = expand_location_patterns(candidates[0])
                suggestions = expanded[:MAX_LOCATION_SUGGESTIONS]
                logger.info(f"Expanded locations to try: {expanded[:10]}")

                if self.source.is_cooling_down():
                    logger.warning("Skipping alternate location retries due to source cooldown")
                else:
                    for alternate in expanded[:MAX_ALTERNATE_LOCATIONS]:
                        if len(filtered) >= limit:
                            break
                        alt_criteria = criteria.model_copy(update={
                            "location": alternate,
                            "limit": min(RETRY_LIMIT, limit - len(filtered)),
                        })
                        existing = {job.id for job in filtered}
                        new_jobs = [j for j in await self._safe_search(alt_criteria) if j.id not in existing]
                        filtered = filtered + new_jobs
                        logger.info(f"Alternate location {alternate!r} added {len(new_jobs)} jobs")

        if len(filtered) < 2 and criteria.query:
            if self.source.is_cooling_down():
                logger.warning("Skipping similar role fallbacks due to source cooldown")
            else:
                logger.info(f"Few results found ({len(filtered)}), trying similar roles")
                similar_roles = await self.suggest_similar_roles(criteria.query)
                for similar_query in similar_roles[:MAX_SIMILAR_ROLE_RETRIES]:
                    if len(filtered) >= limit:
                        break
                    fallback_criteria = criteria.model_copy(update={
                        "query": similar_query,
                        "limit": min(RETRY_LIMIT, limit - len(filtered)),
                    })
                    existing = {job.id for job in filtered}
                    new_jobs = [
                        job for job in await self._safe_search(fallback_criteria)
                        if job.id not in existing
                        and passes_filter(job, candidates, criteria.remote_only, criteria.allow_remote)
                    ]
                    filtered = filtered + new_jobs
                    logger.info(f"Similar role {similar_query!r} added {len(new_jobs)} jobs")

        filtered = unique_by_id(filtered)
        ranked = sorted(filtered, key=posted_timestamp, reverse=True)
        decorated = await self._decorate(ranked[:limit])

        return AggregateResult(
            results=decorated,
            meta=AggregateMeta(
                total=len(filtered),
                returned=len(decorated),
                agent=criteria.model_dump(by_alias=True),
                suggestions=suggestions,
                source_counts=dict(Counter(job.source or "unknown" for job in decorated)),
            ),
        )
