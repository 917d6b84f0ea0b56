"""
JSearch (RapidAPI) job source.

Maps JSearch's `job_*` payload onto the canonical Job shape and owns the
rate-limit cooldown: a 429 or 403 from RapidAPI pauses all upstream calls
for `rate_limit_cooldown_seconds`.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from jobscout.config import get_settings
from jobscout.middleware.metrics import record_source_request
from jobscout.schemas import Job, SearchCriteria
from jobscout.services.cache import hash_content
from jobscout.services.locations import normalize_user_location, to_country_code
from jobscout.services.sources.base import BaseJobSource, RateLimitCooldown

logger = logging.getLogger(__name__)

RAPID_API_HOST = "jsearch.p.rapidapi.com"
RATE_LIMIT_STATUSES = {403, 429}
RESULTS_PER_PAGE = 20
MAX_NUM_PAGES = 3


def build_query(criteria: SearchCriteria) -> str:
    query = (criteria.query or "").strip()
    location = normalize_user_location(criteria.location).strip()

    if not query and not location:
        return "jobs"
    if not location:
        return query
    if not query:
        return f"jobs in {location}"
    return f"{query} in {location}"


def _format_location(data: Dict[str, Any]) -> str:
    parts = [p for p in (data.get("job_city"), data.get("job_state"), data.get("job_country")) if p]
    if parts:
        return ", ".join(parts)
    if data.get("job_is_remote"):
        return "Remote"
    return data.get("job_country") or "Unknown"


def _format_posted_at(data: Dict[str, Any]) -> str:
    if data.get("job_posted_at_datetime_utc"):
        return data["job_posted_at_datetime_utc"]
    timestamp = data.get("job_posted_at_timestamp")
    if timestamp:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
    return datetime.now(timezone.utc).isoformat()


def _external_url(data: Dict[str, Any]) -> str:
    apply_options = data.get("job_apply_options")
    candidates = [data.get("job_apply_link")]
    if isinstance(apply_options, list):
        for option in apply_options:
            candidates.append(option.get("apply_link") if isinstance(option, dict) else option)
    candidates.extend([data.get("job_google_link"), data.get("job_link")])
    return next((c for c in candidates if isinstance(c, str) and c), "")


class JSearchSource(BaseJobSource):
    source = "jsearch"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        cooldown: Optional[RateLimitCooldown] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        settings = get_settings()
        super().__init__(cooldown or RateLimitCooldown(settings.rate_limit_cooldown_seconds))
        self.api_key = settings.jsearch_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.jsearch_api_host_url).rstrip("/")
        self.timeout = timeout
        self._client = client

    def build_params(self, criteria: SearchCriteria, page: int = 1) -> Dict[str, Any]:
        limit = min(max(criteria.limit or RESULTS_PER_PAGE, 10), 60)
        params: Dict[str, Any] = {
            "query": build_query(criteria),
            "page": max(page, 1),
            "num_pages": min(math.ceil(limit / RESULTS_PER_PAGE), MAX_NUM_PAGES),
        }

        country_code = to_country_code(criteria.location)
        if country_code:
            params["country"] = country_code
        if criteria.date_posted:
            params["date_posted"] = criteria.date_posted
        if criteria.sort_by:
            params["sort_by"] = criteria.sort_by
        if criteria.order:
            params["order"] = criteria.order
        if criteria.employment_types:
            params["employment_types"] = ",".join(criteria.employment_types)
        if criteria.job_requirements:
            params["job_requirements"] = ",".join(criteria.job_requirements)
        if criteria.remote_only:
            params["remote_jobs_only"] = "true"
        return params

    async def search(self, criteria: SearchCriteria, page: int = 1) -> List[Job]:
        if not self.api_key:
            logger.warning("JSEARCH_API_KEY not configured, skipping JSearch request")
            return []

        if self.is_cooling_down():
            logger.warning("Skipping JSearch request due to recent rate limit, cooling down")
            record_source_request(self.source, "cooling_down")
            return []

        params = self.build_params(criteria, page)
        headers = {
            "x-rapidapi-key": self.api_key,
            "x-rapidapi-host": RAPID_API_HOST,
        }
        logger.info(f"JSearch query: {params['query']!r} page={params['page']}")

        try:
            if self._client is not None:
                response = await self._client.get(
                    f"{self.base_url}/search", params=params, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(
                        f"{self.base_url}/search", params=params, headers=headers, timeout=self.timeout
                    )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in RATE_LIMIT_STATUSES:
                self.cooldown.trigger()
                record_source_request(self.source, "rate_limited")
            else:
                record_source_request(self.source, "error")
            logger.warning(f"JSearch request failed ({status}): {e.response.text[:500]}")
            return []
        except (httpx.HTTPError, ValueError) as e:
            record_source_request(self.source, "error")
            logger.warning(f"JSearch request failed: {e}")
            return []

        record_source_request(self.source, "ok")
        limit = min(max(criteria.limit or RESULTS_PER_PAGE, 10), 60)
        jobs = [self._parse_job(item) for item in (data.get("data") or [])]
        return [job for job in jobs if job is not None][:limit]

    def _parse_job(self, data: Dict[str, Any]) -> Optional[Job]:
        try:
            salary = None
            if data.get("job_salary_currency") and data.get("job_min_salary") and data.get("job_max_salary"):
                salary = f"{data['job_salary_currency']} {data['job_min_salary']} - {data['job_max_salary']}"

            location = _format_location(data)
            posted_at = _format_posted_at(data)
            # Hash raw fields only; posted_at falls back to "now" and is not stable
            job_id = data.get("job_id") or "jsearch-" + hash_content(
                data.get("job_title"),
                data.get("employer_name"),
                location,
                data.get("job_posted_at_datetime_utc") or data.get("job_posted_at_timestamp"),
                data.get("job_apply_link"),
            )

            return Job(
                id=job_id,
                title=data.get("job_title") or "",
                company=data.get("employer_name") or "",
                location=location,
                remote=bool(data.get("job_is_remote")),
                country=data.get("job_country") or "",
                country_code=(data.get("job_country_iso2") or data.get("job_country_iso") or "").lower(),
                description=data.get("job_description") or "",
                source=(data.get("job_publisher") or "jsearch").lower(),
                external_url=_external_url(data),
                posted_at=posted_at,
                employment_type=data.get("job_employment_type"),
                salary=salary,
            )
        except Exception as e:
            logger.warning(f"Error parsing JSearch job: {e}")
            return None
