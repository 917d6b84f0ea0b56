"""
Cache key derivation shared by every pipeline stage.

Aggregation, normalization and match orchestration must agree on the
identity of a job, otherwise a normalized job and its match explanation
would land under different keys. All of them go through get_job_cache_key.
"""

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from jobscout.services.cache import CacheNamespace, hash_content

JobLike = Union[BaseModel, Mapping[str, Any]]

_JOB_ID_FIELDS = (
    "id",
    "job_id",
    "external_id",
    "externalId",
    "url",
    "apply_link",
)


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def get_job_cache_key(job: JobLike) -> str:
    """
    Stable identity for a job.

    Uses the first present identifier field, otherwise the composite
    title|company|location|posted_at.
    """
    data = _as_dict(job)
    for field in _JOB_ID_FIELDS:
        value = data.get(field)
        if value:
            return str(value)

    posted_at = data.get("posted_at") or data.get("postedAt") or ""
    return "|".join([
        str(data.get("title") or "unknown"),
        str(data.get("company") or "unknown"),
        str(data.get("location") or "unknown"),
        str(posted_at),
    ])


def get_profile_cache_key(profile: Optional[Mapping[str, Any]], fallback_id: Optional[str] = None) -> str:
    """Stable identity for a profile document."""
    if not profile:
        return fallback_id or "anonymous"

    for candidate in (profile.get("_id"), profile.get("id"), fallback_id, profile.get("profile_id")):
        if candidate:
            return str(candidate)

    if profile.get("email"):
        return f"email:{profile['email']}"

    return "anon-" + hash_content(profile.get("skills") or [], profile.get("experience_years") or 0)


def _sorted_or_any(values) -> str:
    return ",".join(sorted(values)) if values else "any"


def get_aggregate_fingerprint(criteria: BaseModel) -> str:
    """
    Fingerprint of the criteria fields that change aggregation output:
    role::location::limit::remote|any::modes::employment::requirements
    """
    return "::".join([
        (criteria.query or "").strip().lower(),
        (criteria.location or "").strip().lower(),
        str(criteria.limit or 0),
        "remote" if criteria.remote_only else "any",
        _sorted_or_any(criteria.work_modes),
        _sorted_or_any(criteria.employment_types),
        _sorted_or_any(criteria.job_requirements),
    ])


def normalized_job_key(job_key: str) -> str:
    return f"{CacheNamespace.NORMALIZED_JOB.prefix}{job_key}"


def aggregate_key(fingerprint: str) -> str:
    return f"{CacheNamespace.AGGREGATE.prefix}{fingerprint}"


def match_key(profile_key: str, job_key: str) -> str:
    return f"{CacheNamespace.MATCH.prefix}{profile_key}:{job_key}"


def company_research_key(company: str, profile_key: Optional[str]) -> str:
    normalized_company = (company or "").strip().lower() or "unknown"
    normalized_profile = (profile_key or "anonymous").lower()
    return f"{CacheNamespace.COMPANY_RESEARCH.prefix}{normalized_company}:{normalized_profile}"


def profile_key(profile_id: str) -> str:
    return f"{CacheNamespace.PROFILE.prefix}{profile_id}"


def glassdoor_key(company: str, mode: str, role: str) -> str:
    return f"{CacheNamespace.GLASSDOOR.prefix}{company}:{mode}:{role or 'any'}"
