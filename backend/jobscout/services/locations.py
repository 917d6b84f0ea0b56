"""
Location matching and expansion for job filtering.

Country data comes from pycountry (ISO 3166-1 countries, ISO 3166-2
subdivisions) and city data from geonamescache (cities above 15k
population, keyed by country and admin1 code).

Matching is deliberately loose: users type "US", "usa", "Texas" or
"Austin, TX" and job sources return "Austin, Texas, US". A job matches a
requested location when either side contains the other, when any comma
part of the job location appears in the request, or when the country
names or ISO codes agree.
"""

import logging
from functools import lru_cache
from typing import List, Optional, Sequence

import geonamescache
import pycountry

from jobscout.schemas import Job

logger = logging.getLogger(__name__)

MAX_CITIES_PER_STATE = 20

_US_ALIASES = {"us", "usa", "united states", "united states of america", "america"}
_UK_ALIASES = {"uk", "gb", "great britain", "england", "united kingdom"}


def normalize_user_location(value: Optional[str]) -> str:
    """Map common country aliases to their canonical names."""
    if not value:
        return ""
    trimmed = value.strip()
    normalized = trimmed.lower().replace(".", "")

    if normalized in _US_ALIASES:
        return "United States"
    if normalized in _UK_ALIASES:
        return "United Kingdom"
    return trimmed


def _country_names(country) -> List[str]:
    names = [country.name]
    for attr in ("common_name", "official_name"):
        value = getattr(country, attr, None)
        if value and value not in names:
            names.append(value)
    return [n.lower() for n in names]


def _find_country(value: str, loose: bool = True):
    lowered = value.lower()
    countries = list(pycountry.countries)

    for country in countries:
        if lowered in _country_names(country):
            return country
    for country in countries:
        if country.alpha_2.lower() == lowered:
            return country
    # Substring matching on 1-2 letter inputs matches nearly every country name
    if loose and len(lowered) >= 3:
        for country in countries:
            if any(lowered in name or name in lowered for name in _country_names(country)):
                return country
    return None


@lru_cache(maxsize=512)
def to_country_code(location: Optional[str]) -> Optional[str]:
    """Resolve a free-form location to a lowercase ISO 3166-1 alpha-2 code."""
    normalized = normalize_user_location(location)
    if not normalized:
        return None
    country = _find_country(normalized)
    return country.alpha_2.lower() if country else None


def _top_level_subdivisions(country_code: str) -> list:
    subdivisions = pycountry.subdivisions.get(country_code=country_code) or []
    top_level = [s for s in subdivisions if not getattr(s, "parent_code", None)]
    return sorted(top_level or subdivisions, key=lambda s: s.name)


@lru_cache(maxsize=1)
def _geonames() -> geonamescache.GeonamesCache:
    return geonamescache.GeonamesCache()


def _cities_of_state(country_code: str, state_code: str) -> List[str]:
    cities = [
        city for city in _geonames().get_cities().values()
        if city.get("countrycode") == country_code and city.get("admin1code") == state_code
    ]
    cities.sort(key=lambda city: city.get("population", 0), reverse=True)
    return [city["name"] for city in cities[:MAX_CITIES_PER_STATE]]


def _find_state(lowered: str):
    for subdivision in pycountry.subdivisions:
        short_code = subdivision.code.split("-", 1)[-1].lower()
        if subdivision.name.lower() == lowered or short_code == lowered:
            return subdivision
    return None


def expand_location_patterns(query: Optional[str]) -> List[str]:
    """
    Broaden a location into nearby alternatives.

    A country expands to its states, a state expands to its largest
    cities. "Remote" is always appended as a permissive alternative.
    """
    q = (query or "").strip()
    if not q:
        return []

    results: List[str] = []
    lowered = q.lower()

    country = _find_country(normalize_user_location(q).lower())
    if country is None and len(lowered) <= 3:
        country = pycountry.countries.get(alpha_2=lowered.upper())

    if country is not None:
        results.extend(s.name for s in _top_level_subdivisions(country.alpha_2))
    else:
        state = _find_state(lowered)
        if state is not None:
            state_code = state.code.split("-", 1)[-1]
            results.extend(_cities_of_state(state.country_code, state_code))

    if "Remote" not in results:
        results.append("Remote")

    deduped: List[str] = []
    for name in results:
        if name and name not in deduped:
            deduped.append(name)
    return deduped


def matches_location(
    job: Job,
    original_lower: str,
    normalized_lower: str,
    country_code: Optional[str],
) -> bool:
    job_location = (job.location or "").lower()

    if not original_lower and not normalized_lower:
        return True
    if "remote" in job_location:
        return True
    if original_lower and original_lower in job_location:
        return True
    if normalized_lower and normalized_lower in job_location:
        return True

    job_parts = [part.strip() for part in job_location.split(",") if part.strip()]
    for candidate in (original_lower, normalized_lower):
        if candidate and any(part in candidate for part in job_parts):
            return True

    job_country = (job.country or "").lower()
    if job_country:
        for candidate in (original_lower, normalized_lower):
            if candidate and (candidate in job_country or job_country in candidate):
                return True

    job_country_code = (job.country_code or "").lower()
    return bool(country_code and job_country_code and job_country_code == country_code)


def job_matches_any_location(job: Job, locations: Sequence[str]) -> bool:
    for location in locations:
        if not location or not isinstance(location, str):
            continue
        if matches_location(
            job,
            original_lower=location.lower(),
            normalized_lower=normalize_user_location(location).lower(),
            country_code=to_country_code(location),
        ):
            return True
    return False


def is_remote_job(job: Job) -> bool:
    location = (job.location or "").lower()
    return job.remote or "remote" in location or "anywhere" in location
