"""
Preference Signals - profile preferences as additive score adjustments

A profile's stated preferences (work mode, locations, industries, target
companies, interests) are flattened into PreferenceSignals once per
request, then every job is evaluated against them to produce a score
delta that the base match score adds on top of skills/experience fit.

Adjustment table:
    Work mode   match +12 | mismatch -18 (-24 if remote preferred)
                unknown while remote preferred -14
    Location    match +6 | job has no location -2
                remote-friendly non-match -4 (-2 if remote preferred)
                mismatch -10 (-14 if remote preferred)
    Company     target company substring +15
    Industry    keyword in job text +8 | otherwise -6
    Interests   keyword in job text +5 (only when industry did not match)

Work mode compatibility:
    remote preference accepts remote and hybrid jobs
    hybrid preference accepts hybrid jobs only
    onsite preference accepts onsite and hybrid jobs
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from jobscout.schemas import Job, NormalizedJob

REMOTE_KEYWORDS = ["remote", "work from home", "wfh", "anywhere", "distributed"]
HYBRID_KEYWORDS = ["hybrid", "flexible location", "split between"]
ONSITE_KEYWORDS = ["on-site", "onsite", "on site", "office-based"]

_SPLIT_PATTERN = re.compile(r"[,;/\n]")


@dataclass
class PreferenceSignals:
    work_mode: Optional[str] = None
    work_modes: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    locations_original: List[str] = field(default_factory=list)
    industries: List[str] = field(default_factory=list)
    industries_original: List[str] = field(default_factory=list)
    target_companies: List[str] = field(default_factory=list)
    target_companies_original: List[str] = field(default_factory=list)
    interest_keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PreferenceEvaluation:
    adjustment: int = 0
    exclude: bool = False
    matches: Dict[str, bool] = field(default_factory=dict)
    mismatches: Dict[str, bool] = field(default_factory=dict)
    work_mode: Optional[str] = None


def normalize_string_array(value: Any) -> List[str]:
    """Accept a list or a comma/semicolon/slash/newline separated string."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [v.strip() for v in value if isinstance(v, str) and v.strip()]
    if isinstance(value, str):
        return [v.strip() for v in _SPLIT_PATTERN.split(value) if v.strip()]
    return []


def _lower_unique(values: Iterable[Any]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if isinstance(value, str) and value and value.lower() not in seen:
            seen.append(value.lower())
    return seen


def _first_text(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def normalize_work_mode(mode: Optional[str]) -> Optional[str]:
    if not mode or not isinstance(mode, str):
        return None
    lowered = mode.strip().lower()
    if lowered in ("on-site", "on site", "office"):
        return "onsite"
    if lowered in ("", "null", "none", "unknown"):
        return None
    return lowered


def work_mode_matches_preference(preference: Optional[str], mode: Optional[str]) -> bool:
    if not preference or not mode:
        return True
    preference = normalize_work_mode(preference)
    if preference == "remote":
        return mode in ("remote", "hybrid")
    if preference == "hybrid":
        return mode == "hybrid"
    if preference == "onsite":
        return mode in ("onsite", "hybrid")
    return True


def _job_text(job: Optional[Job], raw_job: Optional[Job]) -> str:
    parts = []
    if isinstance(job, NormalizedJob):
        parts.append(job.normalized.summary)
    for candidate in (job, raw_job):
        if candidate is not None:
            parts.append(candidate.description)
    for candidate in (job, raw_job):
        if candidate is not None:
            parts.append(candidate.title)
    return " ".join(p for p in parts if p).lower()


def infer_work_mode(job: Optional[Job], raw_job: Optional[Job] = None) -> Optional[str]:
    """
    Work mode of a job: the normalized field when present, then the
    source's remote flag, then a keyword scan of summary/description/title.
    """
    if isinstance(job, NormalizedJob):
        mode = normalize_work_mode(job.normalized.work_mode)
        if mode:
            return mode

    if any(candidate is not None and candidate.remote for candidate in (job, raw_job)):
        return "remote"

    text = _job_text(job, raw_job)
    if not text:
        return None
    if any(keyword in text for keyword in REMOTE_KEYWORDS):
        return "remote"
    if any(keyword in text for keyword in HYBRID_KEYWORDS):
        return "hybrid"
    if any(keyword in text for keyword in ONSITE_KEYWORDS):
        return "onsite"
    return None


def build_preference_signals(profile: Optional[Mapping[str, Any]]) -> PreferenceSignals:
    profile = profile or {}
    inferred = profile.get("inferred_preferences") or {}

    industries = normalize_string_array(
        profile.get("preferred_industries") or profile.get("preference_industries") or profile.get("domains")
    )
    companies = normalize_string_array(
        profile.get("target_companies") or profile.get("preference_target_companies")
    )
    locations = normalize_string_array(profile.get("preferred_locations"))
    interests = normalize_string_array(profile.get("interests"))
    focus_areas = normalize_string_array(inferred.get("focus_area"))
    roles = normalize_string_array(profile.get("roles"))

    work_modes = normalize_string_array(profile.get("preference_work_modes"))
    if not work_modes:
        legacy = _first_text(
            profile.get("preference_work_mode"),
            profile.get("preferred_work_mode"),
            inferred.get("work_mode_preference"),
        )
        work_modes = [legacy] if legacy else []

    normalized_modes = _lower_unique(normalize_work_mode(m) for m in work_modes)

    return PreferenceSignals(
        work_mode=normalized_modes[0] if normalized_modes else None,
        work_modes=normalized_modes,
        locations=_lower_unique(locations),
        locations_original=locations,
        industries=_lower_unique(industries),
        industries_original=industries,
        target_companies=_lower_unique(companies),
        target_companies_original=companies,
        interest_keywords=_lower_unique(interests + industries + focus_areas + roles),
    )


def evaluate_job_against_preferences(
    job: Job,
    signals: Optional[PreferenceSignals],
    raw_job: Optional[Job] = None,
) -> PreferenceEvaluation:
    if signals is None:
        return PreferenceEvaluation()

    matches = {"work_mode": False, "company": False, "industry": False, "interests": False, "location": False}
    mismatches = {"work_mode": False, "location": False, "industry": False}
    adjustment = 0
    remote_preferred = signals.work_mode == "remote"

    job_company = (job.company or (raw_job.company if raw_job else "") or "").lower()
    job_location = (job.location or (raw_job.location if raw_job else "") or "").strip().lower()
    job_text = _job_text(job, raw_job)
    work_mode = infer_work_mode(job, raw_job)

    if signals.work_mode:
        if work_mode:
            if work_mode_matches_preference(signals.work_mode, work_mode):
                matches["work_mode"] = True
                adjustment += 12
            else:
                mismatches["work_mode"] = True
                adjustment -= 24 if remote_preferred else 18
        elif remote_preferred:
            mismatches["work_mode"] = True
            adjustment -= 14

    if signals.locations:
        remote_friendly = (
            "remote" in job_location
            or "anywhere" in job_location
            or work_mode in ("remote", "hybrid")
        )
        if job_location and any(loc in job_location for loc in signals.locations):
            matches["location"] = True
            adjustment += 6
        elif not job_location:
            adjustment -= 2
        elif remote_friendly:
            adjustment -= 2 if remote_preferred else 4
        else:
            mismatches["location"] = True
            adjustment -= 14 if remote_preferred else 10

    if signals.target_companies and job_company:
        if any(company in job_company for company in signals.target_companies):
            matches["company"] = True
            adjustment += 15

    if signals.industries and job_text:
        if any(industry in job_text for industry in signals.industries):
            matches["industry"] = True
            adjustment += 8
        else:
            mismatches["industry"] = True
            adjustment -= 6

    if not matches["industry"] and signals.interest_keywords and job_text:
        if any(keyword in job_text for keyword in signals.interest_keywords):
            matches["interests"] = True
            adjustment += 5

    return PreferenceEvaluation(
        adjustment=adjustment,
        exclude=False,
        matches=matches,
        mismatches=mismatches,
        work_mode=work_mode,
    )
