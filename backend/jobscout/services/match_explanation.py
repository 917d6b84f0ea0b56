"""
Match Explanation Agent - profile vs. job fit

Two layers:

1. compute_base_score: a deterministic 0-100 score that is cheap enough to
   run for every job in a search before ranking.

       base                          50
       required skills overlap      +30 * matched / required
       nice-to-have overlap         +10 * matched / max(nice, 1)
       experience band              +20
       location                     +15
       work mode                    +15 exact match, +10 without preference
       preference adjustment        see services/preferences.py

   Experience bands (years): intern < 2, junior 0.5-3, mid 2-5,
   senior >= 4, lead >= 6. Bands overlap, so 4 years fits mid and senior.

2. explain_match: the rich explanation (summary, gaps, reasoning,
   suggestions). Uses the LLM when configured and falls back to the
   deterministic generators on any error. Only background work calls this.

Skill overlap is a case-insensitive substring match in either direction,
so "aws" matches "aws lambda" and "python 3" matches "python".
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from jobscout.schemas import Job, NormalizedJob
from jobscout.services.llm import LLMClient
from jobscout.services.preferences import (
    PreferenceSignals,
    build_preference_signals,
    evaluate_job_against_preferences,
    infer_work_mode,
    normalize_string_array,
    normalize_work_mode,
)

logger = logging.getLogger(__name__)

Profile = Mapping[str, Any]

MATCH_SYSTEM_PROMPT = """You are a job match explanation agent. Analyze how well a profile matches a job and communicate concrete, personalized insights.
Always ground statements in the supplied profile and job data (skills, experience, work mode, location, salary signals).
Keep the tone concise but specific. Avoid generic advice like "improve skills" without context.
Return ONLY valid JSON with the following structure:
{
  "score": number (0-100),
  "summary": "1-2 sentences highlighting why this profile is or isn't ready, referencing years of experience, standout strengths, or context from the role",
  "missing_skills": ["skill gaps with brief context (e.g., 'AWS Lambda (required for automation pipeline)')"],
  "reasoning": [
    "Strength-focused insight referencing matching skills or experience",
    "Gap or risk with context (why it matters for this role)",
    "Alignment note (culture, work mode, domain, impact)"
  ],
  "suggestions": [
    "Actionable next steps with verbs, e.g., 'Complete XYZ certification to cover <skill>', 'Prepare examples about <experience>'"
  ]
}"""

MATCH_USER_PROMPT = """User Profile:
{profile}

Job:
Title: {title}
Required Skills: {required_skills}
Nice to Have: {nice_to_have}
Level: {level}
Work Mode: {work_mode}
Location: {location}"""


@dataclass
class BaseScore:
    score: int
    excluded: bool = False
    details: Dict[str, float] = field(default_factory=dict)
    preference_signals: Optional[PreferenceSignals] = None
    inferred_work_mode: Optional[str] = None


def _clamp_score(value: float) -> int:
    return int(min(100, max(0, round(value))))


def _skill_overlaps(skill: str, profile_skills: List[str]) -> bool:
    return any(ps in skill or skill in ps for ps in profile_skills)


def _profile_skills(profile: Profile) -> List[str]:
    return [s.lower() for s in normalize_string_array(profile.get("skills"))]


def _experience_years(profile: Profile) -> float:
    try:
        return float(profile.get("experience_years") or 0)
    except (TypeError, ValueError):
        return 0.0


def _format_years(years: float) -> str:
    return str(int(years)) if float(years).is_integer() else f"{years:g}"


def _normalized(job: Job) -> Any:
    return job.normalized if isinstance(job, NormalizedJob) else None


def _required_skills(job: Job) -> List[str]:
    normalized = _normalized(job)
    return [s.lower() for s in normalized.required_skills] if normalized else []


def _nice_to_have(job: Job) -> List[str]:
    normalized = _normalized(job)
    return [s.lower() for s in normalized.nice_to_have] if normalized else []


def _job_level(job: Job) -> Optional[str]:
    normalized = _normalized(job)
    return normalized.level if normalized else None


def experience_band_matches(level: Optional[str], years: float) -> bool:
    if level == "intern":
        return years < 2
    if level == "junior":
        return 0.5 <= years < 3
    if level == "mid":
        return 2 <= years < 5
    if level == "senior":
        return years >= 4
    if level == "lead":
        return years >= 6
    return False


class MatchExplanationAgent:
    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm

    # ==================== Deterministic scoring ====================

    def compute_base_score(
        self,
        profile: Profile,
        job: Job,
        raw_job: Optional[Job] = None,
        include_details: bool = False,
        preference_signals: Optional[PreferenceSignals] = None,
    ) -> Union[int, BaseScore]:
        score = 50.0
        details: Dict[str, float] = {
            "skills": 0,
            "nice_to_have": 0,
            "experience": 0,
            "location": 0,
            "work_mode": 0,
            "preference_adjustment": 0,
        }

        profile_skills = _profile_skills(profile)
        required = _required_skills(job)
        nice = _nice_to_have(job)

        if required:
            matched_required = sum(1 for s in required if _skill_overlaps(s, profile_skills))
            required_points = matched_required / len(required) * 30
            score += required_points
            details["skills"] = round(required_points, 1)

        matched_nice = sum(1 for s in nice if _skill_overlaps(s, profile_skills))
        nice_points = matched_nice / max(len(nice), 1) * 10
        score += nice_points
        details["nice_to_have"] = round(nice_points, 1)

        if experience_band_matches(_job_level(job), _experience_years(profile)):
            score += 20
            details["experience"] = 20

        job_location = (job.location or "").lower()
        preferred_locations = [loc.lower() for loc in normalize_string_array(profile.get("preferred_locations"))]
        job_is_remote = job.remote or "remote" in job_location
        first_segment = job_location.split(",")[0].strip()
        if job_is_remote and ("remote" in preferred_locations or not preferred_locations):
            score += 15
            details["location"] = 15
        elif job_location and any(
            loc in job_location or (first_segment and first_segment in loc) for loc in preferred_locations
        ):
            score += 15
            details["location"] = 15

        normalized = _normalized(job)
        work_mode = normalize_work_mode(normalized.work_mode) if normalized else None
        inferred = profile.get("inferred_preferences") or {}
        preferred_mode = normalize_work_mode(inferred.get("work_mode_preference"))
        if work_mode and preferred_mode and work_mode == preferred_mode:
            score += 15
            details["work_mode"] = 15
        elif not preferred_mode:
            score += 10
            details["work_mode"] = 10

        signals = preference_signals or build_preference_signals(profile)
        evaluation = evaluate_job_against_preferences(job, signals, raw_job=raw_job)

        if evaluation.exclude:
            details["preference_adjustment"] = evaluation.adjustment
            if include_details:
                return BaseScore(score=0, excluded=True, details=details, preference_signals=signals)
            return 0

        score += evaluation.adjustment
        details["preference_adjustment"] = round(evaluation.adjustment, 1)
        final_score = _clamp_score(score)

        if include_details:
            return BaseScore(
                score=final_score,
                excluded=False,
                details=details,
                preference_signals=signals,
                inferred_work_mode=infer_work_mode(job, raw_job),
            )
        return final_score

    # ==================== Deterministic explanations ====================

    def get_missing_skills(self, profile: Profile, job: Job) -> List[str]:
        profile_skills = _profile_skills(profile)
        return [s for s in _required_skills(job) if not _skill_overlaps(s, profile_skills)]

    def get_matched_skills(self, profile: Profile, job: Job) -> List[str]:
        profile_skills = _profile_skills(profile)
        return [s for s in _required_skills(job) if _skill_overlaps(s, profile_skills)]

    def generate_basic_summary(self, score: int, profile: Profile, job: Job) -> str:
        if score >= 80:
            verdict = "Excellent match"
        elif score >= 60:
            verdict = "Good match"
        elif score >= 40:
            verdict = "Moderate match"
        else:
            verdict = "Limited match"

        title = (_normalized(job).title if _normalized(job) else None) or job.title or "this role"
        matched = self.get_matched_skills(profile, job)
        missing = self.get_missing_skills(profile, job)
        years = _experience_years(profile)
        level = _job_level(job)

        facts = []
        if matched:
            facts.append(f"your {', '.join(matched[:3])} experience covers {len(matched)} of {len(_required_skills(job))} core skills")
        if missing:
            facts.append(f"{', '.join(missing[:3])} {'is' if len(missing) == 1 else 'are'} not yet on your profile")
        if years and level:
            facts.append(f"{_format_years(years)} years of experience against a {level}-level role")

        if not facts:
            return f"{verdict} for {title} ({score}/100)."
        return f"{verdict} for {title} ({score}/100): " + "; ".join(facts) + "."

    def generate_basic_reasoning(self, profile: Profile, job: Job) -> List[str]:
        reasons = []
        required = _required_skills(job)
        matched = self.get_matched_skills(profile, job)

        if matched:
            reasons.append(f"Strength: {len(matched)} of {len(required)} core skills align ({', '.join(matched)}).")

        missing = self.get_missing_skills(profile, job)
        if missing:
            reasons.append(f"Gap: Missing exposure to {', '.join(missing)}, which are highlighted in the role requirements.")

        years = _experience_years(profile)
        level = _job_level(job)
        if years and level:
            reasons.append(f"Context: {_format_years(years)} years of experience compared to the {level} level expectations.")

        if job.location:
            preferred_locations = [loc.lower() for loc in normalize_string_array(profile.get("preferred_locations"))]
            job_location = job.location.lower()
            if job.remote or "remote" in job_location:
                reasons.append("Location: Role is remote-friendly, reducing relocation friction.")
            elif any(loc in job_location for loc in preferred_locations):
                reasons.append(f"Location: Preferred region matches ({job.location}).")
            elif preferred_locations:
                reasons.append(f"Location: {job.location} is outside your preferred locations ({', '.join(preferred_locations)}).")

        if not reasons:
            reasons.append(f"Context: {job.title or 'This role'} at {job.company or 'this company'} lists no structured requirements to compare yet.")

        return reasons

    def generate_basic_suggestions(self, profile: Profile, job: Job) -> List[str]:
        suggestions = []
        missing = self.get_missing_skills(profile, job)

        if missing:
            highlighted = ", ".join(missing[:3])
            suggestions.append(f"Plan focused upskilling on {highlighted} using a certification or hands-on project.")

        matched = self.get_matched_skills(profile, job)
        if matched:
            suggestions.append(f"Highlight recent wins that show applied strength in {', '.join(matched)} during interviews or on your resume.")

        normalized = _normalized(job)
        if normalized and normalized.work_mode:
            suggestions.append(f"Prepare an example illustrating your success working in a {normalized.work_mode} environment.")

        if not suggestions:
            suggestions.append(f"Prepare a concise story that connects your recent achievements to the outcomes {job.company or 'the team'} lists for this role.")

        return suggestions

    def generate_fallback_match(self, profile: Profile, job: Job, base_score: int) -> Dict[str, Any]:
        return {
            "score": base_score,
            "summary": self.generate_basic_summary(base_score, profile, job),
            "missing_skills": self.get_missing_skills(profile, job),
            "reasoning": self.generate_basic_reasoning(profile, job),
            "suggestions": self.generate_basic_suggestions(profile, job),
        }

    # ==================== LLM explanation ====================

    async def explain_match(self, profile: Profile, job: Job) -> Dict[str, Any]:
        """
        Rich match explanation.

        Returns:
            Dict with score, summary, missing_skills, reasoning, suggestions.
            Never raises on LLM failure; falls back to deterministic output.
        """
        base_score = self.compute_base_score(profile, job)

        if self.llm is None:
            logger.info(f"Using rule-based match explanation for {job.title!r}")
            return self.generate_fallback_match(profile, job, base_score)

        normalized = _normalized(job)
        prompt = MATCH_USER_PROMPT.format(
            profile=json.dumps(dict(profile), indent=2, default=str),
            title=(normalized.title if normalized else None) or job.title,
            required_skills=", ".join(normalized.required_skills) if normalized else "",
            nice_to_have=", ".join(normalized.nice_to_have) if normalized else "",
            level=(normalized.level if normalized else None) or "unknown",
            work_mode=(normalized.work_mode if normalized else None) or "unknown",
            location=job.location or "unknown",
        )

        try:
            data = await self.llm.complete_json(MATCH_SYSTEM_PROMPT, prompt, agent="match_explanation", temperature=0.2)
        except Exception as e:
            logger.warning(f"LLM match explanation failed, using fallback: {e}")
            return self.generate_fallback_match(profile, job, base_score)

        if not isinstance(data, dict):
            logger.warning("LLM match explanation was not a JSON object, using fallback")
            return self.generate_fallback_match(profile, job, base_score)

        try:
            score = float(data.get("score"))
        except (TypeError, ValueError):
            score = base_score
        if score != score:  # NaN
            score = base_score

        return {
            "score": _clamp_score(score),
            "summary": str(data.get("summary") or "") or self.generate_basic_summary(base_score, profile, job),
            "missing_skills": [str(s) for s in data["missing_skills"]]
            if isinstance(data.get("missing_skills"), list)
            else self.get_missing_skills(profile, job),
            "reasoning": [str(r) for r in data["reasoning"]]
            if isinstance(data.get("reasoning"), list)
            else self.generate_basic_reasoning(profile, job),
            "suggestions": [str(s) for s in data["suggestions"]] if isinstance(data.get("suggestions"), list) else [],
        }
