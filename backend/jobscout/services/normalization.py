"""
Job Normalization Agent - structured fields from raw job listings

Turns a raw listing into NormalizedFields (title, required and
nice-to-have skills, level, employment type, work mode, flags, salary
range, one-line summary) with a single LLM call.

The agent is stateless and does not degrade: without an LLM it raises
LLMUnavailableError, because downstream scoring depends on the structured
fields. Callers cache results per job key and decide how to degrade.
"""

import logging
from typing import Any, List, Optional

from jobscout.schemas import Job, NormalizedFields, NormalizedJob
from jobscout.services.llm import LLMClient, LLMUnavailableError
from jobscout.services.preferences import normalize_work_mode

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_CHARS = 2000

NORMALIZATION_SYSTEM_PROMPT = """You are a job normalization agent. Convert raw job listings into structured format.
Return ONLY valid JSON:
{
  "job_id": "job id",
  "normalized_title": "Standardized job title",
  "required_skills": ["skill1", "skill2"],
  "nice_to_have": ["skill3", "skill4"],
  "level": "intern|junior|mid|senior|lead|null",
  "employment_type": "full-time|internship|contract|part-time|null",
  "work_mode": "remote|hybrid|onsite|null",
  "red_flags": ["flag1"] or [],
  "green_flags": ["flag1"] or [],
  "salary_range": "range or null",
  "summary": "one sentence summary"
}"""

NORMALIZATION_USER_PROMPT = """Raw job:
Title: {title}
Company: {company}
Location: {location}
Description: {description}"""


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return []


def _as_lower(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    return None if text in ("", "null", "none", "n/a") else text


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return None if text.lower() in ("", "null", "none") else text


class JobNormalizationAgent:
    def __init__(self, llm: Optional[LLMClient]):
        self.llm = llm

    def coerce(self, data: Any, raw_job: Job) -> NormalizedFields:
        """Defensively map model output onto NormalizedFields."""
        if not isinstance(data, dict):
            data = {}
        summary = _as_text(data.get("summary")) or (raw_job.description or "")[:200]

        return NormalizedFields(
            title=_as_text(data.get("normalized_title")) or raw_job.title,
            required_skills=_as_list(data.get("required_skills")),
            nice_to_have=_as_list(data.get("nice_to_have")),
            level=_as_lower(data.get("level")),
            employment_type=_as_lower(data.get("employment_type")),
            work_mode=normalize_work_mode(_as_lower(data.get("work_mode"))),
            red_flags=_as_list(data.get("red_flags")),
            green_flags=_as_list(data.get("green_flags")),
            salary_range=_as_text(data.get("salary_range")),
            summary=summary,
        )

    async def normalize_job(self, raw_job: Job) -> NormalizedJob:
        """
        Normalize a raw job.

        Raises:
            LLMUnavailableError: no LLM configured
            LLMResponseError / provider errors: the call or parsing failed
        """
        if self.llm is None:
            raise LLMUnavailableError("OPENAI_API_KEY not configured. Job normalization requires the LLM.")

        prompt = NORMALIZATION_USER_PROMPT.format(
            title=raw_job.title or "N/A",
            company=raw_job.company or "N/A",
            location=raw_job.location or "N/A",
            description=(raw_job.description or "")[:MAX_DESCRIPTION_CHARS],
        )

        try:
            data = await self.llm.complete_json(NORMALIZATION_SYSTEM_PROMPT, prompt, agent="normalization")
        except Exception as e:
            logger.error(f"Job normalization failed for {raw_job.id}: {e}")
            raise

        return NormalizedJob(**raw_job.model_dump(), normalized=self.coerce(data, raw_job))
