"""
Company Research Agent - interview prep briefs for a company

Produces a CompanyResearch brief (summary, tech stack, culture, talking
points, red/green flags) from the LLM, personalized with the candidate's
profile when one is available, and decorated with Glassdoor rating and
reviews. Without an LLM, or when the call fails, a minimal fallback brief
is returned so the endpoint always answers.
"""

import json
import logging
from typing import Any, List, Mapping, Optional

from jobscout.schemas import CompanyResearch
from jobscout.services.glassdoor import GlassdoorService
from jobscout.services.llm import LLMClient
from jobscout.services.preferences import normalize_string_array

logger = logging.getLogger(__name__)

RESEARCH_SYSTEM_PROMPT = """You are a company research agent. Research companies and provide insights.
Return ONLY valid JSON:
{
  "company_name": "company name",
  "summary": "2-3 sentence overview",
  "tech_stack": ["tech1", "tech2"],
  "company_type": "startup|mid|enterprise|unknown",
  "culture_highlights": ["highlight1"],
  "talking_points": ["point 1", "point 2"],
  "red_flags": ["flag1"] or [],
  "green_flags": ["flag1"] or []
}"""

RESEARCH_USER_PROMPT = """Company: {company}

Search Results:
No external search context provided; rely on general knowledge and reasonable assumptions based on the company name.

{user_context}"""


def _list(value: Any) -> List[str]:
    return [str(v) for v in value if v] if isinstance(value, list) else []


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def fallback_research(company: str) -> CompanyResearch:
    return CompanyResearch(
        company_name=company,
        summary=f"Research data for {company} is not available.",
        company_type="unknown",
        talking_points=[
            f"Research {company}'s recent projects and tech stack",
            "Highlight relevant experience from your background",
        ],
        source="fallback",
    )


class CompanyResearchAgent:
    def __init__(self, llm: Optional[LLMClient], glassdoor: Optional[GlassdoorService] = None):
        self.llm = llm
        self.glassdoor = glassdoor

    async def research_company(
        self,
        company: str,
        profile: Optional[Mapping[str, Any]] = None,
    ) -> CompanyResearch:
        if self.llm is None:
            return fallback_research(company)

        user_context = ""
        if profile:
            user_context = "User Profile Context:\n" + json.dumps(dict(profile), indent=2, default=str)

        try:
            data = await self.llm.complete_json(
                RESEARCH_SYSTEM_PROMPT,
                RESEARCH_USER_PROMPT.format(company=company, user_context=user_context),
                agent="company_research",
                temperature=0.3,
            )
        except Exception as e:
            logger.warning(f"Company research failed for {company}: {e}")
            return fallback_research(company)

        if not isinstance(data, dict):
            return fallback_research(company)

        research = CompanyResearch(
            company_name=_text(data.get("company_name")) or company,
            summary=_text(data.get("summary")) or f"Information about {company}",
            tech_stack=_list(data.get("tech_stack")),
            company_type=(_text(data.get("company_type")) or "unknown").lower(),
            culture_highlights=_list(data.get("culture_highlights")),
            talking_points=_list(data.get("talking_points")),
            red_flags=_list(data.get("red_flags")),
            green_flags=_list(data.get("green_flags")),
            source="llm",
        )

        if self.glassdoor is not None:
            roles = normalize_string_array((profile or {}).get("roles"))
            rating = await self.glassdoor.fetch_rating(company, "company", roles[0] if roles else "")
            if rating is not None:
                logger.info(f"Glassdoor reviews attached for {company} ({len(rating.reviews)} reviews)")
                research = research.model_copy(update={
                    "rating": rating.score,
                    "review_mode": rating.mode,
                    "reviews": rating.reviews,
                })

        return research
