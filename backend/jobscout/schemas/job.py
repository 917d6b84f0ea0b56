"""
Job, match and search payload schemas.

Job-shaped payloads are serialized in camelCase (externalUrl, postedAt,
matchCacheKey, ...) because that is what the web client consumes. Python
code reads and writes them by field name.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Review(CamelModel):
    title: str
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    snippet: str = ""
    author: str = "Glassdoor Reviewer"
    link: Optional[str] = None
    published_at: Optional[str] = None
    rating: Optional[float] = None
    job_title: Optional[str] = None
    pros: Optional[str] = None
    cons: Optional[str] = None


class Job(CamelModel):
    """Canonical job listing produced by every job source."""

    id: str
    title: str = ""
    company: str = ""
    location: str = "Unknown"
    remote: bool = False
    country: Optional[str] = None
    country_code: Optional[str] = None
    description: str = ""
    source: str = "jsearch"
    external_url: Optional[str] = None
    posted_at: Optional[str] = None
    employment_type: Optional[str] = None
    salary: Optional[str] = None

    # Company rating decoration (best-effort)
    rating: Optional[float] = None
    review_mode: Optional[str] = None
    reviews: List[Review] = Field(default_factory=list)


class NormalizedFields(BaseModel):
    title: Optional[str] = None
    required_skills: List[str] = Field(default_factory=list)
    nice_to_have: List[str] = Field(default_factory=list)
    level: Optional[str] = None
    employment_type: Optional[str] = None
    work_mode: Optional[str] = None
    red_flags: List[str] = Field(default_factory=list)
    green_flags: List[str] = Field(default_factory=list)
    salary_range: Optional[str] = None
    summary: str = ""


class NormalizedJob(Job):
    normalized: NormalizedFields = Field(default_factory=NormalizedFields)


class Match(BaseModel):
    status: Literal["pending", "ready"]
    score: int = Field(ge=0, le=100)
    summary: str = ""
    missing_skills: List[str] = Field(default_factory=list)
    reasoning: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


# ==================== Aggregation ====================

class SearchCriteria(CamelModel):
    query: str = ""
    location: Optional[str] = None
    limit: int = 50
    remote_only: bool = False
    allow_remote: bool = False
    work_modes: List[str] = Field(default_factory=list)
    employment_types: List[str] = Field(default_factory=list)
    job_requirements: List[str] = Field(default_factory=list)
    preferred_locations: List[str] = Field(default_factory=list)
    date_posted: str = "week"
    sort_by: str = "date_posted"
    order: str = "desc"


class AggregateMeta(CamelModel):
    total: int = 0
    returned: int = 0
    agent: Dict[str, Any] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    source_counts: Dict[str, int] = Field(default_factory=dict)


class AggregateResult(CamelModel):
    results: List[Job] = Field(default_factory=list)
    meta: AggregateMeta = Field(default_factory=AggregateMeta)


# ==================== Search API ====================

class SearchRequest(BaseModel):
    role: str = Field(min_length=2)
    location: Optional[str] = None
    page: int = Field(default=1, ge=1)
    profile_id: Optional[str] = None
    preference_notes: Optional[str] = None


class ScoredJob(NormalizedJob):
    """Job entry in a search page. Match fields are empty when no profile was given."""

    match: Optional[Match] = None
    base_score: Optional[int] = None
    base_score_details: Optional[Dict[str, Any]] = None
    match_cache_key: Optional[str] = None


class SearchMeta(CamelModel):
    total: int = 0
    available_total: int = 0
    page: int = 1
    page_size: int = 5
    total_pages: int = 0
    preference: Optional[str] = None
    returned: int = 0
    matched: bool = False
    async_match_explanations: bool = False
    error: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    source_counts: Dict[str, int] = Field(default_factory=dict)
    filters: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    data: List[ScoredJob]
    meta: SearchMeta


class MatchStatusResponse(BaseModel):
    results: Dict[str, Optional[Match]]


class CompanyResearch(CamelModel):
    company_name: str
    summary: str = ""
    tech_stack: List[str] = Field(default_factory=list)
    company_type: Optional[str] = None
    culture_highlights: List[str] = Field(default_factory=list)
    talking_points: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    green_flags: List[str] = Field(default_factory=list)
    rating: Optional[float] = None
    review_mode: Optional[str] = None
    reviews: List[Review] = Field(default_factory=list)
    source: Literal["llm", "fallback"] = "fallback"
