"""
Glassdoor company ratings (via the glassdoor-real-time RapidAPI).

Flow per (company, mode, role):
    1. companies/search -> pick the employer whose name matches best
    2. companies/reviews -> up to two pages of reviews
    3. keep reviews whose job title matches the role (or engineering
       keywords), falling back to all reviews when none match
    4. average rating over all reviews, up to 3 reviews with sentiment

Results are cached under `glassdoor:{company}:{mode}:{role}`. Everything
here is best-effort: any upstream or parsing failure returns None and the
job is left undecorated.

The RapidAPI wrapper has returned several payload layouts over time; the
known ones are modelled explicitly below rather than searched for.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Union

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from jobscout.config import get_settings
from jobscout.schemas import Job, Review
from jobscout.services.cache import CacheNamespace, JsonCache
from jobscout.services.cache_keys import glassdoor_key

logger = logging.getLogger(__name__)

MAX_REVIEWS = 3
MAX_REVIEW_PAGES = 2
SNIPPET_CHARS = 280

ROLE_KEYWORDS = [
    "software", "developer", "engineer", "sde", "sdet", "programmer", "devops",
    "full stack", "frontend", "front end", "backend", "back end", "mobile developer",
    "ios developer", "android developer", "data engineer", "platform engineer",
]


# ==================== RapidAPI payload models ====================

class EmployerHit(BaseModel):
    id: Union[int, str] = Field(validation_alias=AliasChoices("id", "companyId", "employerId"))
    name: str = Field(validation_alias=AliasChoices("name", "shortName", "companyName", "employerName"))
    slug: Optional[str] = Field(default=None, validation_alias=AliasChoices("slug", "employerSlug", "nameUrl"))


class _EmployerResult(BaseModel):
    employer: EmployerHit


class _SearchData(BaseModel):
    employer_results: List[_EmployerResult] = Field(default_factory=list, alias="employerResults")
    employers: List[EmployerHit] = Field(default_factory=list)


class CompanySearchResponse(BaseModel):
    data: Union[List[EmployerHit], _SearchData] = Field(default_factory=list)

    def candidates(self) -> List[EmployerHit]:
        if isinstance(self.data, list):
            return self.data
        return [r.employer for r in self.data.employer_results] + self.data.employers


class RawReview(BaseModel):
    review_id: Optional[Union[int, str]] = Field(default=None, validation_alias=AliasChoices("reviewId", "id"))
    job_title: Optional[str] = Field(default=None, validation_alias=AliasChoices("jobTitle", "job_title"))
    headline: Optional[str] = Field(default=None, validation_alias=AliasChoices("headline", "reviewTitle", "title"))
    summary: Optional[str] = None
    pros: Optional[str] = None
    cons: Optional[str] = None
    advice: Optional[str] = None
    rating: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("ratingOverall", "overallRating", "rating_overall")
    )
    published_at: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("reviewDateTime", "reviewDate", "date")
    )
    link: Optional[str] = Field(default=None, validation_alias=AliasChoices("reviewLink", "link", "url"))

    @field_validator("job_title", mode="before")
    @classmethod
    def _unwrap_text(cls, value: Any) -> Any:
        # Newer payloads nest the title as {"text": "...", "id": ...}
        if isinstance(value, dict):
            return value.get("text") or value.get("name")
        return value


class _ReviewsData(BaseModel):
    reviews: List[RawReview] = Field(
        default_factory=list, validation_alias=AliasChoices("reviews", "employerReviews", "items")
    )


class ReviewsResponse(BaseModel):
    data: Optional[_ReviewsData] = None
    reviews: List[RawReview] = Field(
        default_factory=list, validation_alias=AliasChoices("reviews", "employerReviews")
    )

    def all_reviews(self) -> List[RawReview]:
        return (self.data.reviews if self.data else []) or self.reviews


class GlassdoorRating(BaseModel):
    score: Optional[float] = None
    mode: str = "company"
    company: str
    total_reviews: int = 0
    reviews: List[Review] = Field(default_factory=list)
    source: str = "glassdoor-rapidapi"


# ==================== Helpers ====================

def sentiment_for_rating(rating: Optional[float]) -> str:
    if rating is None:
        return "neutral"
    if rating >= 4:
        return "positive"
    if rating >= 3:
        return "neutral"
    return "negative"


def average_rating(reviews: List[RawReview]) -> Optional[float]:
    ratings = [r.rating for r in reviews if r.rating is not None]
    if not ratings:
        return None
    return round(sum(ratings) / len(ratings), 1)


def select_relevant_reviews(reviews: List[RawReview], role: str) -> List[RawReview]:
    keywords = ([role] if role else []) + ROLE_KEYWORDS
    matched = [
        r for r in reviews
        if r.job_title and any(k in r.job_title.lower() for k in keywords)
    ]
    return matched or reviews


def _slugify(name: str) -> Optional[str]:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return slug or None


def pick_employer(candidates: List[EmployerHit], company: str) -> Optional[EmployerHit]:
    if not candidates:
        return None
    wanted = company.strip().lower()
    for candidate in candidates:
        if candidate.name.strip().lower() == wanted:
            return candidate
    for candidate in candidates:
        name = candidate.name.strip().lower()
        if name and (wanted in name or name in wanted):
            return candidate
    return candidates[0]


def to_review(raw: RawReview, company: str, fallback_rating: Optional[float], slug: Optional[str]) -> Review:
    rating = round(raw.rating, 1) if raw.rating else fallback_rating
    link = raw.link
    if not link and slug and raw.review_id:
        link = f"https://www.glassdoor.com/Reviews/{slug}-Reviews-E{raw.review_id}.htm"
    snippet = next((t for t in (raw.summary, raw.pros, raw.cons, raw.advice) if t and t.strip()), "")

    return Review(
        title=next((t for t in (raw.headline, raw.job_title) if t and t.strip()), f"{company} review"),
        sentiment=sentiment_for_rating(rating),
        snippet=snippet[:SNIPPET_CHARS],
        link=link,
        published_at=raw.published_at or datetime.now(timezone.utc).isoformat(),
        rating=rating,
        job_title=raw.job_title,
        pros=raw.pros,
        cons=raw.cons,
    )


class GlassdoorService:
    def __init__(
        self,
        cache: JsonCache,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: Optional[int] = None,
    ):
        settings = get_settings()
        self.cache = cache
        self.api_key = settings.glassdoor_rapidapi_key if api_key is None else api_key
        self.host = host or settings.glassdoor_rapidapi_host
        self.cache_ttl = cache_ttl or CacheNamespace.GLASSDOOR.ttl
        self._client = client

    async def attach_rating(self, job: Job, mode: str = "company") -> Job:
        """Return a copy of the job decorated with rating and reviews, or the job unchanged."""
        if not job.company:
            return job
        try:
            rating = await self.fetch_rating(job.company, mode, job.title)
        except Exception as e:
            logger.warning(f"Glassdoor rating failed for {job.company}: {e}")
            return job
        if rating is None:
            return job
        return job.model_copy(update={
            "rating": rating.score,
            "review_mode": rating.mode,
            "reviews": rating.reviews,
        })

    async def fetch_rating(self, company: str, mode: str = "company", role: str = "") -> Optional[GlassdoorRating]:
        normalized_role = (role or "").strip().lower()
        key = glassdoor_key(company, mode, normalized_role)

        cached = await self.cache.get_json(key)
        if cached:
            try:
                return GlassdoorRating.model_validate(cached)
            except ValidationError:
                logger.warning(f"Ignoring malformed cached Glassdoor rating {key}")

        if not self.api_key:
            logger.debug("GLASSDOOR_RAPIDAPI_KEY not configured, skipping ratings")
            return None

        try:
            rating = await self._fetch(company, mode, normalized_role)
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.warning(f"Glassdoor request failed for {company}: {e}")
            return None

        if rating is not None:
            await self.cache.set_json(key, rating.model_dump(mode="json"), self.cache_ttl)
        return rating

    async def _get(self, client: httpx.AsyncClient, path: str, params: dict) -> Any:
        response = await client.get(
            f"https://{self.host}/{path}",
            params=params,
            headers={"x-rapidapi-key": self.api_key, "x-rapidapi-host": self.host},
            timeout=30.0,
        )
        response.raise_for_status()
        return response.json()

    async def _fetch(self, company: str, mode: str, role: str) -> Optional[GlassdoorRating]:
        if self._client is not None:
            return await self._fetch_with(self._client, company, mode, role)
        async with httpx.AsyncClient() as client:
            return await self._fetch_with(client, company, mode, role)

    async def _fetch_with(
        self, client: httpx.AsyncClient, company: str, mode: str, role: str
    ) -> Optional[GlassdoorRating]:
        search = CompanySearchResponse.model_validate(
            await self._get(client, "companies/search", {"query": company})
        )
        employer = pick_employer(search.candidates(), company)
        if employer is None:
            logger.info(f"No Glassdoor employer found for {company}")
            return None

        reviews: List[RawReview] = []
        for page in range(1, MAX_REVIEW_PAGES + 1):
            try:
                payload = await self._get(client, "companies/reviews", {"companyId": str(employer.id), "page": page})
            except httpx.HTTPStatusError as e:
                # Page past the end
                if e.response.status_code == 400 and page > 1:
                    break
                raise
            page_reviews = ReviewsResponse.model_validate(payload).all_reviews()
            if not page_reviews:
                break
            reviews.extend(page_reviews)

        if not reviews:
            logger.info(f"No Glassdoor reviews found for {company}")
            return None

        relevant = select_relevant_reviews(reviews, role)
        score = average_rating(reviews)
        slug = employer.slug or _slugify(employer.name)

        return GlassdoorRating(
            score=score,
            mode=mode,
            company=company,
            total_reviews=len(reviews),
            reviews=[to_review(r, company, score, slug) for r in relevant[:MAX_REVIEWS]],
        )
