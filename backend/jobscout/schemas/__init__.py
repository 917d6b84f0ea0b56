from jobscout.schemas.job import (
    AggregateMeta,
    AggregateResult,
    CompanyResearch,
    Job,
    Match,
    MatchStatusResponse,
    NormalizedFields,
    NormalizedJob,
    Review,
    ScoredJob,
    SearchCriteria,
    SearchMeta,
    SearchRequest,
    SearchResponse,
)

__all__ = [
    "AggregateMeta",
    "AggregateResult",
    "CompanyResearch",
    "Job",
    "Match",
    "MatchStatusResponse",
    "NormalizedFields",
    "NormalizedJob",
    "Review",
    "ScoredJob",
    "SearchCriteria",
    "SearchMeta",
    "SearchRequest",
    "SearchResponse",
]
