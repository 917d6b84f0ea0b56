import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from jobscout.schemas import CompanyResearch, MatchStatusResponse, SearchRequest, SearchResponse
from jobscout.services.search import SearchService, get_search_service

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_STATUS_KEYS = 25


def parse_match_keys(values: List[str]) -> List[str]:
    """Split comma-separated keys, keep `match:` keys only, dedupe, cap at 25."""
    keys: List[str] = []
    for value in values:
        for piece in value.split(","):
            piece = piece.strip()
            if piece.startswith("match:") and piece not in keys:
                keys.append(piece)
    return keys[:MAX_STATUS_KEYS]


@router.post("/search", response_model=SearchResponse)
async def search_jobs(
    request: SearchRequest,
    service: SearchService = Depends(get_search_service),
):
    try:
        return await service.search(request)
    except Exception as e:
        logger.error(f"Job search failed: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Internal server error")


@router.get("/match-status", response_model=MatchStatusResponse)
async def get_match_status(
    keys: Optional[List[str]] = Query(None),
    key: Optional[List[str]] = Query(None),
    match_key: Optional[List[str]] = Query(None),
    service: SearchService = Depends(get_search_service),
):
    raw = keys or key or match_key
    if not raw:
        raise HTTPException(status_code=400, detail="keys query parameter required")

    unique_keys = parse_match_keys(raw)
    if not unique_keys:
        raise HTTPException(status_code=400, detail="No valid match keys provided")

    try:
        results = await service.get_match_statuses(unique_keys)
    except Exception as e:
        logger.error(f"Match status lookup failed: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to fetch match status")

    return MatchStatusResponse(results=results)


@router.get("/research", response_model=CompanyResearch)
async def get_company_research(
    company: Optional[str] = Query(None),
    profile_id: Optional[str] = Query(None),
    service: SearchService = Depends(get_search_service),
):
    if not company or not company.strip():
        raise HTTPException(status_code=400, detail="Company name required")

    try:
        return await service.research_company(company.strip(), profile_id)
    except Exception as e:
        logger.error(f"Company research failed for {company}: {e}")
        raise HTTPException(status_code=500, detail=str(e) or "Failed to research company")
