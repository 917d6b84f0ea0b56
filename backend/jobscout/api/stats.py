from fastapi import APIRouter, Depends

from jobscout.services.search import SearchService, get_search_service

router = APIRouter()


@router.get("")
async def get_stats(service: SearchService = Depends(get_search_service)):
    return {
        "cache": service.cache.get_stats(),
        "pending_matches": service.orchestrator.pending_count,
        "source_cooling_down": service.aggregator.source.is_cooling_down(),
    }
