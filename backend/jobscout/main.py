"""
JobScout API - Main Application Entry Point

This module initializes the FastAPI application with:
- Logging configuration
- Database schema initialization (profile store)
- Prometheus metrics middleware
- CORS middleware for frontend communication
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup/shutdown)
    ├── Prometheus Middleware (/metrics)
    ├── CORS Middleware
    └── API Router (/api)
        ├── /jobs/search - Aggregated, scored job search
        ├── /jobs/match-status - Poll pending match explanations
        ├── /jobs/research - Company research briefs
        └── /stats - Cache and pipeline statistics
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobscout.api import api_router
from jobscout.config import get_settings
from jobscout.database import init_db
from jobscout.middleware.metrics import setup_metrics
from jobscout.services.cache import get_cache
from jobscout.services.search import peek_search_service

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle events.

    Startup:
        1. Initialize database tables

    Shutdown:
        1. Let in-flight match explanations finish writing to the cache
        2. Close the Redis connection
    """
    await init_db()
    yield
    service = peek_search_service()
    if service is not None:
        await service.orchestrator.drain()
    cache = await get_cache()
    await cache.close()


app = FastAPI(
    title="JobScout API",
    description="Job aggregation with cached, asynchronous match explanations",
    version="0.1.0",
    lifespan=lifespan,
)

setup_metrics(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    cache = await get_cache()
    redis_ok = await cache.health_check()
    return {"status": "healthy" if redis_ok else "degraded", "redis": redis_ok}
