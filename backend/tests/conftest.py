"""
Shared test doubles for the search pipeline.

FakeCache mimics JsonCache semantics (JSON round-trip, SET NX) in memory.
FakeLLM counts calls and returns canned JSON. FakeSource serves canned
job pages and records every search it receives.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest

from jobscout.schemas import Job, SearchCriteria
from jobscout.services.sources.base import BaseJobSource, RateLimitCooldown


class FakeCache:
    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.writes: List[str] = []
        self.fail = False

    async def get_json(self, key: str) -> Optional[Any]:
        if self.fail or key not in self.store:
            return None
        return json.loads(self.store[key])

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None, only_if_absent: bool = False) -> bool:
        if self.fail:
            return False
        if only_if_absent and key in self.store:
            return False
        self.store[key] = json.dumps(value, default=str)
        self.ttls[key] = ttl_seconds
        self.writes.append(key)
        return True

    async def delete_key(self, key: str) -> bool:
        return self.store.pop(key, None) is not None

    async def health_check(self) -> bool:
        return not self.fail

    def get_stats(self) -> Dict[str, Any]:
        return {}

    async def close(self) -> None:
        pass


class FakeLLM:
    """Stands in for LLMClient. `responses` maps agent name to a value or callable."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delay: float = 0.0):
        self.responses = responses or {}
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    def count(self, agent: str) -> int:
        return sum(1 for call in self.calls if call["agent"] == agent)

    async def complete_json(self, system_prompt: str, user_prompt: str, agent: str = "default", temperature: float = 0.1) -> Any:
        self.calls.append({"agent": agent, "system": system_prompt, "user": user_prompt})
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(agent)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(user_prompt)
        return response


class FakeSource(BaseJobSource):
    source = "fake"

    def __init__(self, handler: Optional[Callable[[SearchCriteria, int], List[Job]]] = None, cooldown: Optional[RateLimitCooldown] = None):
        super().__init__(cooldown)
        self.handler = handler or (lambda criteria, page: [])
        self.calls: List[Dict[str, Any]] = []

    async def search(self, criteria: SearchCriteria, page: int = 1) -> List[Job]:
        self.calls.append({"criteria": criteria, "page": page})
        return list(self.handler(criteria, page))


def make_job(job_id: str, **overrides) -> Job:
    data = {
        "id": job_id,
        "title": "Backend Developer",
        "company": "Acme",
        "location": "Austin, TX, US",
        "country": "US",
        "country_code": "us",
        "description": "Build APIs in Python.",
        "source": "linkedin",
        "posted_at": "2026-10-01T00:00:00Z",
    }
    data.update(overrides)
    return Job(**data)


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def profile():
    return {
        "profile_id": "p-1",
        "skills": ["Python", "FastAPI", "PostgreSQL"],
        "experience_years": 5,
        "preferred_locations": ["Austin"],
        "preference_work_modes": ["remote"],
        "inferred_preferences": {"work_mode_preference": "remote"},
    }
