"""
Match Orchestration - fast placeholder now, rich explanation later

Each (profile, job) pair has one cache entry under
`match:{profile_key}:{job_key}` that moves through:

    absent --> pending (placeholder) --> ready (LLM or fallback explanation)

The search request never waits for an explanation. On a miss it writes a
placeholder built from the deterministic base score, schedules the
explanation as a background task on the running event loop, and returns
the placeholder. Clients poll the match-status endpoint until the entry
flips to ready.

Guarantees:
    - At most one background computation per match key in this process.
      The key is claimed in `_pending` before the first await after the
      cache miss and released in `finally` when the task ends.
    - ready never goes back to pending. Placeholders are written with
      SET NX, so a late placeholder cannot overwrite a ready entry.
    - A failed computation is logged and leaves the placeholder in place
      until its TTL expires; the next request that finds a pending entry
      with nothing in flight schedules it again.

The pending set is process-local. Two server processes can both compute
the same key; both results are valid and the last write wins.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from pydantic import ValidationError

from jobscout.middleware.metrics import record_match_explanation, update_matches_in_flight
from jobscout.schemas import Job, Match
from jobscout.services.cache import JsonCache
from jobscout.services.cache_keys import get_job_cache_key, match_key
from jobscout.services.match_explanation import MatchExplanationAgent

logger = logging.getLogger(__name__)

PENDING_SUMMARY = "Generating match explanation…"


def parse_match(value: Any) -> Optional[Match]:
    """Validate a cached match entry; entries without a status are ready."""
    if not isinstance(value, dict):
        return None
    data = dict(value)
    data.setdefault("status", "ready")
    try:
        return Match.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Discarding malformed cached match: {e}")
        return None


class MatchOrchestrator:
    """
    Owns the pending-match lifecycle for one process.

    Attributes:
        cache: Shared JSON cache
        agents: Pool of match explanation agents, picked round-robin by job index
        match_ttl: TTL in seconds for placeholder and ready entries
    """

    def __init__(
        self,
        cache: JsonCache,
        agents: List[MatchExplanationAgent],
        match_ttl: int = 900,
    ):
        if not agents:
            raise ValueError("MatchOrchestrator needs at least one agent")
        self.cache = cache
        self.agents = agents
        self.match_ttl = match_ttl
        self._pending: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    def build_pending_match(self, profile: Mapping[str, Any], job: Job, base_score: int) -> Match:
        agent = self.agents[0]
        return Match(
            status="pending",
            score=max(0, min(100, int(base_score))),
            summary=PENDING_SUMMARY,
            missing_skills=agent.get_missing_skills(profile, job),
            reasoning=agent.generate_basic_reasoning(profile, job),
            suggestions=[],
        )

    async def get_match_or_schedule(
        self,
        profile: Mapping[str, Any],
        profile_key: str,
        raw_job: Job,
        normalized_job: Job,
        agent_index: int,
        base_score: int,
    ) -> Match:
        """
        Return the cached match for a pair, or a placeholder while the
        explanation is computed in the background.
        """
        key = match_key(profile_key, get_job_cache_key(raw_job))

        cached = parse_match(await self.cache.get_json(key))
        if cached is not None:
            logger.info(f"Match cache hit {key} ({cached.status})")
            if cached.status == "pending" and key not in self._pending:
                self._pending.add(key)
                self._start(profile, normalized_job, agent_index, key)
            return cached

        placeholder = self.build_pending_match(profile, normalized_job, base_score)
        if key in self._pending:
            return placeholder

        # Claim before awaiting so concurrent requests see the key in flight
        self._pending.add(key)
        written = await self.cache.set_json(
            key, placeholder.model_dump(), self.match_ttl, only_if_absent=True
        )
        if written:
            logger.info(f"Match placeholder stored {key} (score={placeholder.score})")
        else:
            existing = parse_match(await self.cache.get_json(key))
            if existing is not None and existing.status == "ready":
                self._pending.discard(key)
                return existing

        self._start(profile, normalized_job, agent_index, key)
        return placeholder

    def _start(self, profile: Mapping[str, Any], job: Job, agent_index: int, key: str) -> None:
        logger.info(f"Scheduling async match explanation {key}")
        task = asyncio.get_running_loop().create_task(
            self._compute(profile, job, agent_index, key)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        update_matches_in_flight(len(self._pending))

    async def _compute(self, profile: Mapping[str, Any], job: Job, agent_index: int, key: str) -> None:
        agent = self.agents[abs(agent_index) % len(self.agents)]
        try:
            detailed = await agent.explain_match(profile, job)
            ready = Match(status="ready", **detailed)
            await self.cache.set_json(key, ready.model_dump(), self.match_ttl)
            record_match_explanation("ready")
            logger.info(f"Match explanation ready {key} (score={ready.score})")
        except Exception as e:
            record_match_explanation("failed")
            logger.error(f"Async match explanation failed for {key}: {e}")
        finally:
            self._pending.discard(key)
            update_matches_in_flight(len(self._pending))

    async def get_match_statuses(self, keys: Iterable[str]) -> Dict[str, Optional[Match]]:
        keys = list(keys)
        values = await asyncio.gather(*(self.cache.get_json(key) for key in keys))
        return {key: parse_match(value) for key, value in zip(keys, values)}

    async def drain(self) -> None:
        """Wait for every scheduled explanation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
