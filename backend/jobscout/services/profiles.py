"""
Profile store - profile documents fronted by the `profile:{id}` cache.

Profiles are created by the resume/preferences flow (outside this
service); the search pipeline only reads them and records the jobs it
surfaced most recently.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobscout.database import async_session
from jobscout.models import Profile
from jobscout.schemas import Job
from jobscout.services.cache import CacheNamespace, JsonCache
from jobscout.services.cache_keys import profile_key

logger = logging.getLogger(__name__)

MAX_RECENT_JOBS = 5


def _recent_job_key(entry: Mapping[str, Any]) -> Optional[str]:
    parts = [
        str(entry.get(field) or "").strip()
        for field in ("id", "title", "company", "location")
    ]
    composed = "|".join(p for p in parts if p)
    return composed.lower() or None


def build_recent_jobs(jobs: Iterable[Job], existing: Iterable[Mapping[str, Any]] = ()) -> List[Dict[str, Any]]:
    """
    Merge newly surfaced jobs in front of the stored list.

    Jobs without a title or company are skipped; duplicates are keyed by
    id|title|company|location. At most MAX_RECENT_JOBS entries are kept.
    """
    captured_at = datetime.now(timezone.utc).isoformat()
    combined: List[Dict[str, Any]] = []
    seen = set()

    for job in jobs:
        title = (job.title or "").strip()
        company = (job.company or "").strip()
        if not title or not company:
            continue
        entry = {
            "id": job.id,
            "title": title,
            "company": company,
            "location": (job.location or "").strip() or None,
            "externalUrl": job.external_url or None,
            "postedAt": job.posted_at,
            "source": job.source,
            "capturedAt": captured_at,
        }
        key = _recent_job_key(entry)
        if key and key not in seen:
            seen.add(key)
            combined.append(entry)

    for entry in existing:
        if not isinstance(entry, Mapping):
            continue
        key = _recent_job_key(entry)
        if key and key not in seen:
            seen.add(key)
            combined.append(dict(entry))

    return combined[:MAX_RECENT_JOBS]


class ProfileStore:
    def __init__(
        self,
        cache: JsonCache,
        session_factory: async_sessionmaker = async_session,
        cache_ttl: Optional[int] = None,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.cache_ttl = cache_ttl or CacheNamespace.PROFILE.ttl

    @staticmethod
    def _to_document(row: Profile) -> Dict[str, Any]:
        document = dict(row.data or {})
        document["profile_id"] = row.id
        if row.email and "email" not in document:
            document["email"] = row.email
        document["recent_jobs"] = list(row.recent_jobs or [])
        return document

    async def _get_row(self, session: AsyncSession, profile_id: str) -> Optional[Profile]:
        result = await session.execute(select(Profile).where(Profile.id == profile_id))
        return result.scalar_one_or_none()

    async def load_profile_by_id(self, profile_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not profile_id:
            return None

        key = profile_key(profile_id)
        cached = await self.cache.get_json(key)
        if cached:
            return cached

        async with self.session_factory() as session:
            row = await self._get_row(session, profile_id)

        if row is None:
            return None

        document = self._to_document(row)
        await self.cache.set_json(key, document, self.cache_ttl)
        return document

    async def save_profile(
        self,
        profile_id: str,
        data: Mapping[str, Any],
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            row = await self._get_row(session, profile_id)
            if row is None:
                row = Profile(id=profile_id, data=dict(data), email=email, recent_jobs=[])
                session.add(row)
            else:
                row.data = dict(data)
                if email:
                    row.email = email
            await session.commit()
            await session.refresh(row)
            document = self._to_document(row)

        await self.cache.delete_key(profile_key(profile_id))
        return document

    async def update_recent_jobs(self, profile_id: str, jobs: Iterable[Job]) -> Optional[List[Dict[str, Any]]]:
        jobs = list(jobs)
        if not profile_id or not jobs:
            return None

        async with self.session_factory() as session:
            row = await self._get_row(session, profile_id)
            if row is None:
                return None
            recent = build_recent_jobs(jobs, row.recent_jobs or [])
            if not recent:
                return None
            row.recent_jobs = recent
            await session.commit()
            await session.refresh(row)
            document = self._to_document(row)

        await self.cache.set_json(profile_key(profile_id), document, self.cache_ttl)
        logger.info(f"Stored {len(recent)} recent jobs for profile {profile_id}")
        return recent
