"""
Profile Model - Candidate profile documents

Profiles are stored as a free-form JSON document so the resume parser and
preference editor can evolve independently of the schema. The search
pipeline reads the document through ProfileStore, which fronts this table
with a `profile:{id}` cache entry.

Document fields used by matching:
    - skills: list of skill names
    - experience_years: years of experience (number)
    - preferred_locations / preference_locations: preferred work locations
    - preference_work_modes: remote / hybrid / onsite
    - preferred_industries, target_companies, interests, roles
    - inferred_preferences: {work_mode_preference, focus_area, preferred_locations}
"""

from sqlalchemy import Column, String, JSON, DateTime
from sqlalchemy.sql import func
from jobscout.database import Base


class Profile(Base):
    """
    Stored candidate profile.

    Attributes:
        data: Profile document (skills, experience, preferences)
        recent_jobs: Up to five most recently surfaced jobs, newest first
    """

    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    data = Column(JSON, nullable=False, default=dict)
    recent_jobs = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
