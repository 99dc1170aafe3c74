"""
Database models for practice service.

This module defines SQLAlchemy ORM models for sheets, the global problem
collection, per-user progress, announcements and aggregated jobs.

Nested, document-shaped data (sheet sections, progress contexts, tags,
announcement links) lives in JSON columns. Those columns are always
rewritten as a whole value; callers never mutate the loaded structure
in place.
"""

from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

from .helpers import generate_id, isoformat, utcnow

Base: Any = declarative_base()


class Sheet(Base):
    """
    Curated problem sheet.

    Attributes:
        id: Sheet identifier (generated when not supplied)
        name: Display name
        description: Free text description
        sections: Ordered list of section documents, each holding
            ``id``, ``name``, ``description`` and ``subsections``.
            A subsection holds ``problem_ids`` (references into the
            problem collection) and the legacy ``problems`` list
            (embedded problem objects or bare id strings).
        created_by: User id of the admin that created the sheet
    """

    __tablename__ = "sheets"

    id = Column(String(64), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    sections = Column(JSON, nullable=False, default=list)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "sections": self.sections or [],
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class Problem(Base):
    """
    Global problem referenced from sheet subsections.

    Attributes:
        id: Problem identifier
        title: Problem title
        practice_link: Link to the judge / practice page
        editorial_link: Link to the written editorial
        youtube_link: Link to a video walkthrough
        notes_link: Link to notes
        difficulty: Easy, Medium or Hard
        platform: Judge name (LeetCode, GFG, ...)
        tags: Topic tags
    """

    __tablename__ = "problems"

    id = Column(String(64), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False)
    practice_link = Column(Text, nullable=False, default="")
    editorial_link = Column(Text, nullable=False, default="")
    youtube_link = Column(Text, nullable=False, default="")
    notes_link = Column(Text, nullable=False, default="")
    difficulty = Column(String(16), nullable=False, default="Easy")
    platform = Column(String(100), nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "practice_link": self.practice_link or "",
            "editorial_link": self.editorial_link or "",
            "youtube_link": self.youtube_link or "",
            "notes_link": self.notes_link or "",
            "difficulty": self.difficulty,
            "platform": self.platform or "",
            "tags": list(self.tags or []),
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class UserProgress(Base):
    """
    Completion and revision state of one problem for one user.

    A problem can appear in several subsections; ``contexts`` and
    ``revision_contexts`` record the locations the state applies to.
    The flat ``sheet_id``/``section_id``/``subsection_id`` columns hold the
    location of the first toggle and serve entries written before contexts
    existed.
    """

    __tablename__ = "user_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    problem_id = Column(String(64), nullable=False, index=True)

    completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)
    difficulty = Column(String(16), nullable=True)

    sheet_id = Column(String(64), nullable=True)
    section_id = Column(String(64), nullable=True)
    subsection_id = Column(String(64), nullable=True)
    contexts = Column(JSON, nullable=False, default=list)

    marked_for_revision = Column(Boolean, nullable=False, default=False)
    revision_marked_at = Column(DateTime, nullable=True)
    revision_contexts = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "problem_id", name="uq_user_progress_user_problem"),
    )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "problem_id": self.problem_id,
            "completed": bool(self.completed),
            "completed_at": isoformat(self.completed_at),
            "difficulty": self.difficulty,
            "sheet_id": self.sheet_id,
            "section_id": self.section_id,
            "subsection_id": self.subsection_id,
            "contexts": list(self.contexts or []),
            "marked_for_revision": bool(self.marked_for_revision),
            "revision_marked_at": isoformat(self.revision_marked_at),
            "revision_contexts": list(self.revision_contexts or []),
            "updated_at": isoformat(self.updated_at),
        }


class Announcement(Base):
    """Admin announcement shown on the dashboard."""

    __tablename__ = "announcements"

    id = Column(String(64), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="info")
    priority = Column(String(16), nullable=False, default="medium")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    author = Column(String(255), nullable=False, default="Admin")
    links = Column(JSON, nullable=False, default=list)
    read_time = Column(String(32), nullable=False, default="2 min read")
    expires_at = Column(DateTime, nullable=True)
    created_by = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "type": self.type,
            "priority": self.priority,
            "is_active": bool(self.is_active),
            "author": self.author,
            "links": list(self.links or []),
            "read_time": self.read_time,
            "expires_at": isoformat(self.expires_at),
            "created_by": self.created_by,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }


class AnnouncementReadState(Base):
    """Per-user timestamp of the last announcements check."""

    __tablename__ = "announcement_read_state"

    user_id = Column(String(128), primary_key=True)
    last_checked_at = Column(DateTime, nullable=False, default=utcnow)


class Job(Base):
    """
    Aggregated job posting.

    Postings are unique on ``(company, title)``; a re-fetch refreshes the
    row and pushes ``expires_at`` forward.
    """

    __tablename__ = "jobs"

    id = Column(String(64), primary_key=True, default=generate_id)
    title = Column(String(500), nullable=False)
    company = Column(String(255), nullable=False)
    about_company = Column(Text, nullable=False, default="")
    job_description = Column(Text, nullable=False, default="")
    job_title = Column(String(500), nullable=False, default="")
    job_type = Column(String(64), nullable=False, default="Full Time")
    location = Column(String(255), nullable=False, default="Not specified")
    experience = Column(String(128), nullable=False, default="Not specified")
    role_and_responsibility = Column(Text, nullable=False, default="")
    education_and_skills = Column(Text, nullable=False, default="")
    apply_link = Column(Text, nullable=False, default="")
    salary = Column(String(128), nullable=False, default="Not disclosed")
    posted_date = Column(DateTime, nullable=True)
    fetched_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("company", "title", name="uq_jobs_company_title"),
        Index("idx_jobs_expires_fetched", "expires_at", "fetched_at"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "company": self.company,
            "about_company": self.about_company,
            "job_description": self.job_description,
            "job_title": self.job_title,
            "job_type": self.job_type,
            "location": self.location,
            "experience": self.experience,
            "role_and_responsibility": self.role_and_responsibility,
            "education_and_skills": self.education_and_skills,
            "apply_link": self.apply_link,
            "salary": self.salary,
            "posted_date": isoformat(self.posted_date),
            "fetched_at": isoformat(self.fetched_at),
            "expires_at": isoformat(self.expires_at),
        }


class JobFetchLog(Base):
    """
    Fetch guard bookkeeping for the jobs feed.

    Attributes:
        month: Calendar month of the counter, ``YYYY-MM``
        request_count: Feed fetches made during ``month``
        last_fetch_at: Time of the last successful fetch
    """

    __tablename__ = "job_fetch_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    month = Column(String(7), nullable=False)
    request_count = Column(Integer, nullable=False, default=0)
    last_fetch_at = Column(DateTime, nullable=True)
