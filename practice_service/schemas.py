"""
Pydantic models for request/response schemas.

Request bodies are validated here; responses are wrapped in the
``{"success": ..., "data": ...}`` envelope by the routers.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field

Difficulty = Literal["Easy", "Medium", "Hard"]

# Sheet structure


class SubsectionModel(BaseModel):
    """Subsection as stored inside a sheet."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    problem_ids: List[str] = Field(default_factory=list)
    problems: List[Union[str, dict]] = Field(default_factory=list)


class SectionModel(BaseModel):
    """Section as stored inside a sheet."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    subsections: List[SubsectionModel] = Field(default_factory=list)


class SheetCreate(BaseModel):
    """Model for creating a sheet."""

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    sections: List[SectionModel] = Field(default_factory=list)


class SheetUpdate(BaseModel):
    """Model for updating a sheet. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    sections: Optional[List[SectionModel]] = None


class SectionCreate(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""


class SectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class SubsectionCreate(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""


class SubsectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class ProblemLink(BaseModel):
    """Reference to a global problem being linked into a subsection."""

    problem_id: str = Field(..., min_length=1)


# Problems


class ProblemCreate(BaseModel):
    """Model for creating a problem, globally or embedded in a subsection."""

    id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=500)
    practice_link: str = ""
    editorial_link: str = ""
    youtube_link: str = ""
    notes_link: str = ""
    difficulty: Difficulty = "Easy"
    platform: str = ""
    tags: List[str] = Field(default_factory=list)


class ProblemUpdate(BaseModel):
    """Partial problem update."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    practice_link: Optional[str] = None
    editorial_link: Optional[str] = None
    youtube_link: Optional[str] = None
    notes_link: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    platform: Optional[str] = None
    tags: Optional[List[str]] = None


class BatchProblemsRequest(BaseModel):
    """
    Batch lookup body.

    ``problem_ids`` is typed loosely so a non-list value is reported as a
    400 domain error instead of a schema error.
    """

    problem_ids: Any = None


# Progress


class ProgressToggle(BaseModel):
    """Completion toggle. Location fields are checked by the service."""

    user_id: Optional[str] = None
    problem_id: Optional[str] = None
    sheet_id: Optional[str] = None
    section_id: Optional[str] = None
    subsection_id: Optional[str] = None
    difficulty: Optional[str] = None
    completed: bool = True


class RevisionToggle(BaseModel):
    """Revision-mark toggle."""

    user_id: Optional[str] = None
    problem_id: Optional[str] = None
    sheet_id: Optional[str] = None
    section_id: Optional[str] = None
    subsection_id: Optional[str] = None
    difficulty: Optional[str] = None
    marked_for_revision: bool = True


# Announcements


class AnnouncementLinkModel(BaseModel):
    title: str = ""
    url: str = Field(..., min_length=1)


class AnnouncementCreate(BaseModel):
    """Model for creating an announcement."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1)
    type: str = "info"
    priority: Literal["low", "medium", "high"] = "medium"
    is_active: bool = True
    author: str = "Admin"
    links: List[AnnouncementLinkModel] = Field(default_factory=list)
    read_time: str = "2 min read"
    expires_at: Optional[datetime] = None


class AnnouncementUpdate(BaseModel):
    """Partial announcement update."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    content: Optional[str] = Field(None, min_length=1)
    type: Optional[str] = None
    priority: Optional[Literal["low", "medium", "high"]] = None
    is_active: Optional[bool] = None
    author: Optional[str] = None
    links: Optional[List[AnnouncementLinkModel]] = None
    read_time: Optional[str] = None
    expires_at: Optional[datetime] = None


# Jobs


class JobsImportRequest(BaseModel):
    """Admin import of raw postings; field names are normalized on store."""

    jobs: List[dict] = Field(default_factory=list)


# Common


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    error: str
    message: str


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
