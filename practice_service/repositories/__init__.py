"""
Data access layer.

Each repository wraps a SQLAlchemy session. Storage errors are logged,
the session is rolled back and a ``RepositoryException`` with a fixed
message is raised.
"""

from .announcement_repository import AnnouncementRepository
from .job_repository import JobRepository
from .problem_repository import ProblemRepository
from .progress_repository import ProgressRepository
from .sheet_repository import SheetRepository

__all__ = [
    "AnnouncementRepository",
    "JobRepository",
    "ProblemRepository",
    "ProgressRepository",
    "SheetRepository",
]
