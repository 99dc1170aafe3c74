"""
Shared dependencies for the application.

Provides dependency injection functions used across routers. Services are
built per request around the request's database session.
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from .database import get_db
from .infrastructure.job_feed_client import JobFeedClient
from .services.announcement_service import AnnouncementService
from .services.jobs_service import JobsService
from .services.problem_service import ProblemService
from .services.progress_service import ProgressService
from .services.sheet_service import SheetService

# Global feed client instance (set by main app)
_job_feed_client: Optional[JobFeedClient] = None


def set_job_feed_client(client: JobFeedClient) -> None:
    """
    Set the global jobs feed client.

    Called by main app during startup.
    """
    global _job_feed_client
    _job_feed_client = client


def get_job_feed_client() -> JobFeedClient:
    global _job_feed_client
    if _job_feed_client is None:
        _job_feed_client = JobFeedClient()
    return _job_feed_client


def get_progress_service(db: Session = Depends(get_db)) -> ProgressService:
    return ProgressService(db)


def get_problem_service(
    db: Session = Depends(get_db),
    progress_service: ProgressService = Depends(get_progress_service),
) -> ProblemService:
    return ProblemService(db, progress_service=progress_service)


def get_sheet_service(
    db: Session = Depends(get_db),
    progress_service: ProgressService = Depends(get_progress_service),
) -> SheetService:
    return SheetService(db, progress_service=progress_service)


def get_announcement_service(db: Session = Depends(get_db)) -> AnnouncementService:
    return AnnouncementService(db)


def get_jobs_service(
    db: Session = Depends(get_db),
    feed_client: JobFeedClient = Depends(get_job_feed_client),
) -> JobsService:
    return JobsService(db, feed_client=feed_client)
