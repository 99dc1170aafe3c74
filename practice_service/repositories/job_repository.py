"""Job posting persistence and the feed fetch log."""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import RepositoryException
from ..models import Job, JobFetchLog
from .base import BaseRepository

logger = structlog.get_logger(__name__)


class JobRepository(BaseRepository):
    """SQLAlchemy repository for aggregated jobs."""

    def list_active(self, now: datetime) -> List[Job]:
        """Unexpired postings, most recently fetched first."""
        try:
            return (
                self.db.query(Job)
                .filter(Job.expires_at > now)
                .order_by(Job.fetched_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Error fetching jobs", error=str(e))
            raise RepositoryException("Failed to fetch jobs", str(e))

    def search_active(self, now: datetime, term: str) -> List[Job]:
        pattern = f"%{term}%"
        try:
            return (
                self.db.query(Job)
                .filter(
                    Job.expires_at > now,
                    or_(
                        Job.title.ilike(pattern),
                        Job.company.ilike(pattern),
                        Job.location.ilike(pattern),
                        Job.job_description.ilike(pattern),
                        Job.education_and_skills.ilike(pattern),
                    ),
                )
                .order_by(Job.fetched_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Error searching jobs", term=term, error=str(e))
            raise RepositoryException("Failed to search jobs", str(e))

    def get(self, job_id: str) -> Optional[Job]:
        try:
            return self.db.query(Job).filter(Job.id == job_id).first()
        except SQLAlchemyError as e:
            logger.error("Error fetching job", job_id=job_id, error=str(e))
            raise RepositoryException("Failed to fetch job", str(e))

    def find_by_company_title(self, company: str, title: str) -> Optional[Job]:
        return (
            self.db.query(Job)
            .filter(Job.company == company, Job.title == title)
            .first()
        )

    def delete(self, job: Job) -> None:
        self.db.delete(job)
        self.commit("Failed to delete job")

    def delete_expired(self, now: datetime) -> int:
        try:
            count = (
                self.db.query(Job)
                .filter(Job.expires_at <= now)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error deleting expired jobs", error=str(e))
            raise RepositoryException("Failed to clean up jobs", str(e))
        self.commit("Failed to clean up jobs")
        return count

    # Fetch log

    def get_fetch_log(self) -> Optional[JobFetchLog]:
        try:
            return self.db.query(JobFetchLog).order_by(JobFetchLog.id.asc()).first()
        except SQLAlchemyError as e:
            logger.error("Error reading job fetch log", error=str(e))
            raise RepositoryException("Failed to read job fetch log", str(e))

    def record_fetch(self, month: str, when: datetime) -> JobFetchLog:
        """Count one feed fetch, resetting the counter when the month changed."""
        log = self.get_fetch_log()
        if log is None:
            log = JobFetchLog(month=month, request_count=0)
            self.db.add(log)
        if log.month != month:
            log.month = month
            log.request_count = 0
        log.request_count = (log.request_count or 0) + 1
        log.last_fetch_at = when
        self.commit("Failed to record job fetch")
        return log
