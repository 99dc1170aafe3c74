"""
Tech jobs aggregation.

Postings arrive from the jobs feed or an admin import, are upserted on
``(company, title)`` and expire ``JOB_TTL_DAYS`` after their last fetch.
The fetch guard caps how often the feed is polled: at most
``JOBS_MONTHLY_REQUEST_LIMIT`` fetches per calendar month, spaced
``JOBS_FETCH_INTERVAL_DAYS`` apart.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..exceptions import NotFoundException, ValidationException
from ..helpers import generate_id, to_naive_utc, utcnow
from ..infrastructure.job_feed_client import JobFeedClient
from ..metrics import track_jobs_fetch, track_jobs_stored
from ..models import Job
from ..repositories.job_repository import JobRepository

logger = structlog.get_logger(__name__)

TECH_KEYWORDS = [
    "software", "developer", "engineer", "programmer", "coding",
    "data structures", "algorithms", "backend", "frontend",
    "full stack", "java", "python", "javascript", "react", "node",
    "dsa", "software development", "sde",
]


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str) and value:
        try:
            return to_naive_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def normalize_job(raw: dict) -> Dict[str, Any]:
    """Apply storage defaults to a posting."""
    title = raw.get("title") or raw.get("job_title") or "Untitled"
    return {
        "title": title,
        "company": raw.get("company") or "Unknown Company",
        "about_company": raw.get("about_company") or "",
        "job_description": raw.get("job_description") or "",
        "job_title": raw.get("job_title") or title,
        "job_type": raw.get("job_type") or "Full Time",
        "location": raw.get("location") or "Not specified",
        "experience": raw.get("experience") or "Not specified",
        "role_and_responsibility": raw.get("role_and_responsibility") or "",
        "education_and_skills": raw.get("education_and_skills") or "",
        "apply_link": raw.get("apply_link") or "",
        "salary": raw.get("salary") or "Not disclosed",
        "posted_date": _parse_datetime(raw.get("posted_date")) or utcnow(),
    }


def _is_tech(job: Job) -> bool:
    text = " ".join(
        [job.title or "", job.job_description or "", job.education_and_skills or "", job.job_title or ""]
    ).lower()
    return any(keyword in text for keyword in TECH_KEYWORDS)


def should_fetch(
    last_fetch_at: Optional[datetime],
    month: Optional[str],
    request_count: int,
    now: datetime,
    interval_days: int,
    monthly_limit: int,
) -> bool:
    """
    Fetch guard.

    Fetch when nothing was fetched yet, when the month rolled over, or when
    the interval has passed and this month's budget is not used up.
    """
    if last_fetch_at is None or month is None:
        return True
    if month != now.strftime("%Y-%m"):
        return True
    if request_count >= monthly_limit:
        return False
    return now - last_fetch_at >= timedelta(days=interval_days)


class JobsService:
    """Stores, queries and refreshes aggregated job postings."""

    def __init__(self, db: Session, feed_client: Optional[JobFeedClient] = None):
        self.repository = JobRepository(db)
        self.db = db
        self.feed_client = feed_client or JobFeedClient()

    def store_jobs(self, jobs: Any) -> Dict[str, int]:
        """
        Upsert postings on ``(company, title)``.

        Existing rows are refreshed and their expiry pushed forward. A
        posting that fails to store is counted in ``errors``.
        """
        if not isinstance(jobs, list):
            raise ValidationException("Jobs data must be an array", field="jobs")

        inserted = updated = errors = 0
        for raw in jobs:
            try:
                data = normalize_job(raw)
                now = utcnow()
                expires_at = now + timedelta(days=settings.JOB_TTL_DAYS)
                existing = self.repository.find_by_company_title(data["company"], data["title"])
                if existing is not None:
                    for key, value in data.items():
                        setattr(existing, key, value)
                    existing.fetched_at = now
                    existing.expires_at = expires_at
                    self.db.commit()
                    updated += 1
                else:
                    self.db.add(
                        Job(
                            id=str(raw["id"]) if raw.get("id") else generate_id(),
                            fetched_at=now,
                            expires_at=expires_at,
                            **data,
                        )
                    )
                    self.db.commit()
                    inserted += 1
            except (SQLAlchemyError, AttributeError, TypeError) as e:
                self.db.rollback()
                errors += 1
                logger.warning("Failed to store job", error=str(e))

        track_jobs_stored(inserted, updated, errors)
        logger.info("Jobs stored", inserted=inserted, updated=updated, errors=errors)
        return {"inserted": inserted, "updated": updated, "errors": errors}

    def get_all_jobs(self) -> List[dict]:
        return [job.to_dict() for job in self.repository.list_active(utcnow())]

    def get_tech_jobs(self) -> List[dict]:
        return [job.to_dict() for job in self.repository.list_active(utcnow()) if _is_tech(job)]

    def search_jobs(self, term: str) -> List[dict]:
        term = (term or "").strip()
        if not term:
            raise ValidationException("Search term is required", field="q")
        return [job.to_dict() for job in self.repository.search_active(utcnow(), term)]

    def get_job(self, job_id: str) -> dict:
        """A single posting; an expired one is purged and reported missing."""
        job = self.repository.get(job_id)
        if job is None:
            raise NotFoundException("Job", job_id)
        if job.expires_at <= utcnow():
            self.repository.delete(job)
            logger.info("Expired job purged on read", job_id=job_id)
            raise NotFoundException("Job", job_id)
        return job.to_dict()

    def get_job_stats(self) -> dict:
        jobs = self.repository.list_active(utcnow())
        return {
            "total": len(jobs),
            "by_location": dict(Counter(j.location or "Unknown" for j in jobs)),
            "by_experience": dict(Counter(j.experience or "Not specified" for j in jobs)),
            "by_job_type": dict(Counter(j.job_type or "Not specified" for j in jobs)),
            "by_company": dict(Counter(j.company or "Unknown" for j in jobs)),
        }

    def cleanup_expired_jobs(self) -> int:
        count = self.repository.delete_expired(utcnow())
        if count:
            logger.info("Expired jobs removed", count=count)
        return count

    # Feed

    def fetch_due(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        log = self.repository.get_fetch_log()
        return should_fetch(
            last_fetch_at=log.last_fetch_at if log else None,
            month=log.month if log else None,
            request_count=log.request_count if log else 0,
            now=now,
            interval_days=settings.JOBS_FETCH_INTERVAL_DAYS,
            monthly_limit=settings.JOBS_MONTHLY_REQUEST_LIMIT,
        )

    def fetch_status(self) -> dict:
        log = self.repository.get_fetch_log()
        now = utcnow()
        return {
            "month": log.month if log else None,
            "request_count": log.request_count if log else 0,
            "monthly_limit": settings.JOBS_MONTHLY_REQUEST_LIMIT,
            "last_fetch_at": log.last_fetch_at.isoformat() if log and log.last_fetch_at else None,
            "fetch_due": self.fetch_due(now),
        }

    async def sync_jobs(self) -> Dict[str, Any]:
        """
        Fetch from the feed, store, then purge expired postings.

        Every fetch attempt that reaches the feed counts against the
        monthly budget.
        """
        now = utcnow()
        try:
            postings = await self.feed_client.fetch_jobs()
        except Exception:
            track_jobs_fetch(False)
            raise
        finally:
            if self.feed_client.is_configured:
                self.repository.record_fetch(now.strftime("%Y-%m"), now)
        track_jobs_fetch(True)

        result: Dict[str, Any] = {"inserted": 0, "updated": 0, "errors": 0}
        if postings:
            result = self.store_jobs(postings)
        result["removed"] = self.cleanup_expired_jobs()
        result["fetched"] = len(postings)
        logger.info("Jobs synced", **result)
        return result

    async def sync_if_due(self) -> Optional[Dict[str, Any]]:
        """Run ``sync_jobs`` only when the fetch guard allows it."""
        if not self.fetch_due():
            logger.info("Jobs fetch skipped", **self.fetch_status())
            return None
        return await self.sync_jobs()
