"""
Background worker for the jobs feed.

Runs two daily jobs:
- at ``JOBS_FETCH_HOUR`` a guarded feed fetch (see ``JobsService.sync_if_due``)
- at ``JOBS_CLEANUP_HOUR`` removal of expired jobs and announcements
"""

import asyncio
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..helpers import utcnow
from ..infrastructure.job_feed_client import JobFeedClient
from ..services.announcement_service import AnnouncementService
from ..services.jobs_service import JobsService

logger = structlog.get_logger(__name__)


class JobsFetchWorker:
    """Background worker that keeps the jobs table fresh."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        feed_client: Optional[JobFeedClient] = None,
    ):
        self.session_factory = session_factory
        self.feed_client = feed_client or JobFeedClient()
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._last_run: Dict[str, date] = {}

    async def start(self) -> None:
        """Start the jobs worker."""
        if self.running:
            logger.warning("Jobs fetch worker already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run_scheduler())
        logger.info(
            "Jobs fetch worker started",
            fetch_hour=settings.JOBS_FETCH_HOUR,
            cleanup_hour=settings.JOBS_CLEANUP_HOUR,
        )

    async def stop(self) -> None:
        """Stop the jobs worker."""
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("Jobs fetch worker stopped")

    async def _run_scheduler(self) -> None:
        """Run scheduled fetch and cleanup jobs."""
        while self.running:
            try:
                now = utcnow()
                ran = await self.run_pending(now)
                if ran:
                    await asyncio.sleep(300)
                    continue

                next_run = min(
                    self._calculate_next_run(now, settings.JOBS_FETCH_HOUR),
                    self._calculate_next_run(now, settings.JOBS_CLEANUP_HOUR),
                )
                sleep_seconds = (next_run - now).total_seconds()
                logger.info(
                    "Waiting for next jobs run",
                    next_run=next_run.isoformat(),
                    sleep_seconds=sleep_seconds,
                )
                await asyncio.sleep(min(sleep_seconds, 3600))

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in jobs scheduler", error=str(e))
                await asyncio.sleep(60)

    async def run_pending(self, now: datetime) -> bool:
        """
        Run whichever daily job is due in the current window.

        Each job runs at most once per day.

        Returns:
            True if a job ran
        """
        ran = False
        if self._is_due("fetch", now, settings.JOBS_FETCH_HOUR):
            self._last_run["fetch"] = now.date()
            await self.fetch_jobs()
            ran = True
        if self._is_due("cleanup", now, settings.JOBS_CLEANUP_HOUR):
            self._last_run["cleanup"] = now.date()
            self.cleanup()
            ran = True
        return ran

    def _is_due(self, name: str, now: datetime, hour: int) -> bool:
        return now.hour == hour and now.minute < 5 and self._last_run.get(name) != now.date()

    def _calculate_next_run(self, now: datetime, target_hour: int) -> datetime:
        """Calculate next run time."""
        next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)

        if next_run <= now:
            next_run += timedelta(days=1)

        return next_run

    async def fetch_jobs(self) -> Optional[dict]:
        """Guarded feed fetch; errors are logged, never raised."""
        if not self.feed_client.is_configured:
            logger.info("Jobs feed not configured, skipping fetch")
            return None

        db = self.session_factory()
        try:
            return await JobsService(db, feed_client=self.feed_client).sync_if_due()
        except Exception as e:
            logger.error("Scheduled jobs fetch failed", error=str(e))
            return None
        finally:
            db.close()

    def cleanup(self) -> Dict[str, int]:
        """Remove expired jobs and announcements."""
        result = {"jobs": 0, "announcements": 0}
        db = self.session_factory()
        try:
            result["jobs"] = JobsService(db, feed_client=self.feed_client).cleanup_expired_jobs()
            result["announcements"] = AnnouncementService(db).cleanup_expired()
        except Exception as e:
            logger.error("Scheduled cleanup failed", error=str(e))
        finally:
            db.close()
        logger.info("Scheduled cleanup finished", **result)
        return result
