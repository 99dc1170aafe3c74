"""
Tests for JobsService: storage, queries, the fetch guard and feed sync.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from practice_service.exceptions import ExternalServiceException, NotFoundException, ValidationException
from practice_service.helpers import utcnow
from practice_service.models import Job, JobFetchLog
from practice_service.services.jobs_service import JobsService, normalize_job, should_fetch


def _feed_client(postings=None, configured=True, error=None):
    client = MagicMock()
    client.is_configured = configured
    if error is not None:
        client.fetch_jobs = AsyncMock(side_effect=error)
    else:
        client.fetch_jobs = AsyncMock(return_value=postings or [])
    return client


@pytest.fixture
def service(db_session):
    return JobsService(db_session, feed_client=_feed_client())


@pytest.fixture
def sample_jobs():
    return [
        {
            "title": "Backend Engineer",
            "company": "Acme",
            "location": "Bangalore",
            "job_description": "Build Python services",
            "experience": "1-3 years",
        },
        {
            "title": "Sales Associate",
            "company": "Shop",
            "location": "Delhi",
            "job_description": "Sell things",
        },
    ]


class TestNormalize:
    def test_defaults(self):
        job = normalize_job({"title": "Dev"})

        assert job["company"] == "Unknown Company"
        assert job["job_type"] == "Full Time"
        assert job["location"] == "Not specified"
        assert job["salary"] == "Not disclosed"
        assert job["job_title"] == "Dev"
        assert isinstance(job["posted_date"], datetime)

    def test_parses_iso_posted_date(self):
        job = normalize_job({"title": "Dev", "posted_date": "2024-05-01T10:00:00Z"})

        assert job["posted_date"] == datetime(2024, 5, 1, 10, 0, 0)


class TestStoreJobs:
    def test_rejects_non_list(self, service):
        with pytest.raises(ValidationException):
            service.store_jobs({"title": "x"})

    def test_insert_then_update(self, db_session, service, sample_jobs):
        first = service.store_jobs(sample_jobs)
        second = service.store_jobs([{**sample_jobs[0], "salary": "20 LPA"}])

        assert first == {"inserted": 2, "updated": 0, "errors": 0}
        assert second == {"inserted": 0, "updated": 1, "errors": 0}
        assert db_session.query(Job).count() == 2
        job = db_session.query(Job).filter_by(company="Acme").one()
        assert job.salary == "20 LPA"

    def test_bad_entry_counted_as_error(self, service, sample_jobs):
        result = service.store_jobs([sample_jobs[0], "not-a-dict"])

        assert result == {"inserted": 1, "updated": 0, "errors": 1}

    def test_expiry_set_from_ttl(self, db_session, service, sample_jobs):
        service.store_jobs(sample_jobs[:1])

        job = db_session.query(Job).one()
        assert job.expires_at - job.fetched_at == timedelta(days=10)


class TestQueries:
    def test_tech_filter(self, service, sample_jobs):
        service.store_jobs(sample_jobs)

        assert len(service.get_all_jobs()) == 2
        assert [j["title"] for j in service.get_tech_jobs()] == ["Backend Engineer"]

    def test_search(self, service, sample_jobs):
        service.store_jobs(sample_jobs)

        assert [j["company"] for j in service.search_jobs("delhi")] == ["Shop"]

    def test_search_requires_term(self, service):
        with pytest.raises(ValidationException):
            service.search_jobs("   ")

    def test_expired_job_is_purged_on_read(self, db_session, service, sample_jobs):
        service.store_jobs(sample_jobs[:1])
        job = db_session.query(Job).one()
        job.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(NotFoundException):
            service.get_job(job.id)
        assert db_session.query(Job).count() == 0
        assert service.get_all_jobs() == []

    def test_stats(self, service, sample_jobs):
        service.store_jobs(sample_jobs)

        stats = service.get_job_stats()

        assert stats["total"] == 2
        assert stats["by_location"] == {"Bangalore": 1, "Delhi": 1}
        assert stats["by_experience"] == {"1-3 years": 1, "Not specified": 1}

    def test_cleanup_expired(self, db_session, service, sample_jobs):
        service.store_jobs(sample_jobs)
        db_session.query(Job).filter_by(company="Shop").update(
            {"expires_at": utcnow() - timedelta(days=1)}
        )
        db_session.commit()

        assert service.cleanup_expired_jobs() == 1
        assert db_session.query(Job).count() == 1


class TestFetchGuard:
    NOW = datetime(2024, 6, 15, 2, 0)

    def test_first_fetch_allowed(self):
        assert should_fetch(None, None, 0, self.NOW, 3, 10) is True

    def test_interval_not_elapsed(self):
        assert should_fetch(self.NOW - timedelta(days=1), "2024-06", 1, self.NOW, 3, 10) is False

    def test_interval_elapsed(self):
        assert should_fetch(self.NOW - timedelta(days=3), "2024-06", 1, self.NOW, 3, 10) is True

    def test_monthly_limit_reached(self):
        assert should_fetch(self.NOW - timedelta(days=5), "2024-06", 10, self.NOW, 3, 10) is False

    def test_new_month_resets_budget(self):
        assert should_fetch(self.NOW - timedelta(days=1), "2024-05", 10, self.NOW, 3, 10) is True


class TestSync:
    @pytest.mark.asyncio
    async def test_sync_stores_and_records_fetch(self, db_session, sample_jobs):
        service = JobsService(db_session, feed_client=_feed_client(sample_jobs))

        result = await service.sync_jobs()

        assert result["inserted"] == 2
        assert result["fetched"] == 2
        assert result["removed"] == 0
        log = db_session.query(JobFetchLog).one()
        assert log.request_count == 1
        assert log.last_fetch_at is not None

    @pytest.mark.asyncio
    async def test_failed_fetch_still_counts(self, db_session):
        service = JobsService(
            db_session, feed_client=_feed_client(error=ExternalServiceException("jobs-feed", "boom"))
        )

        with pytest.raises(ExternalServiceException):
            await service.sync_jobs()
        assert db_session.query(JobFetchLog).one().request_count == 1

    @pytest.mark.asyncio
    async def test_sync_if_due_skips_inside_interval(self, db_session, sample_jobs):
        client = _feed_client(sample_jobs)
        service = JobsService(db_session, feed_client=client)

        assert await service.sync_if_due() is not None
        assert await service.sync_if_due() is None
        assert client.fetch_jobs.await_count == 1

    def test_fetch_status(self, service):
        status = service.fetch_status()

        assert status["request_count"] == 0
        assert status["monthly_limit"] == 10
        assert status["fetch_due"] is True
