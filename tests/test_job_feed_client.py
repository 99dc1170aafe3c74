"""
Tests for the jobs feed client.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from practice_service.exceptions import ExternalServiceException
from practice_service.infrastructure.job_feed_client import (
    JobFeedClient,
    extract_experience,
    extract_skills,
    transform_posting,
)

FEED_URL = "https://jobs.example.com/api/postings"


def _response(payload, status_code=200):
    return httpx.Response(status_code, json=payload, request=httpx.Request("GET", FEED_URL))


def _posting(n):
    return {"title": f"Engineer {n}", "company": {"display_name": "Acme"}}


class TestTransform:
    def test_nested_fields_are_flattened(self):
        job = transform_posting(
            {
                "title": "Senior Python Developer",
                "description": "Django, PostgreSQL and Docker",
                "company": {"display_name": "Acme"},
                "location": {"area": ["India", "Karnataka", "Bangalore"]},
                "contract_time": "part_time",
                "salary_min": 1000000,
                "salary_max": 1500000,
                "redirect_url": "https://acme.example.com/apply",
                "created": "2024-05-01T00:00:00Z",
            }
        )

        assert job["company"] == "Acme"
        assert job["location"] == "India, Karnataka, Bangalore"
        assert job["job_type"] == "Part Time"
        assert job["salary"] == "1000000 - 1500000"
        assert job["apply_link"] == "https://acme.example.com/apply"
        assert job["experience"] == "5+ years"
        assert "Django" in job["education_and_skills"]
        assert job["posted_date"] == "2024-05-01T00:00:00Z"

    def test_flat_posting_passes_through(self):
        job = transform_posting(
            {"title": "SDE", "company": "Acme", "location": "Pune", "salary": "12 LPA"}
        )

        assert job["company"] == "Acme"
        assert job["location"] == "Pune"
        assert job["salary"] == "12 LPA"
        assert job["job_type"] == "Full Time"

    def test_experience_and_skills(self):
        assert extract_experience("looking for a fresher", "") == "Fresher (0-1 years)"
        assert extract_experience("", "Backend Engineer") == "Not specified"
        assert extract_skills("") == ""
        assert extract_skills("We cook food") == "Skills listed in description"


class TestFetch:
    @pytest.mark.asyncio
    async def test_unconfigured_feed_raises(self):
        client = JobFeedClient(feed_url="")

        assert client.is_configured is False
        with pytest.raises(ExternalServiceException):
            await client.fetch_jobs()

    @pytest.mark.asyncio
    async def test_pages_until_short_page(self):
        client = JobFeedClient(feed_url=FEED_URL, api_key="secret", page_size=2, max_pages=5)
        pages = [
            _response({"results": [_posting(1), _posting(2)]}),
            _response({"results": [_posting(3)]}),
        ]

        with patch("httpx.AsyncClient.get", new=AsyncMock(side_effect=pages)) as mock_get:
            jobs = await client.fetch_jobs()

        assert [j["title"] for j in jobs] == ["Engineer 1", "Engineer 2", "Engineer 3"]
        assert mock_get.await_count == 2
        _, kwargs = mock_get.call_args
        assert kwargs["params"] == {"page": 2, "per_page": 2}
        assert kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self):
        client = JobFeedClient(feed_url=FEED_URL, page_size=1, max_pages=2)
        pages = [_response([_posting(1)]), _response([_posting(2)])]

        with patch("httpx.AsyncClient.get", new=AsyncMock(side_effect=pages)) as mock_get:
            jobs = await client.fetch_jobs()

        assert len(jobs) == 2
        assert mock_get.await_count == 2

    @pytest.mark.asyncio
    async def test_first_page_error_raises(self):
        client = JobFeedClient(feed_url=FEED_URL)

        with patch(
            "httpx.AsyncClient.get", new=AsyncMock(return_value=_response({}, status_code=503))
        ):
            with pytest.raises(ExternalServiceException):
                await client.fetch_jobs()

    @pytest.mark.asyncio
    async def test_later_page_error_keeps_earlier_results(self):
        client = JobFeedClient(feed_url=FEED_URL, page_size=1, max_pages=3)
        pages = [_response({"jobs": [_posting(1)]}), httpx.ConnectError("connection reset")]

        with patch("httpx.AsyncClient.get", new=AsyncMock(side_effect=pages)):
            jobs = await client.fetch_jobs()

        assert [j["title"] for j in jobs] == ["Engineer 1"]
