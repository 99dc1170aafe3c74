"""
HTTP client for the job listings feed.

The feed is any paginated JSON endpoint returning postings either as a
bare list or under ``results``, ``jobs`` or ``data``. Postings are mapped
to the service's job fields here; common nested shapes
(``company.display_name``, ``location.area``, ``salary_min``/``salary_max``)
are flattened.
"""

import re
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..exceptions import ExternalServiceException

logger = structlog.get_logger(__name__)

SKILL_KEYWORDS = [
    "JavaScript", "Python", "Java", "C++", "C#", "Ruby", "PHP", "Swift", "Kotlin",
    "React", "Angular", "Vue", "Node.js", "Django", "Flask", "Spring",
    "SQL", "MongoDB", "PostgreSQL", "MySQL", "Redis",
    "AWS", "Azure", "GCP", "Docker", "Kubernetes",
    "Git", "Agile", "Scrum", "REST API", "GraphQL",
    "Data Structures", "Algorithms", "System Design", "DSA",
]

EXPERIENCE_PATTERNS = [
    (re.compile(r"\b(0-1|fresher|graduate|entry[\s-]level)\b"), "Fresher (0-1 years)"),
    (re.compile(r"\b(1-3|junior)\b"), "1-3 years"),
    (re.compile(r"\b(3-5|mid[\s-]level|intermediate)\b"), "3-5 years"),
    (re.compile(r"(\b5-7\b|\b5\+|\bsenior\b)"), "5+ years"),
    (re.compile(r"(\b7\+|\blead\b|\bprincipal\b|\barchitect\b)"), "7+ years"),
]


def extract_experience(description: str, title: str) -> str:
    text = f"{description} {title}".lower()
    for pattern, label in EXPERIENCE_PATTERNS:
        if pattern.search(text):
            return label
    return "Not specified"


def extract_skills(description: str) -> str:
    if not description:
        return ""
    lowered = description.lower()
    found = [skill for skill in SKILL_KEYWORDS if skill.lower() in lowered]
    return ", ".join(found) if found else "Skills listed in description"


def _display_name(value: Any) -> str:
    if isinstance(value, dict):
        if value.get("display_name"):
            return str(value["display_name"])
        area = value.get("area")
        if isinstance(area, list):
            return ", ".join(str(a) for a in area)
        return ""
    return str(value) if value else ""


def _job_type(posting: dict) -> str:
    if posting.get("job_type"):
        return str(posting["job_type"])
    contract_time = posting.get("contract_time") or ""
    contract_type = posting.get("contract_type") or ""
    if contract_time == "full_time":
        return "Full Time"
    if contract_time == "part_time":
        return "Part Time"
    if contract_type == "permanent":
        return "Permanent"
    if contract_type == "contract":
        return "Contract"
    return "Full Time"


def _salary(posting: dict) -> str:
    if posting.get("salary"):
        return str(posting["salary"])
    low, high = posting.get("salary_min"), posting.get("salary_max")
    if low and high:
        return f"{low} - {high}"
    if low:
        return f"{low}+"
    if high:
        return f"Up to {high}"
    return "Not disclosed"


def transform_posting(posting: dict) -> Dict[str, Any]:
    """Map one feed posting onto job fields."""
    title = posting.get("title") or posting.get("job_title") or ""
    description = posting.get("job_description") or posting.get("description") or ""
    company = _display_name(posting.get("company"))
    return {
        "title": title,
        "company": company,
        "about_company": posting.get("about_company") or company,
        "job_description": description,
        "job_title": posting.get("job_title") or title,
        "job_type": _job_type(posting),
        "location": _display_name(posting.get("location")),
        "experience": posting.get("experience") or extract_experience(description, title),
        "role_and_responsibility": posting.get("role_and_responsibility") or description,
        "education_and_skills": posting.get("education_and_skills") or extract_skills(description),
        "apply_link": posting.get("apply_link") or posting.get("redirect_url") or posting.get("url") or "",
        "salary": _salary(posting),
        "posted_date": posting.get("posted_date") or posting.get("created"),
    }


def _extract_items(payload: Any) -> List[dict]:
    if isinstance(payload, list):
        return [p for p in payload if isinstance(p, dict)]
    if isinstance(payload, dict):
        for key in ("results", "jobs", "data"):
            items = payload.get(key)
            if isinstance(items, list):
                return [p for p in items if isinstance(p, dict)]
    return []


class JobFeedClient:
    """
    Async client for the jobs feed.

    Attributes:
        feed_url: Feed endpoint; empty disables fetching
        timeout: Request timeout in seconds
        max_pages: Upper bound on pages per fetch
        page_size: Postings requested per page
    """

    def __init__(
        self,
        feed_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_pages: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> None:
        self.feed_url = feed_url if feed_url is not None else settings.JOBS_FEED_URL
        self.api_key = api_key if api_key is not None else settings.JOBS_FEED_API_KEY
        self.timeout = timeout or settings.JOBS_FEED_TIMEOUT
        self.max_pages = max_pages or settings.JOBS_FEED_MAX_PAGES
        self.page_size = page_size or settings.JOBS_FEED_PAGE_SIZE

    @property
    def is_configured(self) -> bool:
        return bool(self.feed_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": "practice-service/1.0"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def fetch_jobs(self) -> List[Dict[str, Any]]:
        """
        Fetch and transform postings, page by page.

        Stops at the first short page or at ``max_pages``. An error on a
        later page keeps what was already fetched.

        Raises:
            ExternalServiceException: If the feed is not configured or the
                first page fails
        """
        if not self.is_configured:
            raise ExternalServiceException("jobs-feed", "JOBS_FEED_URL is not configured")

        postings: List[dict] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for page in range(1, self.max_pages + 1):
                try:
                    response = await client.get(
                        self.feed_url,
                        params={"page": page, "per_page": self.page_size},
                        headers=self._headers(),
                    )
                    response.raise_for_status()
                    items = _extract_items(response.json())
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Jobs feed page failed", page=page, error=str(e))
                    if page == 1:
                        raise ExternalServiceException("jobs-feed", str(e))
                    break

                postings.extend(items)
                logger.debug("Jobs feed page fetched", page=page, count=len(items))
                if len(items) < self.page_size:
                    break

        logger.info("Jobs feed fetched", count=len(postings))
        return [transform_posting(p) for p in postings]
