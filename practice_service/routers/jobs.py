"""Tech jobs endpoints."""

import structlog
from fastapi import APIRouter, Depends, Query

from ..auth import User, require_admin
from ..dependencies import get_jobs_service
from ..helpers import success_response
from ..schemas import ErrorResponse, JobsImportRequest
from ..services.jobs_service import JobsService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("", summary="List active jobs")
def list_jobs(service: JobsService = Depends(get_jobs_service)):
    jobs = service.get_all_jobs()
    return success_response(jobs, count=len(jobs))


@router.get("/tech", summary="List tech jobs")
def list_tech_jobs(service: JobsService = Depends(get_jobs_service)):
    jobs = service.get_tech_jobs()
    return success_response(jobs, count=len(jobs))


@router.get(
    "/search",
    responses={400: {"model": ErrorResponse, "description": "Search term is required"}},
    summary="Search jobs",
)
def search_jobs(
    q: str = Query("", description="Matches title, company, location, description or skills"),
    service: JobsService = Depends(get_jobs_service),
):
    jobs = service.search_jobs(q)
    return success_response(jobs, count=len(jobs))


@router.get("/stats", summary="Job statistics")
def job_stats(service: JobsService = Depends(get_jobs_service)):
    return success_response(service.get_job_stats())


@router.get("/fetch-status", summary="Jobs feed budget")
def fetch_status(
    current_user: User = Depends(require_admin),
    service: JobsService = Depends(get_jobs_service),
):
    return success_response(service.fetch_status())


@router.post("/sync", summary="Fetch jobs from the feed now")
async def sync_jobs(
    current_user: User = Depends(require_admin),
    service: JobsService = Depends(get_jobs_service),
):
    """Manual fetch. Bypasses the interval but still counts against the monthly budget."""
    logger.info("Manual jobs sync requested", user_id=current_user.id)
    result = await service.sync_jobs()
    return success_response(result, message="Jobs synced successfully")


@router.post("/import", summary="Import job postings")
def import_jobs(
    body: JobsImportRequest,
    current_user: User = Depends(require_admin),
    service: JobsService = Depends(get_jobs_service),
):
    result = service.store_jobs(body.jobs)
    return success_response(result, message="Jobs imported")


@router.get(
    "/{job_id}",
    responses={404: {"model": ErrorResponse, "description": "Job not found or expired"}},
    summary="Get job",
)
def get_job(job_id: str, service: JobsService = Depends(get_jobs_service)):
    return success_response(service.get_job(job_id))
