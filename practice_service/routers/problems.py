"""Global problem catalogue endpoints."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import User, require_admin
from ..dependencies import get_problem_service
from ..exceptions import PracticeServiceException
from ..helpers import success_response
from ..schemas import BatchProblemsRequest, ErrorResponse, ProblemCreate, ProblemUpdate
from ..services.problem_service import DEFAULT_SEARCH_LIMIT, ProblemService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/problems", tags=["problems"])


@router.get("", summary="List problems")
def list_problems(
    difficulty: Optional[str] = Query(None, description="Easy, Medium or Hard"),
    platform: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma separated; any tag matches"),
    search: Optional[str] = Query(None, description="Title or platform substring"),
    service: ProblemService = Depends(get_problem_service),
):
    tag_list = [t for t in tags.split(",") if t.strip()] if tags else None
    problems = service.list_problems(
        difficulty=difficulty, platform=platform, tags=tag_list, search=search
    )
    return success_response(problems, count=len(problems))


@router.get("/search", summary="Search problems")
def search_problems(
    q: str = Query("", description="Matches title, platform or tags"),
    limit: int = Query(DEFAULT_SEARCH_LIMIT, ge=1, le=100),
    service: ProblemService = Depends(get_problem_service),
):
    problems = service.search_problems(q, limit=limit)
    return success_response(problems, count=len(problems))


@router.post(
    "/batch",
    responses={400: {"model": ErrorResponse, "description": "problem_ids is not an array"}},
    summary="Fetch problems by id",
)
def get_problems_batch(
    body: BatchProblemsRequest,
    service: ProblemService = Depends(get_problem_service),
):
    """Resolve ids in order; unknown ids are skipped."""
    problems = service.get_problems_by_ids(body.problem_ids)
    return success_response(problems, count=len(problems))


@router.get("/cache/stats", summary="Problem cache statistics")
def cache_stats(
    current_user: User = Depends(require_admin),
    service: ProblemService = Depends(get_problem_service),
):
    return success_response(service.cache_stats())


@router.post("/cache/refresh", summary="Reload the problem cache")
def refresh_cache(
    current_user: User = Depends(require_admin),
    service: ProblemService = Depends(get_problem_service),
):
    return success_response(service.refresh_cache(), message="Problem cache refreshed")


@router.get(
    "/{problem_id}",
    responses={404: {"model": ErrorResponse, "description": "Problem not found"}},
    summary="Get problem",
)
def get_problem(problem_id: str, service: ProblemService = Depends(get_problem_service)):
    return success_response(service.get_problem(problem_id))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create problem")
def create_problem(
    body: ProblemCreate,
    current_user: User = Depends(require_admin),
    service: ProblemService = Depends(get_problem_service),
):
    problem = service.create_problem(body.model_dump(), created_by=current_user.id)
    return success_response(problem, message="Problem created successfully")


@router.put("/{problem_id}", summary="Update problem")
def update_problem(
    problem_id: str,
    body: ProblemUpdate,
    current_user: User = Depends(require_admin),
    service: ProblemService = Depends(get_problem_service),
):
    problem = service.update_problem(problem_id, body.model_dump(exclude_unset=True))
    return success_response(problem, message="Problem updated successfully")


@router.delete(
    "/{problem_id}",
    responses={404: {"model": ErrorResponse, "description": "Problem not found"}},
    summary="Delete problem",
)
def delete_problem(
    problem_id: str,
    current_user: User = Depends(require_admin),
    service: ProblemService = Depends(get_problem_service),
):
    """Delete a problem and remove it from every sheet and every user's progress."""
    try:
        result = service.delete_problem(problem_id)
    except PracticeServiceException:
        raise
    except Exception as e:
        logger.error("Failed to delete problem", problem_id=problem_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete problem",
        )
    return success_response(
        result, message="Problem deleted and removed from all sheets and progress"
    )
