"""
Progress endpoints.

Users toggle and read their own progress. Admins may read anyone's.
"""

import structlog
from fastapi import APIRouter, Depends

from ..auth import User, get_current_user
from ..dependencies import get_progress_service
from ..exceptions import PermissionDeniedException
from ..helpers import success_response
from ..schemas import ErrorResponse, ProgressToggle, RevisionToggle
from ..services.progress_service import ProgressService, validate_toggle_fields

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/progress", tags=["progress"])

TOGGLE_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing required fields"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Progress belongs to another user"},
}


def _ensure_self_or_admin(current_user: User, user_id: str, action: str) -> None:
    if current_user.id != user_id and not current_user.is_admin:
        raise PermissionDeniedException(f"Cannot {action} for another user")


def _ensure_self(current_user: User, user_id: str) -> None:
    if current_user.id != user_id:
        logger.warning(
            "Progress update for another user refused",
            user_id=current_user.id,
            target_user_id=user_id,
        )
        raise PermissionDeniedException("Cannot update progress for another user")


@router.post("/toggle", responses=TOGGLE_RESPONSES, summary="Toggle completion")
def toggle_completion(
    body: ProgressToggle,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    """
    Mark a problem completed or not completed.

    The state applies to every subsection that shows the problem.
    """
    validate_toggle_fields(**body.model_dump())
    _ensure_self(current_user, body.user_id)
    result = service.toggle_completion(
        user_id=body.user_id,
        problem_id=body.problem_id,
        sheet_id=body.sheet_id,
        section_id=body.section_id,
        subsection_id=body.subsection_id,
        completed=body.completed,
        difficulty=body.difficulty,
    )
    return success_response(result)


@router.post("/toggle-revision", responses=TOGGLE_RESPONSES, summary="Toggle revision mark")
def toggle_revision(
    body: RevisionToggle,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    validate_toggle_fields(**body.model_dump())
    _ensure_self(current_user, body.user_id)
    result = service.toggle_revision(
        user_id=body.user_id,
        problem_id=body.problem_id,
        sheet_id=body.sheet_id,
        section_id=body.section_id,
        subsection_id=body.subsection_id,
        marked_for_revision=body.marked_for_revision,
        difficulty=body.difficulty,
    )
    return success_response(result)


@router.get("/stats/{user_id}", summary="Progress statistics")
def get_user_stats(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    _ensure_self_or_admin(current_user, user_id, "access stats")
    return success_response(service.get_user_stats(user_id))


@router.get("/revision/{user_id}", summary="Problems marked for revision")
def get_revision_problems(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    _ensure_self_or_admin(current_user, user_id, "access revision problems")
    problems = service.get_revision_problems(user_id)
    return success_response(problems, count=len(problems))


@router.delete("/user/{user_id}", summary="Delete all progress of a user")
def delete_user_progress(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    _ensure_self_or_admin(current_user, user_id, "delete progress")
    deleted = service.delete_user_progress(user_id)
    return success_response({"deleted": deleted}, message="Progress deleted")


@router.get(
    "/{user_id}",
    responses={403: {"model": ErrorResponse, "description": "Progress belongs to another user"}},
    summary="Get user progress",
)
def get_user_progress(
    user_id: str,
    current_user: User = Depends(get_current_user),
    service: ProgressService = Depends(get_progress_service),
):
    """One row per problem and location the user has state for."""
    _ensure_self_or_admin(current_user, user_id, "access progress")
    return success_response(service.get_user_progress(user_id))
