"""
Sheet endpoints.

Reads are public. Structure edits need the admin role; mentors may edit
editorial and notes links of problems shown in a sheet.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from ..auth import User, require_admin, require_editor
from ..dependencies import get_sheet_service
from ..exceptions import PracticeServiceException
from ..helpers import success_response
from ..schemas import (
    ErrorResponse,
    ProblemCreate,
    ProblemLink,
    ProblemUpdate,
    SectionCreate,
    SectionUpdate,
    SheetCreate,
    SheetUpdate,
    SubsectionCreate,
    SubsectionUpdate,
)
from ..services.sheet_service import SheetService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/sheets", tags=["sheets"])

SUBSECTION_PATH = "/{sheet_id}/sections/{section_id}/subsections/{subsection_id}"


@router.get("", summary="List sheets")
def list_sheets(service: SheetService = Depends(get_sheet_service)):
    """All sheets, oldest first."""
    return success_response(service.list_sheets())


@router.get("/with-problems", summary="List sheets with resolved problems")
def list_sheets_with_problems(service: SheetService = Depends(get_sheet_service)):
    """
    All sheets, each with the global problems its subsections reference.

    Problems are resolved from the in-memory problem cache.
    """
    try:
        sheets, total_problems = service.list_sheets_with_problems()
        return success_response(sheets, total_problems=total_problems)
    except PracticeServiceException:
        raise
    except Exception as e:
        logger.error("Failed to get sheets with problems", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch sheets",
        )


@router.get(
    "/{sheet_id}",
    responses={404: {"model": ErrorResponse, "description": "Sheet not found"}},
    summary="Get sheet",
)
def get_sheet(sheet_id: str, service: SheetService = Depends(get_sheet_service)):
    return success_response(service.get_sheet(sheet_id))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create sheet")
def create_sheet(
    body: SheetCreate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    sheet = service.create_sheet(
        name=body.name,
        description=body.description,
        sections=[s.model_dump() for s in body.sections],
        created_by=current_user.id,
        sheet_id=body.id,
    )
    return success_response(sheet, message="Sheet created successfully")


@router.put("/{sheet_id}", summary="Update sheet")
def update_sheet(
    sheet_id: str,
    body: SheetUpdate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    fields = body.model_dump(exclude_unset=True)
    return success_response(
        service.update_sheet(sheet_id, fields), message="Sheet updated successfully"
    )


@router.delete("/{sheet_id}", summary="Delete sheet")
def delete_sheet(
    sheet_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    """Delete a sheet and the progress recorded against it."""
    service.delete_sheet(sheet_id)
    return success_response(
        {"id": sheet_id}, message="Sheet and associated progress deleted successfully"
    )


# Sections


@router.post(
    "/{sheet_id}/sections", status_code=status.HTTP_201_CREATED, summary="Add section"
)
def add_section(
    sheet_id: str,
    body: SectionCreate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    section = service.add_section(sheet_id, body.model_dump())
    return success_response(section, message="Section added successfully")


@router.put("/{sheet_id}/sections/{section_id}", summary="Update section")
def update_section(
    sheet_id: str,
    section_id: str,
    body: SectionUpdate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    section = service.update_section(sheet_id, section_id, body.model_dump(exclude_unset=True))
    return success_response(section, message="Section updated successfully")


@router.delete("/{sheet_id}/sections/{section_id}", summary="Delete section")
def delete_section(
    sheet_id: str,
    section_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    service.delete_section(sheet_id, section_id)
    return success_response({"id": section_id}, message="Section deleted successfully")


# Subsections


@router.post(
    "/{sheet_id}/sections/{section_id}/subsections",
    status_code=status.HTTP_201_CREATED,
    summary="Add subsection",
)
def add_subsection(
    sheet_id: str,
    section_id: str,
    body: SubsectionCreate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    subsection = service.add_subsection(sheet_id, section_id, body.model_dump())
    return success_response(subsection, message="Subsection added successfully")


@router.put(SUBSECTION_PATH, summary="Update subsection")
def update_subsection(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    body: SubsectionUpdate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    subsection = service.update_subsection(
        sheet_id, section_id, subsection_id, body.model_dump(exclude_unset=True)
    )
    return success_response(subsection, message="Subsection updated successfully")


@router.delete(SUBSECTION_PATH, summary="Delete subsection")
def delete_subsection(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    service.delete_subsection(sheet_id, section_id, subsection_id)
    return success_response({"id": subsection_id}, message="Subsection deleted successfully")


# Problems inside a subsection


@router.post(
    SUBSECTION_PATH + "/link-problem",
    responses={404: {"model": ErrorResponse, "description": "Problem or location not found"}},
    summary="Link a global problem",
)
def link_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    body: ProblemLink,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    """Reference an existing problem and sync user progress to the new location."""
    problem = service.link_problem(sheet_id, section_id, subsection_id, body.problem_id)
    return success_response(
        problem, message="Problem linked successfully and progress synced for all users"
    )


@router.post(
    SUBSECTION_PATH + "/problems",
    status_code=status.HTTP_201_CREATED,
    summary="Add embedded problem",
)
def add_embedded_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    body: ProblemCreate,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    problem = service.add_embedded_problem(
        sheet_id, section_id, subsection_id, body.model_dump(), created_by=current_user.id
    )
    return success_response(problem, message="Problem added successfully")


@router.put(SUBSECTION_PATH + "/problems/{problem_id}", summary="Update problem")
def update_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    problem_id: str,
    body: ProblemUpdate,
    current_user: User = Depends(require_editor),
    service: SheetService = Depends(get_sheet_service),
):
    """Admins update any field; fields other than editorial and notes links are dropped for mentors."""
    problem = service.update_problem(
        sheet_id,
        section_id,
        subsection_id,
        problem_id,
        body.model_dump(exclude_unset=True),
        role=current_user.role,
    )
    return success_response(problem, message="Problem updated successfully")


@router.patch(
    SUBSECTION_PATH + "/problems/{problem_id}",
    responses={403: {"model": ErrorResponse, "description": "Field not editable by mentors"}},
    summary="Patch problem",
)
def patch_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    problem_id: str,
    body: ProblemUpdate,
    current_user: User = Depends(require_editor),
    service: SheetService = Depends(get_sheet_service),
):
    """Inline edit. Mentors sending any field besides editorial or notes links get 403."""
    problem = service.update_problem(
        sheet_id,
        section_id,
        subsection_id,
        problem_id,
        body.model_dump(exclude_unset=True),
        role=current_user.role,
        strict=True,
    )
    return success_response(problem, message="Problem updated successfully")


@router.delete(SUBSECTION_PATH + "/problems/{problem_id}", summary="Remove problem reference")
def remove_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    problem_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    """Remove the reference; the problem itself still exists globally."""
    service.unlink_problem(sheet_id, section_id, subsection_id, problem_id)
    return success_response(
        {"id": problem_id},
        message="Problem unlinked from subsection (problem still exists globally)",
    )


@router.delete(SUBSECTION_PATH + "/problems/{problem_id}/unlink", summary="Unlink problem")
def unlink_problem(
    sheet_id: str,
    section_id: str,
    subsection_id: str,
    problem_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    service.unlink_problem(sheet_id, section_id, subsection_id, problem_id)
    return success_response(
        {"id": problem_id}, message="Problem unlinked from subsection successfully"
    )


@router.post("/{sheet_id}/clean-orphans", summary="Remove dangling problem references")
def clean_orphaned_problems(
    sheet_id: str,
    current_user: User = Depends(require_admin),
    service: SheetService = Depends(get_sheet_service),
):
    removed = service.clean_orphaned_problems(sheet_id)
    return success_response({"removed": removed}, message=f"Removed {removed} orphaned references")
