"""Announcement endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, status

from ..auth import User, get_current_user, get_optional_user, require_admin
from ..dependencies import get_announcement_service
from ..helpers import success_response
from ..schemas import AnnouncementCreate, AnnouncementUpdate, ErrorResponse
from ..services.announcement_service import AnnouncementService

router = APIRouter(prefix="/api/announcements", tags=["announcements"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Announcement not found"}}


@router.get("", summary="List announcements")
def list_announcements(
    current_user: Optional[User] = Depends(get_optional_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    """Active announcements, newest first. ``is_read`` is false for anonymous callers."""
    announcements = service.list_announcements(current_user.id if current_user else None)
    return success_response(announcements, count=len(announcements))


@router.get("/unread-count", summary="Unread announcement count")
def unread_count(
    current_user: User = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return success_response({"unread_count": service.unread_count(current_user.id)})


@router.get("/{announcement_id}", responses=NOT_FOUND, summary="Get announcement")
def get_announcement(
    announcement_id: str,
    service: AnnouncementService = Depends(get_announcement_service),
):
    return success_response(service.get_announcement(announcement_id))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create announcement")
def create_announcement(
    body: AnnouncementCreate,
    current_user: User = Depends(require_admin),
    service: AnnouncementService = Depends(get_announcement_service),
):
    announcement = service.create_announcement(body.model_dump(), created_by=current_user.id)
    return success_response(announcement, message="Announcement created successfully")


@router.put("/{announcement_id}", responses=NOT_FOUND, summary="Update announcement")
def update_announcement(
    announcement_id: str,
    body: AnnouncementUpdate,
    current_user: User = Depends(require_admin),
    service: AnnouncementService = Depends(get_announcement_service),
):
    announcement = service.update_announcement(
        announcement_id, body.model_dump(exclude_unset=True)
    )
    return success_response(announcement, message="Announcement updated successfully")


@router.delete("/{announcement_id}", responses=NOT_FOUND, summary="Delete announcement")
def delete_announcement(
    announcement_id: str,
    current_user: User = Depends(require_admin),
    service: AnnouncementService = Depends(get_announcement_service),
):
    result = service.delete_announcement(announcement_id)
    return success_response(result, message="Announcement deleted successfully")


@router.post("/{announcement_id}/read", responses=NOT_FOUND, summary="Mark as read")
def mark_as_read(
    announcement_id: str,
    current_user: User = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    service.mark_as_read(announcement_id, current_user.id)
    return success_response(None, message="Announcements marked as read")


@router.get("/{announcement_id}/read-status", responses=NOT_FOUND, summary="Read status")
def read_status(
    announcement_id: str,
    current_user: User = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return success_response({"is_read": service.is_read(announcement_id, current_user.id)})
