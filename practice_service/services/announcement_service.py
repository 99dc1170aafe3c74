"""Announcements and per-user read tracking."""

from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..exceptions import NotFoundException
from ..helpers import to_naive_utc, utcnow
from ..models import Announcement
from ..repositories.announcement_repository import AnnouncementRepository

logger = structlog.get_logger(__name__)


class AnnouncementService:
    """
    Announcement CRUD.

    Read state is a single "last checked" timestamp per user: everything
    created before it counts as read.
    """

    def __init__(self, db: Session):
        self.repository = AnnouncementRepository(db)

    def _get(self, announcement_id: str) -> Announcement:
        announcement = self.repository.get(announcement_id)
        if announcement is None:
            raise NotFoundException("Announcement", announcement_id)
        return announcement

    def list_announcements(self, user_id: Optional[str] = None) -> List[dict]:
        """Active, unexpired announcements, newest first, with ``is_read``."""
        last_checked = self.repository.get_last_checked(user_id) if user_id else None
        result = []
        for announcement in self.repository.list_active():
            item = announcement.to_dict()
            item["is_read"] = bool(
                last_checked is not None and announcement.created_at <= last_checked
            )
            result.append(item)
        return result

    def get_announcement(self, announcement_id: str) -> dict:
        return self._get(announcement_id).to_dict()

    def create_announcement(self, data: dict, created_by: Optional[str] = None) -> dict:
        if "expires_at" in data:
            data = {**data, "expires_at": to_naive_utc(data["expires_at"])}
        announcement = self.repository.create(data, created_by=created_by)
        logger.info(
            "Announcement created",
            announcement_id=announcement.id,
            priority=announcement.priority,
        )
        return announcement.to_dict()

    def update_announcement(self, announcement_id: str, fields: dict) -> dict:
        # expires_at is the only nullable field; null clears the expiry
        fields = {k: v for k, v in fields.items() if v is not None or k == "expires_at"}
        if "expires_at" in fields:
            fields = {**fields, "expires_at": to_naive_utc(fields["expires_at"])}
        announcement = self.repository.update(self._get(announcement_id), fields)
        logger.info("Announcement updated", announcement_id=announcement_id, fields=sorted(fields))
        return announcement.to_dict()

    def delete_announcement(self, announcement_id: str) -> dict:
        announcement = self._get(announcement_id)
        title = announcement.title
        self.repository.delete(announcement)
        logger.info("Announcement deleted", announcement_id=announcement_id)
        return {"deleted_id": announcement_id, "deleted_title": title}

    def mark_as_read(self, announcement_id: str, user_id: str) -> None:
        """Move the user's last-checked time to now; marks all current items read."""
        self._get(announcement_id)
        self.repository.set_last_checked(user_id, utcnow())
        logger.debug("Announcements marked read", user_id=user_id)

    def is_read(self, announcement_id: str, user_id: str) -> bool:
        announcement = self._get(announcement_id)
        last_checked = self.repository.get_last_checked(user_id)
        return last_checked is not None and announcement.created_at <= last_checked

    def unread_count(self, user_id: str) -> int:
        return self.repository.count_active_since(self.repository.get_last_checked(user_id))

    def cleanup_expired(self) -> int:
        count = self.repository.delete_expired(utcnow())
        if count:
            logger.info("Expired announcements removed", count=count)
        return count
