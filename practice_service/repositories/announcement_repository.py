"""Announcement persistence and per-user read state."""

from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import RepositoryException
from ..helpers import generate_id, utcnow
from ..models import Announcement, AnnouncementReadState
from .base import BaseRepository

logger = structlog.get_logger(__name__)


class AnnouncementRepository(BaseRepository):
    """SQLAlchemy repository for announcements."""

    def _visible(self, now: datetime):
        return self.db.query(Announcement).filter(
            Announcement.is_active.is_(True),
            or_(Announcement.expires_at.is_(None), Announcement.expires_at > now),
        )

    def list_active(self) -> List[Announcement]:
        """Active, unexpired announcements, newest first."""
        try:
            return (
                self._visible(utcnow())
                .order_by(Announcement.created_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Error fetching announcements", error=str(e))
            raise RepositoryException("Failed to fetch announcements", str(e))

    def count_active_since(self, since: Optional[datetime]) -> int:
        try:
            query = self._visible(utcnow())
            if since is not None:
                query = query.filter(Announcement.created_at > since)
            return query.count()
        except SQLAlchemyError as e:
            logger.error("Error counting announcements", error=str(e))
            raise RepositoryException("Failed to get unread count", str(e))

    def get(self, announcement_id: str) -> Optional[Announcement]:
        try:
            return (
                self.db.query(Announcement)
                .filter(Announcement.id == announcement_id)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(
                "Error fetching announcement", announcement_id=announcement_id, error=str(e)
            )
            raise RepositoryException("Failed to fetch announcement", str(e))

    def create(self, data: dict, created_by: Optional[str] = None) -> Announcement:
        announcement = Announcement(id=generate_id(), created_by=created_by, **data)
        self.db.add(announcement)
        self.commit("Failed to create announcement")
        self.db.refresh(announcement)
        return announcement

    def update(self, announcement: Announcement, fields: dict) -> Announcement:
        for key, value in fields.items():
            setattr(announcement, key, value)
        self.commit("Failed to update announcement")
        self.db.refresh(announcement)
        return announcement

    def delete(self, announcement: Announcement) -> None:
        self.db.delete(announcement)
        self.commit("Failed to delete announcement")

    def delete_expired(self, now: datetime) -> int:
        try:
            count = (
                self.db.query(Announcement)
                .filter(Announcement.expires_at.isnot(None), Announcement.expires_at <= now)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error deleting expired announcements", error=str(e))
            raise RepositoryException("Failed to clean up announcements", str(e))
        self.commit("Failed to clean up announcements")
        return count

    # Read state

    def get_last_checked(self, user_id: str) -> Optional[datetime]:
        try:
            state = self.db.get(AnnouncementReadState, user_id)
        except SQLAlchemyError as e:
            logger.error("Error fetching read state", user_id=user_id, error=str(e))
            raise RepositoryException("Failed to fetch read status", str(e))
        return state.last_checked_at if state else None

    def set_last_checked(self, user_id: str, when: datetime) -> None:
        state = self.db.get(AnnouncementReadState, user_id)
        if state is None:
            self.db.add(AnnouncementReadState(user_id=user_id, last_checked_at=when))
        else:
            state.last_checked_at = when
        self.commit("Failed to mark as read")
