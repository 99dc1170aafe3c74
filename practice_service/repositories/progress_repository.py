"""User progress persistence."""

from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified

from ..exceptions import RepositoryException
from ..models import UserProgress
from .base import BaseRepository

logger = structlog.get_logger(__name__)


class ProgressRepository(BaseRepository):
    """SQLAlchemy repository for per-user progress entries."""

    def get(self, user_id: str, problem_id: str) -> Optional[UserProgress]:
        try:
            return (
                self.db.query(UserProgress)
                .filter(
                    UserProgress.user_id == user_id,
                    UserProgress.problem_id == problem_id,
                )
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(
                "Error fetching progress", user_id=user_id, problem_id=problem_id, error=str(e)
            )
            raise RepositoryException("Failed to fetch progress", str(e))

    def list_for_user(self, user_id: str) -> List[UserProgress]:
        try:
            return (
                self.db.query(UserProgress)
                .filter(UserProgress.user_id == user_id)
                .order_by(UserProgress.updated_at.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Error fetching user progress", user_id=user_id, error=str(e))
            raise RepositoryException("Failed to fetch user progress", str(e))

    def list_for_problem(self, problem_id: str) -> List[UserProgress]:
        try:
            return (
                self.db.query(UserProgress)
                .filter(UserProgress.problem_id == problem_id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error("Error fetching problem progress", problem_id=problem_id, error=str(e))
            raise RepositoryException("Failed to fetch progress", str(e))

    def list_all(self) -> List[UserProgress]:
        """Every entry; used by structural cleanups that match on contexts."""
        try:
            return self.db.query(UserProgress).all()
        except SQLAlchemyError as e:
            logger.error("Error scanning progress", error=str(e))
            raise RepositoryException("Failed to fetch progress", str(e))

    def add(self, entry: UserProgress) -> UserProgress:
        self.db.add(entry)
        self.commit("Failed to save progress")
        self.db.refresh(entry)
        return entry

    def save(self, entry: UserProgress) -> UserProgress:
        flag_modified(entry, "contexts")
        flag_modified(entry, "revision_contexts")
        self.commit("Failed to save progress")
        self.db.refresh(entry)
        return entry

    def delete(self, entry: UserProgress) -> None:
        self.db.delete(entry)
        self.commit("Failed to delete progress")

    def delete_for_problem(self, problem_id: str) -> int:
        try:
            count = (
                self.db.query(UserProgress)
                .filter(UserProgress.problem_id == problem_id)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error deleting problem progress", problem_id=problem_id, error=str(e))
            raise RepositoryException("Failed to delete progress", str(e))
        self.commit("Failed to delete progress")
        return count

    def delete_for_user(self, user_id: str) -> int:
        try:
            count = (
                self.db.query(UserProgress)
                .filter(UserProgress.user_id == user_id)
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Error deleting user progress", user_id=user_id, error=str(e))
            raise RepositoryException("Failed to delete progress", str(e))
        self.commit("Failed to delete progress")
        return count
