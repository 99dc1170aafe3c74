"""Shared session handling for repositories."""

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..exceptions import RepositoryException

logger = structlog.get_logger(__name__)


class BaseRepository:
    """Holds the session and the commit/rollback routine."""

    def __init__(self, db: Session):
        """
        Initialize repository.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def commit(self, failure_message: str) -> None:
        """
        Commit the session.

        Raises:
            RepositoryException: With ``failure_message`` when the commit fails
        """
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(failure_message, error=str(e))
            raise RepositoryException(failure_message, str(e))
