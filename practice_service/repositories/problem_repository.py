"""Problem persistence."""

from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import RepositoryException
from ..helpers import generate_id
from ..models import Problem
from .base import BaseRepository

logger = structlog.get_logger(__name__)


class ProblemRepository(BaseRepository):
    """SQLAlchemy repository for the global problem collection."""

    def list_all(self) -> List[Problem]:
        try:
            return self.db.query(Problem).order_by(Problem.created_at.desc()).all()
        except SQLAlchemyError as e:
            logger.error("Error fetching problems", error=str(e))
            raise RepositoryException("Failed to fetch problems", str(e))

    def get(self, problem_id: str) -> Optional[Problem]:
        try:
            return self.db.query(Problem).filter(Problem.id == problem_id).first()
        except SQLAlchemyError as e:
            logger.error("Error fetching problem", problem_id=problem_id, error=str(e))
            raise RepositoryException("Failed to fetch problem", str(e))

    def create(self, data: dict, created_by: Optional[str] = None) -> Problem:
        data = dict(data)
        problem_id = data.pop("id", None) or generate_id()
        problem = Problem(id=problem_id, created_by=created_by, **data)
        self.db.add(problem)
        self.commit("Failed to create problem")
        self.db.refresh(problem)
        return problem

    def update(self, problem: Problem, fields: dict) -> Problem:
        for key, value in fields.items():
            setattr(problem, key, value)
        self.commit("Failed to update problem")
        self.db.refresh(problem)
        return problem

    def delete(self, problem: Problem) -> None:
        self.db.delete(problem)
        self.commit("Failed to delete problem")
