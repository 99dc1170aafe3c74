"""
Global problem catalogue.

Reads are served from the in-memory ``ProblemCache``; writes go to the
database first and then through to the cache.
"""

from typing import Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..cache import ProblemCache, get_problem_cache
from ..exceptions import ConflictException, NotFoundException, ValidationException
from ..metrics import track_cascade_cleanup
from ..repositories.problem_repository import ProblemRepository
from ..repositories.sheet_repository import SheetRepository
from .location_index import legacy_problem_id
from .progress_service import ProgressService

logger = structlog.get_logger(__name__)

DEFAULT_SEARCH_LIMIT = 20


def _newest_first(problems: Iterable[dict]) -> List[dict]:
    return sorted(problems, key=lambda p: p.get("created_at") or "", reverse=True)


class ProblemService:
    """Problem CRUD, search and the delete cascade."""

    def __init__(
        self,
        db: Session,
        cache: Optional[ProblemCache] = None,
        progress_service: Optional[ProgressService] = None,
    ):
        self.db = db
        self.repository = ProblemRepository(db)
        self.cache = cache or get_problem_cache()
        self.progress_service = progress_service or ProgressService(db)

    def _load_all(self) -> List[dict]:
        return self.cache.load(lambda: [p.to_dict() for p in self.repository.list_all()])

    def list_problems(
        self,
        difficulty: Optional[str] = None,
        platform: Optional[str] = None,
        tags: Optional[List[str]] = None,
        search: Optional[str] = None,
    ) -> List[dict]:
        """
        Filter the catalogue.

        Args:
            difficulty: Exact difficulty match
            platform: Exact platform match, case-insensitive
            tags: Problem must carry at least one of these tags
            search: Substring of the title or platform, case-insensitive

        Returns:
            Matching problems, newest first
        """
        problems = self._load_all()

        if difficulty:
            problems = [p for p in problems if p["difficulty"] == difficulty]
        if platform:
            wanted = platform.lower()
            problems = [p for p in problems if (p["platform"] or "").lower() == wanted]
        if tags:
            wanted_tags = {t.strip().lower() for t in tags if t.strip()}
            if wanted_tags:
                problems = [
                    p for p in problems
                    if wanted_tags & {t.lower() for t in p.get("tags") or []}
                ]
        if search:
            term = search.lower()
            problems = [
                p for p in problems
                if term in p["title"].lower() or term in (p["platform"] or "").lower()
            ]

        return _newest_first(problems)

    def search_problems(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[dict]:
        """Match title, platform or any tag; at most ``limit`` results."""
        term = (query or "").strip().lower()
        if not term:
            return []
        matches = [
            p for p in self._load_all()
            if term in p["title"].lower()
            or term in (p["platform"] or "").lower()
            or any(term in t.lower() for t in p.get("tags") or [])
        ]
        return _newest_first(matches)[:limit]

    def get_problems_by_ids(self, problem_ids) -> List[dict]:
        if not isinstance(problem_ids, list):
            raise ValidationException("problem_ids must be an array", field="problem_ids")
        if not problem_ids:
            return []
        self._load_all()
        return self.cache.get_many(str(pid) for pid in problem_ids)

    def get_problem(self, problem_id: str) -> dict:
        self._load_all()
        problem = self.cache.get(problem_id)
        if problem is None:
            raise NotFoundException("Problem", problem_id)
        return problem

    def create_problem(self, data: dict, created_by: Optional[str] = None) -> dict:
        if data.get("id") and self.repository.get(data["id"]) is not None:
            raise ConflictException(
                f"Problem {data['id']} already exists", {"id": data["id"]}
            )
        problem = self.repository.create(data, created_by=created_by).to_dict()
        self.cache.put(problem)
        logger.info("Problem created", problem_id=problem["id"], title=problem["title"])
        return problem

    def update_problem(self, problem_id: str, fields: dict) -> dict:
        problem = self.repository.get(problem_id)
        if problem is None:
            raise NotFoundException("Problem", problem_id)
        # title and link columns are NOT NULL; an explicit null means "leave as is"
        fields = {k: v for k, v in fields.items() if v is not None}
        updated = self.repository.update(problem, fields).to_dict()
        self.cache.put(updated)
        logger.info("Problem updated", problem_id=problem_id, fields=sorted(fields))
        return updated

    def delete_problem(self, problem_id: str) -> dict:
        """
        Delete a problem everywhere.

        Removes every reference from sheet subsections and every progress
        entry before deleting the problem itself. Both cleanup steps are
        best effort: failures are logged and the delete goes ahead.
        """
        problem = self.repository.get(problem_id)
        if problem is None:
            raise NotFoundException("Problem", problem_id)

        sheets_updated = 0
        try:
            sheets_updated = self._remove_from_sheets(problem_id)
            track_cascade_cleanup("sheets", True)
        except Exception as e:
            track_cascade_cleanup("sheets", False)
            logger.error("Error removing problem from sheets", problem_id=problem_id, error=str(e))

        progress_deleted = 0
        try:
            progress_deleted = self.progress_service.delete_by_problem(problem_id)
            track_cascade_cleanup("progress", True)
        except Exception as e:
            track_cascade_cleanup("progress", False)
            logger.error("Error deleting progress for problem", problem_id=problem_id, error=str(e))

        self.repository.delete(problem)
        self.cache.evict(problem_id)
        logger.info(
            "Problem deleted",
            problem_id=problem_id,
            sheets_updated=sheets_updated,
            progress_deleted=progress_deleted,
        )
        return {
            "id": problem_id,
            "sheets_updated": sheets_updated,
            "progress_deleted": progress_deleted,
        }

    def _remove_from_sheets(self, problem_id: str) -> int:
        sheet_repository = SheetRepository(self.db)
        updated = 0
        for sheet in sheet_repository.list_all():
            sections = sheet_repository.sections_copy(sheet)
            changed = False
            for section in sections:
                for subsection in section.get("subsections") or []:
                    ids = subsection.get("problem_ids") or []
                    embedded = subsection.get("problems") or []
                    kept_ids = [pid for pid in ids if pid != problem_id]
                    kept_embedded = [p for p in embedded if legacy_problem_id(p) != problem_id]
                    if len(kept_ids) != len(ids) or len(kept_embedded) != len(embedded):
                        subsection["problem_ids"] = kept_ids
                        subsection["problems"] = kept_embedded
                        changed = True
            if changed:
                sheet_repository.save_sections(sheet, sections)
                updated += 1
        return updated

    def refresh_cache(self) -> dict:
        self.cache.invalidate()
        self._load_all()
        return self.cache_stats()

    def cache_stats(self) -> dict:
        return self.cache.stats()
