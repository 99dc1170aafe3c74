"""
Problem location index.

Answers "which subsections show this problem?" by scanning every sheet.
Results are memoized for a few minutes; completion and revision toggles
bypass the memo so they always fan out to the current set of locations.
"""

import threading
from typing import Dict, Iterator, List, Optional, Tuple

import structlog
from cachetools import TTLCache  # type: ignore[import-untyped]
from sqlalchemy.orm import Session

from ..config import settings
from ..models import Sheet

logger = structlog.get_logger(__name__)

LocationKey = Tuple[str, str, str]


def make_location(sheet_id: str, section_id: str, subsection_id: str) -> Dict[str, str]:
    return {"sheet_id": sheet_id, "section_id": section_id, "subsection_id": subsection_id}


def location_key(context: dict) -> LocationKey:
    return (context.get("sheet_id"), context.get("section_id"), context.get("subsection_id"))


def legacy_problem_id(entry) -> Optional[str]:
    """Id of an entry in a subsection's legacy ``problems`` list."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get("id")
    return None


def subsection_references(subsection: dict, problem_id: str) -> bool:
    """True when the subsection references ``problem_id`` in either list."""
    if problem_id in (subsection.get("problem_ids") or []):
        return True
    return any(legacy_problem_id(p) == problem_id for p in subsection.get("problems") or [])


def iter_subsections(sheet: Sheet) -> Iterator[Tuple[dict, dict]]:
    """Yield ``(section, subsection)`` pairs of a sheet in display order."""
    for section in sheet.sections or []:
        for subsection in section.get("subsections") or []:
            yield section, subsection


class ProblemLocationIndex:
    """
    Scan-all-sheets lookup with a short-lived memo.

    Attributes:
        memo: TTL cache of problem id -> list of locations
    """

    def __init__(self, ttl_seconds: int = 300, max_size: int = 10000):
        self.memo: TTLCache = TTLCache(maxsize=max_size, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def find(self, db: Session, problem_id: str, use_cache: bool = True) -> List[dict]:
        """
        Every ``(sheet_id, section_id, subsection_id)`` referencing the problem.

        Args:
            db: Database session used for the scan
            problem_id: Problem to look for
            use_cache: Serve from the memo when a fresh entry exists

        Returns:
            List of location dicts; empty when the scan fails
        """
        if use_cache:
            with self._lock:
                cached = self.memo.get(problem_id)
            if cached is not None:
                return [dict(loc) for loc in cached]

        try:
            locations = []
            for sheet in db.query(Sheet).all():
                for section, subsection in iter_subsections(sheet):
                    if subsection_references(subsection, problem_id):
                        locations.append(
                            make_location(sheet.id, section.get("id"), subsection.get("id"))
                        )
        except Exception as e:
            logger.error("Error finding problem locations", problem_id=problem_id, error=str(e))
            return []

        with self._lock:
            self.memo[problem_id] = locations
        logger.debug("Problem locations resolved", problem_id=problem_id, count=len(locations))
        return [dict(loc) for loc in locations]

    def invalidate(self, problem_id: Optional[str] = None) -> None:
        """Forget one problem's locations, or all of them."""
        with self._lock:
            if problem_id is None:
                self.memo.clear()
            else:
                self.memo.pop(problem_id, None)


_location_index: Optional[ProblemLocationIndex] = None


def get_location_index() -> ProblemLocationIndex:
    """Get the process-wide location index."""
    global _location_index
    if _location_index is None:
        _location_index = ProblemLocationIndex(
            ttl_seconds=settings.LOCATION_CACHE_TTL_SECONDS,
            max_size=settings.LOCATION_CACHE_MAX_SIZE,
        )
    return _location_index
