"""
In-memory cache of the global problem collection.

The whole collection is loaded on first use and kept for the life of the
process. There is no expiry and no eviction policy: create, update and
delete write through, and ``invalidate`` forces the next read to reload.
The cache is process-local; several workers each hold their own copy.
"""

import threading
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from .metrics import track_problem_cache

logger = structlog.get_logger(__name__)


class ProblemCache:
    """
    Load-once problem cache keyed by problem id.

    Attributes:
        hits: Lookups answered from the cache
        misses: Lookups for ids the cache does not hold
    """

    def __init__(self):
        self._problems: Dict[str, dict] = {}
        self._populated = False
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    @property
    def is_populated(self) -> bool:
        return self._populated

    def load(self, loader: Callable[[], Iterable[dict]]) -> List[dict]:
        """
        Return every cached problem, calling ``loader`` only on first use.

        Args:
            loader: Callable returning all problems as dicts

        Returns:
            List of problem dicts
        """
        with self._lock:
            if not self._populated:
                problems = list(loader())
                self._problems = {p["id"]: p for p in problems}
                self._populated = True
                logger.info("Problem cache loaded", size=len(self._problems))
            return list(self._problems.values())

    def get(self, problem_id: str) -> Optional[dict]:
        with self._lock:
            problem = self._problems.get(problem_id)
            if problem is None:
                self.misses += 1
            else:
                self.hits += 1
            track_problem_cache(problem is not None, len(self._problems))
            return problem

    def get_many(self, problem_ids: Iterable[str]) -> List[dict]:
        """
        Resolve ids in the order given, skipping unknown ones.

        Missing ids are logged; they usually point at a dangling reference
        left in a sheet.
        """
        found = []
        missing = []
        for problem_id in problem_ids:
            problem = self.get(problem_id)
            if problem is None:
                missing.append(problem_id)
            else:
                found.append(problem)
        if missing:
            logger.warning("Problems missing from cache", missing_ids=missing)
        return found

    def put(self, problem: dict) -> None:
        """Write-through after create or update. No-op before the first load."""
        with self._lock:
            if self._populated:
                self._problems[problem["id"]] = problem

    def evict(self, problem_id: str) -> None:
        with self._lock:
            self._problems.pop(problem_id, None)

    def invalidate(self) -> None:
        """Drop everything; the next ``load`` reads the collection again."""
        with self._lock:
            self._problems = {}
            self._populated = False
            logger.info("Problem cache invalidated")

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": len(self._problems),
                "is_populated": self._populated,
                "hits": self.hits,
                "misses": self.misses,
                "problems": list(self._problems.keys()),
            }


_problem_cache: Optional[ProblemCache] = None


def get_problem_cache() -> ProblemCache:
    """Get the process-wide problem cache."""
    global _problem_cache
    if _problem_cache is None:
        _problem_cache = ProblemCache()
    return _problem_cache
