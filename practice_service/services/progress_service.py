"""
Per-user progress tracking.

A problem can be shown in several subsections. Completing or marking it
for revision in one place applies to every location that references it,
so each progress entry carries ``contexts`` (completion) and
``revision_contexts`` (revision) listing those locations. Structural edits
to sheets keep the lists in step through ``sync_problem_progress``,
``cleanup_unlinked_problem`` and ``delete_by_location``.
"""

from collections import defaultdict
from typing import Callable, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..exceptions import ValidationException
from ..helpers import isoformat, utcnow
from ..metrics import track_progress_toggle
from ..models import UserProgress
from ..repositories.progress_repository import ProgressRepository
from .location_index import (
    ProblemLocationIndex,
    get_location_index,
    location_key,
    make_location,
)

logger = structlog.get_logger(__name__)

REQUIRED_TOGGLE_FIELDS = ("user_id", "problem_id", "sheet_id", "section_id", "subsection_id")
RECENT_LIMIT = 10


def validate_toggle_fields(**values) -> None:
    missing = [f for f in REQUIRED_TOGGLE_FIELDS if not values.get(f)]
    if missing:
        raise ValidationException(
            "Missing required fields: " + ", ".join(REQUIRED_TOGGLE_FIELDS),
            field=missing[0],
        )


def _with_location(locations: List[dict], location: dict) -> List[dict]:
    keys = {location_key(loc) for loc in locations}
    if location_key(location) not in keys:
        return locations + [location]
    return locations


def _legacy_location(entry: UserProgress) -> Optional[dict]:
    if entry.sheet_id and entry.section_id and entry.subsection_id:
        return make_location(entry.sheet_id, entry.section_id, entry.subsection_id)
    return None


class ProgressService:
    """Completion and revision state for users."""

    def __init__(self, db: Session, location_index: Optional[ProblemLocationIndex] = None):
        self.db = db
        self.repository = ProgressRepository(db)
        self.location_index = location_index or get_location_index()

    def _current_locations(self, problem_id: str, requested: dict) -> List[dict]:
        locations = self.location_index.find(self.db, problem_id, use_cache=False)
        return _with_location(locations, requested)

    # Toggles

    def toggle_completion(
        self,
        user_id: Optional[str],
        problem_id: Optional[str],
        sheet_id: Optional[str],
        section_id: Optional[str],
        subsection_id: Optional[str],
        completed: bool = True,
        difficulty: Optional[str] = None,
    ) -> dict:
        """
        Mark a problem completed or not completed for a user.

        Completing writes one context per current location of the problem.
        Un-completing deletes the entry unless it is still marked for
        revision, in which case only the completion fields are cleared.

        Returns:
            Dict with the resulting entry (or None) and ``locations_updated``
        """
        validate_toggle_fields(
            user_id=user_id,
            problem_id=problem_id,
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
        )
        requested = make_location(sheet_id, section_id, subsection_id)
        entry = self.repository.get(user_id, problem_id)
        now = utcnow()
        locations_updated = 0

        if completed:
            locations = self._current_locations(problem_id, requested)
            contexts = [
                {**loc, "completed": True, "marked_at": now.isoformat()} for loc in locations
            ]
            if entry is None:
                entry = UserProgress(
                    user_id=user_id,
                    problem_id=problem_id,
                    completed=True,
                    completed_at=now,
                    difficulty=difficulty,
                    sheet_id=sheet_id,
                    section_id=section_id,
                    subsection_id=subsection_id,
                    contexts=contexts,
                    marked_for_revision=False,
                    revision_contexts=[],
                )
                entry = self.repository.add(entry)
                action = "created"
            else:
                entry.completed = True
                entry.completed_at = now
                entry.difficulty = difficulty or entry.difficulty
                entry.contexts = contexts
                entry = self.repository.save(entry)
                action = "updated"
            locations_updated = len(locations)
        elif entry is None:
            action = "noop"
        elif entry.marked_for_revision:
            entry.completed = False
            entry.completed_at = None
            entry.contexts = []
            entry = self.repository.save(entry)
            action = "cleared"
        else:
            self.repository.delete(entry)
            entry = None
            action = "deleted"

        track_progress_toggle("completion", action)
        logger.info(
            "Completion toggled",
            user_id=user_id,
            problem_id=problem_id,
            completed=completed,
            action=action,
            locations_updated=locations_updated,
        )
        return {
            "problem_id": problem_id,
            "completed": completed,
            "action": action,
            "locations_updated": locations_updated,
            "progress": entry.to_dict() if entry is not None else None,
        }

    def toggle_revision(
        self,
        user_id: Optional[str],
        problem_id: Optional[str],
        sheet_id: Optional[str],
        section_id: Optional[str],
        subsection_id: Optional[str],
        marked_for_revision: bool = True,
        difficulty: Optional[str] = None,
    ) -> dict:
        """
        Mark or unmark a problem for revision.

        Mirrors ``toggle_completion``: unmarking deletes the entry when it
        holds no completion.
        """
        validate_toggle_fields(
            user_id=user_id,
            problem_id=problem_id,
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
        )
        requested = make_location(sheet_id, section_id, subsection_id)
        entry = self.repository.get(user_id, problem_id)
        now = utcnow()
        locations_updated = 0

        if marked_for_revision:
            locations = self._current_locations(problem_id, requested)
            revision_contexts = [{**loc, "marked_at": now.isoformat()} for loc in locations]
            if entry is None:
                entry = UserProgress(
                    user_id=user_id,
                    problem_id=problem_id,
                    completed=False,
                    difficulty=difficulty,
                    sheet_id=sheet_id,
                    section_id=section_id,
                    subsection_id=subsection_id,
                    contexts=[],
                    marked_for_revision=True,
                    revision_marked_at=now,
                    revision_contexts=revision_contexts,
                )
                entry = self.repository.add(entry)
                action = "created"
            else:
                entry.marked_for_revision = True
                entry.revision_marked_at = now
                entry.difficulty = difficulty or entry.difficulty
                entry.revision_contexts = revision_contexts
                entry = self.repository.save(entry)
                action = "updated"
            locations_updated = len(locations)
        elif entry is None:
            action = "noop"
        elif entry.completed or entry.contexts:
            entry.marked_for_revision = False
            entry.revision_marked_at = None
            entry.revision_contexts = []
            entry = self.repository.save(entry)
            action = "cleared"
        else:
            self.repository.delete(entry)
            entry = None
            action = "deleted"

        track_progress_toggle("revision", action)
        logger.info(
            "Revision toggled",
            user_id=user_id,
            problem_id=problem_id,
            marked_for_revision=marked_for_revision,
            action=action,
            locations_updated=locations_updated,
        )
        return {
            "problem_id": problem_id,
            "marked_for_revision": marked_for_revision,
            "action": action,
            "locations_updated": locations_updated,
            "progress": entry.to_dict() if entry is not None else None,
        }

    # Reads

    def get_user_progress(self, user_id: str) -> List[dict]:
        """
        One row per (problem, location) the user has state for.

        Completion contexts and revision contexts for the same location are
        merged into a single row. Entries written before contexts existed
        produce one row from their flat location fields.
        """
        rows = []
        for entry in self.repository.list_for_user(user_id):
            revision_by_location = {
                location_key(ctx): ctx for ctx in entry.revision_contexts or []
            }

            if not entry.contexts and not entry.revision_contexts:
                legacy = _legacy_location(entry) or make_location(None, None, None)
                rows.append(
                    {
                        "problem_id": entry.problem_id,
                        **legacy,
                        "completed": bool(entry.completed),
                        "completed_at": isoformat(entry.completed_at),
                        "difficulty": entry.difficulty,
                        "marked_for_revision": bool(entry.marked_for_revision),
                        "revision_marked_at": isoformat(entry.revision_marked_at),
                    }
                )
                continue

            for ctx in entry.contexts or []:
                revision = revision_by_location.pop(location_key(ctx), None)
                rows.append(
                    {
                        "problem_id": entry.problem_id,
                        **make_location(*location_key(ctx)),
                        "completed": bool(ctx.get("completed", True)),
                        "completed_at": isoformat(entry.completed_at),
                        "difficulty": entry.difficulty,
                        "marked_for_revision": revision is not None,
                        "revision_marked_at": revision.get("marked_at") if revision else None,
                    }
                )

            for key, revision in revision_by_location.items():
                rows.append(
                    {
                        "problem_id": entry.problem_id,
                        **make_location(*key),
                        "completed": False,
                        "completed_at": None,
                        "difficulty": entry.difficulty,
                        "marked_for_revision": True,
                        "revision_marked_at": revision.get("marked_at"),
                    }
                )
        return rows

    def get_user_stats(self, user_id: str) -> dict:
        """Aggregate counts for the dashboard."""
        entries = self.repository.list_for_user(user_id)
        completed = [e for e in entries if e.completed]
        revision = [e for e in entries if e.marked_for_revision]

        by_sheet: Dict[str, set] = defaultdict(set)
        by_section: Dict[str, set] = defaultdict(set)
        by_subsection: Dict[str, set] = defaultdict(set)
        by_difficulty: Dict[str, int] = defaultdict(int)
        revision_by_sheet: Dict[str, set] = defaultdict(set)

        for entry in completed:
            locations = list(entry.contexts or [])
            if not locations and _legacy_location(entry):
                locations = [_legacy_location(entry)]
            for loc in locations:
                by_sheet[loc["sheet_id"]].add(entry.problem_id)
                by_section[loc["section_id"]].add(entry.problem_id)
                by_subsection[loc["subsection_id"]].add(entry.problem_id)
            by_difficulty[entry.difficulty or "Unknown"] += 1

        for entry in revision:
            locations = list(entry.revision_contexts or [])
            if not locations and _legacy_location(entry):
                locations = [_legacy_location(entry)]
            for loc in locations:
                revision_by_sheet[loc["sheet_id"]].add(entry.problem_id)

        recent_activity = sorted(completed, key=lambda e: e.completed_at or e.updated_at, reverse=True)
        recent_revisions = sorted(
            revision, key=lambda e: e.revision_marked_at or e.updated_at, reverse=True
        )

        return {
            "total_completed": len(completed),
            "total_marked_for_revision": len(revision),
            "by_sheet": {k: len(v) for k, v in by_sheet.items()},
            "by_section": {k: len(v) for k, v in by_section.items()},
            "by_subsection": {k: len(v) for k, v in by_subsection.items()},
            "by_difficulty": dict(by_difficulty),
            "revision_by_sheet": {k: len(v) for k, v in revision_by_sheet.items()},
            "recent_activity": [
                {
                    "problem_id": e.problem_id,
                    "completed_at": isoformat(e.completed_at),
                    "difficulty": e.difficulty,
                    "contexts": list(e.contexts or []),
                }
                for e in recent_activity[:RECENT_LIMIT]
            ],
            "recent_revisions": [
                {
                    "problem_id": e.problem_id,
                    "revision_marked_at": isoformat(e.revision_marked_at),
                    "revision_contexts": list(e.revision_contexts or []),
                }
                for e in recent_revisions[:RECENT_LIMIT]
            ],
        }

    def get_revision_problems(self, user_id: str) -> List[dict]:
        """Entries marked for revision, most recently marked first."""
        entries = [e for e in self.repository.list_for_user(user_id) if e.marked_for_revision]
        entries.sort(key=lambda e: e.revision_marked_at or e.updated_at, reverse=True)
        return [e.to_dict() for e in entries]

    # Structural sync and cleanup

    def sync_problem_progress(self, problem_id: str, location: dict) -> int:
        """
        Extend existing progress on ``problem_id`` to a newly linked location.

        Returns:
            Number of entries updated
        """
        self.location_index.invalidate(problem_id)
        key = location_key(location)
        now = utcnow().isoformat()
        updated = 0

        for entry in self.repository.list_for_problem(problem_id):
            contexts = list(entry.contexts or [])
            revision_contexts = list(entry.revision_contexts or [])
            changed = False

            if entry.completed and key not in {location_key(c) for c in contexts}:
                marked_at = isoformat(entry.completed_at) or now
                contexts.append({**make_location(*key), "completed": True, "marked_at": marked_at})
                changed = True

            if entry.marked_for_revision and key not in {
                location_key(c) for c in revision_contexts
            }:
                marked_at = isoformat(entry.revision_marked_at) or now
                revision_contexts.append({**make_location(*key), "marked_at": marked_at})
                changed = True

            if changed:
                entry.contexts = contexts
                entry.revision_contexts = revision_contexts
                self.repository.save(entry)
                updated += 1

        logger.info(
            "Progress synced to new location",
            problem_id=problem_id,
            location=location,
            entries_updated=updated,
        )
        return updated

    def _strip_locations(
        self, entries: List[UserProgress], matches: Callable[[dict], bool]
    ) -> Dict[str, int]:
        """
        Remove matching locations from entries.

        An entry whose two context lists both end up empty is deleted. When
        only one list empties, the matching flag is cleared with it.
        """
        result = {"updated": 0, "deleted": 0}
        for entry in entries:
            contexts = list(entry.contexts or [])
            revision_contexts = list(entry.revision_contexts or [])

            if not contexts and not revision_contexts:
                legacy = _legacy_location(entry)
                if legacy and matches(legacy):
                    self.repository.delete(entry)
                    result["deleted"] += 1
                continue

            kept = [c for c in contexts if not matches(c)]
            kept_revision = [c for c in revision_contexts if not matches(c)]
            if len(kept) == len(contexts) and len(kept_revision) == len(revision_contexts):
                continue

            if not kept and not kept_revision:
                self.repository.delete(entry)
                result["deleted"] += 1
                continue

            entry.contexts = kept
            entry.revision_contexts = kept_revision
            if not kept:
                entry.completed = False
                entry.completed_at = None
            if not kept_revision:
                entry.marked_for_revision = False
                entry.revision_marked_at = None
            self.repository.save(entry)
            result["updated"] += 1
        return result

    def cleanup_unlinked_problem(self, problem_id: str, location: dict) -> Dict[str, int]:
        """Drop ``location`` from every user's progress on ``problem_id``."""
        self.location_index.invalidate(problem_id)
        key = location_key(location)
        result = self._strip_locations(
            self.repository.list_for_problem(problem_id),
            lambda ctx: location_key(ctx) == key,
        )
        logger.info(
            "Progress cleaned for unlinked problem",
            problem_id=problem_id,
            location=location,
            **result,
        )
        return result

    def delete_by_location(
        self,
        sheet_id: str,
        section_id: Optional[str] = None,
        subsection_id: Optional[str] = None,
    ) -> Dict[str, int]:
        """
        Remove progress for a deleted sheet, section or subsection.

        Narrower ids are optional: only ``sheet_id`` matches every location in
        the sheet.
        """

        def matches(ctx: dict) -> bool:
            if ctx.get("sheet_id") != sheet_id:
                return False
            if section_id is not None and ctx.get("section_id") != section_id:
                return False
            if subsection_id is not None and ctx.get("subsection_id") != subsection_id:
                return False
            return True

        self.location_index.invalidate()
        result = self._strip_locations(self.repository.list_all(), matches)
        logger.info(
            "Progress cleaned for removed location",
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
            **result,
        )
        return result

    def delete_by_problem(self, problem_id: str) -> int:
        self.location_index.invalidate(problem_id)
        count = self.repository.delete_for_problem(problem_id)
        logger.info("Progress deleted for problem", problem_id=problem_id, deleted=count)
        return count

    def delete_user_progress(self, user_id: str) -> int:
        count = self.repository.delete_for_user(user_id)
        logger.info("Progress deleted for user", user_id=user_id, deleted=count)
        return count
