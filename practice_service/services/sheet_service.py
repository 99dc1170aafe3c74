"""
Sheet structure management.

Sections and subsections live inside the sheet's ``sections`` JSON
document. Every edit reads the document, changes a copy and writes the
whole document back, so concurrent editors of one sheet race with
last-write-wins semantics.

Linking, unlinking and deleting parts of a sheet keep user progress in
step. Those progress updates are separate writes: a failure is logged
and does not undo the sheet edit.
"""

from typing import List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..cache import ProblemCache, get_problem_cache
from ..exceptions import NotFoundException, PermissionDeniedException
from ..helpers import generate_id, utcnow
from ..metrics import track_cascade_cleanup
from ..models import Sheet
from ..repositories.problem_repository import ProblemRepository
from ..repositories.sheet_repository import SheetRepository
from .location_index import (
    iter_subsections,
    legacy_problem_id,
    make_location,
)
from .problem_service import ProblemService
from .progress_service import ProgressService

logger = structlog.get_logger(__name__)

MENTOR_EDITABLE_FIELDS = ("editorial_link", "notes_link")


def _normalize_subsection(data: dict) -> dict:
    return {
        "id": data.get("id") or generate_id(),
        "name": data["name"],
        "description": data.get("description") or "",
        "problem_ids": list(data.get("problem_ids") or []),
        "problems": list(data.get("problems") or []),
    }


def _normalize_section(data: dict) -> dict:
    return {
        "id": data.get("id") or generate_id(),
        "name": data["name"],
        "description": data.get("description") or "",
        "subsections": [_normalize_subsection(s) for s in data.get("subsections") or []],
    }


def _referenced_locations(sections: list) -> set:
    """``(problem_id, section_id, subsection_id)`` for every reference in ``sections``."""
    refs = set()
    for section in sections or []:
        for subsection in section.get("subsections") or []:
            ids = list(subsection.get("problem_ids") or [])
            ids += [legacy_problem_id(p) for p in subsection.get("problems") or []]
            refs.update((pid, section.get("id"), subsection.get("id")) for pid in ids if pid)
    return refs


def _find_section(sections: list, section_id: str) -> dict:
    for section in sections:
        if section.get("id") == section_id:
            return section
    raise NotFoundException("Section", section_id)


def _find_subsection(sections: list, section_id: str, subsection_id: str) -> dict:
    section = _find_section(sections, section_id)
    for subsection in section.get("subsections") or []:
        if subsection.get("id") == subsection_id:
            return subsection
    raise NotFoundException("Subsection", subsection_id)


class SheetService:
    """Sheets, their sections and subsections, and the problems they hold."""

    def __init__(
        self,
        db: Session,
        progress_service: Optional[ProgressService] = None,
        problem_cache: Optional[ProblemCache] = None,
    ):
        self.db = db
        self.repository = SheetRepository(db)
        self.progress_service = progress_service or ProgressService(db)
        self.problem_cache = problem_cache or get_problem_cache()

    def _get_sheet(self, sheet_id: str) -> Sheet:
        sheet = self.repository.get(sheet_id)
        if sheet is None:
            raise NotFoundException("Sheet", sheet_id)
        return sheet

    def _best_effort(self, scope: str, func, *args, **kwargs):
        try:
            result = func(*args, **kwargs)
            track_cascade_cleanup(scope, True)
            return result
        except Exception as e:
            track_cascade_cleanup(scope, False)
            logger.error("Progress cleanup failed", scope=scope, error=str(e))
            return None

    # Sheets

    def list_sheets(self) -> List[dict]:
        return [sheet.to_dict() for sheet in self.repository.list_all()]

    def list_sheets_with_problems(self) -> Tuple[List[dict], int]:
        """
        All sheets with their referenced problems resolved from the cache.

        Returns:
            Tuple of (sheets, number of distinct problems resolved)
        """
        sheets = self.repository.list_all()
        problem_repository = ProblemRepository(self.db)
        self.problem_cache.load(lambda: [p.to_dict() for p in problem_repository.list_all()])

        resolved_ids = set()
        result = []
        for sheet in sheets:
            sheet_problem_ids = []
            for _, subsection in iter_subsections(sheet):
                for problem_id in subsection.get("problem_ids") or []:
                    if problem_id not in sheet_problem_ids:
                        sheet_problem_ids.append(problem_id)
            problems = self.problem_cache.get_many(sheet_problem_ids)
            resolved_ids.update(p["id"] for p in problems)
            result.append({**sheet.to_dict(), "problems": problems})
        return result, len(resolved_ids)

    def get_sheet(self, sheet_id: str) -> dict:
        return self._get_sheet(sheet_id).to_dict()

    def create_sheet(
        self,
        name: str,
        description: str = "",
        sections: Optional[list] = None,
        created_by: Optional[str] = None,
        sheet_id: Optional[str] = None,
    ) -> dict:
        sheet = self.repository.create(
            name=name,
            description=description,
            sections=[_normalize_section(s) for s in sections or []],
            created_by=created_by,
            sheet_id=sheet_id,
        )
        logger.info("Sheet created", sheet_id=sheet.id, name=sheet.name)
        return sheet.to_dict()

    def update_sheet(self, sheet_id: str, fields: dict) -> dict:
        sheet = self._get_sheet(sheet_id)
        before = _referenced_locations(sheet.sections)
        if "sections" in fields and fields["sections"] is not None:
            fields = {**fields, "sections": [_normalize_section(s) for s in fields["sections"]]}
        fields = {k: v for k, v in fields.items() if v is not None}
        sheet = self.repository.update(sheet, **fields)
        if "sections" in fields:
            self._cleanup_dropped_references(
                sheet_id, before - _referenced_locations(sheet.sections)
            )
        self.progress_service.location_index.invalidate()
        logger.info("Sheet updated", sheet_id=sheet_id, fields=sorted(fields))
        return sheet.to_dict()

    def _cleanup_dropped_references(self, sheet_id: str, dropped: set) -> None:
        """Strip progress contexts for references a sections rewrite removed."""
        for problem_id, section_id, subsection_id in dropped:
            self._best_effort(
                "unlink",
                self.progress_service.cleanup_unlinked_problem,
                problem_id,
                make_location(sheet_id, section_id, subsection_id),
            )
        if dropped:
            logger.info("Dropped references cleaned", sheet_id=sheet_id, count=len(dropped))

    def delete_sheet(self, sheet_id: str) -> None:
        sheet = self._get_sheet(sheet_id)
        self._best_effort("sheet", self.progress_service.delete_by_location, sheet_id)
        self.repository.delete(sheet)
        self.progress_service.location_index.invalidate()
        logger.info("Sheet deleted", sheet_id=sheet_id)

    # Sections

    def add_section(self, sheet_id: str, data: dict) -> dict:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        section = _normalize_section(data)
        sections.append(section)
        self.repository.save_sections(sheet, sections)
        logger.info("Section added", sheet_id=sheet_id, section_id=section["id"])
        return section

    def update_section(self, sheet_id: str, section_id: str, fields: dict) -> dict:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        section = _find_section(sections, section_id)
        section.update({k: v for k, v in fields.items() if v is not None})
        self.repository.save_sections(sheet, sections)
        return section

    def delete_section(self, sheet_id: str, section_id: str) -> None:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        _find_section(sections, section_id)
        self._best_effort(
            "section", self.progress_service.delete_by_location, sheet_id, section_id
        )
        self.repository.save_sections(
            sheet, [s for s in sections if s.get("id") != section_id]
        )
        self.progress_service.location_index.invalidate()
        logger.info("Section deleted", sheet_id=sheet_id, section_id=section_id)

    # Subsections

    def add_subsection(self, sheet_id: str, section_id: str, data: dict) -> dict:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        section = _find_section(sections, section_id)
        subsection = _normalize_subsection(data)
        section["subsections"] = list(section.get("subsections") or []) + [subsection]
        self.repository.save_sections(sheet, sections)
        logger.info(
            "Subsection added",
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection["id"],
        )
        return subsection

    def update_subsection(
        self, sheet_id: str, section_id: str, subsection_id: str, fields: dict
    ) -> dict:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        subsection = _find_subsection(sections, section_id, subsection_id)
        subsection.update({k: v for k, v in fields.items() if v is not None})
        self.repository.save_sections(sheet, sections)
        return subsection

    def delete_subsection(self, sheet_id: str, section_id: str, subsection_id: str) -> None:
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        _find_subsection(sections, section_id, subsection_id)
        self._best_effort(
            "subsection",
            self.progress_service.delete_by_location,
            sheet_id,
            section_id,
            subsection_id,
        )
        section = _find_section(sections, section_id)
        section["subsections"] = [
            s for s in section.get("subsections") or [] if s.get("id") != subsection_id
        ]
        self.repository.save_sections(sheet, sections)
        self.progress_service.location_index.invalidate()
        logger.info(
            "Subsection deleted",
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
        )

    # Problem references

    def link_problem(
        self, sheet_id: str, section_id: str, subsection_id: str, problem_id: str
    ) -> dict:
        """
        Reference a global problem from a subsection.

        Linking an id that is already present is a no-op for the sheet.
        Existing completion and revision state on the problem is extended
        to the new location for every user.

        Returns:
            The linked problem
        """
        problem = ProblemService(
            self.db, cache=self.problem_cache, progress_service=self.progress_service
        ).get_problem(problem_id)

        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        subsection = _find_subsection(sections, section_id, subsection_id)
        problem_ids = list(subsection.get("problem_ids") or [])
        if problem_id not in problem_ids:
            subsection["problem_ids"] = problem_ids + [problem_id]
            self.repository.save_sections(sheet, sections)

        synced = self._best_effort(
            "link",
            self.progress_service.sync_problem_progress,
            problem_id,
            make_location(sheet_id, section_id, subsection_id),
        )
        logger.info(
            "Problem linked",
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
            problem_id=problem_id,
            progress_synced=synced or 0,
        )
        return problem

    def unlink_problem(
        self, sheet_id: str, section_id: str, subsection_id: str, problem_id: str
    ) -> None:
        """
        Remove a problem reference from one subsection.

        The problem itself stays in the catalogue. Progress contexts for this
        location are removed; entries left with no location are deleted.
        """
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        subsection = _find_subsection(sections, section_id, subsection_id)

        problem_ids = subsection.get("problem_ids") or []
        embedded = subsection.get("problems") or []
        kept_ids = [pid for pid in problem_ids if pid != problem_id]
        kept_embedded = [p for p in embedded if legacy_problem_id(p) != problem_id]
        if len(kept_ids) == len(problem_ids) and len(kept_embedded) == len(embedded):
            raise NotFoundException("Problem", problem_id)

        subsection["problem_ids"] = kept_ids
        subsection["problems"] = kept_embedded
        self.repository.save_sections(sheet, sections)

        self._best_effort(
            "unlink",
            self.progress_service.cleanup_unlinked_problem,
            problem_id,
            make_location(sheet_id, section_id, subsection_id),
        )
        logger.info(
            "Problem unlinked",
            sheet_id=sheet_id,
            section_id=section_id,
            subsection_id=subsection_id,
            problem_id=problem_id,
        )

    # Embedded problems

    def add_embedded_problem(
        self,
        sheet_id: str,
        section_id: str,
        subsection_id: str,
        data: dict,
        created_by: Optional[str] = None,
    ) -> dict:
        """Store a problem object directly inside a subsection."""
        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        subsection = _find_subsection(sections, section_id, subsection_id)
        now = utcnow().isoformat()
        problem = {
            **data,
            "id": data.get("id") or generate_id(),
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        }
        subsection["problems"] = list(subsection.get("problems") or []) + [problem]
        self.repository.save_sections(sheet, sections)
        self.progress_service.location_index.invalidate(problem["id"])
        logger.info("Embedded problem added", sheet_id=sheet_id, problem_id=problem["id"])
        return problem

    def update_problem(
        self,
        sheet_id: str,
        section_id: str,
        subsection_id: str,
        problem_id: str,
        fields: dict,
        role: str,
        strict: bool = False,
    ) -> dict:
        """
        Update a problem shown in a subsection.

        Mentors may only change editorial and notes links. With ``strict``
        any other field is refused; otherwise other fields are dropped.
        The embedded object is updated when one exists, else the global
        problem referenced at this location.
        """
        if role == "mentor":
            disallowed = sorted(set(fields) - set(MENTOR_EDITABLE_FIELDS))
            if strict and disallowed:
                raise PermissionDeniedException(
                    "Mentors can only update editorial and notes fields. "
                    f"Cannot update: {', '.join(disallowed)}",
                    {"fields": disallowed},
                )
            fields = {k: v for k, v in fields.items() if k in MENTOR_EDITABLE_FIELDS}
        fields = {k: v for k, v in fields.items() if v is not None}

        sheet = self._get_sheet(sheet_id)
        sections = self.repository.sections_copy(sheet)
        subsection = _find_subsection(sections, section_id, subsection_id)

        embedded = list(subsection.get("problems") or [])
        for index, entry in enumerate(embedded):
            if isinstance(entry, dict) and entry.get("id") == problem_id:
                embedded[index] = {**entry, **fields, "updated_at": utcnow().isoformat()}
                subsection["problems"] = embedded
                self.repository.save_sections(sheet, sections)
                logger.info(
                    "Embedded problem updated",
                    sheet_id=sheet_id,
                    problem_id=problem_id,
                    fields=sorted(fields),
                )
                return embedded[index]

        referenced = problem_id in (subsection.get("problem_ids") or []) or problem_id in embedded
        if not referenced:
            raise NotFoundException("Problem", problem_id)
        return ProblemService(
            self.db, cache=self.problem_cache, progress_service=self.progress_service
        ).update_problem(problem_id, fields)

    def clean_orphaned_problems(self, sheet_id: str) -> int:
        """
        Drop references to problems that no longer exist.

        Returns:
            Number of references removed
        """
        sheet = self._get_sheet(sheet_id)
        problem_repository = ProblemRepository(self.db)
        known = {p["id"] for p in self.problem_cache.load(
            lambda: [p.to_dict() for p in problem_repository.list_all()]
        )}
        sections = self.repository.sections_copy(sheet)
        removed = 0
        for section in sections:
            for subsection in section.get("subsections") or []:
                ids = subsection.get("problem_ids") or []
                kept = [pid for pid in ids if pid in known]
                # Bare id strings in the legacy list are references too
                legacy = subsection.get("problems") or []
                kept_legacy = [p for p in legacy if not isinstance(p, str) or p in known]
                removed += (len(ids) - len(kept)) + (len(legacy) - len(kept_legacy))
                subsection["problem_ids"] = kept
                subsection["problems"] = kept_legacy
        if removed:
            self.repository.save_sections(sheet, sections)
            self.progress_service.location_index.invalidate()
        logger.info("Orphaned problem references cleaned", sheet_id=sheet_id, removed=removed)
        return removed
