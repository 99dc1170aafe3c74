"""Sheet persistence."""

import copy
from typing import List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import flag_modified

from ..exceptions import RepositoryException
from ..helpers import generate_id
from ..models import Sheet
from .base import BaseRepository

logger = structlog.get_logger(__name__)


class SheetRepository(BaseRepository):
    """SQLAlchemy repository for sheets and their embedded structure."""

    def list_all(self) -> List[Sheet]:
        """All sheets, oldest first."""
        try:
            return self.db.query(Sheet).order_by(Sheet.created_at.asc()).all()
        except SQLAlchemyError as e:
            logger.error("Error fetching sheets", error=str(e))
            raise RepositoryException("Failed to fetch sheets", str(e))

    def get(self, sheet_id: str) -> Optional[Sheet]:
        try:
            return self.db.query(Sheet).filter(Sheet.id == sheet_id).first()
        except SQLAlchemyError as e:
            logger.error("Error fetching sheet", sheet_id=sheet_id, error=str(e))
            raise RepositoryException("Failed to fetch sheet", str(e))

    def create(
        self,
        name: str,
        description: str = "",
        sections: Optional[list] = None,
        created_by: Optional[str] = None,
        sheet_id: Optional[str] = None,
    ) -> Sheet:
        sheet = Sheet(
            id=sheet_id or generate_id(),
            name=name,
            description=description,
            sections=sections or [],
            created_by=created_by,
        )
        self.db.add(sheet)
        self.commit("Failed to create sheet")
        self.db.refresh(sheet)
        return sheet

    def update(self, sheet: Sheet, **fields) -> Sheet:
        for key, value in fields.items():
            setattr(sheet, key, value)
        if "sections" in fields:
            flag_modified(sheet, "sections")
        self.commit("Failed to update sheet")
        self.db.refresh(sheet)
        return sheet

    def save_sections(self, sheet: Sheet, sections: list) -> Sheet:
        """Replace the whole ``sections`` document (last write wins)."""
        sheet.sections = sections
        flag_modified(sheet, "sections")
        self.commit("Failed to update sheet")
        self.db.refresh(sheet)
        return sheet

    def delete(self, sheet: Sheet) -> None:
        self.db.delete(sheet)
        self.commit("Failed to delete sheet")

    @staticmethod
    def sections_copy(sheet: Sheet) -> list:
        """Deep copy of the sections document, safe to modify and save back."""
        return copy.deepcopy(sheet.sections or [])
