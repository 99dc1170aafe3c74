"""
Tests for SheetService behaviour that is awkward to reach over HTTP.
"""

from unittest.mock import MagicMock

import pytest

from practice_service.cache import ProblemCache
from practice_service.exceptions import NotFoundException
from practice_service.models import Problem
from practice_service.services.location_index import ProblemLocationIndex
from practice_service.services.sheet_service import SheetService


@pytest.fixture
def failing_progress():
    progress = MagicMock()
    progress.location_index = ProblemLocationIndex()
    progress.delete_by_location.side_effect = RuntimeError("progress store down")
    progress.sync_problem_progress.side_effect = RuntimeError("progress store down")
    progress.cleanup_unlinked_problem.side_effect = RuntimeError("progress store down")
    return progress


@pytest.fixture
def service(db_session, failing_progress, sample_sheet_data):
    service = SheetService(db_session, progress_service=failing_progress, problem_cache=ProblemCache())
    service.create_sheet(
        name=sample_sheet_data["name"],
        sections=sample_sheet_data["sections"],
        sheet_id=sample_sheet_data["id"],
    )
    db_session.add(Problem(id="p3", title="Rotting Oranges"))
    db_session.commit()
    return service


class TestBestEffortCleanup:
    def test_delete_sheet_survives_progress_failure(self, service, failing_progress):
        service.delete_sheet("sheet-a")

        failing_progress.delete_by_location.assert_called_once_with("sheet-a")
        with pytest.raises(NotFoundException):
            service.get_sheet("sheet-a")

    def test_link_survives_sync_failure(self, service):
        problem = service.link_problem("sheet-a", "sec-arrays", "sub-basics", "p3")

        assert problem["id"] == "p3"
        subsection = service.get_sheet("sheet-a")["sections"][0]["subsections"][0]
        assert subsection["problem_ids"] == ["p1", "p2", "p3"]

    def test_unlink_survives_cleanup_failure(self, service):
        service.unlink_problem("sheet-a", "sec-graphs", "sub-bfs", "p3")

        subsection = service.get_sheet("sheet-a")["sections"][1]["subsections"][0]
        assert subsection["problem_ids"] == []


class TestStructureEdits:
    def test_missing_subsection(self, service):
        with pytest.raises(NotFoundException) as exc_info:
            service.add_embedded_problem("sheet-a", "sec-arrays", "nope", {"title": "x"})

        assert exc_info.value.message == "Subsection not found"

    def test_sections_document_is_not_mutated_in_place(self, service):
        before = service.get_sheet("sheet-a")["sections"]

        service.add_section("sheet-a", {"name": "Trees"})

        assert len(before) == 2
        assert len(service.get_sheet("sheet-a")["sections"]) == 3

    def test_update_sheet_replaces_sections(self, service):
        updated = service.update_sheet(
            "sheet-a", {"sections": [{"name": "Only", "subsections": []}]}
        )

        assert [s["name"] for s in updated["sections"]] == ["Only"]
        assert updated["sections"][0]["id"]
