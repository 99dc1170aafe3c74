"""
Tests for the problem location index.
"""

from unittest.mock import MagicMock

from practice_service.repositories.sheet_repository import SheetRepository
from practice_service.services.location_index import (
    ProblemLocationIndex,
    legacy_problem_id,
    make_location,
    subsection_references,
)


def _create_sheet(db_session, data):
    return SheetRepository(db_session).create(
        name=data["name"], sections=data["sections"], sheet_id=data["id"]
    )


class TestReferenceHelpers:
    def test_legacy_problem_id(self):
        assert legacy_problem_id("p1") == "p1"
        assert legacy_problem_id({"id": "p2", "title": "x"}) == "p2"
        assert legacy_problem_id(42) is None

    def test_subsection_references_both_lists(self):
        assert subsection_references({"problem_ids": ["p1"]}, "p1")
        assert subsection_references({"problems": ["p2"]}, "p2")
        assert subsection_references({"problems": [{"id": "p3"}]}, "p3")
        assert not subsection_references({"problem_ids": [], "problems": []}, "p1")


class TestProblemLocationIndex:
    def test_finds_every_location(self, db_session, sample_sheet_data):
        _create_sheet(db_session, sample_sheet_data)
        index = ProblemLocationIndex()

        locations = index.find(db_session, "p1")

        assert locations == [
            make_location("sheet-a", "sec-arrays", "sub-basics"),
            make_location("sheet-a", "sec-arrays", "sub-two-pointers"),
        ]

    def test_finds_legacy_embedded_problems(self, db_session):
        _create_sheet(
            db_session,
            {
                "id": "legacy",
                "name": "Legacy",
                "sections": [
                    {
                        "id": "s1",
                        "name": "S1",
                        "subsections": [
                            {"id": "ss1", "name": "SS1", "problems": [{"id": "e1", "title": "E"}]},
                            {"id": "ss2", "name": "SS2", "problems": ["e1"]},
                        ],
                    }
                ],
            },
        )

        locations = ProblemLocationIndex().find(db_session, "e1")

        assert [loc["subsection_id"] for loc in locations] == ["ss1", "ss2"]

    def test_unknown_problem_has_no_locations(self, db_session, sample_sheet_data):
        _create_sheet(db_session, sample_sheet_data)

        assert ProblemLocationIndex().find(db_session, "nope") == []

    def test_memo_serves_repeat_lookups(self, db_session, sample_sheet_data):
        sheet = _create_sheet(db_session, sample_sheet_data)
        index = ProblemLocationIndex()
        index.find(db_session, "p3")

        # Remove p3 from the sheet; the memo still answers
        sections = SheetRepository.sections_copy(sheet)
        sections[1]["subsections"][0]["problem_ids"] = []
        SheetRepository(db_session).save_sections(sheet, sections)

        assert len(index.find(db_session, "p3")) == 1
        assert index.find(db_session, "p3", use_cache=False) == []

    def test_invalidate_single_problem(self, db_session, sample_sheet_data):
        _create_sheet(db_session, sample_sheet_data)
        index = ProblemLocationIndex()
        index.find(db_session, "p1")
        index.find(db_session, "p2")

        index.invalidate("p1")

        assert "p1" not in index.memo
        assert "p2" in index.memo

        index.invalidate()
        assert len(index.memo) == 0

    def test_scan_failure_returns_empty_list(self):
        db = MagicMock()
        db.query.side_effect = RuntimeError("connection lost")

        assert ProblemLocationIndex().find(db, "p1") == []
