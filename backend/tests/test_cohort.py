"""
Tests for core/cohort.py — coordinator rows, filters, sorting and summary cards.
"""

import json
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.cohort import build_student_rows, filter_students, sort_students, summary_cards
from core.grading import AT_RISK, DOING_WELL, NEEDS_SUPPORT, NO_DATA
from core.profile import profile_from_row

SAMPLE_PROFILES = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_profiles.json")


@pytest.fixture
def profiles():
    with open(SAMPLE_PROFILES) as f:
        return [profile_from_row(r) for r in json.load(f) if r["role"] == "student"]


@pytest.fixture
def rows(profiles):
    return build_student_rows(profiles)


class TestBuildStudentRows:

    def test_overall_rows(self, rows):
        thandi = next(r for r in rows if r["id"] == "stu-001")
        assert thandi["name"] == "Thandi Mokoena"
        assert thandi["average"] == 63
        assert thandi["status"] == DOING_WELL
        assert thandi["subjects_count"] == 12
        assert thandi["term"] is None

    def test_term_rows_recomputed(self, profiles):
        rows = build_student_rows(profiles, term=2)
        by_id = {r["id"]: r for r in rows}
        assert by_id["stu-001"]["average"] == 65
        assert by_id["stu-002"]["status"] == NO_DATA
        assert by_id["stu-002"]["average"] == 0

    def test_no_data_student(self, rows):
        sipho = next(r for r in rows if r["id"] == "stu-004")
        assert sipho["status"] == NO_DATA
        assert sipho["subjects_count"] == 0


class TestFilterStudents:

    def test_search_matches_name_email_school(self, rows):
        assert [r["id"] for r in filter_students(rows, search="lerato")] == ["stu-003"]
        assert len(filter_students(rows, search="parktown")) == 2
        assert [r["id"] for r in filter_students(rows, search="vanwyk@")] == ["stu-002"]

    def test_status(self, rows):
        assert [r["id"] for r in filter_students(rows, status=AT_RISK)] == ["stu-003"]

    def test_all_disables_filter(self, rows):
        assert len(filter_students(rows, status="all", school="all", grade="")) == 4

    def test_school_and_grade(self, rows):
        result = filter_students(rows, school="greenside high", grade="10")
        assert [r["id"] for r in result] == ["stu-004"]

    def test_student_ids(self, rows):
        assert {r["id"] for r in filter_students(rows, student_ids=["stu-001", "stu-003"])} == {"stu-001", "stu-003"}


class TestSortStudents:

    def test_by_name(self, rows):
        names = [r["name"] for r in sort_students(rows)]
        assert names == ["Johan van Wyk", "Lerato Dlamini", "Sipho Nkosi", "Thandi Mokoena"]

    def test_by_average_desc(self, rows):
        assert [r["id"] for r in sort_students(rows, "average", "desc")] == ["stu-001", "stu-002", "stu-003", "stu-004"]

    def test_by_status(self, rows):
        statuses = [r["status"] for r in sort_students(rows, "status")]
        assert statuses == [DOING_WELL, NEEDS_SUPPORT, AT_RISK, NO_DATA]

    def test_unknown_key_falls_back_to_name(self, rows):
        assert sort_students(rows, "shoe_size") == sort_students(rows, "name")


class TestSummaryCards:

    def test_cards(self, rows):
        cards = summary_cards(rows)
        assert cards["total"] == 4
        assert cards["counts"][DOING_WELL] == 1
        assert cards["percentages"][NO_DATA] == 25
        # Mean of 63, 45 and 30; students without data are left out.
        assert cards["average"] == 46
        assert cards["schools"] == ["Greenside High", "Parktown High"]
        assert cards["grades"] == ["10", "11", "12"]

    def test_empty(self):
        cards = summary_cards([])
        assert cards["total"] == 0
        assert cards["average"] == 0
