"""
Tests for core/normalizer.py — form value parsing, record coercion and term validation.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.errors import ValidationError
from core.normalizer import (
    coerce_subject,
    filter_term,
    find_duplicate_names,
    is_valid_percentage,
    level_warnings,
    normalize_subject,
    parse_level,
    parse_number,
    parse_percentage,
    parse_term,
    partition_subjects,
    to_stored_subject,
    validate_term_subjects,
)


def _subject(name, level="5", pct="65", avg="60", **extra):
    return {"name": name, "level": level, "finalPercentage": pct, "gradeAverage": avg, **extra}


@pytest.fixture
def six_subjects():
    return [
        _subject("Mathematics", "7", "85", "80"),
        _subject("Physical Sciences", "6", "72", "70"),
        _subject("English Home Language", "5", "65", "60"),
        _subject("History", "4", "55", "50"),
        _subject("Geography", "3", "45", "40"),
        _subject("Life Orientation", "2", "35", "30"),
    ]


class TestParsing:

    def test_parse_number(self):
        assert parse_number("72.5") == 72.5
        assert parse_number(" 40 ") == 40.0
        assert parse_number(55) == 55.0

    def test_parse_number_rejects_junk(self):
        assert parse_number("abc") is None
        assert parse_number("") is None
        assert parse_number(None) is None
        assert parse_number("nan") is None
        assert parse_number("inf") is None
        assert parse_number(True) is None

    def test_percentage_range(self):
        assert parse_percentage("0") == 0.0
        assert parse_percentage("100") == 100.0
        assert parse_percentage("100.1") is None
        assert parse_percentage("-1") is None
        assert is_valid_percentage("99.9")
        assert not is_valid_percentage("abc")

    def test_level(self):
        assert parse_level("7") == 7
        assert parse_level("1") == 1
        assert parse_level("0") is None
        assert parse_level("8") is None
        assert parse_level("4.5") is None

    def test_term(self):
        assert parse_term(3) == 3
        assert parse_term("4") == 4
        assert parse_term(5) is None
        assert parse_term(None) is None


class TestCoerceSubject:

    def test_camel_case_strings(self):
        record = coerce_subject(_subject(" Mathematics ", "7", "85", "80", id="abc"), term=1)
        assert record == {
            "id": "abc",
            "name": "Mathematics",
            "level": 7,
            "final_percentage": 85.0,
            "grade_average": 80.0,
            "term": 1,
        }

    def test_snake_case(self):
        record = coerce_subject({"name": "History", "level": 4, "final_percentage": 55, "grade_average": 50})
        assert record["final_percentage"] == 55.0
        assert record["grade_average"] == 50.0

    def test_bad_values_become_none(self):
        record = coerce_subject(_subject("Mathematics", "x", "abc", "150"))
        assert record["level"] is None
        assert record["final_percentage"] is None
        assert record["grade_average"] is None

    def test_generates_id(self):
        record = coerce_subject(_subject("History"))
        assert record["id"]

    def test_record_term_wins(self):
        assert coerce_subject(_subject("History", term=2), term=1)["term"] == 2


class TestNormalizeSubject:

    def test_valid(self):
        assert normalize_subject(_subject("History"), term=1)["level"] == 5

    def test_invalid_lists_every_field(self):
        with pytest.raises(ValidationError) as exc:
            normalize_subject(_subject("History", "", "abc", ""))
        fields = [e["field"] for e in exc.value.errors]
        assert fields == ["level", "final_percentage", "grade_average"]
        assert exc.value.message == "History: level is required"

    def test_missing_name(self):
        with pytest.raises(ValidationError) as exc:
            normalize_subject(_subject(""))
        assert exc.value.field == "name"


class TestStoredShape:

    def test_to_stored_subject(self):
        stored = to_stored_subject(coerce_subject(_subject("History", "4", "55", "50.5", id="h1"), term=3))
        assert stored == {
            "id": "h1",
            "name": "History",
            "level": "4",
            "finalPercentage": "55",
            "gradeAverage": "50.5",
            "term": 3,
        }

    def test_missing_values_stored_blank(self):
        stored = to_stored_subject(coerce_subject(_subject("History", "", "abc", ""), term=1))
        assert stored["level"] == ""
        assert stored["finalPercentage"] == ""


class TestBuckets:

    def test_filter_term_keeps_untagged(self):
        subjects = [_subject("A", term=1), _subject("B", term=2), _subject("C")]
        assert [s["name"] for s in filter_term(subjects, 1)] == ["A", "C"]

    def test_filter_term_none_keeps_all(self):
        subjects = [_subject("A", term=1), _subject("B", term=2)]
        assert len(filter_term(subjects, None)) == 2

    def test_partition(self, six_subjects):
        six_subjects[0]["finalPercentage"] = "abc"
        valid, missing = partition_subjects(six_subjects, term=1)
        assert len(valid) == 5
        assert [m["name"] for m in missing] == ["Mathematics"]

    def test_duplicates_are_case_insensitive(self):
        subjects = [_subject("History"), _subject("history"), _subject("Geography")]
        assert find_duplicate_names(subjects) == ["history"]

    def test_duplicates_ignore_inner_whitespace(self):
        subjects = [_subject("Physical Sciences"), _subject("Physical  Sciences")]
        assert find_duplicate_names(subjects) == ["Physical  Sciences"]

    def test_missing_id_is_stable_when_position_known(self):
        first = coerce_subject(_subject("History"), term=1, position=3)
        second = coerce_subject(_subject("History"), term=1, position=3)
        assert first["id"] == second["id"]
        assert coerce_subject(_subject("History"), term=1, position=4)["id"] != first["id"]


class TestValidateTermSubjects:

    def test_valid_term(self, six_subjects):
        assert validate_term_subjects(six_subjects, 1, grade="12", school="Parktown High") == []

    def test_too_few(self, six_subjects):
        errors = validate_term_subjects(six_subjects[:5], 2, grade="12", school="Parktown High")
        assert errors[0] == {"field": "subjects", "message": "Please add at least 6 subjects for Term 2"}

    def test_too_many(self, six_subjects):
        extra = [_subject(f"Extra {i}") for i in range(4)]
        errors = validate_term_subjects(six_subjects + extra, 1, grade="12", school="Parktown High")
        assert errors[0]["message"] == "Maximum 9 subjects allowed per term"

    def test_incomplete_fields(self, six_subjects):
        six_subjects[2]["gradeAverage"] = ""
        errors = validate_term_subjects(six_subjects, 1, grade="12", school="Parktown High")
        messages = [e["message"] for e in errors]
        assert "Please complete all fields (Level, Final %, Grade Average %) for all subjects in Term 1" in messages
        assert "English Home Language: Grade Average % is required" in messages

    def test_profile_selection_required(self, six_subjects):
        errors = validate_term_subjects(six_subjects, 1, grade="", school=None)
        assert {e["field"] for e in errors} == {"grade", "school"}

    def test_profile_check_can_be_skipped(self, six_subjects):
        assert validate_term_subjects(six_subjects, 1, require_profile=False) == []

    def test_duplicate_names(self, six_subjects):
        six_subjects[5]["name"] = "mathematics"
        errors = validate_term_subjects(six_subjects, 1, grade="12", school="Parktown High")
        assert {"field": "name", "message": "mathematics is already added for Term 1"} in errors

    def test_custom_limits(self, six_subjects):
        errors = validate_term_subjects(six_subjects, 1, min_subjects=7, max_subjects=8, require_profile=False)
        assert errors[0]["message"] == "Please add at least 7 subjects for Term 1"


class TestLevelWarnings:

    def test_only_mismatches_reported(self):
        warnings = level_warnings([_subject("Mathematics", "7", "85"), _subject("History", "7", "55")])
        assert warnings == [{"subject": "History", "message": "For level 7, percentage must be 80-100%"}]
