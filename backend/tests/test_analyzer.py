"""
Tests for core/analyzer.py — subject trends across terms, term series and cohort trends.
"""

import json
import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.analyzer import analyze_student, analyze_subject_trends, cohort_subject_trends, student_term_series
from core.profile import profile_from_row

SAMPLE_PROFILES = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_profiles.json")


def _rec(name, term, pct):
    return {"name": name, "term": term, "finalPercentage": pct}


@pytest.fixture
def profiles():
    with open(SAMPLE_PROFILES) as f:
        return [profile_from_row(r) for r in json.load(f) if r["role"] == "student"]


class TestTrendComputation:

    def test_first_to_last_improvement(self):
        [math] = analyze_subject_trends([_rec("Mathematics", 1, "50"), _rec("Mathematics", 4, "70")])
        assert math["term_performances"] == [50.0, None, None, 70.0]
        assert math["trend"] == 20.0
        assert math["trend_direction"] == "improvement"
        assert math["average"] == 60.0
        assert math["data_points"] == 2

    def test_first_to_last_decline(self):
        [math] = analyze_subject_trends([_rec("Mathematics", 1, "70"), _rec("Mathematics", 4, "50")])
        assert math["trend"] == -20.0
        assert math["trend_direction"] == "decline"

    def test_single_term_is_stable(self):
        [math] = analyze_subject_trends([_rec("Mathematics", 3, "70")])
        assert math["trend"] == 0.0
        assert math["trend_direction"] == "stable"
        assert math["consistency"] == 0.0

    def test_four_terms(self):
        records = [_rec("Mathematics", t, v) for t, v in zip([1, 2, 3, 4], ["40", "50", "65", "80"])]
        [math] = analyze_subject_trends(records)
        assert math["trend"] == 40.0
        assert math["trend_direction"] == "improvement"
        # Population standard deviation of 40, 50, 65, 80.
        assert math["consistency"] == pytest.approx(15.16, abs=0.01)
        assert math["average"] == 58.75
        assert math["performance_level"] == "needs-improvement"

    def test_up_then_down_nets_to_stable(self):
        records = [_rec("History", 1, "50"), _rec("History", 2, "80"), _rec("History", 3, "52")]
        [history] = analyze_subject_trends(records)
        assert history["trend_direction"] == "stable"

    def test_sorted_by_name(self):
        records = [_rec("Tourism", 1, "60"), _rec("Accounting", 1, "60"), _rec("History", 1, "60")]
        assert [t["name"] for t in analyze_subject_trends(records)] == ["Accounting", "History", "Tourism"]


class TestAbsentAndInvalid:

    def test_invalid_term_recorded(self):
        records = [_rec("Mathematics", 1, "40"), _rec("Mathematics", 2, "abc"), _rec("Mathematics", 3, "60")]
        [math] = analyze_subject_trends(records)
        assert math["term_performances"] == [40.0, None, 60.0, None]
        assert math["invalid_terms"] == [2]
        assert math["data_points"] == 2

    def test_absent_term_not_invalid(self):
        [math] = analyze_subject_trends([_rec("Mathematics", 1, "40"), _rec("Mathematics", 3, "60")])
        assert math["invalid_terms"] == []

    def test_subject_without_values_dropped(self):
        records = [_rec("Mathematics", 1, "40"), _rec("Tourism", 1, ""), _rec("Tourism", 2, "abc")]
        assert [t["name"] for t in analyze_subject_trends(records)] == ["Mathematics"]

    def test_records_without_term_ignored(self):
        assert analyze_subject_trends([{"name": "Mathematics", "finalPercentage": "50"}]) == []

    def test_empty(self):
        assert analyze_subject_trends([]) == []


class TestFilters:

    @pytest.fixture
    def records(self):
        return [
            _rec("Mathematics", 1, "40"), _rec("Mathematics", 2, "50"),
            _rec("Mathematics", 3, "65"), _rec("Mathematics", 4, "80"),
            _rec("Accounting", 1, "90"), _rec("Accounting", 2, "85"),
        ]

    def test_term_subset(self, records):
        trends = analyze_subject_trends(records, terms=[1, 2])
        math = next(t for t in trends if t["name"] == "Mathematics")
        assert math["term_performances"] == [40.0, 50.0, None, None]
        assert math["trend"] == 10.0
        assert math["terms"] == [1, 2]

    def test_performance_filter(self, records):
        trends = analyze_subject_trends(records, performance_filter="excellent")
        assert [t["name"] for t in trends] == ["Accounting"]

    def test_performance_filter_list(self, records):
        trends = analyze_subject_trends(records, performance_filter=["excellent", "needs-improvement"])
        assert len(trends) == 2

    def test_subject_allow_list(self, records):
        trends = analyze_subject_trends(records, subject_names="mathematics")
        assert [t["name"] for t in trends] == ["Mathematics"]


class TestNameNormalisation:

    def test_names_merged_by_default(self):
        records = [_rec("Mathematics", 1, "40"), _rec("  mathematics", 2, "50")]
        [math] = analyze_subject_trends(records)
        assert math["name"] == "Mathematics"
        assert math["data_points"] == 2

    def test_names_kept_apart_when_disabled(self):
        records = [_rec("Mathematics", 1, "40"), _rec("mathematics ", 2, "50")]
        assert len(analyze_subject_trends(records, normalize_names=False)) == 2


class TestStudentSeries:

    def test_term_series(self, profiles):
        thandi = next(p for p in profiles if p["id"] == "stu-001")
        series = student_term_series(thandi)
        assert [t["average"] for t in series["terms"]] == [60, 65, None, None]
        assert series["terms"][0]["completed"] is True
        assert series["terms"][2]["status"] == "No Data"
        assert series["trend"]["trend"] == "improving"

    def test_analyze_student(self, profiles):
        thandi = next(p for p in profiles if p["id"] == "stu-001")
        result = analyze_student(thandi, terms=[2])
        assert result["student_id"] == "stu-001"
        assert len(result["subjects"]) == 6
        assert all(s["data_points"] == 1 for s in result["subjects"])


class TestCohortTrends:

    def test_pooled_means(self, profiles):
        trends = cohort_subject_trends(profiles)
        math = next(t for t in trends if t["name"] == "Mathematics")
        assert math["term_performances"][0] == pytest.approx(48.33, abs=0.01)
        assert math["term_performances"][1] == 90.0
        assert math["entries"] == 4
        assert math["trend_direction"] == "improvement"

    def test_no_profiles(self):
        assert cohort_subject_trends([]) == []
