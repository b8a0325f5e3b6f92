"""
Tests for core/grading.py — rounding, status bands, performance levels, curriculum levels.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.grading import (
    AT_RISK,
    DOING_WELL,
    NEEDS_SUPPORT,
    NO_DATA,
    canonical_subject_name,
    check_level_consistency,
    classify_subject_percentage,
    classify_trend,
    get_all_band_thresholds,
    get_level_band,
    get_performance_level,
    get_term_status,
    round_percentage,
)


class TestRoundPercentage:
    """Half-up rounding to whole percentages."""

    def test_half_rounds_up(self):
        assert round_percentage(59.5) == 60
        assert round_percentage(0.5) == 1
        assert round_percentage(72.5) == 73

    def test_below_half_rounds_down(self):
        assert round_percentage(60.49) == 60

    def test_float_noise_is_trimmed(self):
        assert round_percentage(59.4999999999) == 60

    def test_scenario_a_mean(self):
        assert round_percentage((85 + 72 + 65 + 55 + 45 + 35) / 6) == 60

    def test_returns_int(self):
        assert isinstance(round_percentage(64.2), int)

    def test_unusable_values(self):
        assert round_percentage(None) is None
        assert round_percentage(float("nan")) is None
        assert round_percentage("abc") is None


class TestTermStatus:
    """Boundary-exact 60/40 bands."""

    def test_exactly_sixty_is_doing_well(self):
        assert get_term_status(60) == DOING_WELL

    def test_fifty_nine_needs_support(self):
        assert get_term_status(59) == NEEDS_SUPPORT

    def test_exactly_forty_needs_support(self):
        assert get_term_status(40) == NEEDS_SUPPORT

    def test_thirty_nine_at_risk(self):
        assert get_term_status(39) == AT_RISK

    def test_zero_and_hundred(self):
        assert get_term_status(0) == AT_RISK
        assert get_term_status(100) == DOING_WELL

    def test_no_value_is_no_data(self):
        assert get_term_status(None) == NO_DATA
        assert get_term_status(float("nan")) == NO_DATA

    def test_subject_categories(self):
        assert classify_subject_percentage(75) == "doing_well"
        assert classify_subject_percentage(45) == "needs_support"
        assert classify_subject_percentage(10) == "at_risk"
        assert classify_subject_percentage(None) == "missing_data"


class TestPerformanceLevel:
    """Four-band scheme used for trends, separate from term status."""

    def test_bands(self):
        assert get_performance_level(80) == "excellent"
        assert get_performance_level(79.9) == "good"
        assert get_performance_level(60) == "good"
        assert get_performance_level(59) == "needs-improvement"
        assert get_performance_level(40) == "needs-improvement"
        assert get_performance_level(39.9) == "at-risk"

    def test_none(self):
        assert get_performance_level(None) is None

    def test_schemes_differ_at_seventy_five(self):
        assert get_performance_level(75) == "good"
        assert get_term_status(75) == DOING_WELL


class TestClassifyTrend:

    def test_threshold_is_exclusive(self):
        assert classify_trend(5) == "stable"
        assert classify_trend(-5) == "stable"

    def test_improvement_and_decline(self):
        assert classify_trend(5.01) == "improvement"
        assert classify_trend(20) == "improvement"
        assert classify_trend(-6) == "decline"

    def test_zero(self):
        assert classify_trend(0) == "stable"


class TestLevelBands:

    def test_level_seven(self):
        assert get_level_band(7) == {"level": 7, "min": 80, "max": 100, "label": "80-100%"}

    def test_string_level(self):
        assert get_level_band("4")["label"] == "50-59%"

    def test_unknown_level(self):
        assert get_level_band(8) is None
        assert get_level_band("x") is None

    def test_consistent_level_has_no_warning(self):
        assert check_level_consistency(7, 85) is None
        assert check_level_consistency(6, 79.5) is None

    def test_mismatch_warns(self):
        assert check_level_consistency(7, 70) == "For level 7, percentage must be 80-100%"
        assert check_level_consistency(1, 30) == "For level 1, percentage must be 0-29%"

    def test_uncheckable_is_silent(self):
        assert check_level_consistency(5, None) is None
        assert check_level_consistency(None, 50) is None


class TestSubjectNames:

    def test_catalog_case_and_whitespace(self):
        assert canonical_subject_name("  mathematics ") == "Mathematics"
        assert canonical_subject_name("Physical   Sciences") == "Physical Sciences"

    def test_unknown_name_only_collapsed(self):
        assert canonical_subject_name(" Robotics  Club ") == "Robotics Club"

    def test_blank(self):
        assert canonical_subject_name(None) == ""


class TestBandThresholds:

    def test_term_status_table(self):
        tables = get_all_band_thresholds()
        assert tables["term_status"] == [
            {"min": 60.0, "max": 100.0, "label": DOING_WELL},
            {"min": 40.0, "max": 59.99, "label": NEEDS_SUPPORT},
            {"min": 0.0, "max": 39.99, "label": AT_RISK},
        ]

    def test_levels_listed_high_to_low(self):
        levels = get_all_band_thresholds()["levels"]
        assert [lvl["level"] for lvl in levels] == [7, 6, 5, 4, 3, 2, 1]

    def test_performance_levels(self):
        labels = [row["label"] for row in get_all_band_thresholds()["performance_level"]]
        assert labels == ["excellent", "good", "needs-improvement", "at-risk"]
