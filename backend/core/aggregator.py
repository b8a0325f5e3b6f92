"""
aggregator.py — Term aggregation and student rollups.

aggregate_term() is the single place a term average and status are computed.
It is pure: the same subjects always give the same aggregate, and the caller
owns persistence.

Averages are means of valid final percentages, rounded half up to a whole
percentage, and classified on the 60/40 term status bands.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from core.grading import (
    AT_RISK,
    DOING_WELL,
    MISSING_DATA,
    NEEDS_SUPPORT,
    NO_DATA,
    STATUS_ORDER,
    classify_subject_percentage,
    get_term_status,
    round_percentage,
)
from core.normalizer import partition_subjects


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return float(pd.Series(values, dtype="float64").mean())


# ── Term aggregate ──────────────────────────────────────────────────

def aggregate_term(subjects: Iterable[Dict[str, Any]], term: Optional[int] = None) -> Dict[str, Any]:
    """
    Aggregate one term's subjects.

    Returns:
      - term, subject_count, valid_count
      - raw_average: unrounded mean of valid percentages (None when no data)
      - average: raw_average rounded to a whole percentage, 0 when no data
      - status: Doing Well / Needs Support / At Risk / No Data
      - missing_subjects: names excluded for missing or invalid percentages
    """
    subjects = list(subjects)
    valid, missing = partition_subjects(subjects, term=term)
    raw_average = _mean([s["final_percentage"] for s in valid])

    if raw_average is None:
        average = 0
        status = NO_DATA
    else:
        average = round_percentage(raw_average)
        status = get_term_status(average)

    return {
        "term": term,
        "subject_count": len(valid) + len(missing),
        "valid_count": len(valid),
        "raw_average": round(raw_average, 2) if raw_average is not None else None,
        "average": average,
        "status": status,
        "missing_subjects": [s["name"] or "Unnamed subject" for s in missing],
    }


def subject_breakdown(subjects: Iterable[Dict[str, Any]], term: Optional[int] = None) -> Dict[str, List[Dict[str, Any]]]:
    """Group a term's subjects by the band of their own final percentage."""
    breakdown: Dict[str, List[Dict[str, Any]]] = {
        "doing_well": [],
        "needs_support": [],
        "at_risk": [],
        MISSING_DATA: [],
    }
    valid, missing = partition_subjects(list(subjects), term=term)
    for record in valid + missing:
        category = classify_subject_percentage(record["final_percentage"])
        breakdown[category].append({
            "name": record["name"],
            "level": record["level"],
            "final_percentage": record["final_percentage"],
            "grade_average": record["grade_average"],
        })
    return breakdown


def generate_feedback(status: str, breakdown: Mapping[str, List[Dict[str, Any]]]) -> str:
    """Short student-facing feedback built from the status and subject breakdown."""
    feedback = []

    if status == DOING_WELL:
        feedback.append("Excellent work! You are performing well overall.")
    elif status == NEEDS_SUPPORT:
        feedback.append("You are making progress, but there is room for improvement.")
    elif status == AT_RISK:
        feedback.append("Your performance needs immediate attention.")
    else:
        feedback.append("No results have been captured for this term yet.")

    def _names(category):
        return ", ".join(s["name"] for s in breakdown.get(category, []))

    if breakdown.get("doing_well"):
        feedback.append(f"You are excelling in: {_names('doing_well')}. Keep up the good work!")
    if breakdown.get("needs_support"):
        feedback.append(
            f"You need additional support in: {_names('needs_support')}. "
            "Consider seeking help from teachers or tutors."
        )
    if breakdown.get("at_risk"):
        feedback.append(
            f"You are at risk in: {_names('at_risk')}. Immediate intervention is recommended."
        )
    if breakdown.get(MISSING_DATA):
        feedback.append(f"Missing percentage data for: {_names(MISSING_DATA)}.")

    return " ".join(feedback)


# ── Across terms ────────────────────────────────────────────────────

def term_average_trend(term_averages: Mapping[int, Optional[float]]) -> Dict[str, Any]:
    """
    Direction of a student's term averages, first term with data to last.
    Relative change under 5% counts as stable.
    """
    ordered = [
        float(term_averages[t]) for t in sorted(term_averages)
        if term_averages[t] is not None
    ]
    if len(ordered) < 2:
        return {"trend": "insufficient_data", "percentage_change": None, "delta": None}

    first, last = ordered[0], ordered[-1]
    delta = round(last - first, 2)
    if first == 0:
        # Relative change is undefined from a zero baseline.
        trend = "improving" if last > 0 else "stable"
        return {"trend": trend, "percentage_change": None, "delta": delta}

    change = (last - first) / first * 100
    if abs(change) < 5:
        trend = "stable"
    else:
        trend = "improving" if change > 0 else "declining"
    return {"trend": trend, "percentage_change": round(change, 2), "delta": delta}


def overall_rollup(term_aggregates: Mapping[int, Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Overall average and status across terms. Only terms that carry data count;
    each contributes its rounded term average once.
    """
    averages = [
        float(agg.get("average") or 0)
        for _, agg in sorted(term_aggregates.items())
        if agg and agg.get("status", NO_DATA) != NO_DATA
    ]
    raw = _mean(averages)
    if raw is None:
        return {"overall_average": 0, "overall_performance_status": NO_DATA, "terms_counted": 0}
    overall = round_percentage(raw)
    return {
        "overall_average": overall,
        "overall_performance_status": get_term_status(overall),
        "terms_counted": len(averages),
    }


def summarize_statuses(statuses: Iterable[str]) -> Dict[str, Any]:
    """Counts and whole-number percentages per status label."""
    statuses = list(statuses)
    total = len(statuses)
    counts = {label: 0 for label in STATUS_ORDER}
    for status in statuses:
        counts[status if status in counts else NO_DATA] += 1
    percentages = {
        label: (round_percentage(count / total * 100) if total else 0)
        for label, count in counts.items()
    }
    return {"total": total, "counts": counts, "percentages": percentages}
