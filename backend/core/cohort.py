"""
cohort.py — Coordinator views over all students.

build_student_rows() flattens decoded profiles into table rows. Without a
term the persisted overall rollup is shown; with a term, average and status
are recomputed from that term's subjects so a coordinator always sees
figures consistent with the subjects on record.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from core.aggregator import aggregate_term, summarize_statuses
from core.grading import NO_DATA, STATUS_ORDER, round_percentage
from core.profile import display_name


SORT_KEYS = ("name", "school", "average", "status")


def build_student_rows(profiles: Iterable[Mapping[str, Any]], term: Optional[int] = None) -> List[Dict[str, Any]]:
    rows = []
    for profile in profiles:
        terms = profile.get("terms") or {}
        subjects_count = sum(len((terms.get(t) or {}).get("subjects", [])) for t in terms)

        if term is None:
            average = profile.get("overall_average") or 0
            status = profile.get("overall_performance_status") or NO_DATA
        else:
            aggregate = aggregate_term((terms.get(term) or {}).get("subjects", []), term)
            average = aggregate["average"]
            status = aggregate["status"]

        rows.append({
            "id": profile.get("id"),
            "name": display_name(profile),
            "email": profile.get("email", ""),
            "school": profile.get("school", ""),
            "grade": profile.get("grade", ""),
            "average": round_percentage(average) or 0,
            "status": status,
            "subjects_count": subjects_count,
            "last_updated": profile.get("updated_at", ""),
            "term": term,
        })
    return rows


def filter_students(
    rows: Iterable[Dict[str, Any]],
    search: Optional[str] = None,
    status: Optional[str] = None,
    school: Optional[str] = None,
    grade: Optional[str] = None,
    student_ids: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Apply the coordinator table filters. "all" (or empty) disables a filter."""
    def _active(value):
        return value is not None and str(value).strip() != "" and str(value).strip().lower() != "all"

    result = list(rows)
    if _active(search):
        needle = str(search).strip().lower()
        result = [
            r for r in result
            if needle in str(r.get("name", "")).lower()
            or needle in str(r.get("email", "")).lower()
            or needle in str(r.get("school", "")).lower()
        ]
    if _active(status):
        result = [r for r in result if r.get("status") == status]
    if _active(school):
        result = [r for r in result if str(r.get("school", "")).strip().lower() == str(school).strip().lower()]
    if _active(grade):
        result = [r for r in result if str(r.get("grade", "")).strip() == str(grade).strip()]
    if student_ids:
        wanted = {str(s) for s in student_ids}
        result = [r for r in result if str(r.get("id")) in wanted]
    return result


def sort_students(rows: Iterable[Dict[str, Any]], sort_by: str = "name", direction: str = "asc") -> List[Dict[str, Any]]:
    if sort_by not in SORT_KEYS:
        sort_by = "name"
    reverse = str(direction).lower() == "desc"

    if sort_by == "average":
        key = lambda r: (float(r.get("average") or 0), str(r.get("name", "")).lower())
    elif sort_by == "status":
        order = {label: idx for idx, label in enumerate(STATUS_ORDER)}
        key = lambda r: (order.get(r.get("status"), len(order)), str(r.get("name", "")).lower())
    else:
        key = lambda r: str(r.get(sort_by, "")).lower()
    return sorted(rows, key=key, reverse=reverse)


def summary_cards(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals for the dashboard cards: status counts/percentages and the cohort mean."""
    rows = list(rows)
    summary = summarize_statuses(r.get("status", NO_DATA) for r in rows)

    with_data = [float(r["average"]) for r in rows if r.get("status") != NO_DATA]
    summary["average"] = round_percentage(pd.Series(with_data).mean()) if with_data else 0
    summary["schools"] = sorted({r["school"] for r in rows if r.get("school")})
    summary["grades"] = sorted({str(r["grade"]) for r in rows if r.get("grade")})
    return summary
