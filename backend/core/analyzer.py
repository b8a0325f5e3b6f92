"""
analyzer.py — Cross-term subject trends.

For every subject a student has data for, builds a four-slot series (one per
term) and derives:

- average:      mean of the slots that hold a value
- trend:        last value minus first value (0 with fewer than two values)
- consistency:  population standard deviation of the values
- trend_direction: improvement (> +5) / decline (< -5) / stable
- performance_level: excellent / good / needs-improvement / at-risk

A slot is None when the subject was not taken that term or its percentage
was unusable; `invalid_terms` lists the terms where it was unusable so the
two cases can still be told apart. Subjects with no values at all are left
out of the result.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from core.aggregator import aggregate_term, term_average_trend
from core.grading import (
    TERMS,
    canonical_subject_name,
    classify_trend,
    get_performance_level,
)
from core.normalizer import parse_percentage, parse_term
from core.profile import all_subjects


def _safe_float(val) -> Optional[float]:
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def _as_list(value: Union[None, str, Sequence[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def _subject_frame(subjects: Iterable[Mapping[str, Any]], normalize_names: bool) -> pd.DataFrame:
    rows = []
    for raw in subjects:
        term = parse_term(raw.get("term"))
        if term is None:
            continue
        name = raw.get("name") or raw.get("subject_name") or ""
        name = canonical_subject_name(name) if normalize_names else str(name)
        if not name:
            continue
        pct = raw.get("final_percentage", raw.get("finalPercentage"))
        rows.append({"name": name, "term": term, "percentage": parse_percentage(pct)})
    return pd.DataFrame(rows, columns=["name", "term", "percentage"])


# ── Per-student subject trends ──────────────────────────────────────

def analyze_subject_trends(
    subjects: Iterable[Mapping[str, Any]],
    terms: Optional[Sequence[int]] = None,
    performance_filter: Union[None, str, Sequence[str]] = None,
    subject_names: Union[None, str, Sequence[str]] = None,
    normalize_names: bool = True,
) -> List[Dict[str, Any]]:
    """
    Subject trends across terms.

    `terms` restricts which term slots are filled (others stay None and the
    statistics use only the chosen terms). `performance_filter` keeps only
    the given performance levels; `subject_names` is an allow-list.
    """
    included = sorted({int(t) for t in terms if int(t) in TERMS}) if terms else list(TERMS)
    levels = {lvl.strip().lower() for lvl in _as_list(performance_filter)}
    allowed = {
        (canonical_subject_name(n) if normalize_names else n).casefold()
        for n in _as_list(subject_names)
    }

    df = _subject_frame(subjects, normalize_names)
    if df.empty:
        return []
    df = df[df["term"].isin(included)]

    results = []
    for name, sdf in df.groupby("name", sort=True):
        if allowed and str(name).casefold() not in allowed:
            continue

        slots: List[Optional[float]] = [None] * len(TERMS)
        invalid_terms = []
        for term, tdf in sdf.groupby("term"):
            pct = tdf["percentage"].dropna()
            if pct.empty:
                invalid_terms.append(int(term))
            else:
                slots[int(term) - 1] = _safe_float(pct.mean())

        present = [v for v in slots if v is not None]
        if not present:
            continue

        values = np.array(present, dtype=float)
        average = _safe_float(values.mean())
        trend = _safe_float(values[-1] - values[0]) if len(values) >= 2 else 0.0
        consistency = _safe_float(values.std(ddof=0))
        level = get_performance_level(average)

        if levels and level not in levels:
            continue

        results.append({
            "name": str(name),
            "term_performances": slots,
            "terms": included,
            "average": average,
            "trend": trend,
            "trend_direction": classify_trend(trend),
            "consistency": consistency,
            "performance_level": level,
            "data_points": len(present),
            "invalid_terms": sorted(invalid_terms),
        })

    return results


def student_term_series(profile: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Term averages for one student, recomputed from the stored subjects, plus
    the first-to-last direction of those averages.
    """
    averages: Dict[int, Optional[float]] = {}
    series = []
    for term in TERMS:
        term_data = (profile.get("terms") or {}).get(term) or {}
        aggregate = aggregate_term(term_data.get("subjects", []), term)
        average = aggregate["average"] if aggregate["valid_count"] else None
        averages[term] = average
        series.append({
            "term": term,
            "average": average,
            "status": aggregate["status"],
            "completed": bool(term_data.get("completed")),
            "subject_count": aggregate["subject_count"],
        })
    return {"terms": series, "trend": term_average_trend(averages)}


def analyze_student(profile: Mapping[str, Any], **filters) -> Dict[str, Any]:
    """Subject trends and term series for one decoded profile."""
    return {
        "student_id": profile.get("id"),
        "subjects": analyze_subject_trends(all_subjects(profile), **filters),
        "term_series": student_term_series(profile),
    }


# ── Cohort ──────────────────────────────────────────────────────────

def cohort_subject_trends(
    profiles: Iterable[Mapping[str, Any]],
    terms: Optional[Sequence[int]] = None,
    performance_filter: Union[None, str, Sequence[str]] = None,
    subject_names: Union[None, str, Sequence[str]] = None,
    normalize_names: bool = True,
) -> List[Dict[str, Any]]:
    """
    Subject trends across a group of students. Each subject/term slot is the
    mean over students with a usable percentage that term; the trend
    statistics are then computed on those means.
    """
    records = []
    for profile in profiles:
        records.extend(all_subjects(profile))

    df = _subject_frame(records, normalize_names)
    if df.empty:
        return []

    student_counts = df.dropna(subset=["percentage"]).groupby("name").size().to_dict()
    means = df.dropna(subset=["percentage"]).groupby(["name", "term"])["percentage"].mean().reset_index()
    pooled = [
        {"name": row["name"], "term": int(row["term"]), "final_percentage": float(row["percentage"])}
        for _, row in means.iterrows()
    ]

    trends = analyze_subject_trends(
        pooled,
        terms=terms,
        performance_filter=performance_filter,
        subject_names=subject_names,
        normalize_names=False,
    )
    for trend in trends:
        trend["entries"] = int(student_counts.get(trend["name"], 0))
    return trends
