"""
Analyze routes — term aggregation, cross-term trends and coordinator views.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from core.aggregator import aggregate_term, generate_feedback, subject_breakdown
from core.analyzer import analyze_student, cohort_subject_trends
from core.cohort import build_student_rows, filter_students, sort_students, summary_cards
from core.config import Settings
from core.errors import ValidationError
from core.grading import GRADE_OPTIONS, STATUS_ORDER, SUBJECT_CATALOG, TERMS, get_all_band_thresholds
from core.normalizer import level_warnings
from core.store import ResultStore
from routes.deps import get_settings, get_store
from routes.schemas import TermAnalysisRequest

router = APIRouter()


def _parse_terms(raw: Optional[str]) -> Optional[List[int]]:
    """'1,3' -> [1, 3]. None or empty means every term."""
    if not raw or not raw.strip():
        return None
    terms = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) not in TERMS:
            raise ValidationError(f"Invalid term '{part}'. Terms are 1-4.", field="terms")
        terms.append(int(part))
    return terms


def _parse_term(raw: Optional[int]) -> Optional[int]:
    if raw is not None and raw not in TERMS:
        raise ValidationError(f"Invalid term number: {raw}", field="term")
    return raw


@router.post("/term")
async def analyze_term(payload: TermAnalysisRequest):
    """Aggregate, breakdown and feedback for posted subjects. Nothing is saved."""
    term = _parse_term(payload.term)
    subjects = [s.model_dump() for s in payload.subjects]
    aggregate = aggregate_term(subjects, term)
    breakdown = subject_breakdown(subjects, term)
    return {
        "aggregate": aggregate,
        "breakdown": breakdown,
        "feedback": generate_feedback(aggregate["status"], breakdown),
        "warnings": level_warnings(subjects),
    }


@router.get("/trends/{student_id}")
def student_trends(
    student_id: str,
    terms: Optional[str] = None,
    band: Optional[str] = None,
    subjects: Optional[str] = None,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Per-subject trends across terms for one student."""
    profile = store.get_profile(student_id)
    return analyze_student(
        profile,
        terms=_parse_terms(terms),
        performance_filter=band,
        subject_names=subjects,
        normalize_names=settings.normalize_subject_names,
    )


@router.get("/cohort")
def cohort(
    term: Optional[int] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    school: Optional[str] = None,
    grade: Optional[str] = None,
    sort_by: str = "name",
    direction: str = "asc",
    store: ResultStore = Depends(get_store),
):
    """Coordinator table: filtered, sorted student rows plus summary cards."""
    rows = build_student_rows(store.list_students(), term=_parse_term(term))
    rows = filter_students(rows, search=search, status=status, school=school, grade=grade)
    rows = sort_students(rows, sort_by=sort_by, direction=direction)
    return {"students": rows, "summary": summary_cards(rows), "term": term}


@router.get("/cohort/trends")
def cohort_trends(
    terms: Optional[str] = None,
    band: Optional[str] = None,
    subjects: Optional[str] = None,
    school: Optional[str] = None,
    grade: Optional[str] = None,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Subject trends pooled over the students matching the school/grade filters."""
    profiles = store.list_students()
    rows = filter_students(build_student_rows(profiles), school=school, grade=grade)
    wanted = {r["id"] for r in rows}
    selected = [p for p in profiles if p.get("id") in wanted]
    return {
        "students": len(selected),
        "subjects": cohort_subject_trends(
            selected,
            terms=_parse_terms(terms),
            performance_filter=band,
            subject_names=subjects,
            normalize_names=settings.normalize_subject_names,
        ),
    }


@router.get("/bands")
async def bands():
    """Band tables, statuses, grades and the subject catalog for the frontend."""
    return {
        **get_all_band_thresholds(),
        "statuses": STATUS_ORDER,
        "terms": TERMS,
        "grades": GRADE_OPTIONS,
        "subjects": SUBJECT_CATALOG,
    }
