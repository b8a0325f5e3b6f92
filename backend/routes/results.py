"""
Results routes — a student's term entry (read, validate, submit, re-open, remove)
and the intake profile check.
"""

import logging

from fastapi import APIRouter, Depends

from core.aggregator import aggregate_term, generate_feedback, subject_breakdown
from core.analyzer import student_term_series
from core.config import Settings
from core.grading import TERMS
from core.profile_intake import check_profile_intake
from core.store import ResultStore
from core.submission import TermSubmission
from routes.deps import get_settings, get_store
from routes.schemas import ProfileIntakeRequest, TermEntryRequest

router = APIRouter()

logger = logging.getLogger(__name__)


def _session(
    store: ResultStore,
    settings: Settings,
    student_id: str,
    term: int,
    body: TermEntryRequest,
) -> TermSubmission:
    """Workflow session holding the posted subjects; grade/school default to the stored ones."""
    profile = store.get_profile(student_id)
    term_data = profile["terms"].get(term) or {}
    return TermSubmission(
        store,
        student_id,
        term,
        settings,
        subjects=[s.model_dump() for s in body.subjects],
        grade=body.grade if body.grade is not None else profile["grade"],
        school=body.school if body.school is not None else profile["school"],
        submitted=bool(term_data.get("completed")),
    )


@router.get("/{student_id}")
def get_results(student_id: str, store: ResultStore = Depends(get_store)):
    """Stored profile plus each term's aggregate recomputed from its subjects."""
    profile = store.get_profile(student_id)
    aggregates = {}
    for term in TERMS:
        subjects = profile["terms"][term]["subjects"]
        aggregate = aggregate_term(subjects, term)
        breakdown = subject_breakdown(subjects, term)
        aggregates[term] = {
            **aggregate,
            "breakdown": breakdown,
            "feedback": generate_feedback(aggregate["status"], breakdown),
        }
    return {
        "profile": profile,
        "aggregates": aggregates,
        "term_series": student_term_series(profile),
    }


@router.post("/{student_id}/terms/{term}/validate")
def validate_term(
    student_id: str,
    term: int,
    body: TermEntryRequest,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Dry run: validation errors and the aggregate preview. Nothing is saved."""
    session = _session(store, settings, student_id, term, body)
    preview = session.preview()
    preview["valid"] = not preview["errors"]
    return preview


@router.post("/{student_id}/terms/{term}/submit")
def submit_term(
    student_id: str,
    term: int,
    body: TermEntryRequest,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    session = _session(store, settings, student_id, term, body)
    return session.submit()


@router.post("/{student_id}/terms/{term}/edit")
def edit_term(
    student_id: str,
    term: int,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Re-open a submitted term. Subjects and values are kept."""
    session = TermSubmission.load(store, student_id, term, settings)
    return session.reopen()


@router.delete("/{student_id}/terms/{term}/subjects/{subject_id}")
def remove_subject(
    student_id: str,
    term: int,
    subject_id: str,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Remove one subject; the term is re-aggregated and saved straight away."""
    session = TermSubmission.load(store, student_id, term, settings)
    result = session.remove_subject(subject_id)
    logger.info("Removed %s from Term %s for %s", result["removed"]["name"], term, student_id)
    return result


@router.post("/{student_id}/profile/validate")
def validate_profile(
    student_id: str,
    body: ProfileIntakeRequest,
    store: ResultStore = Depends(get_store),
):
    """Check the intake form before it is submitted. Failures come back as 400 with every error."""
    stored = store.get_profile(student_id)
    profile = body.model_dump()
    for field in ("first_name", "last_name", "email", "school", "grade"):
        if profile[field] in (None, ""):
            profile[field] = stored[field] or None
    check_profile_intake(profile)
    return {"student_id": student_id, "valid": True, "errors": []}
