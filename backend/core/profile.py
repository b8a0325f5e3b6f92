"""
profile.py — Student profile rows <-> indexed term data.

The backend keeps four near-identical column groups per student
(term1_subjects, term1_average, ... term4_completed). Inside the engine a
profile is a plain dict whose terms live under one key, indexed by term:

    profile["terms"][2] == {"subjects": [...], "average": 63,
                            "status": "Doing Well", "completed": True}

Decoding never recomputes stored averages; encoding writes one term
wholesale, never merging with what the row held before.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from core.grading import NO_DATA, TERMS
from core.normalizer import coerce_subject, parse_number, to_stored_subject


PROFILE_FIELDS = [
    "id", "first_name", "last_name", "email", "role",
    "selected_school", "current_grade", "school", "grade",
    "overall_average", "overall_performance_status",
    "last_term_updated", "last_term_submitted_at",
    "term_submission_status", "updated_at",
]


def term_columns(term: int) -> Dict[str, str]:
    return {
        "subjects": f"term{term}_subjects",
        "average": f"term{term}_average",
        "status": f"term{term}_performance_status",
        "completed": f"term{term}_completed",
    }


def select_columns() -> List[str]:
    """Every column a profile read needs, for the REST select clause."""
    cols = list(PROFILE_FIELDS)
    for term in TERMS:
        cols.extend(term_columns(term).values())
    return cols


def empty_term() -> Dict[str, Any]:
    return {"subjects": [], "average": 0, "status": NO_DATA, "completed": False}


def profile_from_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Decode a stored profile row. School and grade come from the columns term
    entry writes, falling back to the ones profile intake writes.
    """
    terms: Dict[int, Dict[str, Any]] = {}
    for term in TERMS:
        cols = term_columns(term)
        raw_subjects = row.get(cols["subjects"]) or []
        average = parse_number(row.get(cols["average"]))
        terms[term] = {
            "subjects": [
                coerce_subject(s, term=term, position=idx)
                for idx, s in enumerate(raw_subjects)
                if isinstance(s, Mapping)
            ],
            "average": average if average is not None else 0,
            "status": row.get(cols["status"]) or NO_DATA,
            "completed": bool(row.get(cols["completed"])),
        }

    overall = parse_number(row.get("overall_average"))
    return {
        "id": str(row.get("id") or ""),
        "first_name": row.get("first_name") or "",
        "last_name": row.get("last_name") or "",
        "email": row.get("email") or "",
        "school": row.get("selected_school") or row.get("school") or "",
        "grade": str(row.get("current_grade") or row.get("grade") or ""),
        "overall_average": overall if overall is not None else 0,
        "overall_performance_status": row.get("overall_performance_status") or NO_DATA,
        "last_term_updated": row.get("last_term_updated"),
        "last_term_submitted_at": row.get("last_term_submitted_at"),
        "term_submission_status": row.get("term_submission_status") or {},
        "updated_at": row.get("updated_at") or "",
        "terms": terms,
    }


def display_name(profile: Mapping[str, Any]) -> str:
    name = f"{profile.get('first_name', '')} {profile.get('last_name', '')}".strip()
    if name:
        return name
    email = str(profile.get("email") or "")
    return email.split("@")[0] if email else str(profile.get("id") or "Unknown")


def all_subjects(profile: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Every subject record across the four terms, each tagged with its term."""
    records = []
    for term, data in sorted((profile.get("terms") or {}).items()):
        for subject in data.get("subjects", []):
            record = dict(subject)
            record["term"] = term
            records.append(record)
    return records


def term_update_payload(
    term: int,
    subjects: List[Dict[str, Any]],
    aggregate: Mapping[str, Any],
    overall: Mapping[str, Any],
    grade: Optional[str] = None,
    school: Optional[str] = None,
    completed: bool = True,
    previous_submission_status: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Column values written when a term is submitted or re-aggregated."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    cols = term_columns(term)

    submission_status = dict(previous_submission_status or {})
    submission_status[f"term{term}"] = {
        "isSubmitted": completed,
        "submittedAt": stamp if completed else None,
        "lastModified": stamp,
    }

    payload = {
        cols["subjects"]: [to_stored_subject({**s, "term": term}) for s in subjects],
        cols["average"]: aggregate["average"],
        cols["status"]: aggregate["status"],
        cols["completed"]: completed,
        "overall_average": overall["overall_average"],
        "overall_performance_status": overall["overall_performance_status"],
        "last_term_updated": term,
        "term_submission_status": submission_status,
    }
    if completed:
        payload["last_term_submitted_at"] = stamp
    if grade is not None:
        payload["current_grade"] = grade
    if school is not None:
        payload["selected_school"] = school
    return payload
