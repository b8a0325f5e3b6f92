"""
normalizer.py — Subject record parsing and validation.

Raw subject entries arrive as form values (strings) or as rows stored by the
backend, in either camelCase (finalPercentage, gradeAverage) or snake_case.
This module turns them into canonical records:

    {"id", "name", "level", "final_percentage", "grade_average", "term"}

Unparseable numbers become None. A record is usable for aggregation only when
its final percentage parses and lies in [0, 100]; anything else goes to the
missing-data bucket and is never counted as zero.
"""

import math
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.errors import ValidationError
from core.grading import canonical_subject_name, check_level_consistency


FIELD_ALIASES = {
    "final_percentage": ["final_percentage", "finalPercentage", "percentage"],
    "grade_average": ["grade_average", "gradeAverage"],
    "level": ["level"],
    "name": ["name", "subject_name", "subject"],
    "term": ["term"],
    "id": ["id", "subject_id"],
}

FIELD_LABELS = {
    "name": "Subject",
    "level": "Level",
    "final_percentage": "Final %",
    "grade_average": "Grade Average %",
}


# ── Parsing ─────────────────────────────────────────────────────────

def _get(raw: Dict[str, Any], field: str) -> Any:
    for alias in FIELD_ALIASES[field]:
        if alias in raw:
            return raw[alias]
    return None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def parse_number(value: Any) -> Optional[float]:
    """Parse a float from a form value; None for blanks, junk, NaN and inf."""
    if _is_blank(value) or isinstance(value, bool):
        return None
    try:
        v = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def is_valid_percentage(value: Any) -> bool:
    v = parse_number(value)
    return v is not None and 0 <= v <= 100


def parse_percentage(value: Any) -> Optional[float]:
    """Parsed percentage when it lies in [0, 100], else None."""
    v = parse_number(value)
    if v is None or v < 0 or v > 100:
        return None
    return v


def parse_level(value: Any) -> Optional[int]:
    v = parse_number(value)
    if v is None or not float(v).is_integer():
        return None
    level = int(v)
    return level if 1 <= level <= 7 else None


def parse_term(value: Any) -> Optional[int]:
    v = parse_number(value)
    if v is None or not float(v).is_integer():
        return None
    term = int(v)
    return term if 1 <= term <= 4 else None


# ── Records ─────────────────────────────────────────────────────────

def stable_subject_id(term: Optional[int], position: int, name: str) -> str:
    """Id for a stored subject that was saved without one. Same inputs, same id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"term{term}/{position}/{name}"))


def coerce_subject(
    raw: Dict[str, Any],
    term: Optional[int] = None,
    position: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Lenient conversion to a canonical record. Fields that fail to parse are
    set to None rather than raising; use normalize_subject() for the strict form.

    A record with no id gets a stable one when its `position` in the stored
    list is known, otherwise a fresh uuid4.
    """
    record_term = parse_term(_get(raw, "term"))
    name = str(_get(raw, "name") or "").strip()
    subject_id = _get(raw, "id")
    if not subject_id:
        subject_id = uuid.uuid4() if position is None else stable_subject_id(term, position, name)
    return {
        "id": str(subject_id),
        "name": name,
        "level": parse_level(_get(raw, "level")),
        "final_percentage": parse_percentage(_get(raw, "final_percentage")),
        "grade_average": parse_percentage(_get(raw, "grade_average")),
        "term": record_term if record_term is not None else term,
    }


def subject_field_errors(raw: Dict[str, Any], position: Optional[int] = None) -> List[Dict[str, Any]]:
    """Every field-level problem with one raw entry, as {field, message} dicts."""
    name = str(_get(raw, "name") or "").strip()
    label = name or (f"Subject {position}" if position is not None else "Subject")
    errors = []

    if not name:
        errors.append({"field": "name", "message": f"{label} name is required"})

    level_raw = _get(raw, "level")
    if _is_blank(level_raw):
        errors.append({"field": "level", "message": f"{label}: level is required"})
    elif parse_level(level_raw) is None:
        errors.append({"field": "level", "message": f"{label}: level must be a whole number from 1 to 7"})

    for field in ("final_percentage", "grade_average"):
        value = _get(raw, field)
        if _is_blank(value):
            errors.append({"field": field, "message": f"{label}: {FIELD_LABELS[field]} is required"})
        elif parse_percentage(value) is None:
            errors.append({
                "field": field,
                "message": f"{label}: {FIELD_LABELS[field]} must be a number between 0 and 100",
            })
    return errors


def normalize_subject(raw: Dict[str, Any], term: Optional[int] = None) -> Dict[str, Any]:
    """Strict conversion: raises ValidationError listing every failing field."""
    errors = subject_field_errors(raw)
    if errors:
        raise ValidationError(errors[0]["message"], field=errors[0]["field"], errors=errors)
    return coerce_subject(raw, term=term)


def to_stored_subject(record: Dict[str, Any]) -> Dict[str, Any]:
    """Serialise a canonical record in the camelCase shape the backend stores."""
    def _text(value):
        if value is None:
            return ""
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    return {
        "id": record["id"],
        "name": record["name"],
        "level": _text(record.get("level")),
        "finalPercentage": _text(record.get("final_percentage")),
        "gradeAverage": _text(record.get("grade_average")),
        "term": record.get("term"),
    }


# ── Buckets & term validation ───────────────────────────────────────

def filter_term(subjects: Iterable[Dict[str, Any]], term: Optional[int]) -> List[Dict[str, Any]]:
    """Subjects belonging to `term`. Records that carry no term are taken to belong to it."""
    subjects = list(subjects)
    if term is None:
        return subjects
    return [s for s in subjects if parse_term(_get(s, "term")) in (term, None)]


def partition_subjects(
    subjects: Iterable[Dict[str, Any]],
    term: Optional[int] = None,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split into (valid, missing) by the final-percentage rule."""
    valid, missing = [], []
    for raw in filter_term(subjects, term):
        record = coerce_subject(raw, term=term)
        if record["final_percentage"] is None:
            missing.append(record)
        else:
            valid.append(record)
    return valid, missing


def find_duplicate_names(subjects: Iterable[Dict[str, Any]]) -> List[str]:
    seen, duplicates = set(), []
    for raw in subjects:
        name = str(_get(raw, "name") or "").strip()
        if not name:
            continue
        key = canonical_subject_name(name).casefold()
        if key in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(key)
    return duplicates


def validate_term_subjects(
    subjects: Iterable[Dict[str, Any]],
    term: int,
    min_subjects: int = 6,
    max_subjects: int = 9,
    grade: Optional[str] = None,
    school: Optional[str] = None,
    require_profile: bool = True,
) -> List[Dict[str, Any]]:
    """
    All reasons a term cannot be submitted, in the order a student should fix
    them. An empty list means the term is submittable.
    """
    term_subjects = filter_term(subjects, term)
    errors: List[Dict[str, Any]] = []

    count = len(term_subjects)
    if count < min_subjects:
        errors.append({
            "field": "subjects",
            "message": f"Please add at least {min_subjects} subjects for Term {term}",
        })
    elif count > max_subjects:
        errors.append({
            "field": "subjects",
            "message": f"Maximum {max_subjects} subjects allowed per term",
        })

    field_errors = []
    for idx, raw in enumerate(term_subjects, 1):
        field_errors.extend(subject_field_errors(raw, position=idx))
    if any(e["field"] != "name" and "required" in e["message"] for e in field_errors):
        errors.append({
            "field": "subjects",
            "message": (
                "Please complete all fields (Level, Final %, Grade Average %) "
                f"for all subjects in Term {term}"
            ),
        })
    errors.extend(field_errors)

    for name in find_duplicate_names(term_subjects):
        errors.append({"field": "name", "message": f"{name} is already added for Term {term}"})

    if require_profile:
        if not str(grade or "").strip():
            errors.append({"field": "grade", "message": "Please select a grade"})
        if not str(school or "").strip():
            errors.append({"field": "school", "message": "Please select a school"})

    return errors


def level_warnings(subjects: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Soft level/percentage mismatches. These never block submission."""
    warnings = []
    for raw in subjects:
        record = coerce_subject(raw)
        message = check_level_consistency(record["level"], record["final_percentage"])
        if message:
            warnings.append({"subject": record["name"], "message": message})
    return warnings
