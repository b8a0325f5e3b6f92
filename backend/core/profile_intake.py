"""
profile_intake.py — Checks a student's intake profile before it is submitted.

A draft profile may be saved in any state. Submitting it requires:

    id_certificate            exactly 13 digits once non-digits are dropped
    learner_cell_phone,
    parent_guardian_contact   South African numbers: +27 or 0, then 6-8, then 8 digits
    learner_landline,
    parent_guardian_landline  same format, only checked when given
    email                     name@domain.tld
    grade                     8 to 12
    household_members         whole number from 1 to 20
    original_essay            300 to 500 words

and every field in REQUIRED_FIELDS to be filled (blank strings and empty
lists count as missing).
"""

import re
from typing import Any, Dict, List, Mapping, Optional

from core.errors import ValidationError
from core.normalizer import parse_number


REQUIRED_FIELDS = [
    "last_name", "first_name", "gender", "population_group", "grade", "school",
    "high_school_situation", "facilities", "id_certificate", "learner_cell_phone",
    "parent_guardian_name", "parent_guardian_contact", "household_members",
    "who_do_you_live_with", "family_members_occupation", "positive_impact",
    "plans_after_school", "career_interest", "personality_statements",
    "successful_community_member", "tips_for_friend", "kimberley_challenges",
    "original_essay", "main_language", "religious_affiliation", "email",
]

PHONE_PATTERN = re.compile(r"^(\+27|0)[6-8][0-9]{8}$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
GRADE_PATTERN = re.compile(r"^([8-9]|1[0-2])$")

ESSAY_MIN_WORDS = 300
ESSAY_MAX_WORDS = 500
MAX_HOUSEHOLD_MEMBERS = 20


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def field_label(field: str) -> str:
    """'parent_guardian_name' -> 'Parent Guardian Name'."""
    return " ".join(word.capitalize() for word in field.split("_"))


def count_words(text: Any) -> int:
    return len(_text(text).split())


def id_number_error(value: Any) -> Optional[str]:
    digits = re.sub(r"[^0-9]", "", _text(value))
    if len(digits) != 13:
        return "ID number must be exactly 13 digits."
    return None


def is_valid_phone(value: Any) -> bool:
    return bool(PHONE_PATTERN.match(re.sub(r"[^0-9+]", "", _text(value))))


def is_valid_email(value: Any) -> bool:
    return bool(EMAIL_PATTERN.match(_text(value)))


def is_valid_grade(value: Any) -> bool:
    return bool(GRADE_PATTERN.match(_text(value)))


def is_valid_household_size(value: Any) -> bool:
    count = parse_number(value)
    return count is not None and float(count).is_integer() and 0 < count <= MAX_HOUSEHOLD_MEMBERS


def is_valid_essay(value: Any) -> bool:
    return ESSAY_MIN_WORDS <= count_words(value) <= ESSAY_MAX_WORDS


def missing_fields_message(missing: List[str]) -> str:
    labels = [field_label(f) for f in missing]
    message = f"Please fill in all required fields: {', '.join(labels[:3])}"
    if len(labels) > 3:
        message += f" and {len(labels) - 3} more..."
    return message


def validate_profile_intake(profile: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Every reason the profile cannot be submitted, as {field, message} dicts,
    in the order a student should fix them. Empty means submittable.
    """
    errors: List[Dict[str, Any]] = []

    id_error = id_number_error(profile.get("id_certificate"))
    if id_error:
        errors.append({"field": "id_certificate", "message": f"Invalid ID Number: {id_error}"})

    phones = [
        ("learner_cell_phone", True, "Please enter a valid South African cell phone number"),
        ("learner_landline", False, "Please enter a valid landline number"),
        ("parent_guardian_contact", True, "Please enter a valid parent/guardian contact number"),
        ("parent_guardian_landline", False, "Please enter a valid parent/guardian landline number"),
    ]
    for field, required, message in phones:
        value = profile.get(field)
        if (required or not _is_missing(value)) and not is_valid_phone(value):
            errors.append({"field": field, "message": message})

    if not is_valid_email(profile.get("email")):
        errors.append({"field": "email", "message": "Please enter a valid email address"})

    if not is_valid_grade(profile.get("grade")):
        errors.append({"field": "grade", "message": "Please enter a valid grade (8-12)"})

    if not is_valid_household_size(profile.get("household_members")):
        errors.append({
            "field": "household_members",
            "message": f"Please enter a valid number of household members (1-{MAX_HOUSEHOLD_MEMBERS})",
        })

    if not is_valid_essay(profile.get("original_essay")):
        errors.append({
            "field": "original_essay",
            "message": f"Essay must be between {ESSAY_MIN_WORDS} and {ESSAY_MAX_WORDS} words",
        })

    missing = [f for f in REQUIRED_FIELDS if _is_missing(profile.get(f))]
    if missing:
        errors.append({"field": "required", "message": missing_fields_message(missing)})

    return errors


def check_profile_intake(profile: Mapping[str, Any]) -> Dict[str, Any]:
    """Raise ValidationError carrying every failure; return the profile when it passes."""
    errors = validate_profile_intake(profile)
    if errors:
        raise ValidationError(errors[0]["message"], field=errors[0]["field"], errors=errors)
    return dict(profile)
