"""
submission.py — Term entry workflow for one student and one term.

    EDITING --submit--> VALIDATING --ok--> AGGREGATING --> PERSISTING --ok--> SUBMITTED
       ^                    |                                  |                 |
       +------ rejected ----+-------------- store failed ------+                 |
       +------------------------------------ edit() -----------------------------+

A rejected submission returns to EDITING with nothing written. A failed write
returns to EDITING too, but keeps the computed aggregate on `last_aggregate`
so the student can retry without re-entering anything. Only one submission
per (student, term) may be persisting at a time within the process.
"""

import logging
import threading
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from core.aggregator import aggregate_term, generate_feedback, overall_rollup, subject_breakdown
from core.config import Settings
from core.errors import (
    DuplicateSubjectError,
    InvalidTransitionError,
    PersistenceError,
    SubjectLimitError,
    SubmissionInProgressError,
    ValidationError,
)
from core.grading import canonical_subject_name
from core.normalizer import coerce_subject, level_warnings, normalize_subject, validate_term_subjects
from core.profile import term_update_payload
from core.store import ResultStore


logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    EDITING = "editing"
    VALIDATING = "validating"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    SUBMITTED = "submitted"


_in_flight: Set[Tuple[str, int]] = set()
_in_flight_lock = threading.Lock()


def _claim(key: Tuple[str, int]) -> bool:
    with _in_flight_lock:
        if key in _in_flight:
            return False
        _in_flight.add(key)
        return True


def _release(key: Tuple[str, int]):
    with _in_flight_lock:
        _in_flight.discard(key)


class TermSubmission:
    """Mutable editing session for one term, bound to a result store."""

    def __init__(
        self,
        store: ResultStore,
        student_id: str,
        term: int,
        settings: Settings,
        subjects: Optional[List[Dict[str, Any]]] = None,
        grade: str = "",
        school: str = "",
        submitted: bool = False,
    ):
        if term not in (1, 2, 3, 4):
            raise ValidationError(f"Invalid term number: {term}", field="term")
        self.store = store
        self.student_id = str(student_id)
        self.term = term
        self.settings = settings
        self.subjects: List[Dict[str, Any]] = [
            dict(s, term=term, id=str(s.get("id") or uuid.uuid4()), name=self._subject_name(s.get("name")))
            for s in (subjects or [])
        ]
        self.grade = str(grade or "")
        self.school = str(school or "")
        self.state = SubmissionState.SUBMITTED if submitted else SubmissionState.EDITING
        self.last_aggregate: Optional[Dict[str, Any]] = None
        self.notices: List[str] = []

    @classmethod
    def load(cls, store: ResultStore, student_id: str, term: int, settings: Settings) -> "TermSubmission":
        """Resume from what the store holds for this student and term."""
        profile = store.get_profile(student_id)
        term_data = profile["terms"].get(term) or {}
        return cls(
            store,
            student_id,
            term,
            settings,
            subjects=term_data.get("subjects", []),
            grade=profile["grade"],
            school=profile["school"],
            submitted=bool(term_data.get("completed")),
        )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def key(self) -> Tuple[str, int]:
        return (self.student_id, self.term)

    def _require_editing(self, action: str):
        if self.state == SubmissionState.PERSISTING:
            raise SubmissionInProgressError(f"Cannot {action} while Term {self.term} is being saved.")
        if self.state != SubmissionState.EDITING:
            raise InvalidTransitionError(
                f"Term {self.term} has been submitted. Choose edit before you {action}."
            )

    def _notice(self, message: str, noisy: bool = False):
        if noisy and self.settings.suppress_noisy_notices:
            return
        self.notices.append(message)

    def _subject_name(self, name: str) -> str:
        if self.settings.normalize_subject_names:
            return canonical_subject_name(name)
        return str(name or "").strip()

    def _find(self, subject_id: str) -> int:
        for idx, subject in enumerate(self.subjects):
            if str(subject.get("id")) == str(subject_id):
                return idx
        raise ValidationError(f"Subject '{subject_id}' is not part of Term {self.term}.", field="subject_id")

    def preview(self) -> Dict[str, Any]:
        """Aggregate of the current, possibly incomplete, subject list."""
        aggregate = aggregate_term(self.subjects, self.term)
        breakdown = subject_breakdown(self.subjects, self.term)
        return {
            "aggregate": aggregate,
            "breakdown": breakdown,
            "feedback": generate_feedback(aggregate["status"], breakdown),
            "errors": self.validation_errors(),
            "warnings": level_warnings(self.subjects),
        }

    def validation_errors(self) -> List[Dict[str, Any]]:
        return validate_term_subjects(
            self.subjects,
            self.term,
            min_subjects=self.settings.min_subjects,
            max_subjects=self.settings.max_subjects,
            grade=self.grade,
            school=self.school,
        )

    # ── Editing ─────────────────────────────────────────────────────

    def set_grade(self, grade: str):
        self._require_editing("change the grade")
        self.grade = str(grade or "").strip()
        self._notice(f"Grade {self.grade} selected", noisy=True)

    def set_school(self, school: str):
        self._require_editing("change the school")
        self.school = str(school or "").strip()
        self._notice(f"{self.school} selected", noisy=True)

    def add_subject(self, name: str, **values) -> Optional[Dict[str, Any]]:
        """
        Add a subject with optional level/final_percentage/grade_average values.
        Adding a name that is already present is a no-op and returns None.
        """
        self._require_editing("add subjects")
        subject_name = self._subject_name(name)
        if not subject_name:
            raise ValidationError("Please select a subject", field="name")

        if any(self._subject_name(s.get("name")).casefold() == subject_name.casefold() for s in self.subjects):
            self._notice(f"{subject_name} is already added for Term {self.term}")
            return None

        if len(self.subjects) >= self.settings.max_subjects:
            raise SubjectLimitError(
                f"Maximum {self.settings.max_subjects} subjects allowed per term", field="subjects"
            )

        subject = {
            "id": str(uuid.uuid4()),
            "name": subject_name,
            "level": values.get("level", ""),
            "final_percentage": values.get("final_percentage", ""),
            "grade_average": values.get("grade_average", ""),
            "term": self.term,
        }
        self.subjects.append(subject)
        self._notice(f"{subject_name} added to Term {self.term}", noisy=True)
        return subject

    def update_subject(self, subject_id: str, **fields) -> Dict[str, Any]:
        self._require_editing("change subjects")
        idx = self._find(subject_id)
        allowed = {"level", "final_percentage", "grade_average", "name"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Unknown subject field(s): {', '.join(sorted(unknown))}", field="subject")

        if "name" in fields:
            new_name = self._subject_name(fields["name"])
            for other in self.subjects:
                if other is not self.subjects[idx] and self._subject_name(other.get("name")).casefold() == new_name.casefold():
                    raise DuplicateSubjectError(f"{new_name} is already added for Term {self.term}", field="name")
            fields["name"] = new_name

        self.subjects[idx].update(fields)
        return self.subjects[idx]

    def copy_from_previous_term(self, previous_subjects: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        """
        Add the previous term's subject names with empty values, skipping names
        already present. Returns the subjects that were added.
        """
        self._require_editing("copy subjects")
        previous_term = self.term - 1
        if previous_term < 1:
            raise ValidationError("No previous term to copy from.", field="term")

        if previous_subjects is None:
            previous_subjects = self.store.get_profile(self.student_id)["terms"][previous_term]["subjects"]
        if not previous_subjects:
            raise ValidationError(
                f"No subjects found in Term {previous_term} to copy. "
                f"Please add subjects to Term {previous_term} first.",
                field="subjects",
            )

        added = []
        for previous in previous_subjects:
            if len(self.subjects) >= self.settings.max_subjects:
                self._notice(f"Stopped copying at the {self.settings.max_subjects}-subject limit")
                break
            subject = self.add_subject(previous.get("name", ""))
            if subject is not None:
                added.append(subject)
        return added

    def remove_subject(self, subject_id: str) -> Dict[str, Any]:
        """
        Remove a subject and immediately re-aggregate and persist the term.
        If the write fails the subject is put back and the error re-raised.
        """
        if self.state not in (SubmissionState.EDITING, SubmissionState.SUBMITTED):
            raise SubmissionInProgressError(f"Cannot remove subjects while Term {self.term} is being saved.")

        idx = self._find(subject_id)
        if not _claim(self.key):
            raise SubmissionInProgressError(f"Cannot remove subjects while Term {self.term} is being saved.")
        removed = self.subjects.pop(idx)
        aggregate = aggregate_term(self.subjects, self.term)

        try:
            profile = self.store.get_profile(self.student_id)
            self._write(profile, aggregate, completed=self.state == SubmissionState.SUBMITTED)
        except PersistenceError:
            self.subjects.insert(idx, removed)
            logger.error("Rolled back removal of %s from Term %s for %s", removed.get("name"), self.term, self.student_id)
            raise
        finally:
            _release(self.key)

        self.last_aggregate = aggregate
        return {"removed": removed, "aggregate": aggregate}

    # ── Submission ──────────────────────────────────────────────────

    def _write(self, profile: Dict[str, Any], aggregate: Dict[str, Any], completed: bool) -> Dict[str, Any]:
        terms = {t: dict(data) for t, data in profile["terms"].items()}
        terms[self.term] = {**terms[self.term], "average": aggregate["average"], "status": aggregate["status"]}
        overall = overall_rollup(terms)

        records = [coerce_subject(s, term=self.term) for s in self.subjects]
        payload = term_update_payload(
            self.term,
            records,
            aggregate,
            overall,
            grade=self.grade or None,
            school=self.school or None,
            completed=completed,
            previous_submission_status=profile.get("term_submission_status"),
        )
        return self.store.update_profile(self.student_id, payload)

    def submit(self) -> Dict[str, Any]:
        if self.state == SubmissionState.PERSISTING:
            raise SubmissionInProgressError(f"Term {self.term} is already being saved.")
        if self.state == SubmissionState.SUBMITTED:
            raise InvalidTransitionError(f"Term {self.term} is already submitted. Choose edit to make changes.")

        # Validating
        self.state = SubmissionState.VALIDATING
        errors = self.validation_errors()
        if errors:
            self.state = SubmissionState.EDITING
            self.last_aggregate = None
            logger.warning(
                "Rejected Term %s submission for %s: %s",
                self.term, self.student_id, "; ".join(e["message"] for e in errors),
            )
            raise ValidationError(errors[0]["message"], field=errors[0]["field"], errors=errors)

        # Aggregating
        self.state = SubmissionState.AGGREGATING
        records = [normalize_subject(s, term=self.term) for s in self.subjects]
        aggregate = aggregate_term(records, self.term)
        breakdown = subject_breakdown(records, self.term)
        self.last_aggregate = aggregate

        # Persisting
        if not _claim(self.key):
            self.state = SubmissionState.EDITING
            raise SubmissionInProgressError(f"Term {self.term} is already being saved.")
        self.state = SubmissionState.PERSISTING
        try:
            profile = self.store.get_profile(self.student_id)
            saved = self._write(profile, aggregate, completed=True)
        except PersistenceError:
            self.state = SubmissionState.EDITING
            logger.error("Saving Term %s for %s failed; values kept for retry", self.term, self.student_id, exc_info=True)
            raise
        finally:
            _release(self.key)

        self.state = SubmissionState.SUBMITTED
        logger.info(
            "Term %s submitted for %s: average %s (%s)",
            self.term, self.student_id, aggregate["average"], aggregate["status"],
        )
        return {
            "student_id": self.student_id,
            "term": self.term,
            "average": aggregate["average"],
            "status": aggregate["status"],
            "completed": True,
            "breakdown": breakdown,
            "feedback": generate_feedback(aggregate["status"], breakdown),
            "warnings": level_warnings(records),
            "overall_average": saved["overall_average"],
            "overall_performance_status": saved["overall_performance_status"],
            "notices": list(self.notices),
        }

    def edit(self):
        """Re-open a submitted term. Subjects and values are kept."""
        if self.state != SubmissionState.SUBMITTED:
            raise InvalidTransitionError(f"Term {self.term} is not submitted.")
        self.state = SubmissionState.EDITING

    def reopen(self) -> Dict[str, Any]:
        """edit() and record the term as no longer submitted in the store."""
        self.edit()
        aggregate = aggregate_term(self.subjects, self.term)
        try:
            profile = self.store.get_profile(self.student_id)
            self._write(profile, aggregate, completed=False)
        except PersistenceError:
            self.state = SubmissionState.SUBMITTED
            logger.error("Re-opening Term %s for %s failed", self.term, self.student_id, exc_info=True)
            raise
        logger.info("Term %s re-opened for editing by %s", self.term, self.student_id)
        return {"student_id": self.student_id, "term": self.term, "state": self.state.value, "aggregate": aggregate}
