"""
errors.py — Exception types raised by the tracker engine.

Every error carries a short, user-facing message and, where one applies, the
name of the offending field. Routes turn these into HTTP responses.
"""

from typing import Any, Dict, List, Optional


class TrackerError(Exception):
    """Base class for all tracker errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "field": self.field}


class ConfigurationError(TrackerError):
    pass


class ValidationError(TrackerError):
    """One or more inputs failed validation. `errors` holds each {field, message}."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, field=field)
        self.errors = errors or [{"field": field, "message": message}]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class DuplicateSubjectError(ValidationError):
    pass


class SubjectLimitError(ValidationError):
    pass


class SubmissionInProgressError(TrackerError):
    pass


class InvalidTransitionError(TrackerError):
    pass


class PersistenceError(TrackerError):
    pass


class StudentNotFoundError(PersistenceError):
    pass


class ExportError(TrackerError):
    pass
