"""
Shared route helpers — settings/store dependencies and error translation.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from core.config import Settings
from core.errors import (
    DuplicateSubjectError,
    ExportError,
    InvalidTransitionError,
    PersistenceError,
    StudentNotFoundError,
    SubmissionInProgressError,
    TrackerError,
    ValidationError,
)
from core.store import ResultStore


logger = logging.getLogger(__name__)

# Most specific first.
STATUS_CODES = [
    (DuplicateSubjectError, 409),
    (ValidationError, 400),
    (StudentNotFoundError, 404),
    (SubmissionInProgressError, 409),
    (InvalidTransitionError, 409),
    (PersistenceError, 502),
    (ExportError, 500),
]


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ResultStore:
    return request.app.state.store


def status_for(exc: TrackerError) -> int:
    return next((code for cls, code in STATUS_CODES if isinstance(exc, cls)), 500)


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    """Turn an engine error into a {detail, field} JSON response."""
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, status, exc.message)
    return JSONResponse(status_code=status, content=exc.to_dict())
