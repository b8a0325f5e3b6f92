"""
Report routes — student and term report downloads (PDF, CSV, Excel).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from core.config import Settings
from core.report_builder import build_student_report, build_term_report, export_report
from core.store import ResultStore
from routes.deps import get_settings, get_store
from routes.schemas import TermReportRequest

router = APIRouter()

logger = logging.getLogger(__name__)


def _download(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/student/{student_id}")
def student_report(
    student_id: str,
    term: Optional[int] = None,
    format: str = "pdf",
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """One student's term report. Defaults to the last term they updated."""
    profile = store.get_profile(student_id)
    report = build_student_report(profile, term)
    content, media_type, filename = export_report(
        report, "student", format.lower(), program_name=settings.program_name
    )
    logger.info("Student report %s generated for %s", filename, student_id)
    return _download(content, media_type, filename)


@router.post("/term")
def term_report(
    payload: TermReportRequest,
    store: ResultStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Bulk report for all, selected, one status or one grade of students."""
    report = build_term_report(
        store.list_students(),
        payload.term,
        mode=payload.mode,
        value=payload.value,
        student_ids=payload.student_ids,
    )
    content, media_type, filename = export_report(
        report, "term", payload.format.lower(), program_name=settings.program_name
    )
    logger.info(
        "Term %s report %s generated for %d students",
        payload.term, filename, report["summary"]["total"],
    )
    return _download(content, media_type, filename)
