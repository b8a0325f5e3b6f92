"""
TPP Academic Tracker — term results, trends and reports.
FastAPI backend entry point.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, get_settings
from core.errors import TrackerError
from core.store import ResultStore, build_store
from routes.analyze import router as analyze_router
from routes.deps import tracker_error_handler
from routes.reports import router as reports_router
from routes.results import router as results_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, store: Optional[ResultStore] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="TPP Tracker API",
        description=(
            "Term result capture, performance bands, cross-term trends and "
            "coordinator reports for TPP students."
        ),
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.store = store or build_store(settings)

    # CORS for the frontend dev servers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackerError, tracker_error_handler)

    # Register route modules
    app.include_router(results_router, prefix="/api/results", tags=["Results"])
    app.include_router(analyze_router, prefix="/api/analyze", tags=["Analytics"])
    app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "ok",
            "program_name": settings.program_name,
            "store": settings.store_backend,
            "min_subjects": settings.min_subjects,
            "max_subjects": settings.max_subjects,
        }

    logger.info("TPP tracker started with %s store", settings.store_backend)
    return app


app = create_app()
