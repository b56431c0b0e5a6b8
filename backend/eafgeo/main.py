"""
eafgeo - FastAPI Backend

Main application entry point and configuration.
"""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eafgeo.api.schemas import ErrorResponse
from eafgeo.api.sessions import session_summary, annotations_router, folder_router, router as sessions_router
from eafgeo.config import DATA_FOLDER_ENV, DEFAULT_DATA_FOLDER, PipelineConfig
from eafgeo.errors import (
    AmbiguousSessionSelection,
    CorruptAnnotationDocument,
    CorruptTelemetrySource,
    EafGeoError,
    InvalidDownsampleOrGeometryParameter,
    NonMonotonicAssembly,
    SessionNotFound,
    TierNotFound,
    TokenizedTierRejected,
)
from eafgeo.services.repository import get_repository, init_repository


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


ERROR_STATUS = {
    SessionNotFound: 404,
    TierNotFound: 400,
    TokenizedTierRejected: 400,
    InvalidDownsampleOrGeometryParameter: 400,
    AmbiguousSessionSelection: 409,
    CorruptTelemetrySource: 422,
    CorruptAnnotationDocument: 422,
    NonMonotonicAssembly: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting eafgeo backend")

    # Scan the configured folder if it exists
    repo = get_repository()
    if repo.data_folder is None:
        data_folder = Path(os.getenv(DATA_FOLDER_ENV, str(DEFAULT_DATA_FOLDER)))
        if data_folder.exists():
            init_repository(data_folder, PipelineConfig.from_env())
            logger.info(f"Initialized repository with folder: {data_folder}")
        else:
            logger.info(f"Default data folder not found: {data_folder}")
            logger.info("Use POST /folder to set data folder")

    yield

    logger.info("Shutting down eafgeo backend")


app = FastAPI(
    title="eafgeo",
    description="""
    Aligns ELAN annotations with action camera GPS telemetry.

    ## Features
    - Locate recording sessions split over several video fragments
    - Assemble one telemetry stream per session, filtered by GPS quality
    - Align annotation spans from one tier with the telemetry timeline
    - Build points, lines or circles described by the annotation text

    ## Data Flow
    1. Set data folder via POST /folder
    2. List sessions via GET /sessions (or pick one via GET /sessions/select)
    3. List tiers via GET /annotations/tiers
    4. Build geometries via POST /sessions/{key}/geometries
    """,
    version="0.1.0",
    lifespan=lifespan,
)


# CORS middleware (allow all origins for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EafGeoError)
async def eafgeo_error_handler(request: Request, exc: EafGeoError):
    """Report pipeline errors with their stable code."""
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    body = ErrorResponse(detail=exc.message, code=exc.code)
    if isinstance(exc, AmbiguousSessionSelection):
        body.candidates = [session_summary(s) for s in exc.candidates]
    if status >= 500:
        logger.error(f"Unhandled pipeline error on {request.url.path}: {exc}")
    return JSONResponse(status_code=status, content=body.model_dump())


app.include_router(sessions_router)
app.include_router(annotations_router)
app.include_router(folder_router)


@app.get("/")
async def root():
    """Root endpoint - basic health check."""
    return {
        "name": "eafgeo",
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    repo = get_repository()

    return {
        "status": "healthy",
        "data_folder": str(repo.data_folder) if repo.data_folder else None,
        "session_count": repo.session_count,
    }
