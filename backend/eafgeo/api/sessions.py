"""
API routes for recording sessions.
"""

import math
from pathlib import Path
from typing import Optional

import numpy as np
from fastapi import APIRouter, HTTPException, Query

from eafgeo.api.schemas import (
    FolderInfoResponse,
    FragmentResponse,
    GeoTierGeometryRequest,
    GeometryRequest,
    SessionDetailResponse,
    SessionSelectionResponse,
    SessionSummaryResponse,
    SetFolderRequest,
    StreamSummaryResponse,
    TelemetryIntervalResponse,
    TelemetryResponse,
    TierSummaryResponse,
)
from eafgeo.config import PipelineConfig
from eafgeo.models.geojson import FeatureCollection, to_feature_collection
from eafgeo.models.geometry import GeoshapeMode
from eafgeo.models.session import Session
from eafgeo.services.eaf_reader import read_eaf
from eafgeo.services.pipeline import GeometryPipeline, select_tier
from eafgeo.services.repository import get_repository


router = APIRouter(prefix="/sessions", tags=["sessions"])


def _clean_array(arr: np.ndarray) -> list[Optional[float]]:
    """Convert numpy array to list, replacing NaN with None."""
    return [None if math.isnan(x) else float(x) for x in arr]


def session_summary(session: Session) -> SessionSummaryResponse:
    start = session.start()
    return SessionSummaryResponse(
        key=session.key,
        device=session.device.value,
        fragment_count=len(session.fragments),
        start=start.isoformat() if start else None,
        duration_s=session.duration_s(),
        has_external_telemetry=session.has_external_telemetry,
        telemetry_source=str(session.telemetry.source) if session.telemetry else None,
    )


def _build_detail(session: Session) -> SessionDetailResponse:
    repo = get_repository()
    summary = repo.summarize(session.key)
    interval = session.telemetry
    return SessionDetailResponse(
        **session_summary(session).model_dump(),
        fragments=[
            FragmentResponse(
                path=str(f.path),
                device=f.device.value,
                resolution=f.resolution.value,
                identity=f.own_identity.hex(),
                ordinal=f.ordinal,
                duration_s=f.duration_s,
                created_at=f.created_at.isoformat() if f.created_at else None,
            )
            for f in session.fragments
        ],
        telemetry=TelemetryIntervalResponse(
            source=str(interval.source),
            start_s=interval.start_s,
            end_s=interval.end_s,
            split_s=list(interval.split_s),
        ) if interval else None,
        stream=StreamSummaryResponse(
            point_count=summary.point_count,
            discarded=summary.discarded,
            duration_s=summary.duration_s,
            start_datetime=summary.start_datetime,
            bounding_box=summary.bounding_box,
        ) if summary else None,
    )


def _get_session_or_404(key: str) -> Session:
    session = get_repository().get_session(key)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {key}")
    return session


@router.get("", response_model=list[SessionSummaryResponse])
async def list_sessions():
    """
    List all recording sessions found in the data folder.
    """
    return [session_summary(s) for s in get_repository().list_sessions()]


@router.get("/select", response_model=SessionSelectionResponse)
async def select_session(
    telemetry: Optional[str] = Query(None, description="Telemetry file covering the session"),
    fragment: Optional[str] = Query(None, description="Any video file of the session"),
    identity: Optional[str] = Query(None, description="Session key (hex) or raw identity"),
):
    """
    Select one session.

    A telemetry log can cover several sessions; the response then lists the
    candidates and the caller asks again with an identity.
    """
    selection = get_repository().select(
        fragment=Path(fragment) if fragment else None,
        telemetry=Path(telemetry) if telemetry else None,
        identity=identity,
    )
    if selection.is_empty:
        raise HTTPException(status_code=404, detail="No matching session")
    return SessionSelectionResponse(
        ambiguous=selection.is_ambiguous,
        session=session_summary(selection.session) if selection.session else None,
        candidates=[session_summary(s) for s in selection.candidates],
    )


@router.get("/{key}", response_model=SessionDetailResponse)
async def get_session(key: str):
    """
    Get fragments, telemetry source and stream summary for a session.
    """
    return _build_detail(_get_session_or_404(key))


@router.get("/{key}/telemetry", response_model=TelemetryResponse)
async def get_session_telemetry(key: str):
    """
    Get the assembled telemetry stream of a session.
    """
    _get_session_or_404(key)
    stream = get_repository().get_stream(key)

    datetimes = None
    if stream.datetimes is not None:
        datetimes = [dt.isoformat() if dt else None for dt in (stream.datetime_at(i) for i in range(len(stream)))]

    return TelemetryResponse(
        session_key=stream.session_key,
        timestamps=stream.timestamps.tolist(),
        latitude=stream.latitude.tolist(),
        longitude=stream.longitude.tolist(),
        altitude=_clean_array(stream.altitude),
        lock=[int(x) for x in stream.lock],
        dop=_clean_array(stream.dop),
        fragment_index=[int(x) for x in stream.fragment_index],
        datetimes=datetimes,
        discarded=stream.discarded,
        warnings=stream.warnings,
    )


def _request_config(request: GeometryRequest) -> PipelineConfig:
    """Service configuration with the request's values applied, validated."""
    return get_repository().config.with_overrides(
        mode=GeoshapeMode.parse(request.mode) if request.mode else None,
        downsample=request.downsample,
        time_offset_hours=request.time_offset_hours,
        min_lock=request.min_lock,
        max_dop=request.max_dop,
        radius=request.radius,
        height=request.height,
        vertices=request.vertices,
        group_points=request.group_points,
    ).validate()


@router.post("/{key}/geometries", response_model=FeatureCollection)
async def build_session_geometries(key: str, request: GeometryRequest):
    """
    Align one annotation tier with the session and return the geometries
    as a GeoJSON FeatureCollection.
    """
    session = _get_session_or_404(key)
    config = _request_config(request)

    document = read_eaf(Path(request.eaf_path))
    tier = select_tier(document, request.tier_id)

    result = GeometryPipeline(config).geometries_for(session, document, tier)
    return to_feature_collection(result.geometries)


# ============================================================================
# Annotation Routes
# ============================================================================

annotations_router = APIRouter(prefix="/annotations", tags=["annotations"])


@annotations_router.get("/tiers", response_model=list[TierSummaryResponse])
async def list_tiers(eaf_path: str = Query(..., description="Path to an .eaf document")):
    """
    List the tiers of an annotation document, so the caller can pick one.
    """
    document = read_eaf(Path(eaf_path))
    return [
        TierSummaryResponse(
            tier_id=t.tier_id,
            parent_id=t.parent_id,
            tokenized=t.tokenized,
            annotation_count=t.annotation_count,
            participant=t.participant,
            first_value=t.first_value,
        )
        for t in document.tier_summaries()
    ]


@annotations_router.post("/geometries", response_model=FeatureCollection)
async def build_geo_tier_geometries(request: GeoTierGeometryRequest):
    """
    Align one tier with the coordinates held by another tier of the same
    document. No recording session is involved.
    """
    config = _request_config(request)

    document = read_eaf(Path(request.eaf_path))
    tier = select_tier(document, request.tier_id)
    geo_tier = select_tier(document, request.geo_tier_id)

    result = GeometryPipeline(config).geometries_from_geo_tier(document, tier, geo_tier)
    return to_feature_collection(result.geometries)


# ============================================================================
# Folder Management Routes
# ============================================================================

folder_router = APIRouter(prefix="/folder", tags=["folder"])


def _folder_info() -> FolderInfoResponse:
    repo = get_repository()
    located = repo.located
    return FolderInfoResponse(
        path=str(repo.data_folder) if repo.data_folder else None,
        session_count=repo.session_count,
        unidentifiable=[str(e.path) for e in located.unidentifiable] if located else [],
        discarded=[str(p) for p in located.discarded] if located else [],
    )


@folder_router.get("", response_model=FolderInfoResponse)
async def get_folder_info():
    """Get information about the current data folder."""
    return _folder_info()


@folder_router.post("", response_model=FolderInfoResponse)
async def set_folder(request: SetFolderRequest):
    """
    Set the data folder to scan for recording sessions.

    This will clear the current cache and re-scan.
    """
    path = Path(request.path)
    if not path.exists():
        raise HTTPException(status_code=400, detail=f"Folder does not exist: {request.path}")
    if not path.is_dir():
        raise HTTPException(status_code=400, detail=f"Path is not a directory: {request.path}")

    get_repository().set_data_folder(path)
    return _folder_info()


@folder_router.post("/rescan", response_model=FolderInfoResponse)
async def rescan_folder():
    """
    Rescan the current data folder for new fragments and logs.
    """
    repo = get_repository()
    if repo.data_folder is None:
        raise HTTPException(status_code=400, detail="No data folder set")

    repo.clear_cache()
    repo.scan_folder(repo.data_folder)
    return _folder_info()
