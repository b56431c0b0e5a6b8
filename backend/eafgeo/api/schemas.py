"""
API schemas (Pydantic models) for request/response validation.
"""

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================================
# Session Schemas
# ============================================================================

class FragmentResponse(BaseModel):
    """One video file of a session."""
    path: str
    device: str
    resolution: str
    identity: str  # hex encoded clip identity
    ordinal: Optional[int] = None
    duration_s: Optional[float] = None
    created_at: Optional[str] = None


class TelemetryIntervalResponse(BaseModel):
    """Part of an external telemetry log covering a session."""
    source: str
    start_s: float
    end_s: float
    split_s: list[float]


class SessionSummaryResponse(BaseModel):
    """Summary of a recording session for listing."""
    key: str
    device: str
    fragment_count: int
    start: Optional[str] = None
    duration_s: Optional[float] = None
    has_external_telemetry: bool
    telemetry_source: Optional[str] = None


class StreamSummaryResponse(BaseModel):
    """Assembled telemetry summary."""
    point_count: int
    discarded: int
    duration_s: float
    start_datetime: Optional[str] = None
    bounding_box: tuple[float, float, float, float]  # (min_lon, min_lat, max_lon, max_lat)


class SessionDetailResponse(SessionSummaryResponse):
    """Full description of a session."""
    fragments: list[FragmentResponse]
    telemetry: Optional[TelemetryIntervalResponse] = None
    stream: Optional[StreamSummaryResponse] = None


class TelemetryResponse(BaseModel):
    """Assembled telemetry stream as parallel arrays."""
    session_key: str
    timestamps: list[float]
    latitude: list[float]
    longitude: list[float]
    altitude: list[Optional[float]]
    lock: list[int]
    dop: list[Optional[float]]
    fragment_index: list[int]
    datetimes: Optional[list[Optional[str]]] = None
    discarded: int
    warnings: list[str]


class SessionSelectionResponse(BaseModel):
    """Either the selected session or the candidates to choose from."""
    ambiguous: bool
    session: Optional[SessionSummaryResponse] = None
    candidates: list[SessionSummaryResponse] = Field(default_factory=list)


# ============================================================================
# Geometry Schemas
# ============================================================================

class GeometryRequest(BaseModel):
    """
    Build geometries for a session from one tier of an annotation document.

    Unset values fall back to the service configuration.
    """
    eaf_path: str
    tier_id: str
    mode: Optional[str] = Field(default=None, description="Geoshape mode, e.g. all-points")
    downsample: Optional[int] = Field(default=None, description="Cluster size, integer >= 1")
    time_offset_hours: Optional[float] = None
    min_lock: Optional[int] = Field(default=None, description="0, 2 or 3")
    max_dop: Optional[float] = None
    radius: Optional[float] = None
    height: Optional[float] = None
    vertices: Optional[int] = Field(default=None, description="Circle vertex count, 3-255")
    group_points: Optional[bool] = Field(default=None, description="marked-points: one point set per span")


class GeoTierGeometryRequest(GeometryRequest):
    """Build geometries with the points read from a coordinate tier of the same document."""
    geo_tier_id: str


class TierSummaryResponse(BaseModel):
    tier_id: str
    parent_id: Optional[str] = None
    tokenized: bool
    annotation_count: int
    participant: Optional[str] = None
    first_value: Optional[str] = None


# ============================================================================
# Folder Management Schemas
# ============================================================================

class SetFolderRequest(BaseModel):
    """Request to set the data folder."""
    path: str


class FolderInfoResponse(BaseModel):
    """Information about the current data folder."""
    path: Optional[str]
    session_count: int
    unidentifiable: list[str] = Field(default_factory=list)
    discarded: list[str] = Field(default_factory=list)


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    code: Optional[str] = None
    candidates: Optional[list[SessionSummaryResponse]] = None
