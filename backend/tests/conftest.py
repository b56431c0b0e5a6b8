"""
Shared fixtures.
"""

from datetime import datetime
from typing import Optional, Sequence

import numpy as np
import pytest

from eafgeo.models.annotation import AnnotationSpan, Tier
from eafgeo.models.telemetry import TelemetryStream


def build_stream(
    timestamps: Sequence[float],
    latitude: Optional[Sequence[float]] = None,
    longitude: Optional[Sequence[float]] = None,
    altitude: Optional[Sequence[float]] = None,
    start: Optional[datetime] = None,
) -> TelemetryStream:
    t = np.asarray(timestamps, dtype=np.float64)
    n = len(t)
    lat = np.asarray(latitude, dtype=np.float64) if latitude is not None else 56.0 + t * 1e-4
    lon = np.asarray(longitude, dtype=np.float64) if longitude is not None else 12.0 + t * 1e-4
    alt = np.asarray(altitude, dtype=np.float64) if altitude is not None else np.full(n, np.nan)
    datetimes = None
    if start is not None:
        datetimes = np.datetime64(start.replace(tzinfo=None), "ns") + (t * 1e9).astype("timedelta64[ns]")
    return TelemetryStream(
        session_key="test",
        timestamps=t,
        latitude=lat,
        longitude=lon,
        altitude=alt,
        lock=np.full(n, 3, dtype=np.int8),
        dop=np.full(n, np.nan),
        fragment_index=np.zeros(n, dtype=np.int32),
        datetimes=datetimes,
    )


def build_tier(spans: Sequence[tuple[float, float, str]], tier_id: str = "observations", **kwargs) -> Tier:
    return Tier(
        tier_id=tier_id,
        spans=[AnnotationSpan(start, end, text, tier_id) for start, end, text in spans],
        **kwargs,
    )


@pytest.fixture
def ten_second_stream():
    """Points at t = 1..10 s."""
    return build_stream(np.arange(1, 11, dtype=np.float64))


@pytest.fixture
def make_stream():
    return build_stream


@pytest.fixture
def make_tier():
    return build_tier


def great_circle_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in metres on a sphere of mean Earth radius."""
    lat1_rad, lat2_rad = np.radians(lat1), np.radians(lat2)
    dlat = np.radians(lat2 - lat1)
    dlon = np.radians(lon2 - lon1)
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    return 6371000.0 * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


@pytest.fixture
def distance_m():
    return great_circle_m
