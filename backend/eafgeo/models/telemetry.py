"""
Assembled telemetry model.

One stream per recording session with:
- session-relative timestamps (seconds from session start, non-decreasing)
- optional absolute timestamps (time offset already applied)
- per-sample GPS quality (lock level, dilution of precision)
- the index of the fragment each sample came from
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import numpy as np
from numpy.typing import NDArray


def _to_datetime(value: np.datetime64) -> Optional[datetime]:
    if np.isnat(value):
        return None
    return value.astype("datetime64[us]").astype(datetime)


@dataclass
class TelemetryStream:
    """
    Canonical representation of the telemetry of a single session.

    Columns are parallel arrays, one entry per point. The stream is built
    once per run and treated as read-only afterwards.
    """

    session_key: str

    timestamps: NDArray[np.float64]   # Seconds from session start
    latitude: NDArray[np.float64]
    longitude: NDArray[np.float64]
    altitude: NDArray[np.float64]     # NaN where not logged
    lock: NDArray[np.int8]
    dop: NDArray[np.float64]          # NaN where not logged
    fragment_index: NDArray[np.int32]

    datetimes: Optional[NDArray[np.datetime64]] = None

    # Samples dropped by quality filtering
    discarded: int = 0

    warnings: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def is_empty(self) -> bool:
        return len(self.timestamps) == 0

    def datetime_at(self, idx: int) -> Optional[datetime]:
        if self.datetimes is None:
            return None
        return _to_datetime(self.datetimes[idx])

    def get_time_range(self) -> tuple[float, float]:
        if len(self.timestamps) == 0:
            return (0.0, 0.0)
        return (float(self.timestamps[0]), float(self.timestamps[-1]))

    def get_bounding_box(self) -> tuple[float, float, float, float]:
        """(min_lon, min_lat, max_lon, max_lat), or zeros for an empty stream."""
        if len(self.timestamps) == 0:
            return (0.0, 0.0, 0.0, 0.0)
        return (
            float(np.min(self.longitude)),
            float(np.min(self.latitude)),
            float(np.max(self.longitude)),
            float(np.max(self.latitude)),
        )

    def indices_between(self, start: float, end: float) -> NDArray[np.int64]:
        """Indices of points with start <= timestamp <= end."""
        lo = int(np.searchsorted(self.timestamps, start, side="left"))
        hi = int(np.searchsorted(self.timestamps, end, side="right"))
        return np.arange(lo, max(lo, hi), dtype=np.int64)


@dataclass
class StreamSummary:
    """Lightweight summary of an assembled stream for listing."""

    session_key: str
    point_count: int
    discarded: int
    duration_s: float
    start_datetime: Optional[str]
    bounding_box: tuple[float, float, float, float]

    @classmethod
    def from_stream(cls, stream: TelemetryStream) -> "StreamSummary":
        start, end = stream.get_time_range()
        first = stream.datetime_at(0) if len(stream) else None
        return cls(
            session_key=stream.session_key,
            point_count=len(stream),
            discarded=stream.discarded,
            duration_s=end - start,
            start_datetime=first.isoformat() if first else None,
            bounding_box=stream.get_bounding_box(),
        )
