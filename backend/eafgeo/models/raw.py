"""
Raw telemetry model (source-format, unassembled).

Adapters load a telemetry source (one fragment's embedded log or an external
log file) into this structure before session assembly.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

import numpy as np
from numpy.typing import NDArray


class MarkerKind(Enum):
    """Session markers declared by external telemetry logs."""

    START = "start"
    SPLIT = "split"
    END = "end"


@dataclass(frozen=True)
class SessionMarker:
    """Recording event tagged with the identity of the clip it belongs to."""

    kind: MarkerKind
    time_s: float       # source-local
    identity: bytes


@dataclass
class RawTelemetry:
    """Raw telemetry extracted from a source file."""

    source: str
    source_file: Path

    timestamps: NDArray[np.float64]  # seconds, source-local
    latitude: NDArray[np.float64]
    longitude: NDArray[np.float64]
    altitude: NDArray[np.float64]    # NaN where not logged
    lock: NDArray[np.int8]           # 0, 2 or 3
    dop: NDArray[np.float64]         # NaN where not logged

    datetimes: Optional[NDArray[np.datetime64]] = None  # absolute time, NaT where unknown
    markers: list[SessionMarker] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    def select(self, mask: NDArray[np.bool_]) -> "RawTelemetry":
        """Return a copy restricted to the samples where `mask` is True."""
        return RawTelemetry(
            source=self.source,
            source_file=self.source_file,
            timestamps=self.timestamps[mask],
            latitude=self.latitude[mask],
            longitude=self.longitude[mask],
            altitude=self.altitude[mask],
            lock=self.lock[mask],
            dop=self.dop[mask],
            datetimes=self.datetimes[mask] if self.datetimes is not None else None,
            markers=list(self.markers),
        )

    def marker_groups(self) -> list[list[SessionMarker]]:
        """
        Group markers into recordings: a START, any SPLITs, and the closing END.

        A START without a matching END is closed at the last logged sample.
        """
        groups: list[list[SessionMarker]] = []
        current: Optional[list[SessionMarker]] = None
        for marker in sorted(self.markers, key=lambda m: m.time_s):
            if marker.kind == MarkerKind.START:
                if current:
                    groups.append(current)
                current = [marker]
            elif current is None:
                continue
            elif marker.kind == MarkerKind.SPLIT:
                current.append(marker)
            else:
                current.append(marker)
                groups.append(current)
                current = None
        if current:
            end_time = float(self.timestamps[-1]) if len(self.timestamps) else current[-1].time_s
            current.append(SessionMarker(MarkerKind.END, end_time, current[-1].identity))
            groups.append(current)
        return groups
