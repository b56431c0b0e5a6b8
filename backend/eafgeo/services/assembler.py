"""
Telemetry assembler.

Merges the telemetry of every fragment of a session into one stream on a
session-relative time axis, then applies GPS quality filtering and the
user's time offset.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from eafgeo.config import DEFAULT_MIN_LOCK, check_quality_filters
from eafgeo.errors import EmptyTelemetryAfterFiltering, NonMonotonicAssembly
from eafgeo.models.raw import RawTelemetry
from eafgeo.models.session import Session
from eafgeo.models.telemetry import TelemetryStream
from eafgeo.services.telemetry_sources import (
    EmbeddedTelemetryReader,
    SidecarTelemetryReader,
    parse_telemetry_file,
)


logger = logging.getLogger(__name__)


@dataclass
class _Columns:
    """Concatenated columns before filtering."""

    timestamps: NDArray[np.float64]
    latitude: NDArray[np.float64]
    longitude: NDArray[np.float64]
    altitude: NDArray[np.float64]
    lock: NDArray[np.int8]
    dop: NDArray[np.float64]
    fragment_index: NDArray[np.int32]
    datetimes: Optional[NDArray[np.datetime64]]

    def select(self, mask: NDArray[np.bool_]) -> "_Columns":
        return _Columns(
            timestamps=self.timestamps[mask],
            latitude=self.latitude[mask],
            longitude=self.longitude[mask],
            altitude=self.altitude[mask],
            lock=self.lock[mask],
            dop=self.dop[mask],
            fragment_index=self.fragment_index[mask],
            datetimes=self.datetimes[mask] if self.datetimes is not None else None,
        )


class TelemetryAssembler:
    """
    Builds the canonical TelemetryStream of a session.

    Args:
        min_lock: Minimum satellite lock level kept (0, 2 or 3).
        max_dop: Points with a dilution of precision above this are dropped.
            Points without a DOP value are kept.
        time_offset_hours: Signed offset added to absolute timestamps only.
        reader: Source of per-fragment (embedded) telemetry.
    """

    def __init__(
        self,
        min_lock: int = DEFAULT_MIN_LOCK,
        max_dop: Optional[float] = None,
        time_offset_hours: float = 0.0,
        reader: Optional[EmbeddedTelemetryReader] = None,
    ):
        check_quality_filters(min_lock, max_dop)
        self.min_lock = min_lock
        self.max_dop = max_dop
        self.time_offset_hours = time_offset_hours
        self.reader = reader or SidecarTelemetryReader()

    def assemble(self, session: Session) -> TelemetryStream:
        if session.has_external_telemetry:
            columns = self._from_external(session)
        else:
            columns = self._from_embedded(session)

        _check_monotonic(columns)

        keep = columns.lock >= self.min_lock
        if self.max_dop is not None:
            keep &= np.isnan(columns.dop) | (columns.dop <= self.max_dop)
        discarded = int(np.sum(~keep))
        filtered = columns.select(keep)

        datetimes = filtered.datetimes
        if datetimes is not None and self.time_offset_hours:
            offset = np.timedelta64(int(round(self.time_offset_hours * 3600 * 1e6)), "us")
            datetimes = datetimes + offset

        stream = TelemetryStream(
            session_key=session.key,
            timestamps=filtered.timestamps,
            latitude=filtered.latitude,
            longitude=filtered.longitude,
            altitude=filtered.altitude,
            lock=filtered.lock,
            dop=filtered.dop,
            fragment_index=filtered.fragment_index,
            datetimes=datetimes,
            discarded=discarded,
        )

        if stream.is_empty:
            message = (
                f"Session {session.key}: no points left after filtering "
                f"(min lock {self.min_lock}, max DOP {self.max_dop}, {discarded} discarded)"
            )
            logger.warning(message)
            stream.warnings.append(message)
            warnings.warn(message, EmptyTelemetryAfterFiltering, stacklevel=2)
        else:
            logger.info(
                f"Assembled session {session.key}: {len(stream)} points, "
                f"{discarded} discarded, {stream.get_time_range()[1]:.1f}s"
            )
        return stream

    def _from_embedded(self, session: Session) -> _Columns:
        """Concatenate per-fragment streams, offset by preceding fragment durations."""
        parts: list[tuple[RawTelemetry, float]] = []
        offset = 0.0
        for index, fragment in enumerate(session.parts()):
            raw = self.reader.read(fragment)
            parts.append((raw, offset))
            if fragment.duration_s is not None:
                offset += fragment.duration_s
            else:
                fallback = float(raw.timestamps[-1]) if len(raw) else 0.0
                logger.warning(
                    f"{fragment.path.name}: unknown duration, using last telemetry timestamp ({fallback:.3f}s)"
                )
                offset += fallback
            logger.debug(f"{fragment.path.name}: {len(raw)} points, fragment {index}")

        return _concatenate(
            [(raw.timestamps + base, raw, np.full(len(raw), i, dtype=np.int32)) for i, (raw, base) in enumerate(parts)]
        )

    def _from_external(self, session: Session) -> _Columns:
        """Slice the session's recording interval out of a shared log."""
        interval = session.telemetry
        raw = parse_telemetry_file(interval.source)
        inside = (raw.timestamps >= interval.start_s) & (raw.timestamps <= interval.end_s)
        raw = raw.select(inside)
        logger.debug(f"{interval.source.name}: {len(raw)} points inside [{interval.start_s}, {interval.end_s}]")

        fragment_index = np.searchsorted(
            np.asarray(interval.split_s, dtype=np.float64), raw.timestamps, side="right"
        ).astype(np.int32)
        return _concatenate([(raw.timestamps - interval.start_s, raw, fragment_index)])


def _concatenate(parts: list[tuple[NDArray[np.float64], RawTelemetry, NDArray[np.int32]]]) -> _Columns:
    if not parts:
        empty = np.array([], dtype=np.float64)
        return _Columns(
            timestamps=empty,
            latitude=empty,
            longitude=empty,
            altitude=empty,
            lock=np.array([], dtype=np.int8),
            dop=empty,
            fragment_index=np.array([], dtype=np.int32),
            datetimes=None,
        )

    raws = [raw for _, raw, _ in parts]
    if all(raw.datetimes is None for raw in raws):
        datetimes = None
    else:
        datetimes = np.concatenate([
            raw.datetimes if raw.datetimes is not None else np.full(len(raw), np.datetime64("NaT"), dtype="datetime64[ns]")
            for raw in raws
        ])

    return _Columns(
        timestamps=np.concatenate([t for t, _, _ in parts]).astype(np.float64),
        latitude=np.concatenate([raw.latitude for raw in raws]),
        longitude=np.concatenate([raw.longitude for raw in raws]),
        altitude=np.concatenate([raw.altitude for raw in raws]),
        lock=np.concatenate([raw.lock for raw in raws]).astype(np.int8),
        dop=np.concatenate([raw.dop for raw in raws]),
        fragment_index=np.concatenate([idx for _, _, idx in parts]).astype(np.int32),
        datetimes=datetimes,
    )


def _check_monotonic(columns: _Columns) -> None:
    if len(columns.timestamps) < 2:
        return
    steps = np.diff(columns.timestamps)
    backwards = np.flatnonzero(steps < 0)
    if len(backwards):
        i = int(backwards[0]) + 1
        raise NonMonotonicAssembly(
            int(columns.fragment_index[i]),
            float(columns.timestamps[i - 1]),
            float(columns.timestamps[i]),
        )


def assemble_session(
    session: Session,
    min_lock: int = DEFAULT_MIN_LOCK,
    max_dop: Optional[float] = None,
    time_offset_hours: float = 0.0,
) -> TelemetryStream:
    """Assemble a session with the default telemetry reader."""
    return TelemetryAssembler(min_lock, max_dop, time_offset_hours).assemble(session)
