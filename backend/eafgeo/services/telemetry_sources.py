"""
Telemetry source adapters.

Parses GPS logs into RawTelemetry. Decoding the cameras' binary containers
is delegated: a source is either a per-fragment export stored next to the
clip (same stem, `.csv`), or an external log shared by several clips that
also declares recording start/split/end markers.
"""

import logging
from pathlib import Path
from typing import Optional, Protocol

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from eafgeo.errors import CorruptTelemetrySource
from eafgeo.models.raw import MarkerKind, RawTelemetry, SessionMarker
from eafgeo.models.session import Fragment


logger = logging.getLogger(__name__)


class TelemetryAdapter(Protocol):
    """Adapter interface for telemetry sources."""

    name: str
    extensions: tuple[str, ...]

    def can_parse(self, filepath: Path) -> bool:
        ...

    def parse(self, filepath: Path) -> RawTelemetry:
        ...


class EmbeddedTelemetryReader(Protocol):
    """Yields the telemetry recorded inside (or exported from) one fragment."""

    def read(self, fragment: Fragment) -> RawTelemetry:
        ...


# Column name mappings - exports use various naming conventions
COLUMN_MAPPINGS = {
    "time": ["time", "timestamp", "t", "time_s", "seconds", "time_ms", "timestamp_ms"],
    "latitude": ["latitude", "lat"],
    "longitude": ["longitude", "lon", "long", "lng"],
    "altitude": ["altitude", "alt", "elevation", "height"],
    "lock": ["fix", "lock", "gps_fix", "gpsf"],
    "dop": ["dop", "pdop", "hdop", "gpsp", "precision"],
    "datetime": ["datetime", "utc", "date_time", "gps_time", "time_utc"],
    "event": ["event", "marker", "camera_event"],
    "identity": ["uuid", "identity", "clip_uuid", "camera_file_uuid"],
}

MARKER_NAMES = {
    "start": MarkerKind.START,
    "video_start": MarkerKind.START,
    "split": MarkerKind.SPLIT,
    "video_split": MarkerKind.SPLIT,
    "end": MarkerKind.END,
    "video_end": MarkerKind.END,
}


class CsvTelemetryParser:
    """Parser for CSV GPS logs with optional marker rows."""

    def parse_file(self, filepath: Path) -> RawTelemetry:
        df = self._read_csv(filepath)
        col_map = self._map_columns(df.columns.tolist())

        for required in ("time", "latitude", "longitude"):
            if col_map.get(required) is None:
                raise CorruptTelemetrySource(filepath, f"no {required} column found")

        markers: list[SessionMarker] = []
        event_col = col_map.get("event")
        if event_col is not None:
            is_event = df[event_col].notna() & (df[event_col].astype(str).str.strip() != "")
            markers = self._extract_markers(filepath, df[is_event], col_map)
            df = df[~is_event]

        timestamps = self._parse_time_column(filepath, df, col_map)
        lat = self._extract_column(df, col_map, "latitude")
        lon = self._extract_column(df, col_map, "longitude")

        # Rows without a position carry no GPS information at all
        has_position = ~(np.isnan(lat) | np.isnan(lon))
        if not np.all(has_position):
            logger.debug(f"{filepath.name}: dropping {int(np.sum(~has_position))} rows without position")

        raw = RawTelemetry(
            source="csv",
            source_file=filepath,
            timestamps=timestamps,
            latitude=lat,
            longitude=lon,
            altitude=self._extract_column(df, col_map, "altitude"),
            lock=self._extract_lock(df, col_map),
            dop=self._extract_column(df, col_map, "dop"),
            datetimes=self._extract_datetime(df, col_map),
            markers=markers,
        )
        return raw.select(has_position)

    def _read_csv(self, filepath: Path) -> pd.DataFrame:
        try:
            df = pd.read_csv(filepath, comment="#", encoding="utf-8-sig", dtype=str)
        except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise CorruptTelemetrySource(filepath, str(e)) from e
        # Everything is read as text: identities are opaque and numeric columns are coerced later
        df.columns = df.columns.astype(str).str.strip()
        return df

    def _map_columns(self, columns: list[str]) -> dict[str, Optional[str]]:
        lowered = {c.lower(): c for c in columns}
        col_map: dict[str, Optional[str]] = {}
        for std_name, variants in COLUMN_MAPPINGS.items():
            col_map[std_name] = None
            for variant in variants:
                if variant in lowered:
                    col_map[std_name] = lowered[variant]
                    break
        return col_map

    def _parse_time_column(
        self,
        filepath: Path,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
    ) -> NDArray[np.float64]:
        time_col = col_map["time"]
        times = pd.to_numeric(df[time_col], errors="coerce").to_numpy(dtype=np.float64)
        if np.any(np.isnan(times)):
            raise CorruptTelemetrySource(filepath, f"non-numeric values in '{time_col}'")
        if time_col.lower().endswith("_ms"):
            times = times / 1000.0
        return times

    def _extract_column(
        self,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
        std_name: str,
    ) -> NDArray[np.float64]:
        col = col_map.get(std_name)
        if col is None or col not in df.columns:
            return np.full(len(df), np.nan, dtype=np.float64)
        return pd.to_numeric(df[col], errors="coerce").to_numpy(dtype=np.float64)

    def _extract_lock(self, df: pd.DataFrame, col_map: dict[str, Optional[str]]) -> NDArray[np.int8]:
        values = self._extract_column(df, col_map, "lock")
        if col_map.get("lock") is None:
            # Sources without a fix column only log positions they have a 3D fix for
            return np.full(len(df), 3, dtype=np.int8)
        values = np.nan_to_num(values, nan=0.0)
        lock = np.where(values >= 3, 3, np.where(values >= 2, 2, 0))
        return lock.astype(np.int8)

    def _extract_datetime(
        self,
        df: pd.DataFrame,
        col_map: dict[str, Optional[str]],
    ) -> Optional[NDArray[np.datetime64]]:
        col = col_map.get("datetime")
        if col is None:
            return None
        parsed = pd.to_datetime(df[col], errors="coerce", utc=True).dt.tz_localize(None)
        return parsed.to_numpy(dtype="datetime64[ns]")

    def _extract_markers(
        self,
        filepath: Path,
        events: pd.DataFrame,
        col_map: dict[str, Optional[str]],
    ) -> list[SessionMarker]:
        id_col = col_map.get("identity")
        if id_col is None:
            raise CorruptTelemetrySource(filepath, "marker rows without an identity column")

        times = self._parse_time_column(filepath, events, col_map)
        markers = []
        for t, (_, row) in zip(times, events.iterrows()):
            name = str(row[col_map["event"]]).strip().lower()
            kind = MARKER_NAMES.get(name)
            if kind is None:
                logger.debug(f"{filepath.name}: ignoring event '{name}'")
                continue
            identity = row[id_col]
            if pd.isna(identity) or str(identity).strip() == "":
                raise CorruptTelemetrySource(filepath, f"'{name}' marker at {t}s has no identity")
            markers.append(SessionMarker(kind=kind, time_s=float(t), identity=str(identity).strip().encode()))
        return markers


class CsvTelemetryAdapter:
    """Adapter for CSV GPS logs (per-fragment exports and external logs)."""

    name = "csv"
    extensions = (".csv",)

    def can_parse(self, filepath: Path) -> bool:
        return filepath.suffix.lower() in self.extensions

    def parse(self, filepath: Path) -> RawTelemetry:
        return CsvTelemetryParser().parse_file(filepath)


ADAPTERS: list[TelemetryAdapter] = [
    CsvTelemetryAdapter(),
]


def telemetry_extensions() -> frozenset[str]:
    return frozenset(ext for adapter in ADAPTERS for ext in adapter.extensions)


def select_adapter(filepath: Path) -> TelemetryAdapter:
    for adapter in ADAPTERS:
        if adapter.can_parse(filepath):
            return adapter
    raise CorruptTelemetrySource(filepath, "no adapter available for this file type")


def parse_telemetry_file(filepath: Path) -> RawTelemetry:
    """
    Parse an arbitrary telemetry file via adapter selection.

    Every failure is reported as CorruptTelemetrySource naming the file.
    """
    adapter = select_adapter(filepath)
    try:
        return adapter.parse(filepath)
    except CorruptTelemetrySource:
        raise
    except (ValueError, KeyError, OSError) as e:
        raise CorruptTelemetrySource(filepath, str(e)) from e


def sidecar_path(fragment: Fragment) -> Optional[Path]:
    """Telemetry export stored next to a fragment, if one exists."""
    for ext in sorted(telemetry_extensions()):
        for candidate in (fragment.path.with_suffix(ext), fragment.path.with_suffix(ext.upper())):
            if candidate.is_file():
                return candidate
    return None


class SidecarTelemetryReader:
    """Reads a fragment's embedded telemetry from its exported sidecar file."""

    def read(self, fragment: Fragment) -> RawTelemetry:
        path = sidecar_path(fragment)
        if path is None:
            raise CorruptTelemetrySource(fragment.path, "no telemetry export found next to the clip")
        return parse_telemetry_file(path)
