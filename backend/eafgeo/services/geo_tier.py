"""
Geo tier point source.

Builds a TelemetryStream from an annotation tier whose values carry
coordinates, e.g. `LAT:55.791765;LON:13.501448;ALT:101.6;TIME:2023-01-25 12:15:45.399`,
instead of reading camera telemetry. Each annotation becomes one point at
its start time.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from eafgeo.errors import CorruptAnnotationDocument
from eafgeo.models.annotation import AnnotationDocument, Tier
from eafgeo.models.telemetry import TelemetryStream


logger = logging.getLogger(__name__)

GEO_FIELDS = ("LAT", "LON", "ALT", "TIME")


def parse_geo_value(value: str) -> dict[str, str]:
    """Split `KEY:value;KEY:value` into a dict with upper-case keys."""
    fields = {}
    for part in value.split(";"):
        key, sep, field_value = part.partition(":")
        if sep and key.strip().upper() in GEO_FIELDS:
            fields[key.strip().upper()] = field_value.strip()
    return fields


def _to_float(value: Optional[str]) -> float:
    if value is None or value == "":
        return np.nan
    try:
        return float(value)
    except ValueError:
        return np.nan


def stream_from_geo_tier(
    document: AnnotationDocument,
    tier: Tier,
    time_offset_hours: float = 0.0,
) -> TelemetryStream:
    """
    One point per annotation with a readable latitude and longitude.

    Timestamps are annotation start times shifted by the document's time
    origin, so the stream shares its time axis with the content tier.
    Annotations without coordinates are skipped.
    """
    rows = []
    for span in tier.spans:
        fields = parse_geo_value(span.text)
        lat, lon = _to_float(fields.get("LAT")), _to_float(fields.get("LON"))
        if np.isnan(lat) or np.isnan(lon):
            logger.debug(f"Geo tier '{tier.tier_id}': no coordinates in '{span.text}' at {span.start}s")
            continue
        rows.append((span.start + document.time_origin_s, lat, lon, _to_float(fields.get("ALT")), fields.get("TIME")))

    skipped = len(tier.spans) - len(rows)
    if not rows:
        raise CorruptAnnotationDocument(document.path, f"geo tier '{tier.tier_id}' holds no coordinates")
    if skipped:
        logger.warning(f"Geo tier '{tier.tier_id}': skipped {skipped} annotations without coordinates")

    rows.sort(key=lambda row: row[0])
    n = len(rows)
    times = pd.to_datetime(pd.Series([row[4] for row in rows], dtype="object"), errors="coerce")
    datetimes = None
    if times.notna().any():
        datetimes = times.to_numpy(dtype="datetime64[ns]")
        if time_offset_hours:
            datetimes = datetimes + np.timedelta64(int(round(time_offset_hours * 3600 * 1e6)), "us")

    stream = TelemetryStream(
        session_key=f"geo-tier:{tier.tier_id}",
        timestamps=np.array([row[0] for row in rows], dtype=np.float64),
        latitude=np.array([row[1] for row in rows], dtype=np.float64),
        longitude=np.array([row[2] for row in rows], dtype=np.float64),
        altitude=np.array([row[3] for row in rows], dtype=np.float64),
        lock=np.full(n, 3, dtype=np.int8),
        dop=np.full(n, np.nan),
        fragment_index=np.zeros(n, dtype=np.int32),
        datetimes=datetimes,
        discarded=skipped,
    )
    logger.info(f"Read {n} points from geo tier '{tier.tier_id}'")
    return stream
