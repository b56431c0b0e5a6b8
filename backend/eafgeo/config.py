"""
Run configuration.

Defaults can be overridden through EAFGEO_* environment variables.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from eafgeo.errors import InvalidDownsampleOrGeometryParameter
from eafgeo.models.geometry import GeometryParameters, GeoshapeMode


DATA_FOLDER_ENV = "EAFGEO_DATA_FOLDER"
DEFAULT_DATA_FOLDER = Path("./data/sessions")

DEFAULT_MIN_LOCK = 3
VALID_LOCK_LEVELS = (0, 2, 3)
DEFAULT_SCAN_WORKERS = 4


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return int(value)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "0") not in ("0", "false", "False", "")


def check_quality_filters(min_lock: int, max_dop: Optional[float]) -> None:
    if isinstance(min_lock, bool) or min_lock not in VALID_LOCK_LEVELS:
        raise InvalidDownsampleOrGeometryParameter("min_lock", min_lock, "one of 0, 2, 3")
    if max_dop is not None and not max_dop > 0:
        raise InvalidDownsampleOrGeometryParameter("max_dop", max_dop, "positive number")


@dataclass(frozen=True)
class PipelineConfig:
    """All user-facing knobs for a single locate/assemble/align/build run."""

    mode: GeoshapeMode = GeoshapeMode.ALL_POINTS
    downsample: int = 1
    time_offset_hours: float = 0.0
    min_lock: int = DEFAULT_MIN_LOCK
    max_dop: Optional[float] = None
    radius: float = 2.0
    height: float = 10.0
    vertices: int = 40
    scan_workers: int = DEFAULT_SCAN_WORKERS
    overwrite: bool = False
    group_points: bool = False         # marked-points: one point set per span
    html_descriptions: bool = False    # KML: HTML table in each placemark description

    @property
    def geometry(self) -> GeometryParameters:
        return GeometryParameters(
            downsample=self.downsample,
            radius=self.radius,
            height=self.height,
            vertices=self.vertices,
            group_points=self.group_points,
        )

    def validate(self) -> "PipelineConfig":
        """Reject invalid parameters before any file is read."""
        self.geometry.validate()
        check_quality_filters(self.min_lock, self.max_dop)
        return self

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        mode = os.getenv("EAFGEO_MODE")
        return cls().with_overrides(
            mode=GeoshapeMode.parse(mode) if mode else None,
            downsample=_env_int("EAFGEO_DOWNSAMPLE"),
            time_offset_hours=_env_float("EAFGEO_TIME_OFFSET"),
            min_lock=_env_int("EAFGEO_MIN_LOCK"),
            max_dop=_env_float("EAFGEO_MAX_DOP"),
            radius=_env_float("EAFGEO_RADIUS"),
            height=_env_float("EAFGEO_HEIGHT"),
            vertices=_env_int("EAFGEO_VERTICES"),
            scan_workers=_env_int("EAFGEO_SCAN_WORKERS"),
            overwrite=_env_flag("EAFGEO_OVERWRITE"),
            group_points=_env_flag("EAFGEO_GROUP_POINTS"),
            html_descriptions=_env_flag("EAFGEO_HTML_DESCRIPTIONS"),
        )
