"""
Output geometry model.

Geometries are build artifacts: created by the geometry builder, handed to
the emitter, never mutated.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from eafgeo.errors import InvalidDownsampleOrGeometryParameter


MIN_VERTICES = 3
MAX_VERTICES = 255


class GeoshapeMode(Enum):
    """Output geometry strategy."""

    ALL_POINTS = "all-points"
    MARKED_POINTS = "marked-points"
    SINGLE_POINT_PER_SPAN = "single-point-per-span"
    CONTINUOUS_LINE = "continuous-line"
    BROKEN_LINE = "broken-line"
    CIRCLE_2D = "circle-2d"
    CIRCLE_3D = "circle-3d"

    @classmethod
    def parse(cls, value: str) -> "GeoshapeMode":
        try:
            return cls(value.strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise InvalidDownsampleOrGeometryParameter("mode", value, f"one of {allowed}") from None


class GeometryKind(Enum):
    SINGLE_POINT = "single-point"
    POINT_SET = "point-set"
    AVERAGED_POINT = "averaged-point"
    CONTINUOUS_POLYLINE = "continuous-polyline"
    BROKEN_POLYLINE = "broken-polyline"
    CIRCLE_2D = "circle-2d"
    CIRCLE_3D = "circle-3d"

    @property
    def is_line(self) -> bool:
        return self in (GeometryKind.CONTINUOUS_POLYLINE, GeometryKind.BROKEN_POLYLINE)

    @property
    def is_circle(self) -> bool:
        return self in (GeometryKind.CIRCLE_2D, GeometryKind.CIRCLE_3D)


@dataclass(frozen=True)
class Vertex:
    """Coordinate vertex, optionally timestamped."""

    latitude: float
    longitude: float
    altitude: Optional[float] = None
    timestamp: Optional[float] = None     # session-relative seconds
    datetime: Optional[datetime] = None


@dataclass(frozen=True)
class Geometry:
    kind: GeometryKind
    vertices: tuple[Vertex, ...]
    description: Optional[str] = None
    height: Optional[float] = None        # extrusion height, circle-3d only
    center: Optional[Vertex] = None       # circles only

    @property
    def first(self) -> Vertex:
        return self.vertices[0]

    @property
    def last(self) -> Vertex:
        return self.vertices[-1]


@dataclass(frozen=True)
class GeometryParameters:
    """Downsample factor, point grouping and circle parameters."""

    downsample: int = 1
    radius: float = 2.0
    height: float = 10.0
    vertices: int = 40
    group_points: bool = False

    def validate(self) -> "GeometryParameters":
        if isinstance(self.downsample, bool) or not isinstance(self.downsample, int) or self.downsample < 1:
            raise InvalidDownsampleOrGeometryParameter("downsample", self.downsample, "integer >= 1")
        if not self.radius > 0:
            raise InvalidDownsampleOrGeometryParameter("radius", self.radius, "positive number")
        if not self.height > 0:
            raise InvalidDownsampleOrGeometryParameter("height", self.height, "positive number")
        if isinstance(self.vertices, bool) or not isinstance(self.vertices, int) or not (
            MIN_VERTICES <= self.vertices <= MAX_VERTICES
        ):
            raise InvalidDownsampleOrGeometryParameter(
                "vertices", self.vertices, f"integer in {MIN_VERTICES}..{MAX_VERTICES}"
            )
        return self
