"""
Geometry builder.

Turns an alignment result into the ordered list of output geometries for
one geoshape mode. Downsampling divides a point sequence into consecutive
clusters of n points and replaces each cluster by its arithmetic mean.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from eafgeo.models.geometry import Geometry, GeometryKind, GeometryParameters, GeoshapeMode, Vertex
from eafgeo.models.telemetry import TelemetryStream
from eafgeo.services.aligner import AlignmentResult
from eafgeo.utils.coordinates import circle_around


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cluster:
    """Averaged position of consecutive points, described by its first point."""

    vertex: Vertex
    first_index: int
    size: int


def average(stream: TelemetryStream, indices: NDArray[np.int64]) -> Vertex:
    """
    Arithmetic mean position of the given points.

    No geodesic correction is applied. Timestamps are those of the first
    point. Altitude is averaged over the points that logged one.
    """
    first = int(indices[0])
    altitudes = stream.altitude[indices]
    logged = altitudes[~np.isnan(altitudes)]
    return Vertex(
        latitude=float(np.mean(stream.latitude[indices])),
        longitude=float(np.mean(stream.longitude[indices])),
        altitude=float(np.mean(logged)) if len(logged) else None,
        timestamp=float(stream.timestamps[first]),
        datetime=stream.datetime_at(first),
    )


def clamp_factor(factor: int, count: int) -> int:
    """Downsample factor limited to the number of points it divides."""
    return max(1, min(factor, count))


def downsample(stream: TelemetryStream, indices: NDArray[np.int64], factor: int) -> list[Cluster]:
    """Clusters of `factor` consecutive points; the last one may be shorter."""
    if len(indices) == 0:
        return []
    n = clamp_factor(factor, len(indices))
    clusters = []
    for start in range(0, len(indices), n):
        chunk = indices[start:start + n]
        clusters.append(Cluster(vertex=average(stream, chunk), first_index=int(chunk[0]), size=len(chunk)))
    return clusters


def expected_count(count: int, factor: int) -> int:
    """Number of clusters downsampling produces for `count` points."""
    if count == 0:
        return 0
    return math.ceil(count / clamp_factor(factor, count))


class GeometryBuilder:
    def __init__(self, mode: GeoshapeMode, params: Optional[GeometryParameters] = None):
        self.mode = mode
        self.params = (params or GeometryParameters()).validate()

    def build(self, alignment: AlignmentResult) -> list[Geometry]:
        builders = {
            GeoshapeMode.ALL_POINTS: self._all_points,
            GeoshapeMode.MARKED_POINTS: self._marked_points,
            GeoshapeMode.SINGLE_POINT_PER_SPAN: self._single_point_per_span,
            GeoshapeMode.CONTINUOUS_LINE: self._continuous_line,
            GeoshapeMode.BROKEN_LINE: self._broken_line,
            GeoshapeMode.CIRCLE_2D: self._circles,
            GeoshapeMode.CIRCLE_3D: self._circles,
        }
        geometries = builders[self.mode](alignment)
        logger.info(f"Built {len(geometries)} geometries ({self.mode.value}, downsample {self.params.downsample})")
        return geometries

    def _all_points(self, alignment: AlignmentResult) -> list[Geometry]:
        stream = alignment.stream
        everything = np.arange(len(stream), dtype=np.int64)
        return [
            Geometry(
                kind=GeometryKind.SINGLE_POINT,
                vertices=(cluster.vertex,),
                description=alignment.descriptions[cluster.first_index],
            )
            for cluster in downsample(stream, everything, self.params.downsample)
        ]

    def _marked_points(self, alignment: AlignmentResult) -> list[Geometry]:
        geometries = []
        for intersection in alignment.intersections:
            clusters = downsample(alignment.stream, intersection.indices, self.params.downsample)
            if self.params.group_points:
                if clusters:
                    geometries.append(
                        Geometry(
                            kind=GeometryKind.POINT_SET,
                            vertices=tuple(c.vertex for c in clusters),
                            description=intersection.span.text,
                        )
                    )
                continue
            for cluster in clusters:
                geometries.append(
                    Geometry(
                        kind=GeometryKind.SINGLE_POINT,
                        vertices=(cluster.vertex,),
                        description=intersection.span.text,
                    )
                )
        return geometries

    def _single_point_per_span(self, alignment: AlignmentResult) -> list[Geometry]:
        return [
            Geometry(
                kind=GeometryKind.AVERAGED_POINT,
                vertices=(average(alignment.stream, intersection.indices),),
                description=intersection.span.text,
            )
            for intersection in alignment.intersections
            if not intersection.is_empty
        ]

    def _continuous_line(self, alignment: AlignmentResult) -> list[Geometry]:
        """
        One polyline per run of consecutive clusters sharing a description.

        Each polyline after the first starts at the last vertex of the one
        before, so the track stays connected across description changes.
        """
        stream = alignment.stream
        everything = np.arange(len(stream), dtype=np.int64)
        clusters = downsample(stream, everything, self.params.downsample)

        runs: list[tuple[Optional[str], list[Vertex]]] = []
        for cluster in clusters:
            description = alignment.descriptions[cluster.first_index]
            if runs and runs[-1][0] == description:
                runs[-1][1].append(cluster.vertex)
            else:
                vertices = [runs[-1][1][-1]] if runs else []
                vertices.append(cluster.vertex)
                runs.append((description, vertices))

        return [
            Geometry(kind=GeometryKind.CONTINUOUS_POLYLINE, vertices=tuple(vertices), description=description)
            for description, vertices in runs
        ]

    def _broken_line(self, alignment: AlignmentResult) -> list[Geometry]:
        geometries = []
        for intersection in alignment.intersections:
            count = len(intersection)
            if count == 0:
                continue
            factor = clamp_factor(self.params.downsample, count)
            # Keep at least two vertices so the span stays a line
            if count >= 2 and count // factor < 2:
                factor = count // 2
            clusters = downsample(alignment.stream, intersection.indices, factor)
            geometries.append(
                Geometry(
                    kind=GeometryKind.BROKEN_POLYLINE,
                    vertices=tuple(c.vertex for c in clusters),
                    description=intersection.span.text,
                )
            )
        return geometries

    def _circles(self, alignment: AlignmentResult) -> list[Geometry]:
        extruded = self.mode == GeoshapeMode.CIRCLE_3D
        kind = GeometryKind.CIRCLE_3D if extruded else GeometryKind.CIRCLE_2D
        geometries = []
        for intersection in alignment.intersections:
            if intersection.is_empty:
                continue
            center = average(alignment.stream, intersection.indices)
            lat, lon, _ = circle_around(center.latitude, center.longitude, self.params.radius, self.params.vertices)
            ring = tuple(Vertex(latitude=float(a), longitude=float(b)) for a, b in zip(lat, lon))
            geometries.append(
                Geometry(
                    kind=kind,
                    vertices=ring,
                    description=intersection.span.text,
                    height=self.params.height if extruded else None,
                    center=center,
                )
            )
        return geometries


def build_geometries(
    alignment: AlignmentResult,
    mode: GeoshapeMode,
    params: Optional[GeometryParameters] = None,
) -> list[Geometry]:
    return GeometryBuilder(mode, params).build(alignment)
