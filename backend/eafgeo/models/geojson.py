"""
GeoJSON document model (Pydantic), shared by the file emitter and the API.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from eafgeo.models.geometry import Geometry, Vertex


class GeoJsonGeometry(BaseModel):
    type: Literal["Point", "MultiPoint", "LineString", "Polygon"]
    coordinates: list[Any]


class Feature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: GeoJsonGeometry
    properties: dict[str, Any] = Field(default_factory=dict)


class FeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[Feature] = Field(default_factory=list)


def _position(vertex: Vertex) -> list[float]:
    if vertex.altitude is None:
        return [vertex.longitude, vertex.latitude]
    return [vertex.longitude, vertex.latitude, vertex.altitude]


def _ms(timestamp: Optional[float]) -> Optional[int]:
    return int(round(timestamp * 1000)) if timestamp is not None else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _geometry(geometry: Geometry) -> GeoJsonGeometry:
    if geometry.kind.is_circle:
        # No extrusion in GeoJSON: circle-3d is written as the flat ring
        return GeoJsonGeometry(type="Polygon", coordinates=[[_position(v) for v in geometry.vertices]])
    if len(geometry.vertices) == 1:
        return GeoJsonGeometry(type="Point", coordinates=_position(geometry.first))
    if geometry.kind.is_line:
        return GeoJsonGeometry(type="LineString", coordinates=[_position(v) for v in geometry.vertices])
    return GeoJsonGeometry(type="MultiPoint", coordinates=[_position(v) for v in geometry.vertices])


def _properties(geometry: Geometry) -> dict[str, Any]:
    properties: dict[str, Any] = {"description": geometry.description}
    if geometry.kind.is_circle:
        anchor = geometry.center
        properties["timestamp"] = _ms(anchor.timestamp) if anchor else None
        properties["datetime"] = _iso(anchor.datetime) if anchor else None
        if geometry.height is not None:
            properties["height"] = geometry.height
    elif len(geometry.vertices) == 1:
        properties["timestamp"] = _ms(geometry.first.timestamp)
        properties["datetime"] = _iso(geometry.first.datetime)
    else:
        properties["timestamp_start"] = _ms(geometry.first.timestamp)
        properties["timestamp_end"] = _ms(geometry.last.timestamp)
        properties["datetime_start"] = _iso(geometry.first.datetime)
        properties["datetime_end"] = _iso(geometry.last.datetime)
    return properties


def to_feature(geometry: Geometry) -> Feature:
    return Feature(geometry=_geometry(geometry), properties=_properties(geometry))


def to_feature_collection(geometries: list[Geometry]) -> FeatureCollection:
    return FeatureCollection(features=[to_feature(g) for g in geometries])
