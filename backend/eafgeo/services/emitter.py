"""
Output emitter.

Serializes geometries to KML and GeoJSON. Every requested document is
rendered in memory before the first file is written, and existing files are
only replaced when overwriting was requested or confirmed.
"""

import hashlib
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from eafgeo.models.geojson import to_feature_collection
from eafgeo.models.geometry import Geometry, GeoshapeMode, Vertex


logger = logging.getLogger(__name__)

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"
UNDESCRIBED_STYLE = "undescribed"
UNDESCRIBED_COLOR = "ff9e9e9e"


class OutputFormat(Enum):
    KML = "kml"
    GEOJSON = "geojson"

    @property
    def suffix(self) -> str:
        return f".{self.value}"


DEFAULT_FORMATS = (OutputFormat.KML, OutputFormat.GEOJSON)

# Receives the existing files about to be replaced, returns whether to go ahead
ConfirmOverwrite = Callable[[list[Path]], bool]


@dataclass(frozen=True)
class WriteDecision:
    """Outcome of the pre-flight check for one emit call."""

    targets: dict[OutputFormat, Path]
    existing: tuple[Path, ...] = ()
    overwrite: bool = False

    @property
    def needs_confirmation(self) -> bool:
        return bool(self.existing) and not self.overwrite

    def allowed(self, path: Path) -> bool:
        return self.overwrite or path not in self.existing


@dataclass
class EmitResult:
    written: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def output_base(annotation_path: Path, mode: GeoshapeMode, directory: Optional[Path] = None) -> Path:
    """`<annotation stem>_<mode>` next to the annotation document, or in `directory`."""
    parent = directory if directory is not None else annotation_path.parent
    return parent / f"{annotation_path.stem}_{mode.value}"


def style_color(description: str) -> str:
    """Opaque KML colour (aabbggrr) derived from the description text."""
    digest = hashlib.md5(description.encode("utf-8")).hexdigest()
    rr, gg, bb = digest[0:2], digest[2:4], digest[4:6]
    return f"ff{bb}{gg}{rr}"


def _style_id(description: Optional[str], styles: dict[str, str]) -> str:
    if description is None:
        return UNDESCRIBED_STYLE
    return styles[description]


def _coordinates(vertices: Sequence[Vertex], altitude: Optional[float] = None) -> str:
    parts = []
    for v in vertices:
        alt = altitude if altitude is not None else v.altitude
        if alt is None:
            parts.append(f"{v.longitude},{v.latitude}")
        else:
            parts.append(f"{v.longitude},{v.latitude},{alt}")
    return " ".join(parts)


def _add_style(document: ET.Element, style_id: str, color: str) -> None:
    style = ET.SubElement(document, "Style", id=style_id)
    ET.SubElement(ET.SubElement(style, "IconStyle"), "color").text = color
    line = ET.SubElement(style, "LineStyle")
    ET.SubElement(line, "color").text = color
    ET.SubElement(line, "width").text = "2"
    poly = ET.SubElement(style, "PolyStyle")
    ET.SubElement(poly, "color").text = "7f" + color[2:]


def _add_time(placemark: ET.Element, geometry: Geometry) -> None:
    anchor = geometry.center if geometry.kind.is_circle else None
    first = anchor or geometry.first
    last = anchor or geometry.last

    if first.datetime is not None and (first is last or last.datetime is None or len(geometry.vertices) == 1):
        ET.SubElement(ET.SubElement(placemark, "TimeStamp"), "when").text = first.datetime.isoformat()
    elif first.datetime is not None:
        span = ET.SubElement(placemark, "TimeSpan")
        ET.SubElement(span, "begin").text = first.datetime.isoformat()
        ET.SubElement(span, "end").text = last.datetime.isoformat()

    if first.timestamp is not None:
        data = ET.SubElement(placemark, "ExtendedData")
        ET.SubElement(ET.SubElement(data, "Data", name="timestamp"), "value").text = str(
            int(round(first.timestamp * 1000))
        )


def _add_shape(placemark: ET.Element, geometry: Geometry) -> None:
    if geometry.kind.is_circle:
        polygon = ET.SubElement(placemark, "Polygon")
        if geometry.height is not None:
            ET.SubElement(polygon, "extrude").text = "1"
            ET.SubElement(polygon, "altitudeMode").text = "relativeToGround"
        ring = ET.SubElement(ET.SubElement(polygon, "outerBoundaryIs"), "LinearRing")
        ET.SubElement(ring, "coordinates").text = _coordinates(geometry.vertices, geometry.height)
    elif len(geometry.vertices) == 1:
        point = ET.SubElement(placemark, "Point")
        ET.SubElement(point, "coordinates").text = _coordinates(geometry.vertices)
    elif geometry.kind.is_line:
        line = ET.SubElement(placemark, "LineString")
        ET.SubElement(line, "tessellate").text = "1"
        ET.SubElement(line, "coordinates").text = _coordinates(geometry.vertices)
    else:
        multi = ET.SubElement(placemark, "MultiGeometry")
        for vertex in geometry.vertices:
            ET.SubElement(ET.SubElement(multi, "Point"), "coordinates").text = _coordinates([vertex])


def html_description(geometry: Geometry) -> str:
    """
    Table for the placemark pop-up of a map viewer.

    Lines report their start and end position. Circles report their centre.
    The markup is escaped on serialization, which KML viewers accept.
    """
    start = geometry.center if geometry.kind.is_circle and geometry.center is not None else geometry.first
    end = geometry.last if geometry.kind.is_line and len(geometry.vertices) > 1 else None

    rows = [f"Description: {geometry.description if geometry.description is not None else 'No description'}"]
    rows.append(f"{'Coordinate, start' if end else 'Coordinate'} (lat, lon): {start.latitude}, {start.longitude}")
    if end is not None:
        rows.append(f"Coordinate, end (lat, lon): {end.latitude}, {end.longitude}")
    if start.datetime is not None:
        rows.append(f"{'Time, start' if end else 'Time'}: {start.datetime.isoformat()}")
    if end is not None and end.datetime is not None:
        rows.append(f"Time, end: {end.datetime.isoformat()}")
    return "<table>" + "".join(f"<tr><td>{row}</td></tr>" for row in rows) + "</table>"


def render_kml(geometries: list[Geometry], name: str = "eafgeo", html_descriptions: bool = False) -> str:
    root = ET.Element("kml", xmlns=KML_NAMESPACE)
    document = ET.SubElement(root, "Document")
    ET.SubElement(document, "name").text = name

    styles: dict[str, str] = {}
    for geometry in geometries:
        if geometry.description is not None and geometry.description not in styles:
            styles[geometry.description] = f"style{len(styles)}"
    _add_style(document, UNDESCRIBED_STYLE, UNDESCRIBED_COLOR)
    for description, style_id in styles.items():
        _add_style(document, style_id, style_color(description))

    for geometry in geometries:
        placemark = ET.SubElement(document, "Placemark")
        if geometry.description is not None:
            ET.SubElement(placemark, "name").text = geometry.description
        if html_descriptions:
            ET.SubElement(placemark, "description").text = html_description(geometry)
        elif geometry.description is not None:
            ET.SubElement(placemark, "description").text = geometry.description
        ET.SubElement(placemark, "styleUrl").text = f"#{_style_id(geometry.description, styles)}"
        _add_time(placemark, geometry)
        _add_shape(placemark, geometry)

    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def render_geojson(geometries: list[Geometry]) -> str:
    return to_feature_collection(geometries).model_dump_json(indent=2) + "\n"


class OutputEmitter:
    def __init__(self, overwrite: bool = False, html_descriptions: bool = False):
        self.overwrite = overwrite
        self.html_descriptions = html_descriptions

    def targets(self, base: Path, formats: Sequence[OutputFormat] = DEFAULT_FORMATS) -> dict[OutputFormat, Path]:
        return {fmt: base.with_name(base.name + fmt.suffix) for fmt in formats}

    def preflight(
        self,
        base: Path,
        formats: Sequence[OutputFormat] = DEFAULT_FORMATS,
        overwrite: Optional[bool] = None,
    ) -> WriteDecision:
        """Report which targets already exist. Nothing is written."""
        targets = self.targets(base, formats)
        existing = tuple(path for path in targets.values() if path.exists())
        return WriteDecision(
            targets=targets,
            existing=existing,
            overwrite=self.overwrite if overwrite is None else overwrite,
        )

    def render(self, geometries: list[Geometry], fmt: OutputFormat, name: str = "eafgeo") -> str:
        if fmt == OutputFormat.KML:
            return render_kml(geometries, name, self.html_descriptions)
        return render_geojson(geometries)

    def emit(
        self,
        geometries: list[Geometry],
        base: Path,
        formats: Sequence[OutputFormat] = DEFAULT_FORMATS,
        overwrite: Optional[bool] = None,
        confirm: Optional[ConfirmOverwrite] = None,
    ) -> EmitResult:
        """
        Write one file per requested format.

        Existing files are kept unless overwriting is enabled or `confirm`
        approves replacing them. Skipped targets are listed in the result.
        """
        decision = self.preflight(base, formats, overwrite)
        if decision.needs_confirmation and confirm is not None and confirm(list(decision.existing)):
            decision = WriteDecision(decision.targets, decision.existing, overwrite=True)

        rendered = {fmt: self.render(geometries, fmt, base.name) for fmt in decision.targets}

        result = EmitResult()
        for fmt, path in decision.targets.items():
            if not decision.allowed(path):
                logger.warning(f"Not overwriting existing output {path}")
                result.skipped.append(path)
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(rendered[fmt], encoding="utf-8")
            logger.info(f"Wrote {len(geometries)} geometries to {path}")
            result.written.append(path)
        return result
