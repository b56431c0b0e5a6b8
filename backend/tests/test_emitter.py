"""
Tests for KML/GeoJSON output.
"""

import json
import xml.etree.ElementTree as ET
from datetime import datetime

import pytest

from eafgeo.models.geometry import Geometry, GeometryKind, GeoshapeMode, Vertex
from eafgeo.services.emitter import (
    OutputEmitter,
    OutputFormat,
    html_description,
    output_base,
    render_geojson,
    render_kml,
    style_color,
)


KML = "{http://www.opengis.net/kml/2.2}"


def vertex(t: float, alt=None) -> Vertex:
    return Vertex(
        latitude=56.047 + t * 1e-5,
        longitude=12.694 + t * 1e-5,
        altitude=alt,
        timestamp=t,
        datetime=datetime(2021, 6, 14, 9, 30, int(t)),
    )


@pytest.fixture
def geometries():
    return [
        Geometry(kind=GeometryKind.SINGLE_POINT, vertices=(vertex(1.0),), description=None),
        Geometry(kind=GeometryKind.SINGLE_POINT, vertices=(vertex(3.0, alt=12.0),), description="Dayum"),
        Geometry(
            kind=GeometryKind.BROKEN_POLYLINE,
            vertices=(vertex(7.0), vertex(8.0), vertex(9.0)),
            description="Chcuh",
        ),
    ]


@pytest.fixture
def circle():
    ring = tuple(Vertex(latitude=56.047 + d, longitude=12.694) for d in (1e-5, 0.0, -1e-5, 0.0, 1e-5))
    return Geometry(
        kind=GeometryKind.CIRCLE_3D,
        vertices=ring,
        description="Dayum",
        height=10.0,
        center=vertex(3.0),
    )


class TestRenderKml:
    """Tests for render_kml."""

    def test_placemarks(self, geometries):
        root = ET.fromstring(render_kml(geometries, "walk_all-points"))

        document = root.find(f"{KML}Document")
        assert document.find(f"{KML}name").text == "walk_all-points"
        placemarks = document.findall(f"{KML}Placemark")
        assert len(placemarks) == 3
        assert placemarks[0].find(f"{KML}name") is None
        assert placemarks[1].find(f"{KML}name").text == "Dayum"
        assert placemarks[1].find(f"{KML}description").text == "Dayum"

    def test_shapes(self, geometries):
        placemarks = ET.fromstring(render_kml(geometries)).iter(f"{KML}Placemark")
        point, described, line = list(placemarks)

        lon, lat = map(float, point.find(f"{KML}Point/{KML}coordinates").text.split(","))
        assert (lon, lat) == pytest.approx((12.69401, 56.04701))
        assert described.find(f"{KML}Point/{KML}coordinates").text.endswith(",12.0")
        assert len(line.find(f"{KML}LineString/{KML}coordinates").text.split()) == 3

    def test_styles_per_description(self, geometries):
        root = ET.fromstring(render_kml(geometries))

        styles = {s.get("id") for s in root.iter(f"{KML}Style")}
        assert styles == {"undescribed", "style0", "style1"}
        urls = [p.find(f"{KML}styleUrl").text for p in root.iter(f"{KML}Placemark")]
        assert urls == ["#undescribed", "#style0", "#style1"]

    def test_time_elements(self, geometries):
        point, _, line = list(ET.fromstring(render_kml(geometries)).iter(f"{KML}Placemark"))

        assert point.find(f"{KML}TimeStamp/{KML}when").text == "2021-06-14T09:30:01"
        assert line.find(f"{KML}TimeSpan/{KML}begin").text == "2021-06-14T09:30:07"
        assert line.find(f"{KML}TimeSpan/{KML}end").text == "2021-06-14T09:30:09"
        assert line.find(f"{KML}ExtendedData/{KML}Data/{KML}value").text == "7000"

    def test_extruded_circle(self, circle):
        placemark = next(ET.fromstring(render_kml([circle])).iter(f"{KML}Placemark"))

        polygon = placemark.find(f"{KML}Polygon")
        assert polygon.find(f"{KML}extrude").text == "1"
        assert polygon.find(f"{KML}altitudeMode").text == "relativeToGround"
        coordinates = polygon.find(f"{KML}outerBoundaryIs/{KML}LinearRing/{KML}coordinates").text.split()
        assert len(coordinates) == 5
        assert all(c.endswith(",10.0") for c in coordinates)
        assert placemark.find(f"{KML}TimeStamp/{KML}when").text == "2021-06-14T09:30:03"

    def test_degenerate_line_written_as_point(self):
        line = Geometry(kind=GeometryKind.BROKEN_POLYLINE, vertices=(vertex(4.0),), description="blip")

        placemark = next(ET.fromstring(render_kml([line])).iter(f"{KML}Placemark"))

        assert placemark.find(f"{KML}Point") is not None
        assert placemark.find(f"{KML}LineString") is None

    def test_point_set_as_multigeometry(self):
        points = Geometry(kind=GeometryKind.POINT_SET, vertices=(vertex(1.0), vertex(2.0)), description="Dayum")

        placemark = next(ET.fromstring(render_kml([points])).iter(f"{KML}Placemark"))

        assert len(placemark.findall(f"{KML}MultiGeometry/{KML}Point")) == 2
        assert placemark.find(f"{KML}TimeSpan/{KML}end").text == "2021-06-14T09:30:02"

    def test_style_color_is_stable(self):
        assert style_color("Dayum") == style_color("Dayum")
        assert style_color("Dayum") != style_color("Chcuh")
        assert style_color("Dayum").startswith("ff")
        assert len(style_color("Dayum")) == 8


class TestHtmlDescriptions:
    """Tests for the pop-up tables written into KML descriptions."""

    def test_point(self, geometries):
        html = html_description(geometries[1])

        assert html.startswith("<table>") and html.endswith("</table>")
        assert "<td>Description: Dayum</td>" in html
        assert f"Coordinate (lat, lon): {vertex(3.0).latitude}, {vertex(3.0).longitude}" in html
        assert "<td>Time: 2021-06-14T09:30:03</td>" in html

    def test_undescribed_point(self, geometries):
        assert "Description: No description" in html_description(geometries[0])

    def test_line_start_and_end(self, geometries):
        html = html_description(geometries[2])

        assert f"Coordinate, start (lat, lon): {vertex(7.0).latitude}" in html
        assert f"Coordinate, end (lat, lon): {vertex(9.0).latitude}" in html
        assert "Time, start: 2021-06-14T09:30:07" in html
        assert "Time, end: 2021-06-14T09:30:09" in html

    def test_circle_reports_centre(self, circle):
        html = html_description(circle)

        assert f"Coordinate (lat, lon): {vertex(3.0).latitude}, {vertex(3.0).longitude}" in html
        assert "end" not in html

    def test_written_to_every_placemark(self, geometries):
        root = ET.fromstring(render_kml(geometries, html_descriptions=True))

        descriptions = [p.find(f"{KML}description").text for p in root.iter(f"{KML}Placemark")]
        assert len(descriptions) == 3
        assert all(d.startswith("<table>") for d in descriptions)
        # names stay plain text
        assert [p.find(f"{KML}name") is not None for p in root.iter(f"{KML}Placemark")] == [False, True, True]

    def test_emitter_option(self, geometries, tmp_path):
        OutputEmitter(html_descriptions=True).emit(geometries, tmp_path / "walk", (OutputFormat.KML,))

        text = (tmp_path / "walk.kml").read_text()
        assert "&lt;table&gt;" in text


class TestRenderGeoJson:
    """Tests for render_geojson."""

    def test_features(self, geometries):
        collection = json.loads(render_geojson(geometries))

        assert collection["type"] == "FeatureCollection"
        features = collection["features"]
        assert [f["geometry"]["type"] for f in features] == ["Point", "Point", "LineString"]
        assert features[0]["properties"]["description"] is None
        assert features[1]["geometry"]["coordinates"] == pytest.approx([12.69403, 56.04703, 12.0])
        assert features[1]["properties"]["timestamp"] == 3000

    def test_line_properties(self, geometries):
        line = json.loads(render_geojson(geometries))["features"][2]["properties"]

        assert line["timestamp_start"] == 7000
        assert line["timestamp_end"] == 9000
        assert line["datetime_start"] == "2021-06-14T09:30:07"

    def test_circle_polygon(self, circle):
        feature = json.loads(render_geojson([circle]))["features"][0]

        assert feature["geometry"]["type"] == "Polygon"
        ring = feature["geometry"]["coordinates"][0]
        assert ring[0] == ring[-1]
        assert feature["properties"]["height"] == 10.0
        assert feature["properties"]["timestamp"] == 3000

    def test_point_set_is_multipoint(self):
        points = Geometry(kind=GeometryKind.POINT_SET, vertices=(vertex(1.0), vertex(2.0)))

        feature = json.loads(render_geojson([points]))["features"][0]

        assert feature["geometry"]["type"] == "MultiPoint"


class TestOutputEmitter:
    """Tests for writing files and the overwrite policy."""

    def test_writes_both_formats(self, geometries, tmp_path):
        base = tmp_path / "walk_all-points"

        result = OutputEmitter().emit(geometries, base)

        assert result.written == [tmp_path / "walk_all-points.kml", tmp_path / "walk_all-points.geojson"]
        assert result.skipped == []
        ET.parse(result.written[0])
        assert len(json.loads(result.written[1].read_text())["features"]) == 3

    def test_single_format(self, geometries, tmp_path):
        result = OutputEmitter().emit(geometries, tmp_path / "out", formats=(OutputFormat.GEOJSON,))

        assert result.written == [tmp_path / "out.geojson"]
        assert not (tmp_path / "out.kml").exists()

    def test_creates_missing_directory(self, geometries, tmp_path):
        result = OutputEmitter().emit(geometries, tmp_path / "exports" / "walk")

        assert all(p.exists() for p in result.written)

    def test_existing_files_are_kept(self, geometries, tmp_path):
        base = tmp_path / "walk"
        (tmp_path / "walk.kml").write_text("keep me")

        result = OutputEmitter().emit(geometries, base)

        assert result.skipped == [tmp_path / "walk.kml"]
        assert result.written == [tmp_path / "walk.geojson"]
        assert (tmp_path / "walk.kml").read_text() == "keep me"

    def test_overwrite_flag(self, geometries, tmp_path):
        (tmp_path / "walk.kml").write_text("old")

        result = OutputEmitter(overwrite=True).emit(geometries, tmp_path / "walk")

        assert result.skipped == []
        assert (tmp_path / "walk.kml").read_text() != "old"

    def test_confirmation(self, geometries, tmp_path):
        (tmp_path / "walk.kml").write_text("old")
        asked = []

        def confirm(paths):
            asked.extend(paths)
            return True

        result = OutputEmitter().emit(geometries, tmp_path / "walk", confirm=confirm)

        assert asked == [tmp_path / "walk.kml"]
        assert len(result.written) == 2

    def test_declined_confirmation(self, geometries, tmp_path):
        (tmp_path / "walk.kml").write_text("old")

        result = OutputEmitter().emit(geometries, tmp_path / "walk", confirm=lambda paths: False)

        assert result.skipped == [tmp_path / "walk.kml"]
        assert (tmp_path / "walk.kml").read_text() == "old"

    def test_preflight_writes_nothing(self, tmp_path):
        (tmp_path / "walk.geojson").write_text("{}")

        decision = OutputEmitter().preflight(tmp_path / "walk")

        assert decision.existing == (tmp_path / "walk.geojson",)
        assert decision.needs_confirmation
        assert decision.allowed(tmp_path / "walk.kml")
        assert not decision.allowed(tmp_path / "walk.geojson")
        assert not (tmp_path / "walk.kml").exists()


class TestOutputBase:
    """Tests for output file naming."""

    def test_next_to_annotation(self, tmp_path):
        base = output_base(tmp_path / "GH010026.eaf", GeoshapeMode.CIRCLE_3D)

        assert base == tmp_path / "GH010026_circle-3d"

    def test_custom_directory(self, tmp_path):
        base = output_base(tmp_path / "a" / "walk.eaf", GeoshapeMode.BROKEN_LINE, tmp_path / "out")

        assert base == tmp_path / "out" / "walk_broken-line"
