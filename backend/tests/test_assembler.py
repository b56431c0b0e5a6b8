"""
Tests for telemetry assembly.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from eafgeo.errors import (
    EmptyTelemetryAfterFiltering,
    InvalidDownsampleOrGeometryParameter,
    NonMonotonicAssembly,
)
from eafgeo.models.raw import RawTelemetry
from eafgeo.models.session import DeviceKind, Fragment, ResolutionClass, Session
from eafgeo.services.assembler import TelemetryAssembler, assemble_session
from eafgeo.services.locator import locate_sessions
from eafgeo.utils.sample_data import generate_gopro_session, generate_virb_recordings


class FakeReader:
    """Serves prepared telemetry per fragment path."""

    def __init__(self, by_name: dict[str, RawTelemetry]):
        self.by_name = by_name

    def read(self, fragment: Fragment) -> RawTelemetry:
        return self.by_name[fragment.path.name]


def make_raw(
    timestamps,
    lock=None,
    dop=None,
    name: str = "fake.csv",
) -> RawTelemetry:
    t = np.asarray(timestamps, dtype=np.float64)
    n = len(t)
    return RawTelemetry(
        source="fake",
        source_file=Path(name),
        timestamps=t,
        latitude=56.0 + t * 1e-5,
        longitude=12.0 + t * 1e-5,
        altitude=np.full(n, np.nan),
        lock=np.asarray(lock if lock is not None else [3] * n, dtype=np.int8),
        dop=np.asarray(dop if dop is not None else [np.nan] * n, dtype=np.float64),
    )


def make_session(*durations: Optional[float]) -> Session:
    fragments = tuple(
        Fragment(
            path=Path(f"GH{i + 1:02d}0001.MP4"),
            device=DeviceKind.GOPRO,
            resolution=ResolutionClass.HIGH,
            identity=b"0001",
            ordinal=i + 1,
            duration_s=duration,
        )
        for i, duration in enumerate(durations)
    )
    return Session(identity=b"0001", device=DeviceKind.GOPRO, fragments=fragments)


@pytest.fixture
def gopro_session(tmp_path):
    generate_gopro_session(tmp_path, chapters=2)
    return locate_sessions(tmp_path).sessions[0]


@pytest.fixture
def virb_session(tmp_path):
    generate_virb_recordings(tmp_path)
    return locate_sessions(tmp_path).sessions[0]


class TestEmbeddedAssembly:
    """Tests for sessions carrying per-fragment telemetry."""

    def test_concatenates_fragments(self, gopro_session):
        """Each chapter is offset by the duration of the chapters before it."""
        stream = assemble_session(gopro_session)

        assert len(stream) == 20
        assert_allclose(stream.timestamps, np.arange(20, dtype=np.float64))
        assert_array_equal(stream.fragment_index, [0] * 10 + [1] * 10)
        assert stream.session_key == b"0026".hex()
        assert stream.discarded == 0

    def test_timestamps_non_decreasing(self, gopro_session):
        stream = assemble_session(gopro_session)

        assert np.all(np.diff(stream.timestamps) >= 0)

    def test_absolute_time(self, gopro_session):
        stream = assemble_session(gopro_session)

        assert stream.datetime_at(0) == datetime(2021, 6, 14, 9, 30, 0)
        assert stream.datetime_at(12) == datetime(2021, 6, 14, 9, 30, 12)

    def test_time_offset_applies_to_absolute_time_only(self, gopro_session):
        stream = assemble_session(gopro_session, time_offset_hours=2.0)

        assert stream.datetime_at(0) == datetime(2021, 6, 14, 11, 30, 0)
        assert stream.timestamps[0] == 0.0

    def test_negative_time_offset(self, gopro_session):
        stream = assemble_session(gopro_session, time_offset_hours=-0.5)

        assert stream.datetime_at(0) == datetime(2021, 6, 14, 9, 0, 0)

    def test_unknown_duration_falls_back_to_last_timestamp(self):
        session = make_session(None, 10.0)
        reader = FakeReader({
            "GH010001.MP4": make_raw([0.0, 1.0, 2.0, 3.0]),
            "GH020001.MP4": make_raw([0.0, 1.0]),
        })

        stream = TelemetryAssembler(reader=reader).assemble(session)

        assert_allclose(stream.timestamps, [0.0, 1.0, 2.0, 3.0, 3.0, 4.0])
        assert stream.datetimes is None

    def test_non_monotonic_assembly(self):
        """A fragment shorter than its own telemetry makes time go backwards."""
        session = make_session(2.0, 2.0)
        reader = FakeReader({
            "GH010001.MP4": make_raw([0.0, 1.0, 2.0, 3.0, 4.0]),
            "GH020001.MP4": make_raw([0.0, 1.0, 2.0]),
        })

        with pytest.raises(NonMonotonicAssembly) as exc:
            TelemetryAssembler(reader=reader).assemble(session)

        assert exc.value.fragment_index == 1


class TestQualityFiltering:
    """Tests for lock and DOP filtering."""

    @pytest.fixture
    def mixed_quality_reader(self):
        return FakeReader({
            "GH010001.MP4": make_raw(
                [0.0, 1.0, 2.0, 3.0, 4.0],
                lock=[3, 2, 0, 3, 3],
                dop=[1.0, 2.0, 9.0, 6.0, np.nan],
            ),
        })

    def test_default_keeps_full_lock(self, mixed_quality_reader):
        stream = TelemetryAssembler(reader=mixed_quality_reader).assemble(make_session(5.0))

        assert_allclose(stream.timestamps, [0.0, 3.0, 4.0])
        assert stream.discarded == 2

    def test_lower_lock_threshold(self, mixed_quality_reader):
        stream = TelemetryAssembler(min_lock=2, reader=mixed_quality_reader).assemble(make_session(5.0))

        assert_allclose(stream.timestamps, [0.0, 1.0, 3.0, 4.0])

    def test_max_dop_keeps_points_without_dop(self, mixed_quality_reader):
        stream = TelemetryAssembler(min_lock=0, max_dop=5.0, reader=mixed_quality_reader).assemble(make_session(5.0))

        assert_allclose(stream.timestamps, [0.0, 1.0, 4.0])
        assert stream.discarded == 2

    def test_empty_after_filtering_warns(self):
        reader = FakeReader({"GH010001.MP4": make_raw([0.0, 1.0], lock=[2, 0])})

        with pytest.warns(EmptyTelemetryAfterFiltering):
            stream = TelemetryAssembler(reader=reader).assemble(make_session(2.0))

        assert stream.is_empty
        assert stream.discarded == 2
        assert len(stream.warnings) == 1

    @pytest.mark.parametrize("min_lock", [1, 4, -1])
    def test_invalid_min_lock(self, min_lock):
        with pytest.raises(InvalidDownsampleOrGeometryParameter):
            TelemetryAssembler(min_lock=min_lock)

    @pytest.mark.parametrize("max_dop", [0.0, -2.5])
    def test_invalid_max_dop(self, max_dop):
        with pytest.raises(InvalidDownsampleOrGeometryParameter):
            TelemetryAssembler(max_dop=max_dop)


class TestExternalAssembly:
    """Tests for sessions sliced out of a shared log."""

    def test_interval_is_sliced(self, virb_session):
        stream = assemble_session(virb_session)

        # start marker at 5s, end marker at 25s, one sample per second
        assert len(stream) == 21
        assert stream.timestamps[0] == 0.0
        assert stream.timestamps[-1] == pytest.approx(20.0)

    def test_split_marker_sets_fragment_index(self, virb_session):
        stream = assemble_session(virb_session)

        assert_array_equal(stream.fragment_index, [0] * 10 + [1] * 11)

    def test_absolute_time_from_log(self, virb_session):
        stream = assemble_session(virb_session)

        assert stream.datetime_at(0) == datetime(2021, 6, 14, 9, 30, 5)
        assert_allclose(stream.altitude, 30.0)
        assert_allclose(stream.dop, 1.2)
