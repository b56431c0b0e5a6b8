"""
Tests for MP4 box reading and fragment identification.
"""

from datetime import datetime, timezone

import pytest

from eafgeo.errors import UnidentifiableFragment
from eafgeo.models.session import DeviceKind, ResolutionClass
from eafgeo.services.devices import identify_fragment
from eafgeo.utils.mp4 import build_box, read_info
from eafgeo.utils.sample_data import write_mp4


CREATED = datetime(2021, 6, 14, 9, 30, tzinfo=timezone.utc)


class TestReadInfo:
    """Tests for mp4.read_info."""

    def test_reads_duration_creation_and_uuid(self, tmp_path):
        path = write_mp4(tmp_path / "V0000001.MP4", 12.5, CREATED, b"virb-uuid-0001")

        info = read_info(path)

        assert info.duration_s == pytest.approx(12.5)
        assert info.created_at == CREATED
        assert info.uuid == b"virb-uuid-0001"

    def test_uuid_padding_is_stripped(self, tmp_path):
        path = write_mp4(tmp_path / "clip.mp4", 1.0, uuid=b"abc\x00\x00\x00")

        assert read_info(path).uuid == b"abc"

    def test_without_uuid(self, tmp_path):
        path = write_mp4(tmp_path / "GH010026.MP4", 10.0, CREATED)

        info = read_info(path)

        assert info.uuid is None
        assert info.duration_s == pytest.approx(10.0)

    def test_top_level_uuid(self, tmp_path):
        """Some cameras write the identity box at file level."""
        path = tmp_path / "top.mp4"
        path.write_bytes(build_box(b"ftyp", b"mp41") + build_box(b"uuid", b"top-level-id"))

        info = read_info(path)

        assert info.uuid == b"top-level-id"
        assert info.duration_s is None
        assert info.created_at is None

    def test_garbage_file(self, tmp_path):
        path = tmp_path / "garbage.mp4"
        path.write_bytes(b"not an mp4 file at all")

        info = read_info(path)

        assert info.uuid is None
        assert info.duration_s is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            read_info(tmp_path / "missing.mp4")


class TestIdentifyFragment:
    """Tests for camera family identification."""

    def test_gopro_chaptered(self, tmp_path):
        fragment = identify_fragment(write_mp4(tmp_path / "GH020026.MP4", 10.0, CREATED))

        assert fragment.device == DeviceKind.GOPRO
        assert fragment.identity == b"0026"
        assert fragment.ordinal == 2
        assert fragment.resolution == ResolutionClass.HIGH
        assert fragment.created_at == CREATED

    def test_gopro_looping(self, tmp_path):
        fragment = identify_fragment(write_mp4(tmp_path / "GHAB0003.MP4", 10.0))

        assert fragment.identity == b"AB"
        assert fragment.ordinal == 3

    def test_gopro_low_resolution(self, tmp_path):
        fragment = identify_fragment(write_mp4(tmp_path / "GL010026.LRV", 10.0))

        assert fragment.resolution == ResolutionClass.LOW
        assert fragment.identity == b"0026"

    def test_virb_by_embedded_uuid(self, tmp_path):
        fragment = identify_fragment(write_mp4(tmp_path / "V0000001.MP4", 10.0, CREATED, b"virb-uuid-0001"))

        assert fragment.device == DeviceKind.VIRB
        assert fragment.identity == b"virb-uuid-0001"
        assert fragment.ordinal is None

    def test_unidentifiable(self, tmp_path):
        path = write_mp4(tmp_path / "holiday.mp4", 10.0)

        with pytest.raises(UnidentifiableFragment) as exc:
            identify_fragment(path)

        assert exc.value.path == path

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")

        with pytest.raises(UnidentifiableFragment):
            identify_fragment(path)
