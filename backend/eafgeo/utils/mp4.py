"""
Minimal MP4 box reader.

Only what the session locator needs: the embedded `uuid` box written by some
cameras, and duration/creation time from `moov > mvhd`. Telemetry streams
inside the container are not decoded here.
"""

import logging
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)

# mvhd times are seconds since 1904-01-01 UTC
MP4_EPOCH = datetime(1904, 1, 1, tzinfo=timezone.utc)

# containers searched (in this order) for an identity box
UUID_SEARCH_PATHS = ((), (b"moov",), (b"moov", b"udta"))


@dataclass(frozen=True)
class Mp4Info:
    duration_s: Optional[float]
    created_at: Optional[datetime]
    uuid: Optional[bytes]


def _find_box(f: BinaryIO, parent_end: int, target: bytes) -> Optional[tuple[int, int]]:
    """Scan sibling boxes up to *parent_end* for *target*, return (data_offset, data_size)."""
    while f.tell() + 8 <= parent_end:
        pos = f.tell()
        header = f.read(8)
        if len(header) < 8:
            break
        size = struct.unpack(">I", header[:4])[0]
        fourcc = header[4:8]
        if size == 1:  # 64-bit extended size
            ext = f.read(8)
            if len(ext) < 8:
                break
            size = struct.unpack(">Q", ext)[0]
            data_start = pos + 16
        elif size == 0:  # box extends to end of parent
            size = parent_end - pos
            data_start = pos + 8
        else:
            data_start = pos + 8
        if size < data_start - pos:
            break
        box_end = pos + size
        if fourcc == target:
            return data_start, box_end - data_start
        f.seek(box_end)
    return None


def _find_path(f: BinaryIO, file_size: int, path: tuple[bytes, ...]) -> Optional[tuple[int, int]]:
    f.seek(0)
    offset, size = 0, file_size
    for fourcc in path:
        found = _find_box(f, offset + size, fourcc)
        if found is None:
            return None
        offset, size = found
        f.seek(offset)
    return offset, size


def _parse_mvhd(data: bytes) -> tuple[Optional[float], Optional[datetime]]:
    if len(data) < 20:
        return None, None
    version = data[0]
    if version == 1:
        if len(data) < 32:
            return None, None
        created, _modified, timescale, duration = struct.unpack(">QQIQ", data[4:32])
    else:
        created, _modified, timescale, duration = struct.unpack(">IIII", data[4:20])
    duration_s = duration / timescale if timescale else None
    created_at = MP4_EPOCH + timedelta(seconds=created) if created else None
    return duration_s, created_at


def read_uuid(f: BinaryIO, file_size: int) -> Optional[bytes]:
    """Payload of the first `uuid` box found, with trailing NUL padding removed."""
    for parent in UUID_SEARCH_PATHS:
        found = _find_path(f, file_size, parent + (b"uuid",))
        if found is None:
            continue
        offset, size = found
        f.seek(offset)
        payload = f.read(size).rstrip(b"\x00").strip()
        if payload:
            return payload
    return None


def read_info(path: Path) -> Mp4Info:
    """
    Read identity, duration and creation time from an MP4 file.

    Raises OSError if the file can not be read. Missing boxes are
    reported as None.
    """
    with open(path, "rb") as f:
        f.seek(0, 2)
        file_size = f.tell()

        duration_s, created_at = None, None
        mvhd = _find_path(f, file_size, (b"moov", b"mvhd"))
        if mvhd is not None:
            offset, size = mvhd
            f.seek(offset)
            duration_s, created_at = _parse_mvhd(f.read(size))
        else:
            logger.debug(f"No mvhd box in {path}")

        uuid = read_uuid(f, file_size)

    return Mp4Info(duration_s=duration_s, created_at=created_at, uuid=uuid)


def build_box(fourcc: bytes, payload: bytes) -> bytes:
    """Serialize a single box (used to write fixtures)."""
    return struct.pack(">I", 8 + len(payload)) + fourcc + payload


def build_mvhd(duration_s: float, created_at: Optional[datetime] = None, timescale: int = 1000) -> bytes:
    created = int((created_at - MP4_EPOCH).total_seconds()) if created_at else 0
    payload = bytes([0, 0, 0, 0]) + struct.pack(
        ">IIII", created, created, timescale, int(round(duration_s * timescale))
    )
    # rate, volume, reserved, matrix, pre_defined, next_track_id
    payload += b"\x00" * 80
    return build_box(b"mvhd", payload)
