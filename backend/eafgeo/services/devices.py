"""
Per camera family identification rules.

The family set is closed, so the rules are plain records keyed by
`DeviceKind` rather than a class hierarchy. Each record knows which file
extensions belong to the family, how a fragment's identity and ordinal
hint are extracted, and where its telemetry lives.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from eafgeo.errors import UnidentifiableFragment
from eafgeo.models.session import DeviceKind, Fragment, ResolutionClass
from eafgeo.utils.mp4 import Mp4Info, read_info


logger = logging.getLogger(__name__)

# GoPro naming: GXccNNNN (chaptered) or GXAANNNN (looping)
GOPRO_CHAPTERED = re.compile(r"^[A-Z]{2}(\d{2})(\d{4})$", re.IGNORECASE)
GOPRO_LOOPING = re.compile(r"^[A-Z]{2}([A-Z]{2})(\d{4})$", re.IGNORECASE)


@dataclass(frozen=True)
class Identity:
    key: bytes
    ordinal: Optional[int]


def gopro_identity(path: Path, info: Optional[Mp4Info]) -> Identity:
    stem = path.stem
    match = GOPRO_CHAPTERED.match(stem)
    if match:
        return Identity(key=match.group(2).encode(), ordinal=int(match.group(1)))
    match = GOPRO_LOOPING.match(stem)
    if match:
        return Identity(key=match.group(1).upper().encode(), ordinal=int(match.group(2)))
    raise UnidentifiableFragment(path, "file name does not follow the GoPro naming convention")


def virb_identity(path: Path, info: Optional[Mp4Info]) -> Identity:
    if info is None or not info.uuid:
        raise UnidentifiableFragment(path, "no embedded uuid box")
    return Identity(key=info.uuid, ordinal=None)


@dataclass(frozen=True)
class DeviceFamily:
    kind: DeviceKind
    video_extensions: dict[str, ResolutionClass]
    identify: Callable[[Path, Optional[Mp4Info]], Identity]
    embedded_telemetry: bool

    def resolution(self, path: Path) -> Optional[ResolutionClass]:
        return self.video_extensions.get(path.suffix.lower())


DEVICE_FAMILIES: dict[DeviceKind, DeviceFamily] = {
    DeviceKind.GOPRO: DeviceFamily(
        kind=DeviceKind.GOPRO,
        video_extensions={".mp4": ResolutionClass.HIGH, ".lrv": ResolutionClass.LOW},
        identify=gopro_identity,
        embedded_telemetry=True,
    ),
    DeviceKind.VIRB: DeviceFamily(
        kind=DeviceKind.VIRB,
        video_extensions={".mp4": ResolutionClass.HIGH, ".glv": ResolutionClass.LOW},
        identify=virb_identity,
        embedded_telemetry=False,
    ),
}

VIDEO_EXTENSIONS = frozenset(
    ext for family in DEVICE_FAMILIES.values() for ext in family.video_extensions
)


def candidate_families(path: Path) -> list[DeviceFamily]:
    """Families that could own a file with this extension, embedded-identity families first."""
    ext = path.suffix.lower()
    families = [f for f in DEVICE_FAMILIES.values() if ext in f.video_extensions]
    return sorted(families, key=lambda f: f.embedded_telemetry)


def _file_time(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def identify_fragment(path: Path) -> Fragment:
    """
    Classify a video file and extract its identity.

    An embedded uuid box marks a VIRB clip; otherwise the GoPro naming
    convention is tried. Raises UnidentifiableFragment when neither applies.
    """
    families = candidate_families(path)
    if not families:
        raise UnidentifiableFragment(path, f"unsupported extension '{path.suffix}'")

    info: Optional[Mp4Info] = None
    try:
        info = read_info(path)
    except OSError as e:
        logger.debug(f"Could not read container of {path}: {e}")

    reasons = []
    for fam in families:
        try:
            identity = fam.identify(path, info)
        except UnidentifiableFragment as e:
            reasons.append(e.reason)
            continue
        return Fragment(
            path=path,
            device=fam.kind,
            resolution=fam.resolution(path),
            identity=identity.key,
            ordinal=identity.ordinal,
            duration_s=info.duration_s if info else None,
            created_at=(info.created_at if info and info.created_at else _file_time(path)),
        )

    raise UnidentifiableFragment(path, "; ".join(reasons))
