"""
Recording session model.

A session is one continuous recording, split by the camera into fragments
(individual video files) that share an embedded identity key.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class DeviceKind(Enum):
    """Supported camera families."""

    GOPRO = "gopro"  # camera-A: embedded per-fragment telemetry
    VIRB = "virb"    # camera-B: external telemetry log


class ResolutionClass(Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class Fragment:
    """One physical video file that is part of a longer recording."""

    path: Path
    device: DeviceKind
    resolution: ResolutionClass
    identity: bytes                     # session key, shared by all fragments of a recording
    ordinal: Optional[int] = None       # position hint within the session
    duration_s: Optional[float] = None
    created_at: Optional[datetime] = None
    clip_identity: Optional[bytes] = None  # embedded identity of this clip if it differs from the session key

    @property
    def role(self) -> tuple[bytes, Optional[int], ResolutionClass]:
        """Logical role within a session. Two files with the same role are duplicates."""
        return (self.identity, self.ordinal, self.resolution)

    @property
    def own_identity(self) -> bytes:
        return self.clip_identity if self.clip_identity is not None else self.identity


@dataclass(frozen=True)
class TelemetryInterval:
    """Span of an external telemetry log that covers one session."""

    source: Path
    start_s: float                       # log-relative
    end_s: float                         # log-relative
    split_s: tuple[float, ...] = ()      # log-relative start of every fragment after the first
    identities: tuple[bytes, ...] = ()   # clip identities in recording order


@dataclass(frozen=True)
class Session:
    """Ordered fragments sharing one identity key, plus its telemetry source."""

    identity: bytes
    device: DeviceKind
    fragments: tuple[Fragment, ...]
    telemetry: Optional[TelemetryInterval] = None

    @property
    def key(self) -> str:
        """Printable session key (hex encoded identity)."""
        return self.identity.hex()

    def parts(self) -> list[Fragment]:
        """
        One fragment per recording position, preferring high resolution.

        Fragments are already ordered, so the first occurrence of each
        ordinal position keeps the session order.
        """
        chosen: dict[object, Fragment] = {}
        order: list[object] = []
        for fragment in self.fragments:
            slot = fragment.ordinal if fragment.ordinal is not None else fragment.own_identity
            current = chosen.get(slot)
            if current is None:
                order.append(slot)
                chosen[slot] = fragment
            elif current.resolution == ResolutionClass.LOW and fragment.resolution == ResolutionClass.HIGH:
                chosen[slot] = fragment
        return [chosen[slot] for slot in order]

    @property
    def has_external_telemetry(self) -> bool:
        return self.telemetry is not None

    def start(self) -> Optional[datetime]:
        times = [f.created_at for f in self.fragments if f.created_at is not None]
        return min(times) if times else None

    def duration_s(self) -> Optional[float]:
        durations = [f.duration_s for f in self.parts()]
        if not durations or any(d is None for d in durations):
            return None
        return float(sum(durations))

    def contains(self, path: Path) -> bool:
        resolved = path.resolve()
        return any(f.path.resolve() == resolved for f in self.fragments)


@dataclass
class LocateResult:
    """Everything discovered under a root directory in one scan."""

    root: Path
    sessions: list[Session] = field(default_factory=list)
    unidentifiable: list = field(default_factory=list)  # UnidentifiableFragment records
    discarded: list[Path] = field(default_factory=list)  # duplicates superseded by a later file
    telemetry_files: list[Path] = field(default_factory=list)


@dataclass(frozen=True)
class SessionSelection:
    """
    Answer to a session selection request.

    Either exactly one session was resolved, or the caller gets the list of
    candidates to choose from and asks again with an identity.
    """

    session: Optional[Session] = None
    candidates: tuple[Session, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return self.session is None and len(self.candidates) > 1

    @property
    def is_empty(self) -> bool:
        return self.session is None and not self.candidates
