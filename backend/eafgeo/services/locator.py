"""
Session locator.

Scans a directory tree for video fragments and external telemetry logs,
groups fragments sharing an embedded identity into ordered sessions and
resolves duplicate copies of the same fragment.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from eafgeo.config import DEFAULT_SCAN_WORKERS
from eafgeo.errors import CorruptTelemetrySource, UnidentifiableFragment
from eafgeo.models.raw import MarkerKind, SessionMarker
from eafgeo.models.session import (
    DeviceKind,
    Fragment,
    LocateResult,
    ResolutionClass,
    Session,
    SessionSelection,
    TelemetryInterval,
)
from eafgeo.services.devices import VIDEO_EXTENSIONS, identify_fragment
from eafgeo.services.telemetry_sources import parse_telemetry_file, telemetry_extensions


logger = logging.getLogger(__name__)

IdentityRef = Union[bytes, str]


@dataclass(frozen=True)
class _MarkedClip:
    """Position of one clip inside a marker group of an external log."""

    group_key: bytes
    position: int
    interval: TelemetryInterval


def _enumerate(root: Path) -> tuple[list[Path], list[Path]]:
    """
    Candidate files under root, in traversal order.

    Returns (videos, external telemetry logs). A telemetry file with the same
    stem as a video in its directory is that clip's own export, not a log.
    """
    videos: list[Path] = []
    telemetry: list[Path] = []
    telemetry_exts = telemetry_extensions()
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        ext = path.suffix.lower()
        if ext in VIDEO_EXTENSIONS:
            videos.append(path)
        elif ext in telemetry_exts:
            telemetry.append(path)

    video_stems = {(v.parent, v.stem.lower()) for v in videos}
    external = [t for t in telemetry if (t.parent, t.stem.lower()) not in video_stems]
    return videos, external


def _identify(path: Path) -> Union[Fragment, UnidentifiableFragment]:
    try:
        return identify_fragment(path)
    except UnidentifiableFragment as e:
        return e


def _group_identities(group: list[SessionMarker]) -> tuple[bytes, ...]:
    identities: list[bytes] = []
    for marker in group:
        if marker.kind != MarkerKind.END and marker.identity not in identities:
            identities.append(marker.identity)
    if group and group[-1].identity not in identities:
        identities.append(group[-1].identity)
    return tuple(identities)


def _marked_clips(logs: list[Path]) -> dict[bytes, _MarkedClip]:
    """Map every clip identity declared by a log's markers to its recording."""
    clips: dict[bytes, _MarkedClip] = {}
    for log in logs:
        try:
            raw = parse_telemetry_file(log)
        except CorruptTelemetrySource as e:
            logger.warning(f"Skipping telemetry log: {e.message}")
            continue

        groups = raw.marker_groups()
        logger.debug(f"{log.name}: {len(groups)} recordings declared")
        for group in groups:
            identities = _group_identities(group)
            interval = TelemetryInterval(
                source=log,
                start_s=group[0].time_s,
                end_s=group[-1].time_s,
                split_s=tuple(m.time_s for m in group if m.kind == MarkerKind.SPLIT),
                identities=identities,
            )
            for position, identity in enumerate(identities):
                clips[identity] = _MarkedClip(identities[0], position, interval)
    return clips


def _fragment_order(fragment: Fragment) -> tuple:
    created = fragment.created_at.timestamp() if fragment.created_at else 0.0
    return (
        fragment.ordinal is None,
        fragment.ordinal if fragment.ordinal is not None else 0,
        created,
        fragment.resolution != ResolutionClass.HIGH,
        str(fragment.path),
    )


def _identity_matches(session: Session, identity: IdentityRef) -> bool:
    if isinstance(identity, bytes):
        return session.identity == identity
    value = identity.strip()
    return value.lower() == session.key or value.encode() == session.identity


class SessionLocator:
    """
    Discovers recording sessions under a root directory.

    Identification of video fragments runs on a thread pool. Everything
    after that (grouping, duplicate resolution, ordering) is sequential and
    follows traversal order.
    """

    def __init__(self, workers: int = DEFAULT_SCAN_WORKERS):
        self.workers = max(1, workers)

    def locate(self, root: Path) -> LocateResult:
        result = LocateResult(root=root)
        if not root.is_dir():
            logger.warning(f"Session root does not exist or is not a directory: {root}")
            return result

        videos, logs = _enumerate(root)
        result.telemetry_files = logs

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            outcomes = list(pool.map(_identify, videos))

        fragments: list[Fragment] = []
        for outcome in outcomes:
            if isinstance(outcome, UnidentifiableFragment):
                logger.warning(outcome.message)
                result.unidentifiable.append(outcome)
            else:
                fragments.append(outcome)

        clips = _marked_clips(logs)
        fragments = [self._regroup(f, clips) for f in fragments]

        # Last file in traversal order wins for a given role
        by_role: dict[tuple, Fragment] = {}
        for fragment in fragments:
            previous = by_role.get(fragment.role)
            if previous is not None:
                logger.warning(f"Duplicate fragment {previous.path} superseded by {fragment.path}")
                result.discarded.append(previous.path)
            by_role[fragment.role] = fragment

        grouped: dict[bytes, list[Fragment]] = {}
        for fragment in by_role.values():
            grouped.setdefault(fragment.identity, []).append(fragment)

        for identity, members in grouped.items():
            members.sort(key=_fragment_order)
            marked = clips.get(identity)
            interval = marked.interval if marked and marked.group_key == identity else None
            result.sessions.append(
                Session(
                    identity=identity,
                    device=members[0].device,
                    fragments=tuple(members),
                    telemetry=interval,
                )
            )

        result.sessions.sort(key=lambda s: (s.start().timestamp() if s.start() else 0.0, s.key))
        logger.info(
            f"Located {len(result.sessions)} sessions under {root} "
            f"({len(by_role)} fragments, {len(result.unidentifiable)} unidentifiable, "
            f"{len(result.discarded)} duplicates, {len(logs)} telemetry logs)"
        )
        return result

    def _regroup(self, fragment: Fragment, clips: dict[bytes, _MarkedClip]) -> Fragment:
        """Place a clip declared by a log's markers under its recording's key."""
        if fragment.device != DeviceKind.VIRB:
            return fragment
        marked = clips.get(fragment.identity)
        if marked is None:
            logger.debug(f"{fragment.path.name}: no telemetry log declares this clip")
            return fragment
        return replace(
            fragment,
            identity=marked.group_key,
            ordinal=marked.position,
            clip_identity=fragment.identity,
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self,
        result: LocateResult,
        fragment: Optional[Path] = None,
        telemetry: Optional[Path] = None,
        identity: Optional[IdentityRef] = None,
    ) -> SessionSelection:
        """
        Narrow a scan down to one session.

        A fragment reference is decisive. A telemetry reference may cover
        several sessions; an identity then picks one of them. With no
        filter at all, a scan holding a single session selects it.
        """
        if fragment is not None:
            return self.select_by_fragment(result, fragment)

        candidates = list(result.sessions)
        if telemetry is not None:
            candidates = self._covered_by(result, telemetry)
        if identity is not None:
            candidates = [s for s in candidates if _identity_matches(s, identity)]
        return self._selection(candidates)

    def select_by_fragment(self, result: LocateResult, path: Path) -> SessionSelection:
        for session in result.sessions:
            if session.contains(path):
                return SessionSelection(session=session)
        return SessionSelection()

    def select_by_identity(self, result: LocateResult, identity: IdentityRef) -> SessionSelection:
        return self._selection([s for s in result.sessions if _identity_matches(s, identity)])

    def _covered_by(self, result: LocateResult, path: Path) -> list[Session]:
        resolved = path.resolve()
        covered = []
        for session in result.sessions:
            if session.telemetry is not None and session.telemetry.source.resolve() == resolved:
                covered.append(session)
            elif any(f.path.with_suffix(path.suffix).resolve() == resolved for f in session.fragments):
                covered.append(session)
        return covered

    def _selection(self, candidates: list[Session]) -> SessionSelection:
        if len(candidates) == 1:
            return SessionSelection(session=candidates[0])
        return SessionSelection(candidates=tuple(candidates))


def locate_sessions(root: Path, workers: int = DEFAULT_SCAN_WORKERS) -> LocateResult:
    return SessionLocator(workers).locate(root)
