"""
Sample data generator for testing.

Writes small but structurally faithful recordings: camera fragments (minimal
MP4 containers), per-fragment telemetry exports, external telemetry logs
with recording markers, and ELAN annotation documents.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from eafgeo.utils.mp4 import build_box, build_mvhd


DEFAULT_START = datetime(2021, 6, 14, 9, 30, tzinfo=timezone.utc)

# (time_s, event, identity) rows of an external log
Marker = tuple[float, str, str]


def walking_track(
    n_samples: int,
    center_lat: float = 56.0470,
    center_lon: float = 12.6940,
    step_m: float = 1.5,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    A gently curving path, one position per sample.

    Deterministic so tests can compare positions.
    """
    s = np.arange(n_samples, dtype=np.float64) * step_m
    x_local = s
    y_local = 5.0 * np.sin(s / 40.0)

    # Approximate conversion at this latitude
    meters_per_deg_lat = 111000
    meters_per_deg_lon = 111000 * np.cos(np.radians(center_lat))

    lat = center_lat + y_local / meters_per_deg_lat
    lon = center_lon + x_local / meters_per_deg_lon
    return lat, lon


def write_telemetry_csv(
    output_path: Path,
    timestamps: Sequence[float],
    latitude: Sequence[float],
    longitude: Sequence[float],
    altitude: Optional[Sequence[float]] = None,
    fix: Optional[Sequence[int]] = None,
    dop: Optional[Sequence[float]] = None,
    start: Optional[datetime] = None,
    markers: Sequence[Marker] = (),
) -> Path:
    """
    Write a telemetry log.

    `start` adds an absolute `datetime` column (start + time). Markers are
    written as extra rows with an event and an identity but no position.
    """
    header = ["time", "latitude", "longitude", "altitude", "fix", "dop"]
    if start is not None:
        header.append("datetime")
    if markers:
        header.extend(["event", "uuid"])

    rows: list[tuple[float, list[str]]] = []
    for i, t in enumerate(timestamps):
        row = [
            f"{t:.3f}",
            f"{latitude[i]:.8f}",
            f"{longitude[i]:.8f}",
            f"{altitude[i]:.2f}" if altitude is not None else "",
            str(fix[i]) if fix is not None else "3",
            f"{dop[i]:.2f}" if dop is not None else "",
        ]
        if start is not None:
            row.append((start + timedelta(seconds=float(t))).isoformat())
        if markers:
            row.extend(["", ""])
        rows.append((float(t), row))

    for t, event, identity in markers:
        row = [f"{t:.3f}", "", "", "", "", ""]
        if start is not None:
            row.append("")
        row.extend([event, identity])
        rows.append((float(t), row))

    rows.sort(key=lambda r: r[0])
    lines = [",".join(header)] + [",".join(row) for _, row in rows]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write("\n".join(lines) + "\n")
    return output_path


def write_mp4(
    output_path: Path,
    duration_s: float,
    created_at: Optional[datetime] = None,
    uuid: Optional[bytes] = None,
) -> Path:
    """Minimal MP4 container: ftyp, moov/mvhd and an optional moov/udta/uuid identity."""
    moov = build_mvhd(duration_s, created_at)
    if uuid is not None:
        moov += build_box(b"udta", build_box(b"uuid", uuid))
    data = build_box(b"ftyp", b"mp41\x00\x00\x00\x00mp41isom") + build_box(b"moov", moov)
    data += build_box(b"mdat", b"\x00" * 16)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(data)
    return output_path


def write_eaf(
    output_path: Path,
    tiers: dict[str, Sequence[tuple[int, int, str]]],
    time_origin_ms: Optional[int] = None,
    tokenized: Optional[dict[str, str]] = None,
    referring: Optional[dict[str, str]] = None,
    media_url: str = "file:///media/session.mp4",
) -> Path:
    """
    Write an ELAN document.

    Args:
        tiers: Time aligned tiers, tier id -> [(start_ms, end_ms, text)].
        time_origin_ms: Media offset declared in the header.
        tokenized: Child tier id -> parent tier id. Each child gets a
            Symbolic_Subdivision tier with one token per parent annotation.
        referring: Child tier id -> parent tier id. Each child gets a
            Symbolic_Association tier with one reference per parent annotation.
    """
    tokenized = tokenized or {}
    referring = referring or {}

    root = ET.Element("ANNOTATION_DOCUMENT", AUTHOR="", DATE=DEFAULT_START.isoformat(), FORMAT="3.0", VERSION="3.0")
    header = ET.SubElement(root, "HEADER", MEDIA_FILE="", TIME_UNITS="milliseconds")
    descriptor = ET.SubElement(header, "MEDIA_DESCRIPTOR", MEDIA_URL=media_url, MIME_TYPE="video/mp4")
    if time_origin_ms is not None:
        descriptor.set("TIME_ORIGIN", str(time_origin_ms))

    time_order = ET.SubElement(root, "TIME_ORDER")
    slot_count = 0
    annotation_count = 0
    annotation_ids: dict[str, list[str]] = {}

    tier_elements = []
    for tier_id, spans in tiers.items():
        tier = ET.Element("TIER", TIER_ID=tier_id, LINGUISTIC_TYPE_REF="default-lt", PARTICIPANT="", ANNOTATOR="")
        annotation_ids[tier_id] = []
        for start_ms, end_ms, text in spans:
            slot_ids = []
            for value in (start_ms, end_ms):
                slot_count += 1
                slot_ids.append(f"ts{slot_count}")
                ET.SubElement(time_order, "TIME_SLOT", TIME_SLOT_ID=slot_ids[-1], TIME_VALUE=str(value))
            annotation_count += 1
            annotation_id = f"a{annotation_count}"
            annotation_ids[tier_id].append(annotation_id)
            aligned = ET.SubElement(
                ET.SubElement(tier, "ANNOTATION"),
                "ALIGNABLE_ANNOTATION",
                ANNOTATION_ID=annotation_id,
                TIME_SLOT_REF1=slot_ids[0],
                TIME_SLOT_REF2=slot_ids[1],
            )
            ET.SubElement(aligned, "ANNOTATION_VALUE").text = text
        tier_elements.append(tier)

    for children, lt_id in ((tokenized, "tokens-lt"), (referring, "reference-lt")):
        for child_id, parent_id in children.items():
            tier = ET.Element("TIER", TIER_ID=child_id, LINGUISTIC_TYPE_REF=lt_id, PARENT_REF=parent_id)
            annotation_ids[child_id] = []
            for ref in annotation_ids.get(parent_id, []):
                annotation_count += 1
                annotation_id = f"a{annotation_count}"
                attrs = {"ANNOTATION_ID": annotation_id, "ANNOTATION_REF": ref}
                # Subdivisions are chained: every token after the first names its predecessor
                if lt_id == "tokens-lt":
                    token = ET.SubElement(ET.SubElement(tier, "ANNOTATION"), "REF_ANNOTATION", **attrs)
                    ET.SubElement(token, "ANNOTATION_VALUE").text = "tok"
                    annotation_count += 1
                    second = ET.SubElement(
                        ET.SubElement(tier, "ANNOTATION"),
                        "REF_ANNOTATION",
                        ANNOTATION_ID=f"a{annotation_count}",
                        ANNOTATION_REF=ref,
                        PREVIOUS_ANNOTATION=annotation_id,
                    )
                    ET.SubElement(second, "ANNOTATION_VALUE").text = "ens"
                else:
                    reference = ET.SubElement(ET.SubElement(tier, "ANNOTATION"), "REF_ANNOTATION", **attrs)
                    ET.SubElement(reference, "ANNOTATION_VALUE").text = f"ref {ref}"
                annotation_ids[child_id].append(annotation_id)
            tier_elements.append(tier)

    root.extend(tier_elements)
    ET.SubElement(
        root, "LINGUISTIC_TYPE", LINGUISTIC_TYPE_ID="default-lt", TIME_ALIGNABLE="true", GRAPHIC_REFERENCES="false"
    )
    ET.SubElement(
        root,
        "LINGUISTIC_TYPE",
        LINGUISTIC_TYPE_ID="tokens-lt",
        TIME_ALIGNABLE="false",
        CONSTRAINTS="Symbolic_Subdivision",
        GRAPHIC_REFERENCES="false",
    )
    ET.SubElement(
        root,
        "LINGUISTIC_TYPE",
        LINGUISTIC_TYPE_ID="reference-lt",
        TIME_ALIGNABLE="false",
        CONSTRAINTS="Symbolic_Association",
        GRAPHIC_REFERENCES="false",
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    ET.ElementTree(root).write(output_path, encoding="UTF-8", xml_declaration=True)
    return output_path


def generate_gopro_session(
    output_folder: Path,
    identity: str = "0026",
    chapters: int = 2,
    duration_s: float = 10.0,
    sample_rate_hz: float = 1.0,
    with_low_resolution: bool = True,
    start: datetime = DEFAULT_START,
) -> list[Path]:
    """
    A chaptered GoPro recording: GH01xxxx.MP4, GH02xxxx.MP4, ... with a
    telemetry export next to each chapter and optional LRV proxies.
    """
    n_per_chapter = int(duration_s * sample_rate_hz)
    lat, lon = walking_track(n_per_chapter * chapters)
    files = []
    for chapter in range(chapters):
        stem = f"{chapter + 1:02d}{identity}"
        created = start + timedelta(seconds=chapter * duration_s)
        files.append(write_mp4(output_folder / f"GH{stem}.MP4", duration_s, created))
        if with_low_resolution:
            files.append(write_mp4(output_folder / f"GL{stem}.LRV", duration_s, created))

        sl = slice(chapter * n_per_chapter, (chapter + 1) * n_per_chapter)
        local_t = np.arange(n_per_chapter) / sample_rate_hz
        files.append(write_telemetry_csv(
            output_folder / f"GH{stem}.csv",
            local_t,
            lat[sl],
            lon[sl],
            altitude=np.full(n_per_chapter, 12.0),
            start=created,
        ))
    return files


def generate_virb_recordings(
    output_folder: Path,
    recordings: Sequence[Sequence[str]] = (("virb-uuid-0001", "virb-uuid-0002"),),
    clip_duration_s: float = 10.0,
    gap_s: float = 20.0,
    sample_rate_hz: float = 1.0,
    start: datetime = DEFAULT_START,
    log_name: str = "2021-06-14-09-30-00.csv",
) -> list[Path]:
    """
    VIRB style recordings: clips carrying an embedded uuid and a single
    external log that declares start/split/end markers for every recording.
    """
    files = []
    markers: list[Marker] = []
    t = 5.0
    for clips in recordings:
        markers.append((t, "start", clips[0]))
        for index, clip in enumerate(clips):
            created = start + timedelta(seconds=t)
            files.append(write_mp4(
                output_folder / f"V{len(files):07d}.MP4", clip_duration_s, created, clip.encode()
            ))
            t += clip_duration_s
            if index < len(clips) - 1:
                markers.append((t, "split", clips[index + 1]))
        markers.append((t, "end", clips[-1]))
        t += gap_s

    n = int(t * sample_rate_hz)
    timestamps = np.arange(n) / sample_rate_hz
    lat, lon = walking_track(n)
    files.append(write_telemetry_csv(
        output_folder / log_name,
        timestamps,
        lat,
        lon,
        altitude=np.full(n, 30.0),
        dop=np.full(n, 1.2),
        start=start,
        markers=markers,
    ))
    return files


def generate_test_data_set(output_folder: Path) -> list[Path]:
    """Generate a folder holding one GoPro and two VIRB recordings plus an annotation document."""
    output_folder.mkdir(parents=True, exist_ok=True)

    files = []
    files.extend(generate_gopro_session(output_folder / "gopro", chapters=3))
    files.extend(generate_virb_recordings(
        output_folder / "virb",
        recordings=(("virb-uuid-0001", "virb-uuid-0002"), ("virb-uuid-0003",)),
    ))
    files.append(write_eaf(
        output_folder / "gopro" / "GH010026.eaf",
        {"observations": [(3000, 5000, "Dayum"), (7000, 9000, "Chcuh"), (14000, 18000, "Bridge")]},
    ))
    return files


if __name__ == "__main__":
    # Generate test data when run directly
    output = Path("./data/sessions")
    files = generate_test_data_set(output)
    print(f"Generated {len(files)} files in {output}")
    for f in files:
        print(f"  - {f}")
