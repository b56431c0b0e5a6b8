"""
ELAN annotation document (.eaf) reader.

Only the parts needed for alignment are read: tiers with their time spans,
the tier hierarchy, linguistic type constraints and the media time origin.
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from eafgeo.errors import CorruptAnnotationDocument
from eafgeo.models.annotation import AnnotationDocument, AnnotationSpan, Tier


logger = logging.getLogger(__name__)

SYMBOLIC_SUBDIVISION = "Symbolic_Subdivision"
SYMBOLIC_ASSOCIATION = "Symbolic_Association"


def _is_tokenized_type(lt: Optional[ET.Element]) -> bool:
    if lt is None:
        return False
    constraint = lt.get("CONSTRAINTS")
    if constraint == SYMBOLIC_SUBDIVISION:
        return True
    alignable = lt.get("TIME_ALIGNABLE", "true").lower() == "true"
    return not alignable and constraint != SYMBOLIC_ASSOCIATION


def _time_origin(root: ET.Element) -> float:
    """Media offset in seconds, taken from the first media descriptor declaring one."""
    for descriptor in root.iter("MEDIA_DESCRIPTOR"):
        origin = descriptor.get("TIME_ORIGIN")
        if origin:
            return int(origin) / 1000.0
    return 0.0


def _resolve_span(
    annotation_id: str,
    aligned: dict[str, tuple[Optional[int], Optional[int]]],
    references: dict[str, str],
) -> Optional[tuple[int, int]]:
    """Time span (ms) of an annotation, following references to the aligned parent."""
    seen = set()
    current = annotation_id
    while current in references:
        if current in seen:
            return None
        seen.add(current)
        current = references[current]
    start, end = aligned.get(current, (None, None))
    if start is None or end is None:
        return None
    return start, end


def read_eaf(path: Path) -> AnnotationDocument:
    """
    Parse an ELAN annotation document.

    Raises CorruptAnnotationDocument if the file can not be read or is not
    a well formed annotation document.
    """
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        raise CorruptAnnotationDocument(path, str(e)) from e
    if root.tag != "ANNOTATION_DOCUMENT":
        raise CorruptAnnotationDocument(path, f"unexpected root element <{root.tag}>")

    try:
        slots: dict[str, Optional[int]] = {}
        for slot in root.iter("TIME_SLOT"):
            value = slot.get("TIME_VALUE")
            slots[slot.get("TIME_SLOT_ID")] = int(value) if value is not None else None
    except ValueError as e:
        raise CorruptAnnotationDocument(path, f"invalid time slot value: {e}") from e

    linguistic_types = {lt.get("LINGUISTIC_TYPE_ID"): lt for lt in root.iter("LINGUISTIC_TYPE")}

    # First pass: every annotation in the document, since references may cross tiers
    aligned: dict[str, tuple[Optional[int], Optional[int]]] = {}
    references: dict[str, str] = {}
    for annotation in root.iter("ALIGNABLE_ANNOTATION"):
        aligned[annotation.get("ANNOTATION_ID")] = (
            slots.get(annotation.get("TIME_SLOT_REF1")),
            slots.get(annotation.get("TIME_SLOT_REF2")),
        )
    for annotation in root.iter("REF_ANNOTATION"):
        references[annotation.get("ANNOTATION_ID")] = annotation.get("ANNOTATION_REF")

    tiers: list[Tier] = []
    for tier_el in root.findall("TIER"):
        tier_id = tier_el.get("TIER_ID")
        lt_ref = tier_el.get("LINGUISTIC_TYPE_REF")
        has_previous = any(a.get("PREVIOUS_ANNOTATION") for a in tier_el.iter("REF_ANNOTATION"))

        tier = Tier(
            tier_id=tier_id,
            tokenized=has_previous or _is_tokenized_type(linguistic_types.get(lt_ref)),
            parent_id=tier_el.get("PARENT_REF"),
            linguistic_type=lt_ref,
            participant=tier_el.get("PARTICIPANT"),
            annotator=tier_el.get("ANNOTATOR"),
        )

        for wrapper in tier_el.findall("ANNOTATION"):
            for annotation in wrapper:
                annotation_id = annotation.get("ANNOTATION_ID")
                span = _resolve_span(annotation_id, aligned, references)
                if span is None:
                    logger.debug(f"{path.name}: skipping unaligned annotation {annotation_id} on '{tier_id}'")
                    continue
                value = annotation.findtext("ANNOTATION_VALUE") or ""
                start, end = span
                if start > end:
                    logger.debug(f"{path.name}: skipping reversed annotation {annotation_id} on '{tier_id}'")
                    continue
                tier.spans.append(AnnotationSpan(start / 1000.0, end / 1000.0, value.strip(), tier_id))

        tier.spans.sort(key=lambda s: (s.start, s.end))
        tiers.append(tier)

    _propagate_tokenized(tiers)

    media_files = [d.get("MEDIA_URL") for d in root.iter("MEDIA_DESCRIPTOR") if d.get("MEDIA_URL")]
    document = AnnotationDocument(
        path=path,
        tiers=tiers,
        time_origin_s=_time_origin(root),
        media_files=media_files,
    )
    logger.info(f"Read {path.name}: {len(tiers)} tiers, time origin {document.time_origin_s:.3f}s")
    return document


def _propagate_tokenized(tiers: list[Tier]) -> None:
    """A tier is unusable for alignment when any ancestor is tokenized."""
    by_id = {t.tier_id: t for t in tiers}
    for tier in tiers:
        seen = {tier.tier_id}
        parent = by_id.get(tier.parent_id) if tier.parent_id else None
        while parent is not None and parent.tier_id not in seen:
            if parent.tokenized:
                tier.tokenized = True
                break
            seen.add(parent.tier_id)
            parent = by_id.get(parent.parent_id) if parent.parent_id else None
