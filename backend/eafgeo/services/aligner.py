"""
Annotation aligner.

Maps the spans of one tier onto an assembled telemetry stream. Both sides are
compared on the session-relative time axis: span times are shifted by the
document's time origin first.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from eafgeo.errors import TokenizedTierRejected
from eafgeo.models.annotation import AnnotationDocument, AnnotationSpan, Tier
from eafgeo.models.telemetry import TelemetryStream


logger = logging.getLogger(__name__)


@dataclass
class SpanIntersection:
    """Points of the stream whose timestamp lies in [span.start, span.end]."""

    span: AnnotationSpan
    indices: NDArray[np.int64]

    @property
    def is_empty(self) -> bool:
        return len(self.indices) == 0

    def __len__(self) -> int:
        return len(self.indices)


@dataclass
class AlignmentResult:
    """
    Per span intersections plus the unmarked sections of the stream.

    `descriptions` holds, for every point of the stream, the text of the
    first span (in tier order) covering it, or None.
    """

    stream: TelemetryStream
    tier_id: str
    intersections: list[SpanIntersection] = field(default_factory=list)
    unmarked: list[NDArray[np.int64]] = field(default_factory=list)
    descriptions: list[Optional[str]] = field(default_factory=list)

    @property
    def marked_count(self) -> int:
        return sum(1 for d in self.descriptions if d is not None)

    @property
    def empty_spans(self) -> list[AnnotationSpan]:
        return [i.span for i in self.intersections if i.is_empty]


def _runs(mask: NDArray[np.bool_]) -> list[NDArray[np.int64]]:
    """Maximal runs of consecutive True positions, as index arrays."""
    indices = np.flatnonzero(mask)
    if len(indices) == 0:
        return []
    breaks = np.flatnonzero(np.diff(indices) > 1) + 1
    return [run.astype(np.int64) for run in np.split(indices, breaks)]


class AnnotationAligner:
    def align(
        self,
        stream: TelemetryStream,
        tier: Tier,
        time_origin_s: float = 0.0,
    ) -> AlignmentResult:
        if tier.tokenized:
            raise TokenizedTierRejected(tier.tier_id)

        result = AlignmentResult(stream=stream, tier_id=tier.tier_id)
        covered = np.zeros(len(stream), dtype=bool)
        descriptions: list[Optional[str]] = [None] * len(stream)

        for span in tier.spans:
            shifted = span.shifted(time_origin_s)
            indices = stream.indices_between(shifted.start, shifted.end)
            result.intersections.append(SpanIntersection(span=shifted, indices=indices))
            for i in indices:
                if descriptions[i] is None:
                    descriptions[i] = shifted.text
            covered[indices] = True

        result.unmarked = _runs(~covered)
        result.descriptions = descriptions

        empty = len(result.empty_spans)
        logger.info(
            f"Aligned tier '{tier.tier_id}': {len(tier.spans)} spans, "
            f"{result.marked_count}/{len(stream)} points marked, {empty} spans without points"
        )
        return result


def align_document(
    stream: TelemetryStream,
    document: AnnotationDocument,
    tier_id: str,
) -> AlignmentResult:
    """Align one tier of a document. Raises KeyError for an unknown tier."""
    return AnnotationAligner().align(stream, document.tier(tier_id), document.time_origin_s)
