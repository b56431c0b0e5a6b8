"""
Annotation document model: tiers of time-aligned text spans.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class AnnotationSpan:
    """Annotation time span in seconds. Invariant: start <= end."""

    start: float
    end: float
    text: str
    tier_id: str

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Annotation span starts after it ends: {self.start} > {self.end}")

    def shifted(self, offset_s: float) -> "AnnotationSpan":
        return AnnotationSpan(self.start + offset_s, self.end + offset_s, self.text, self.tier_id)


@dataclass
class Tier:
    """A named channel of annotations."""

    tier_id: str
    spans: list[AnnotationSpan] = field(default_factory=list)
    tokenized: bool = False
    parent_id: Optional[str] = None
    linguistic_type: Optional[str] = None
    participant: Optional[str] = None
    annotator: Optional[str] = None

    def __len__(self) -> int:
        return len(self.spans)


@dataclass
class TierSummary:
    """Listing entry shown to a caller choosing a tier."""

    tier_id: str
    parent_id: Optional[str]
    tokenized: bool
    annotation_count: int
    participant: Optional[str]
    first_value: Optional[str]


@dataclass
class AnnotationDocument:
    """
    Parsed annotation document.

    `time_origin_s` is the declared recording start: annotation time t
    corresponds to session-relative time t + time_origin_s.
    """

    path: Optional[Path]
    tiers: list[Tier] = field(default_factory=list)
    time_origin_s: float = 0.0
    media_files: list[str] = field(default_factory=list)

    def tier(self, tier_id: str) -> Tier:
        for tier in self.tiers:
            if tier.tier_id == tier_id:
                return tier
        raise KeyError(tier_id)

    def tier_ids(self) -> list[str]:
        return [t.tier_id for t in self.tiers]

    def tier_summaries(self) -> list[TierSummary]:
        return [
            TierSummary(
                tier_id=t.tier_id,
                parent_id=t.parent_id,
                tokenized=t.tokenized,
                annotation_count=len(t),
                participant=t.participant,
                first_value=t.spans[0].text if t.spans else None,
            )
            for t in self.tiers
        ]
