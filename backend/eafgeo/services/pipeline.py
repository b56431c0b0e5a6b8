"""
Locate -> assemble -> align -> build -> emit, as one pass.

Points can also come from a coordinate tier of the annotation document, in
which case nothing is located or assembled.

Parameter and tier checks run before any telemetry is read. Output files
are written only once every geometry of the run has been built.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from eafgeo.config import PipelineConfig
from eafgeo.errors import AmbiguousSessionSelection, SessionNotFound, TierNotFound, TokenizedTierRejected
from eafgeo.models.annotation import AnnotationDocument, Tier
from eafgeo.models.geometry import Geometry
from eafgeo.models.session import LocateResult, Session
from eafgeo.models.telemetry import TelemetryStream
from eafgeo.services.aligner import AlignmentResult, AnnotationAligner
from eafgeo.services.assembler import TelemetryAssembler
from eafgeo.services.eaf_reader import read_eaf
from eafgeo.services.emitter import (
    DEFAULT_FORMATS,
    ConfirmOverwrite,
    EmitResult,
    OutputEmitter,
    OutputFormat,
    output_base,
)
from eafgeo.services.geo_tier import stream_from_geo_tier
from eafgeo.services.geometry_builder import GeometryBuilder
from eafgeo.services.locator import IdentityRef, SessionLocator


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    stream: TelemetryStream
    alignment: AlignmentResult
    geometries: list[Geometry]
    session: Optional[Session] = None     # None when the points come from a geo tier
    emitted: Optional[EmitResult] = None
    warnings: list[str] = field(default_factory=list)


def select_tier(document: AnnotationDocument, tier_id: str) -> Tier:
    """Resolve a tier and reject it if it has no independent time base."""
    try:
        tier = document.tier(tier_id)
    except KeyError:
        raise TierNotFound(tier_id, document.tier_ids()) from None
    if tier.tokenized:
        reason = "tier is tokenized" if tier.parent_id is None else "tier or one of its parents is tokenized"
        raise TokenizedTierRejected(tier_id, reason)
    return tier


class GeometryPipeline:
    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        locator: Optional[SessionLocator] = None,
        emitter: Optional[OutputEmitter] = None,
    ):
        self.config = config or PipelineConfig()
        self.locator = locator or SessionLocator(self.config.scan_workers)
        self.emitter = emitter or OutputEmitter(
            overwrite=self.config.overwrite,
            html_descriptions=self.config.html_descriptions,
        )

    def resolve_session(
        self,
        located: LocateResult,
        fragment: Optional[Path] = None,
        telemetry: Optional[Path] = None,
        identity: Optional[IdentityRef] = None,
    ) -> Session:
        selection = self.locator.select(located, fragment=fragment, telemetry=telemetry, identity=identity)
        if selection.session is not None:
            return selection.session
        if selection.is_ambiguous:
            raise AmbiguousSessionSelection(telemetry or located.root, list(selection.candidates))
        ref = fragment or telemetry or identity or located.root
        raise SessionNotFound(f"No recording session found for {ref}")

    def geometries_for(self, session: Session, document: AnnotationDocument, tier: Tier) -> PipelineResult:
        """Assemble, align and build for an already selected session and tier."""
        config = self.config.validate()
        stream = TelemetryAssembler(config.min_lock, config.max_dop, config.time_offset_hours).assemble(session)
        result = self._build(stream, document, tier)
        result.session = session
        return result

    def geometries_from_geo_tier(self, document: AnnotationDocument, tier: Tier, geo_tier: Tier) -> PipelineResult:
        """Align and build against the points of a coordinate tier."""
        config = self.config.validate()
        stream = stream_from_geo_tier(document, geo_tier, config.time_offset_hours)
        return self._build(stream, document, tier)

    def _build(self, stream: TelemetryStream, document: AnnotationDocument, tier: Tier) -> PipelineResult:
        alignment = AnnotationAligner().align(stream, tier, document.time_origin_s)
        geometries = GeometryBuilder(self.config.mode, self.config.geometry).build(alignment)
        return PipelineResult(
            stream=stream,
            alignment=alignment,
            geometries=geometries,
            warnings=list(stream.warnings),
        )

    def _emit(
        self,
        result: PipelineResult,
        eaf_path: Path,
        output: Optional[Path],
        formats: Sequence[OutputFormat],
        confirm: Optional[ConfirmOverwrite],
    ) -> PipelineResult:
        base = output if output is not None else output_base(eaf_path, self.config.mode)
        result.emitted = self.emitter.emit(result.geometries, base, formats, confirm=confirm)
        return result

    def run(
        self,
        eaf_path: Path,
        tier_id: str,
        root: Path,
        fragment: Optional[Path] = None,
        telemetry: Optional[Path] = None,
        identity: Optional[IdentityRef] = None,
        output: Optional[Path] = None,
        formats: Sequence[OutputFormat] = DEFAULT_FORMATS,
        confirm: Optional[ConfirmOverwrite] = None,
    ) -> PipelineResult:
        """
        Run the whole pass and write the output files.

        `output` is the output base path without extension; by default the
        files are written next to the annotation document.
        """
        self.config.validate()
        document = read_eaf(eaf_path)
        tier = select_tier(document, tier_id)

        located = self.locator.locate(root)
        session = self.resolve_session(located, fragment=fragment, telemetry=telemetry, identity=identity)
        logger.info(f"Selected session {session.key} ({len(session.fragments)} fragments)")

        result = self.geometries_for(session, document, tier)
        return self._emit(result, eaf_path, output, formats, confirm)

    def run_geo_tier(
        self,
        eaf_path: Path,
        tier_id: str,
        geo_tier_id: str,
        output: Optional[Path] = None,
        formats: Sequence[OutputFormat] = DEFAULT_FORMATS,
        confirm: Optional[ConfirmOverwrite] = None,
    ) -> PipelineResult:
        """
        Same pass with the points read from a coordinate tier of the
        document itself. No recording folder is scanned.
        """
        self.config.validate()
        document = read_eaf(eaf_path)
        tier = select_tier(document, tier_id)
        geo_tier = select_tier(document, geo_tier_id)

        result = self.geometries_from_geo_tier(document, tier, geo_tier)
        return self._emit(result, eaf_path, output, formats, confirm)
