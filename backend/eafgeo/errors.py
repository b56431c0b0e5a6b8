"""
Error taxonomy for locating, assembling, aligning and building geometries.

Every error carries a stable, machine-readable code so that the HTTP layer
can report it without parsing messages.
"""

from pathlib import Path
from typing import Optional


class EafGeoError(Exception):
    """Base class for all eafgeo errors."""

    code = "E_EAFGEO"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnidentifiableFragment(EafGeoError):
    """Embedded identity missing. The fragment is excluded, the scan continues."""

    code = "E_FRAGMENT_UNIDENTIFIABLE"

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Could not identify fragment {path}: {reason}")
        self.path = path
        self.reason = reason


class AmbiguousSessionSelection(EafGeoError):
    """A telemetry source covers several sessions and nothing disambiguates them."""

    code = "E_SESSION_AMBIGUOUS"

    def __init__(self, source: Path, candidates: list):
        super().__init__(
            f"{source} covers {len(candidates)} recording sessions, select one by identity or fragment"
        )
        self.source = source
        self.candidates = candidates


class SessionNotFound(EafGeoError):
    code = "E_SESSION_NOT_FOUND"


class TokenizedTierRejected(EafGeoError):
    """The selected tier has no independent time base."""

    code = "E_TIER_TOKENIZED"

    def __init__(self, tier_id: str, reason: Optional[str] = None):
        detail = reason or "tier or one of its parents is tokenized"
        super().__init__(f"Tier '{tier_id}' can not be aligned: {detail}")
        self.tier_id = tier_id


class NonMonotonicAssembly(EafGeoError):
    """Fragment concatenation produced a timestamp that goes back in time."""

    code = "E_ASSEMBLY_NON_MONOTONIC"

    def __init__(self, fragment_index: int, previous: float, current: float):
        super().__init__(
            f"Timestamp decreases from {previous:.3f}s to {current:.3f}s "
            f"at fragment {fragment_index}, fragment set is malformed or misordered"
        )
        self.fragment_index = fragment_index


class CorruptTelemetrySource(EafGeoError):
    code = "E_TELEMETRY_CORRUPT"

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to parse telemetry source {path}: {reason}")
        self.path = path
        self.reason = reason


class InvalidDownsampleOrGeometryParameter(EafGeoError):
    code = "E_PARAMETER_INVALID"

    def __init__(self, name: str, value, expected: str):
        super().__init__(f"Invalid value for '{name}': {value!r} ({expected})")
        self.name = name
        self.value = value


class EmptyTelemetryAfterFiltering(UserWarning):
    """All points were removed by lock/DOP filtering. Non-fatal."""

    code = "W_TELEMETRY_EMPTY"


class CorruptAnnotationDocument(EafGeoError):
    code = "E_ANNOTATION_CORRUPT"

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Failed to read annotation document {path}: {reason}")
        self.path = path
        self.reason = reason


class TierNotFound(EafGeoError):
    code = "E_TIER_NOT_FOUND"

    def __init__(self, tier_id: str, available: list[str]):
        super().__init__(f"No tier '{tier_id}', available: {', '.join(available) or 'none'}")
        self.tier_id = tier_id
        self.available = available
