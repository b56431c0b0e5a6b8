"""
Session Repository - keeps the last scan of a data folder and caches
assembled telemetry streams for the HTTP service.
"""

import logging
from pathlib import Path
from typing import Optional

from eafgeo.config import PipelineConfig
from eafgeo.errors import EafGeoError
from eafgeo.models.session import LocateResult, Session, SessionSelection
from eafgeo.models.telemetry import StreamSummary, TelemetryStream
from eafgeo.services.assembler import TelemetryAssembler
from eafgeo.services.locator import IdentityRef, SessionLocator


logger = logging.getLogger(__name__)


class SessionRepository:
    """
    Repository of recording sessions found under a data folder.

    Sessions are discovered on scan; telemetry is assembled lazily on first
    access and cached per session key.
    """

    def __init__(self, data_folder: Optional[Path] = None, config: Optional[PipelineConfig] = None):
        self._data_folder: Optional[Path] = data_folder
        self.config = config or PipelineConfig()
        self.locator = SessionLocator(self.config.scan_workers)
        self._located: Optional[LocateResult] = None
        self._cache: dict[str, TelemetryStream] = {}

        if data_folder is not None:
            self.scan_folder(data_folder)

    @property
    def data_folder(self) -> Optional[Path]:
        return self._data_folder

    @property
    def located(self) -> Optional[LocateResult]:
        return self._located

    @property
    def session_count(self) -> int:
        return len(self._located.sessions) if self._located else 0

    def set_data_folder(self, folder: Path) -> int:
        """Switch to another folder and rescan. Returns the number of sessions found."""
        self._data_folder = folder
        self.clear_cache()
        return self.scan_folder(folder)

    def scan_folder(self, folder: Path) -> int:
        if not folder.exists():
            logger.warning(f"Data folder does not exist: {folder}")
            self._located = LocateResult(root=folder)
            return 0

        self._located = self.locator.locate(folder)
        logger.info(f"Indexed {self.session_count} sessions in {folder}")
        return self.session_count

    def list_sessions(self) -> list[Session]:
        return list(self._located.sessions) if self._located else []

    def get_session(self, key: str) -> Optional[Session]:
        for session in self.list_sessions():
            if session.key == key:
                return session
        return None

    def select(
        self,
        fragment: Optional[Path] = None,
        telemetry: Optional[Path] = None,
        identity: Optional[IdentityRef] = None,
    ) -> SessionSelection:
        if self._located is None:
            return SessionSelection()
        return self.locator.select(self._located, fragment=fragment, telemetry=telemetry, identity=identity)

    def get_stream(self, key: str) -> Optional[TelemetryStream]:
        """
        Assembled telemetry of a session, or None for an unknown key.

        Assembly errors propagate to the caller.
        """
        if key in self._cache:
            return self._cache[key]
        session = self.get_session(key)
        if session is None:
            return None

        config = self.config
        stream = TelemetryAssembler(config.min_lock, config.max_dop, config.time_offset_hours).assemble(session)
        self._cache[key] = stream
        logger.debug(f"Assembled and cached session: {key}")
        return stream

    def summarize(self, key: str) -> Optional[StreamSummary]:
        try:
            stream = self.get_stream(key)
        except EafGeoError as e:
            logger.error(f"Failed to load session {key}: {e}")
            return None
        return StreamSummary.from_stream(stream) if stream is not None else None

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Session cache cleared")


# Global repository instance (set up by app initialization)
_repository: Optional[SessionRepository] = None


def get_repository() -> SessionRepository:
    """Get the global repository instance."""
    global _repository
    if _repository is None:
        _repository = SessionRepository(config=PipelineConfig.from_env())
    return _repository


def init_repository(data_folder: Path, config: Optional[PipelineConfig] = None) -> SessionRepository:
    """Initialize the global repository with a data folder."""
    global _repository
    _repository = SessionRepository(data_folder, config or PipelineConfig.from_env())
    return _repository
