"""File management for the encoded artifact and its session metadata."""

import json
import logging
import random
import string
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models.session import SessionInfo

logger = logging.getLogger(__name__)


class FileManager:
    """Manages the on-disk location of the single playable artifact."""

    ARTIFACT_NAME = "captured_audio.wav"
    PARTIAL_ARTIFACT_NAME = "captured_audio.partial.wav"
    SESSION_INFO_NAME = "session_info.json"

    def __init__(self, data_dir: str = "./data"):
        """Initialize file manager with data directory.

        Args:
            data_dir: Base directory for storing all data
        """
        self.data_dir = Path(data_dir)
        self.artifact_dir = self.data_dir / "artifact"
        self.logs_dir = self.data_dir / "logs"

        self._ensure_directories()

        logger.info(f"FileManager initialized with data_dir: {self.data_dir}")

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        for directory in [self.data_dir, self.artifact_dir, self.logs_dir]:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Ensured directory exists: {directory}")

    @staticmethod
    def new_session_id() -> str:
        """Create a session ID from the current time with a random suffix."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=4))
        return f"{timestamp}_{random_suffix}"

    @property
    def artifact_path(self) -> Path:
        return self.artifact_dir / self.ARTIFACT_NAME

    @property
    def partial_artifact_path(self) -> Path:
        """Where the encoder writes before the result is promoted."""
        return self.artifact_dir / self.PARTIAL_ARTIFACT_NAME

    def promote_partial_artifact(self) -> Path:
        """Atomically replace the artifact with the freshly encoded file."""
        self.partial_artifact_path.replace(self.artifact_path)
        logger.info(f"Artifact updated: {self.artifact_path}")
        return self.artifact_path

    def remove_artifact(self) -> None:
        """Delete the artifact, its partial file and its session metadata."""
        for path in (self.artifact_path, self.partial_artifact_path,
                     self.artifact_dir / self.SESSION_INFO_NAME):
            try:
                path.unlink()
                logger.debug(f"Removed {path}")
            except FileNotFoundError:
                pass

    def save_session_info(self, session_info: SessionInfo) -> str:
        """Save session information next to the artifact.

        Returns:
            Path to saved session info file
        """
        info_file = self.artifact_dir / self.SESSION_INFO_NAME

        info_dict = asdict(session_info)
        info_dict['start_time'] = session_info.start_time.isoformat()

        with open(info_file, 'w') as f:
            json.dump(info_dict, f, indent=2)

        logger.info(f"Session info saved: {info_file}")
        return str(info_file)

    def load_session_info(self) -> Optional[SessionInfo]:
        """Load the metadata of the session that produced the current artifact."""
        info_file = self.artifact_dir / self.SESSION_INFO_NAME

        if not info_file.exists():
            logger.debug(f"Session info file not found: {info_file}")
            return None

        try:
            with open(info_file, 'r') as f:
                data = json.load(f)
            data['start_time'] = datetime.fromisoformat(data['start_time'])
            return SessionInfo(**data)
        except (OSError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Error loading session info: {e}")
            return None
