"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


class CaptureState(Enum):
    """States of the capture state machine."""
    IDLE = "idle"
    STARTING = "starting"
    CAPTURING = "capturing"
    STOPPING = "stopping"


@dataclass
class CaptureSession:
    """One recording run, from start request until stop completes."""
    session_id: str
    started_at: datetime = field(default_factory=datetime.now)
    state: CaptureState = CaptureState.STARTING
    stopped_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        end = self.stopped_at or datetime.now()
        return (end - self.started_at).total_seconds()


@dataclass
class EncodedArtifact:
    """The most recent playable file derived from a capture session."""
    path: Path
    size_bytes: int
    pcm_bytes: int
    duration_seconds: float
    created_at: datetime = field(default_factory=datetime.now)
    session_id: Optional[str] = None


@dataclass
class SessionInfo:
    """Information about a recording session, stored next to its artifact."""
    session_id: str
    start_time: datetime
    duration_seconds: float
    audio_file: str
    file_size_bytes: int
    sample_rate: int
    total_chunks: int
