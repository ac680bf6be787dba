"""Audio-related data models."""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass
class CaptureStats:
    """Capture statistics reported to the UI."""
    state: str
    session_id: Optional[str]
    duration_seconds: float
    buffered_bytes: int
    total_chunks: int
    peak_level: float
    transcription: str
    has_artifact: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
