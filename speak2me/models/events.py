"""Event models exchanged between the capture core and its collaborators."""

import time
from dataclasses import dataclass, field
from enum import Enum


class ErrorDomain(Enum):
    """Which part of the system an error event came from."""
    AUDIO = "audio"
    TRANSCRIPTION = "transcription"


@dataclass
class TranscriptEvent:
    """Transcript text produced by the transcription backend.

    Final events are appended to the permanent transcript in arrival order.
    Interim events only replace the current preview.
    """
    text: str
    is_final: bool
    confidence: float = 0.0
    service: str = ""
    timestamp: float = field(default_factory=time.time)


@dataclass
class ErrorEvent:
    """Fire-and-forget error notification for the UI."""
    domain: ErrorDomain
    message: str
    timestamp: float = field(default_factory=time.time)
