"""Data models for the speak2me application."""

from .audio import CaptureStats
from .events import ErrorDomain, ErrorEvent, TranscriptEvent
from .session import CaptureSession, CaptureState, EncodedArtifact, SessionInfo

__all__ = [
    "CaptureStats",
    "ErrorDomain",
    "ErrorEvent",
    "TranscriptEvent",
    "CaptureSession",
    "CaptureState",
    "EncodedArtifact",
    "SessionInfo",
]
