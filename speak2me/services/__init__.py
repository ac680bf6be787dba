"""Services layer for speak2me application logic."""

from .capture_controller import CaptureController
from .command_handler import CommandHandler
from .event_publisher import EventPublisher
from .playback_service import EncodeAndPlaybackService
from .transcription_service import TranscriptionService

__all__ = [
    "CaptureController",
    "CommandHandler",
    "EventPublisher",
    "EncodeAndPlaybackService",
    "TranscriptionService",
]
