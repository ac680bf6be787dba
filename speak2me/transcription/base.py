"""Abstract base class for streaming transcription channels."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..models.events import ErrorDomain, ErrorEvent, TranscriptEvent

logger = logging.getLogger(__name__)

TranscriptCallback = Callable[[TranscriptEvent], None]
ErrorCallback = Callable[[ErrorEvent], None]


class Capability(Enum):
    """Outcome of trying to open a transcription channel."""
    UNAVAILABLE = "unavailable"  # disabled or no credentials, not an error
    FAILED = "failed"            # configured, but the backend could not start
    AVAILABLE = "available"


@dataclass
class ChannelOpenResult:
    capability: Capability
    channel: Optional["TranscriptionChannel"] = None
    reason: str = ""


class TranscriptionChannel(ABC):
    """Duplex stream to a transcription backend.

    Chunks go in through `write`, transcript and error events come back
    through the callbacks from a backend thread, in backend order. Once
    `close` returns no further callback is made.
    """

    service_name = "transcription"

    def __init__(self, on_transcript: TranscriptCallback, on_error: ErrorCallback):
        self.on_transcript = on_transcript
        self.on_error = on_error
        self.chunks_written = 0
        self.dropped_chunks = 0

        self._emit_lock = threading.Lock()
        self._closing = False
        self._closed = False
        self._failed = False

    @property
    def is_open(self) -> bool:
        return not (self._closing or self._closed or self._failed)

    @abstractmethod
    def open(self) -> None:
        """Start streaming to the backend. Raises if the backend cannot start."""

    @abstractmethod
    def _submit(self, chunk: bytes) -> None:
        """Hand a chunk to the backend without blocking."""

    @abstractmethod
    def _finish(self, timeout: float) -> bool:
        """Signal end-of-input and wait up to `timeout` for the backend.

        Returns:
            True if the backend finished within the timeout
        """

    def write(self, chunk: bytes) -> None:
        """Send a PCM chunk. Silently ignored once closing or failed."""
        if not chunk or not self.is_open:
            return
        self._submit(chunk)

    def close(self, timeout: float = 1.0) -> None:
        """Close the channel, waiting at most `timeout` for the backend."""
        if self._closing or self._closed:
            return
        self._closing = True
        finished = self._finish(timeout)
        if not finished:
            logger.warning(f"{self.service_name} did not finish within {timeout}s, "
                           f"treating channel as closed")
        with self._emit_lock:
            self._closed = True
        logger.info(f"{self.service_name} channel closed "
                    f"({self.chunks_written} chunks written, {self.dropped_chunks} dropped)")

    def _emit_transcript(self, event: TranscriptEvent) -> None:
        with self._emit_lock:
            if self._closed:
                logger.debug(f"Dropping transcript after close: '{event.text}'")
                return
            self.on_transcript(event)

    def _emit_error(self, message: str) -> None:
        self._failed = True
        with self._emit_lock:
            if self._closed:
                logger.debug(f"Dropping transcription error after close: {message}")
                return
            self.on_error(ErrorEvent(domain=ErrorDomain.TRANSCRIPTION, message=message))
