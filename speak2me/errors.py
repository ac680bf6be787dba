"""Exceptions raised by the capture, encode and playback services."""

from typing import Optional

from .models.events import ErrorDomain


class CaptureError(Exception):
    """Base exception for everything that can cross the command boundary."""

    domain = ErrorDomain.AUDIO

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ToolMissing(CaptureError):
    """Raised when a required external tool is not installed."""

    def __init__(self, executable: str):
        super().__init__(f"Required tool not found: {executable}")
        self.executable = executable


class SpawnError(CaptureError):
    """Raised when an external process cannot be started or dies during startup."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class EncodeError(CaptureError):
    """Raised when buffered PCM could not be converted into a playable file."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class PlaybackError(CaptureError):
    """Raised when the player process fails."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class NoArtifact(CaptureError):
    """Raised when playback is requested before anything was encoded."""

    def __init__(self, message: str = "No captured audio to play"):
        super().__init__(message)


class AlreadyPlaying(CaptureError):
    """Raised when playback is requested while another playback is running."""

    def __init__(self, message: str = "Playback already in progress"):
        super().__init__(message)


class CaptureBusy(CaptureError):
    """Raised when an operation needs the controller to be idle."""

    def __init__(self, state: str):
        super().__init__(f"Capture is busy (state={state})")
        self.state = state


class AbnormalExit(CaptureError):
    """The recorder exited while capturing without being asked to."""

    def __init__(self, returncode: Optional[int], detail: str = ""):
        message = f"Recorder exited unexpectedly with code {returncode}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.returncode = returncode
