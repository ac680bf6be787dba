"""speak2me: live microphone capture with streaming transcription and replay."""

__version__ = "0.1.0"
