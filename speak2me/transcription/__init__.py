"""Transcription module for speak2me."""

from .base import Capability, ChannelOpenResult, TranscriptionChannel
from .aggregator import TranscriptAggregator
from .google_backend import GoogleStreamingChannel

__all__ = [
    "Capability",
    "ChannelOpenResult",
    "TranscriptionChannel",
    "TranscriptAggregator",
    "GoogleStreamingChannel",
]
