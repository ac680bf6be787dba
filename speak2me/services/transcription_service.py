"""Transcription service that provisions streaming transcription channels."""

import logging
from typing import Optional

from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech
from google.oauth2 import service_account

from ..config import Speak2MeConfig
from ..transcription.base import (
    Capability,
    ChannelOpenResult,
    ErrorCallback,
    TranscriptCallback,
)
from ..transcription.google_backend import GoogleStreamingChannel

logger = logging.getLogger(__name__)


class TranscriptionService:
    """Opens transcription channels, degrading to audio-only when it cannot."""

    def __init__(self, config: Speak2MeConfig):
        """Initialize transcription service.

        Args:
            config: Application configuration
        """
        self.config = config
        self.client: Optional[speech.SpeechClient] = None

    def open_channel(self, on_transcript: TranscriptCallback,
                     on_error: ErrorCallback) -> ChannelOpenResult:
        """Open a streaming channel for one capture session.

        Returns:
            ChannelOpenResult whose capability tells whether a channel was
            opened, whether transcription is simply not configured, or
            whether it is configured but failed to start
        """
        if not self.config.get('transcription.enabled', True):
            logger.info("Transcription disabled in configuration, capturing audio only")
            return ChannelOpenResult(Capability.UNAVAILABLE, reason="Transcription disabled")

        credentials_path = self.config.get_google_credentials_path()
        if not credentials_path:
            logger.info("No Google credentials configured, capturing audio only")
            return ChannelOpenResult(Capability.UNAVAILABLE, reason="No credentials configured")

        try:
            client = self._get_google_speech_client(credentials_path)
            channel = GoogleStreamingChannel(
                client=client,
                on_transcript=on_transcript,
                on_error=on_error,
                profile=self.config.get_pcm_profile(),
                language=self.config.get('google_cloud.language', 'en-US'),
                enable_automatic_punctuation=self.config.get(
                    'google_cloud.enable_automatic_punctuation', True),
                model=self.config.get('google_cloud.model', 'latest_long'),
                max_pending_chunks=self.config.get('transcription.max_pending_chunks', 256),
            )
            channel.open()
        except (ValueError, OSError, auth_exceptions.GoogleAuthError,
                gax_exceptions.GoogleAPICallError) as e:
            logger.error(f"Google Speech backend failed to initialize: {e}")
            self.client = None
            return ChannelOpenResult(Capability.FAILED,
                                     reason=f"Transcription backend failed to start: {e}")

        logger.info("✅ Google streaming channel ready")
        return ChannelOpenResult(Capability.AVAILABLE, channel=channel)

    def _get_google_speech_client(self, credentials_path: str) -> speech.SpeechClient:
        """Create the Speech client once and reuse it across sessions."""
        if self.client is None:
            logger.info(f"Loading Google credentials from: {credentials_path}")
            credentials = service_account.Credentials.from_service_account_file(credentials_path)
            self.client = speech.SpeechClient(credentials=credentials)
            logger.info(f"Using Google Cloud project: {credentials.project_id}")
        return self.client
