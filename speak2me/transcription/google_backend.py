"""Google Speech-to-Text streaming transcription channel."""

import logging
import queue
import threading
from typing import Iterator, Optional

from google.api_core import exceptions as gax_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import speech

from .base import TranscriptionChannel, TranscriptCallback, ErrorCallback
from ..audio.pcm import PcmProfile, DEFAULT_PROFILE
from ..models.events import TranscriptEvent

logger = logging.getLogger(__name__)


class GoogleStreamingChannel(TranscriptionChannel):
    """Streams raw PCM to Google Speech-to-Text and reports interim and final results."""

    service_name = "Google Speech-to-Text"

    def __init__(self,
                 client: speech.SpeechClient,
                 on_transcript: TranscriptCallback,
                 on_error: ErrorCallback,
                 profile: PcmProfile = DEFAULT_PROFILE,
                 language: str = "en-US",
                 enable_automatic_punctuation: bool = True,
                 model: Optional[str] = "latest_long",
                 max_pending_chunks: int = 256):
        """Initialize the channel.

        Args:
            client: Authenticated SpeechClient
            profile: PCM layout of the chunks that will be written
            language: Language code (e.g., 'en-US', 'es-ES')
            enable_automatic_punctuation: Enable automatic punctuation
            model: Recognition model name, or None for the API default
            max_pending_chunks: Chunks buffered before writes start dropping
        """
        super().__init__(on_transcript, on_error)
        self.client = client
        self.language = language
        recognition_config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=profile.sample_rate,
            audio_channel_count=profile.channels,
            language_code=language,
            enable_automatic_punctuation=enable_automatic_punctuation,
        )
        if model:
            recognition_config.model = model
        self.streaming_config = speech.StreamingRecognitionConfig(
            config=recognition_config,
            interim_results=True,
        )

        self.requests: "queue.Queue[Optional[bytes]]" = queue.Queue(maxsize=max_pending_chunks)
        self.end_of_input = threading.Event()
        self.stream_thread: Optional[threading.Thread] = None

    def open(self) -> None:
        self.stream_thread = threading.Thread(target=self._stream_responses, daemon=True)
        self.stream_thread.name = "GoogleStreamingThread"
        self.stream_thread.start()
        logger.info(f"Google streaming channel opened (language={self.language})")

    def _submit(self, chunk: bytes) -> None:
        try:
            self.requests.put_nowait(chunk)
            self.chunks_written += 1
        except queue.Full:
            self.dropped_chunks += 1
            if self.dropped_chunks == 1 or self.dropped_chunks % 100 == 0:
                logger.warning(f"Transcription backlog full, dropped {self.dropped_chunks} chunks so far")

    def _finish(self, timeout: float) -> bool:
        self.end_of_input.set()
        try:
            self.requests.put_nowait(None)
        except queue.Full:
            # The generator notices end_of_input once the backlog is sent
            pass
        if self.stream_thread is None:
            return True
        self.stream_thread.join(timeout)
        return not self.stream_thread.is_alive()

    def _request_generator(self) -> Iterator[speech.StreamingRecognizeRequest]:
        while True:
            try:
                chunk = self.requests.get(timeout=0.1)
            except queue.Empty:
                if self.end_of_input.is_set():
                    return
                continue
            if chunk is None:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    def _stream_responses(self) -> None:
        try:
            responses = self.client.streaming_recognize(
                config=self.streaming_config,
                requests=self._request_generator(),
            )
            for response in responses:
                for result in response.results:
                    if not result.alternatives:
                        continue
                    alternative = result.alternatives[0]
                    logger.debug(f"Transcript ({'final' if result.is_final else 'interim'}): "
                                 f"'{alternative.transcript}'")
                    self._emit_transcript(TranscriptEvent(
                        text=alternative.transcript,
                        is_final=result.is_final,
                        confidence=alternative.confidence,
                        service=self.service_name,
                    ))
        except gax_exceptions.GoogleAPICallError as e:
            logger.error(f"Google STT streaming error: {e}")
            self._emit_error(f"Google Speech API error: {e.message}")
        except auth_exceptions.GoogleAuthError as e:
            logger.error(f"Google STT authentication error: {e}")
            self._emit_error(f"Google Speech authentication failed: {e}")
        except Exception as e:
            logger.error(f"Unhandled exception in Google streaming thread: {e}", exc_info=True)
            self._emit_error(f"Transcription stream failed: {e}")
        finally:
            logger.debug("Google streaming thread exiting")
