"""Publishes capture events to the UI over pypubsub."""

import logging

from pubsub import pub

from ..models.events import ErrorDomain, ErrorEvent, TranscriptEvent

logger = logging.getLogger(__name__)

TRANSCRIPTION_RESULT_TOPIC = "transcription.result"
TRANSCRIPTION_ERROR_TOPIC = "transcription.error"
AUDIO_ERROR_TOPIC = "audio.error"

# UI-facing event names and the topics that carry them
EVENT_TOPICS = {
    "transcription-result": TRANSCRIPTION_RESULT_TOPIC,
    "transcription-error": TRANSCRIPTION_ERROR_TOPIC,
    "audio-error": AUDIO_ERROR_TOPIC,
}


class EventPublisher:
    """Fire-and-forget publisher for transcript and error events."""

    def publish_transcript(self, event: TranscriptEvent) -> None:
        pub.sendMessage(TRANSCRIPTION_RESULT_TOPIC, event=event)

    def publish_error(self, event: ErrorEvent) -> None:
        """Publish an error event on the topic matching its domain."""
        if event.domain is ErrorDomain.TRANSCRIPTION:
            topic = TRANSCRIPTION_ERROR_TOPIC
        else:
            topic = AUDIO_ERROR_TOPIC
        logger.info(f"Publishing {event.domain.value} error: {event.message}")
        pub.sendMessage(topic, event=event)

    def publish_audio_error(self, message: str) -> None:
        self.publish_error(ErrorEvent(domain=ErrorDomain.AUDIO, message=message))

    def publish_transcription_error(self, message: str) -> None:
        self.publish_error(ErrorEvent(domain=ErrorDomain.TRANSCRIPTION, message=message))
