"""Running transcript built from transcript events.

Final events are appended to the permanent transcript in arrival order.
Interim events only replace the current preview, which is cleared by the
next final event, so interim text never reaches the permanent transcript.
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from pubsub import pub

from ..models.events import TranscriptEvent

logger = logging.getLogger(__name__)


class TranscriptAggregator:
    """Aggregates transcript events into a permanent transcript plus a preview."""

    def __init__(self, topic: Optional[str] = None):
        """Initialize transcript aggregator.

        Args:
            topic: Pub/sub topic to subscribe to, or None to feed
                   `on_transcript` directly
        """
        self.topic = topic
        self.final_segments: List[str] = []
        self.interim_text = ""
        self.lock = threading.RLock()

        if topic:
            pub.subscribe(self.on_transcript, topic)
            logger.info(f"TranscriptAggregator subscribed to {topic}")

    def on_transcript(self, event: TranscriptEvent) -> None:
        """Handle a transcript event."""
        with self.lock:
            if event.is_final:
                text = event.text.strip()
                if text:
                    self.final_segments.append(text)
                self.interim_text = ""
                logger.debug(f"Final transcript segment: '{text}'")
            else:
                self.interim_text = event.text.strip()

    @property
    def full_text(self) -> str:
        """The permanent transcript: finals only, in arrival order."""
        with self.lock:
            return " ".join(self.final_segments)

    @property
    def display_text(self) -> str:
        """Permanent transcript followed by the current interim preview."""
        with self.lock:
            return " ".join(part for part in (self.full_text, self.interim_text) if part)

    def get_results_summary(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "final_count": len(self.final_segments),
                "full_text": self.full_text,
                "interim_text": self.interim_text,
            }

    def reset(self) -> None:
        with self.lock:
            self.final_segments.clear()
            self.interim_text = ""

    def shutdown(self) -> None:
        """Stop listening for transcript events."""
        if self.topic:
            try:
                pub.unsubscribe(self.on_transcript, self.topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")
        logger.info("TranscriptAggregator shutdown complete")
