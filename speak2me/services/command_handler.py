"""Request/response command interface used by the UI."""

import logging
from typing import Any, Callable, Dict

from ..errors import CaptureError
from .capture_controller import CaptureController

logger = logging.getLogger(__name__)

START_AUDIO_CAPTURE = "start-audio-capture"
STOP_AUDIO_CAPTURE = "stop-audio-capture"
PLAY_CAPTURED_AUDIO = "play-captured-audio"
GET_CAPTURE_STATS = "get-capture-stats"
ENCODE_PARTIAL_AUDIO = "encode-partial-audio"


class CommandHandler:
    """Maps command names onto the controller and converts failures into results.

    Every command returns a dictionary with a `success` flag; failures carry
    an `error` message instead of raising.
    """

    def __init__(self, controller: CaptureController):
        self.controller = controller
        self.commands: Dict[str, Callable[[], Dict[str, Any]]] = {
            START_AUDIO_CAPTURE: self.start_audio_capture,
            STOP_AUDIO_CAPTURE: self.stop_audio_capture,
            PLAY_CAPTURED_AUDIO: self.play_captured_audio,
            GET_CAPTURE_STATS: self.get_capture_stats,
            ENCODE_PARTIAL_AUDIO: self.encode_partial_audio,
        }

    def handle(self, command: str) -> Dict[str, Any]:
        """Run a command by name."""
        handler = self.commands.get(command)
        if handler is None:
            logger.warning(f"Unknown command: {command}")
            return {"success": False, "error": f"Unknown command: {command}"}

        try:
            return handler()
        except CaptureError as e:
            logger.error(f"Error handling {command}: {e}")
            return {"success": False, "error": e.message}
        except Exception as e:
            logger.error(f"Unexpected error handling {command}: {e}", exc_info=True)
            return {"success": False, "error": str(e)}

    def start_audio_capture(self) -> Dict[str, Any]:
        self.controller.start()
        return {"success": True}

    def stop_audio_capture(self) -> Dict[str, Any]:
        self.controller.stop()
        return {"success": True}

    def play_captured_audio(self) -> Dict[str, Any]:
        self.controller.play()
        return {"success": True}

    def get_capture_stats(self) -> Dict[str, Any]:
        return {"success": True, "stats": self.controller.get_stats().to_dict()}

    def encode_partial_audio(self) -> Dict[str, Any]:
        """Encode audio kept after the recorder died so it can be played."""
        artifact = self.controller.encode_partial()
        return {"success": True, "duration_seconds": artifact.duration_seconds}
