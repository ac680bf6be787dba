"""Line-based console front end for the capture commands."""

import logging
from typing import Any, Dict, Optional

from pubsub import pub
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.events import ErrorEvent, TranscriptEvent
from ..services.command_handler import (
    CommandHandler,
    ENCODE_PARTIAL_AUDIO,
    GET_CAPTURE_STATS,
    PLAY_CAPTURED_AUDIO,
    START_AUDIO_CAPTURE,
    STOP_AUDIO_CAPTURE,
)
from ..services.event_publisher import (
    AUDIO_ERROR_TOPIC,
    TRANSCRIPTION_ERROR_TOPIC,
    TRANSCRIPTION_RESULT_TOPIC,
)
from ..transcription.aggregator import TranscriptAggregator

logger = logging.getLogger(__name__)

# Typed command -> command interface name
KEY_COMMANDS = {
    "start": START_AUDIO_CAPTURE,
    "1": START_AUDIO_CAPTURE,
    "stop": STOP_AUDIO_CAPTURE,
    "2": STOP_AUDIO_CAPTURE,
    "play": PLAY_CAPTURED_AUDIO,
    "3": PLAY_CAPTURED_AUDIO,
    "stats": GET_CAPTURE_STATS,
    "recover": ENCODE_PARTIAL_AUDIO,
}


class ConsoleFrontend:
    """Sends commands to the core and prints the events it publishes."""

    def __init__(self, handler: CommandHandler, console: Optional[Console] = None):
        self.handler = handler
        self.console = console or Console()
        self.aggregator = TranscriptAggregator(TRANSCRIPTION_RESULT_TOPIC)

        pub.subscribe(self._on_transcript, TRANSCRIPTION_RESULT_TOPIC)
        pub.subscribe(self._on_error, TRANSCRIPTION_ERROR_TOPIC)
        pub.subscribe(self._on_error, AUDIO_ERROR_TOPIC)

    def _on_transcript(self, event: TranscriptEvent) -> None:
        if event.is_final:
            self.console.print(f"📝 {event.text}")

    def _on_error(self, event: ErrorEvent) -> None:
        self.console.print(f"❌ {event.domain.value} error: {event.message}", style="bold red")

    def show_help(self) -> None:
        self.console.print(Panel(
            "[bold green]start[/bold green] (1) - Start recording\n"
            "[bold yellow]stop[/bold yellow] (2) - Stop recording\n"
            "[bold blue]play[/bold blue] (3) - Play last recording\n"
            "[bold]recover[/bold] - Keep the audio from a crashed recording for play\n"
            "[bold]stats[/bold] - Show capture statistics\n"
            "[bold]transcript[/bold] - Show transcript so far\n"
            "[bold red]quit[/bold red] (q) - Quit",
            title="🎙️  speak2me",
        ))

    def show_stats(self, stats: Dict[str, Any]) -> None:
        table = Table(title="Capture")
        table.add_column("Field")
        table.add_column("Value")
        for key, value in stats.items():
            if isinstance(value, float):
                value = f"{value:.2f}"
            table.add_row(key, str(value))
        self.console.print(table)

    def show_transcript(self) -> None:
        text = self.aggregator.full_text or "(nothing transcribed yet)"
        self.console.print(Panel(text, title="📄 Transcript"))

    def run_command(self, text: str) -> bool:
        """Run one typed command. Returns False when the user wants to quit."""
        text = text.strip().lower()
        if text in ("q", "quit", "exit"):
            return False
        if text == "transcript":
            self.show_transcript()
            return True
        command = KEY_COMMANDS.get(text)
        if command is None:
            self.show_help()
            return True
        if command == START_AUDIO_CAPTURE:
            self.aggregator.reset()

        result = self.handler.handle(command)
        if not result["success"]:
            self.console.print(f"❌ {result['error']}", style="red")
        elif command == GET_CAPTURE_STATS:
            self.show_stats(result["stats"])
        else:
            self.console.print(f"✅ {command}", style="green")
        return True

    def run_interactive(self) -> None:
        """Read commands from stdin until the user quits."""
        self.show_help()
        while True:
            try:
                text = self.console.input("> ")
            except (EOFError, KeyboardInterrupt):
                break
            if not self.run_command(text):
                break

    def shutdown(self) -> None:
        for listener, topic in ((self._on_transcript, TRANSCRIPTION_RESULT_TOPIC),
                                (self._on_error, TRANSCRIPTION_ERROR_TOPIC),
                                (self._on_error, AUDIO_ERROR_TOPIC)):
            try:
                pub.unsubscribe(listener, topic)
            except Exception as e:
                logger.warning(f"Error during unsubscribe: {e}")
        self.aggregator.shutdown()
