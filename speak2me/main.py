"""Main application entry point for speak2me."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import Optional

from .config import Speak2MeConfig
from .services.capture_controller import CaptureController
from .services.command_handler import (
    CommandHandler,
    PLAY_CAPTURED_AUDIO,
    START_AUDIO_CAPTURE,
    STOP_AUDIO_CAPTURE,
)
from .ui.console import ConsoleFrontend

logger = logging.getLogger(__name__)


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = Speak2MeConfig(config_path)
        # Command line level overrides the config file
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.controller: Optional[CaptureController] = None
        self.handler: Optional[CommandHandler] = None
        self.frontend: Optional[ConsoleFrontend] = None

    def init(self):
        logger.info("Initializing services...")
        profile = self.config.get_pcm_profile()
        logger.info(f"Audio profile: {profile.sample_rate}Hz, {profile.channels} channel(s), 16-bit")

        self.controller = CaptureController.from_config(self.config)
        self.handler = CommandHandler(self.controller)
        self.frontend = ConsoleFrontend(self.handler)

    def run_auto(self, duration: int, play: bool) -> bool:
        """Record for `duration` seconds, stop, and optionally play the result."""
        result = self.handler.handle(START_AUDIO_CAPTURE)
        if not result["success"]:
            self.frontend.console.print(f"❌ {result['error']}", style="red")
            return False

        self.frontend.console.print(f"🔴 Recording for {duration}s...")
        time.sleep(duration)

        result = self.handler.handle(STOP_AUDIO_CAPTURE)
        if not result["success"]:
            self.frontend.console.print(f"❌ {result['error']}", style="red")
            return False
        self.frontend.show_transcript()

        if play:
            result = self.handler.handle(PLAY_CAPTURED_AUDIO)
            if not result["success"]:
                self.frontend.console.print(f"❌ {result['error']}", style="red")
                return False
        return True

    def run_interactive(self):
        self.frontend.run_interactive()

    def cleanup(self):
        if self.controller:
            self.controller.shutdown()
        if self.frontend:
            self.frontend.shutdown()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'data/logs/speak2me.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("speak2me starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def main() -> None:
    """Main entry point for speak2me."""
    parser = argparse.ArgumentParser(
        description="speak2me - Record, transcribe live, and replay",
        epilog="Commands: start, stop, play, stats, transcript, quit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run in automatic mode: record for the given duration, stop, and exit"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=10,
        help="Duration in seconds for auto mode recording (default: 10)"
    )

    parser.add_argument(
        "--play",
        action="store_true",
        help="In auto mode, play the recording back after stopping"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="speak2me v0.1.0"
    )

    args = parser.parse_args()

    try:
        server = Server(args.config, args.log_level)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)

    exit_code = 0
    try:
        server.init()
        if args.auto:
            exit_code = 0 if server.run_auto(args.duration, args.play) else 1
        else:
            server.run_interactive()
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
    except Exception as e:
        print(f"❌ Error: {e}")
        logging.error(f"Application error: {e}", exc_info=True)
        exit_code = 1
    finally:
        server.cleanup()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
