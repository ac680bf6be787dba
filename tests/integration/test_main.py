"""Integration tests for the speak2me entry point."""

import pytest
import logging
import sys
from pathlib import Path

import yaml

from speak2me.main import Server, setup_logging
from speak2me.config import Speak2MeConfig


@pytest.fixture
def restore_logging():
    """Put the root logger back the way pytest configured it."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def write_config(temp_data_dir, recorder):
    config = {
        "capture": {"startup_grace_seconds": 0.1},
        "storage": {"data_directory": "data"},
        "logging": {"file_path": "data/logs/speak2me.log", "console_output": False},
        "tools": {
            "recorder": recorder,
            "encoder": {"executable": sys.executable, "args": ["-c", "pass", "{output}"]},
            "player": {"executable": sys.executable, "args": ["-c", "pass", "{input}"]},
        },
    }
    path = Path(temp_data_dir) / "speak2me.yaml"
    with open(path, "w") as f:
        yaml.safe_dump(config, f)
    return str(path)


@pytest.mark.integration
class TestServer:
    """Test cases for the Server wrapper used by main()."""

    def test_setup_logging_writes_file(self, temp_data_dir, restore_logging):
        """Test log records reach the configured file."""
        path = write_config(temp_data_dir, {"executable": sys.executable, "args": []})
        config = Speak2MeConfig(path)

        setup_logging(config, "DEBUG")
        logging.getLogger("speak2me.test").info("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_file = Path(temp_data_dir) / "data" / "logs" / "speak2me.log"
        assert "hello from the test" in log_file.read_text()
        assert logging.getLogger().level == logging.DEBUG

    def test_auto_run_without_audio(self, temp_data_dir, restore_logging):
        """Test an auto run with a silent recorder succeeds."""
        recorder = {"executable": sys.executable, "args": ["-c", "import time; time.sleep(30)"]}
        server = Server(write_config(temp_data_dir, recorder), "INFO")
        try:
            server.init()
            assert server.run_auto(duration=0, play=False) is True
            assert server.controller.get_stats().state == "idle"
        finally:
            server.cleanup()

    def test_auto_run_with_missing_recorder(self, temp_data_dir, restore_logging):
        """Test an auto run fails cleanly when the recorder is not installed."""
        recorder = {"executable": "speak2me-no-such-recorder", "args": []}
        server = Server(write_config(temp_data_dir, recorder), "INFO")
        try:
            server.init()
            assert server.run_auto(duration=0, play=False) is False
        finally:
            server.cleanup()

    def test_missing_config_file(self, temp_data_dir):
        """Test a missing configuration file is reported before logging starts."""
        with pytest.raises(FileNotFoundError):
            Server(str(Path(temp_data_dir) / "missing.yaml"))
