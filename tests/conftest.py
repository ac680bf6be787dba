"""Pytest configuration and fixtures for speak2me tests."""

import pytest
import sys
import tempfile
import logging
import threading
from pathlib import Path
from typing import List, Optional

import numpy as np

from speak2me.audio.tools import ToolSet, ToolSpec
from speak2me.errors import EncodeError, NoArtifact, SpawnError
from speak2me.models.events import ErrorDomain, ErrorEvent, TranscriptEvent
from speak2me.models.session import EncodedArtifact
from speak2me.process.runner import ProcessEvent, ProcessEventKind
from speak2me.services.capture_controller import CaptureController
from speak2me.transcription.base import Capability, ChannelOpenResult, TranscriptionChannel


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without subprocesses")
    config.addinivalue_line("markers", "integration: tests that spawn real processes")


# Scripts run with sys.executable so no audio hardware or ffmpeg is needed.

WAV_ENCODER_SCRIPT = (
    "import sys, wave\n"
    "data = sys.stdin.buffer.read()\n"
    "with wave.open(sys.argv[1], 'wb') as w:\n"
    "    w.setnchannels(1)\n"
    "    w.setsampwidth(2)\n"
    "    w.setframerate(44100)\n"
    "    w.writeframes(data)\n"
)

FAILING_ENCODER_SCRIPT = (
    "import sys\n"
    "sys.stdin.buffer.read()\n"
    "sys.stderr.write('invalid input data\\n')\n"
    "sys.exit(2)\n"
)

# Writes the file given as argv[1] to stdout in 1024-byte chunks, then idles.
FILE_RECORDER_SCRIPT = (
    "import sys, time\n"
    "data = open(sys.argv[1], 'rb').read()\n"
    "for i in range(0, len(data), 1024):\n"
    "    sys.stdout.buffer.write(data[i:i + 1024])\n"
    "    sys.stdout.buffer.flush()\n"
    "    time.sleep(0.01)\n"
    "time.sleep(30)\n"
)


def python_tool(script: str, *args: str) -> ToolSpec:
    """A tool that runs an inline Python script."""
    return ToolSpec(executable=sys.executable, args=["-c", script, *args])


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def audio_test_data():
    """Generate s16le mono audio test data."""
    def generate_audio(pattern="sine", num_bytes=1024, sample_rate=44100):
        samples = num_bytes // 2
        if pattern == "sine":
            t = np.arange(samples) / sample_rate
            wave_data = np.sin(2 * np.pi * 440 * t) * 0.5
        elif pattern == "noise":
            wave_data = np.random.default_rng(1234).uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")
        return (wave_data * 32767).astype("<i2").tobytes()

    return generate_audio


@pytest.fixture
def sample_audio_chunk(audio_test_data):
    """One 1024-byte chunk of a 440 Hz sine wave."""
    return audio_test_data("sine", 1024)


@pytest.fixture
def wav_tools():
    """Tools that encode to WAV and play successfully; recorder is a placeholder."""
    return ToolSet(
        recorder=python_tool("import time; time.sleep(30)"),
        encoder=python_tool(WAV_ENCODER_SCRIPT, "{output}"),
        player=python_tool("import sys; sys.exit(0)", "{input}"),
    )


class FakeProcessHandle:
    """Recorder handle whose output and exit are driven by the test."""

    _next_pid = 1000

    def __init__(self, command, args, sink, startup_returncode=None):
        FakeProcessHandle._next_pid += 1
        self.pid = FakeProcessHandle._next_pid
        self.command = command
        self.args = list(args)
        self.sink = sink
        self.stopping = False
        self.returncode = startup_returncode
        self.stderr_lines: List[str] = []

    def is_alive(self) -> bool:
        return self.returncode is None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        return self.returncode

    def join_readers(self, timeout: float = 0.5) -> None:
        pass

    def stderr_tail(self) -> str:
        return "\n".join(self.stderr_lines)

    def feed(self, chunk: bytes) -> None:
        """Deliver a stdout chunk as the reader thread would."""
        self.sink(ProcessEvent(ProcessEventKind.STDOUT, self, data=chunk))

    def exit(self, returncode: int) -> None:
        self.returncode = returncode
        self.sink(ProcessEvent(ProcessEventKind.EXITED, self, returncode=returncode))

    def fail(self, error: str) -> None:
        """Report a broken stdout pipe as the reader thread would."""
        self.sink(ProcessEvent(ProcessEventKind.FAILED, self, error=error))


class FakeProcessRunner:
    """ProcessRunner double that never spawns anything."""

    def __init__(self, missing=(), startup_returncode=None, spawn_error=False):
        self.missing = set(missing)
        self.startup_returncode = startup_returncode
        self.spawn_error = spawn_error
        self.started: List[FakeProcessHandle] = []
        self.stopped: List[FakeProcessHandle] = []

    def which(self, executable: str) -> Optional[str]:
        if executable in self.missing:
            return None
        return f"/usr/bin/{executable}"

    def start(self, command, args, sink=None, stdin=False):
        if self.spawn_error:
            raise SpawnError(f"Failed to start {command}: permission denied")
        handle = FakeProcessHandle(command, args, sink, self.startup_returncode)
        self.started.append(handle)
        return handle

    def stop(self, handle, timeout=1.0):
        self.stopped.append(handle)
        handle.stopping = True
        if handle.is_alive():
            handle.exit(-15)
        return handle.returncode

    @property
    def last(self) -> FakeProcessHandle:
        return self.started[-1]


class FakePlayback:
    """EncodeAndPlaybackService double that records what it was asked to do."""

    def __init__(self, encode_error: Optional[str] = None):
        self.encode_error = encode_error
        self.encode_calls: List[bytes] = []
        self.play_calls = 0
        self.artifact: Optional[EncodedArtifact] = None

    def has_artifact(self) -> bool:
        return self.artifact is not None

    def clear_artifact(self) -> None:
        self.artifact = None

    def encode(self, chunks, session_id=None) -> EncodedArtifact:
        self.artifact = None
        pcm = b"".join(chunks)
        self.encode_calls.append(pcm)
        if self.encode_error:
            raise EncodeError(self.encode_error, returncode=1)
        self.artifact = EncodedArtifact(path=Path("/tmp/captured_audio.wav"),
                                        size_bytes=len(pcm) + 44, pcm_bytes=len(pcm),
                                        duration_seconds=len(pcm) / 88200,
                                        session_id=session_id)
        return self.artifact

    def play(self) -> None:
        if not self.has_artifact():
            raise NoArtifact()
        self.play_calls += 1

    def stop_playback(self) -> None:
        pass


class RecordingPublisher:
    """EventPublisher double that keeps every event."""

    def __init__(self):
        self.lock = threading.Lock()
        self.transcripts: List[TranscriptEvent] = []
        self.errors: List[ErrorEvent] = []

    def publish_transcript(self, event: TranscriptEvent) -> None:
        with self.lock:
            self.transcripts.append(event)

    def publish_error(self, event: ErrorEvent) -> None:
        with self.lock:
            self.errors.append(event)

    def publish_audio_error(self, message: str) -> None:
        self.publish_error(ErrorEvent(ErrorDomain.AUDIO, message))

    def publish_transcription_error(self, message: str) -> None:
        self.publish_error(ErrorEvent(ErrorDomain.TRANSCRIPTION, message))

    def errors_for(self, domain: ErrorDomain) -> List[ErrorEvent]:
        with self.lock:
            return [event for event in self.errors if event.domain is domain]


class FakeChannel(TranscriptionChannel):
    """In-memory transcription channel."""

    service_name = "fake"

    def __init__(self, on_transcript, on_error, fail_writes=False, stall_close=False):
        super().__init__(on_transcript, on_error)
        self.fail_writes = fail_writes
        self.stall_close = stall_close
        self.chunks: List[bytes] = []
        self.opened = False
        self.finished = False

    def open(self) -> None:
        self.opened = True

    def _submit(self, chunk: bytes) -> None:
        if self.fail_writes:
            raise RuntimeError("backend connection reset")
        self.chunks.append(chunk)
        self.chunks_written += 1

    def _finish(self, timeout: float) -> bool:
        self.finished = True
        return not self.stall_close

    # Test helpers standing in for the backend thread
    def emit(self, text: str, is_final: bool) -> None:
        self._emit_transcript(TranscriptEvent(text=text, is_final=is_final))

    def fail(self, message: str) -> None:
        self._emit_error(message)


class FakeChannelFactory:
    """Channel factory double returning a chosen capability."""

    def __init__(self, capability=Capability.AVAILABLE, fail_writes=False, raises=False,
                 stall_close=False):
        self.capability = capability
        self.fail_writes = fail_writes
        self.stall_close = stall_close
        self.raises = raises
        self.channels: List[FakeChannel] = []

    def __call__(self, on_transcript, on_error) -> ChannelOpenResult:
        if self.raises:
            raise RuntimeError("unexpected backend failure")
        if self.capability is not Capability.AVAILABLE:
            return ChannelOpenResult(self.capability, reason=f"transcription {self.capability.value}")
        channel = FakeChannel(on_transcript, on_error, fail_writes=self.fail_writes,
                              stall_close=self.stall_close)
        channel.open()
        self.channels.append(channel)
        return ChannelOpenResult(Capability.AVAILABLE, channel=channel)

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


@pytest.fixture
def fake_runner():
    return FakeProcessRunner()


@pytest.fixture
def fake_playback():
    return FakePlayback()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def channel_factory():
    return FakeChannelFactory()


@pytest.fixture
def make_controller(wav_tools, fake_runner, fake_playback, publisher, channel_factory):
    """Build controllers wired to test doubles; all are shut down afterwards."""
    controllers = []

    def _make(**overrides):
        kwargs = dict(
            tools=wav_tools,
            playback=fake_playback,
            publisher=publisher,
            channel_factory=channel_factory,
            runner=fake_runner,
            startup_grace=0.0,
            stop_timeout=0.5,
            channel_close_timeout=0.5,
        )
        kwargs.update(overrides)
        controller = CaptureController(**kwargs)
        controllers.append(controller)
        return controller

    yield _make

    for controller in controllers:
        controller.shutdown()


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def make_runner():
    return FakeProcessRunner


@pytest.fixture
def make_playback():
    return FakePlayback


@pytest.fixture
def make_channel_factory():
    return FakeChannelFactory


@pytest.fixture
def make_tool():
    return python_tool


@pytest.fixture
def failing_encoder():
    return python_tool(FAILING_ENCODER_SCRIPT, "{output}")


@pytest.fixture
def file_recorder():
    """Recorder that streams the given PCM file in 1024-byte chunks."""
    def _recorder(pcm_path):
        return python_tool(FILE_RECORDER_SCRIPT, str(pcm_path))

    return _recorder
