"""Capture orchestration: recorder process, audio buffer and transcription channel.

All state changes happen on a single coordinator thread. Recorder output,
transcript events and public commands are put on one bounded queue and
handled strictly in arrival order, so a `stop()` always sees every chunk
that was queued before it.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from datetime import datetime
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional

from ..audio.buffer import AudioBuffer
from ..audio.pcm import PcmProfile, DEFAULT_PROFILE, peak_level
from ..audio.tools import ToolSet
from ..config import Speak2MeConfig
from ..errors import (
    AbnormalExit,
    CaptureBusy,
    CaptureError,
    EncodeError,
    NoArtifact,
    SpawnError,
    ToolMissing,
)
from ..models.audio import CaptureStats
from ..models.events import ErrorEvent, TranscriptEvent
from ..models.session import CaptureSession, CaptureState, EncodedArtifact, SessionInfo
from ..process.runner import ProcessEvent, ProcessEventKind, ProcessHandle, ProcessRunner
from ..storage.file_manager import FileManager
from ..transcription.base import (
    Capability,
    ChannelOpenResult,
    ErrorCallback,
    TranscriptCallback,
    TranscriptionChannel,
)
from .event_publisher import EventPublisher
from .playback_service import EncodeAndPlaybackService
from .transcription_service import TranscriptionService

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[TranscriptCallback, ErrorCallback], ChannelOpenResult]


class _ItemKind(Enum):
    COMMAND = "command"
    PROCESS = "process"
    TRANSCRIPT = "transcript"
    CHANNEL_ERROR = "channel_error"


class _QueueItem(NamedTuple):
    """Work item for the coordinator thread."""
    kind: _ItemKind
    payload: Any
    future: Optional[Future] = None


class CaptureController:
    """Drives the Idle -> Starting -> Capturing -> Stopping -> Idle state machine."""

    def __init__(self,
                 tools: ToolSet,
                 playback: EncodeAndPlaybackService,
                 publisher: EventPublisher,
                 channel_factory: Optional[ChannelFactory] = None,
                 runner: Optional[ProcessRunner] = None,
                 file_manager: Optional[FileManager] = None,
                 profile: PcmProfile = DEFAULT_PROFILE,
                 startup_grace: float = 0.3,
                 stop_timeout: float = 1.0,
                 channel_close_timeout: float = 1.0,
                 event_queue_size: int = 1024):
        """Initialize the controller and start its coordinator thread.

        Args:
            tools: Recorder, encoder and player invocations
            playback: Service owning the encoded artifact
            publisher: Receives transcript and error events for the UI
            channel_factory: Opens a transcription channel per session, or
                             None for audio-only capture
            runner: Spawns the recorder process
            file_manager: Where session metadata is written, optional
            profile: PCM layout produced by the recorder
            startup_grace: Seconds the recorder must stay alive after spawn
            stop_timeout: Bound on waiting for the recorder to exit
            channel_close_timeout: Bound on waiting for the transcription backend
            event_queue_size: Capacity of the coordinator queue
        """
        self.tools = tools
        self.playback = playback
        self.publisher = publisher
        self.channel_factory = channel_factory
        self.runner = runner or ProcessRunner()
        self.file_manager = file_manager
        self.profile = profile
        self.startup_grace = startup_grace
        self.stop_timeout = stop_timeout
        self.channel_close_timeout = channel_close_timeout

        self.buffer = AudioBuffer()
        self.session: Optional[CaptureSession] = None
        self.last_session_id: Optional[str] = None
        self.capability = Capability.UNAVAILABLE
        self.peak_level = 0.0

        self._state = CaptureState.IDLE
        self._recorder: Optional[ProcessHandle] = None
        self._channel: Optional[TranscriptionChannel] = None

        self._events: "queue.Queue[Optional[_QueueItem]]" = queue.Queue(maxsize=event_queue_size)
        self._coordinator = threading.Thread(target=self._coordinate, daemon=True)
        self._coordinator.name = "CaptureCoordinator"
        self._coordinator.start()

    @classmethod
    def from_config(cls, config: Speak2MeConfig) -> "CaptureController":
        """Build a controller and its collaborators from configuration."""
        profile = config.get_pcm_profile()
        tools = config.get_tools()
        runner = ProcessRunner(chunk_size=config.get('audio.chunk_size', 4096))
        file_manager = FileManager(config.get_data_directory())
        playback = EncodeAndPlaybackService(
            tools=tools,
            file_manager=file_manager,
            runner=runner,
            profile=profile,
            encode_timeout=config.get('playback.encode_timeout_seconds', 30.0),
            stop_timeout=config.get('playback.stop_timeout_seconds', 1.0),
        )
        transcription_service = TranscriptionService(config)
        return cls(
            tools=tools,
            playback=playback,
            publisher=EventPublisher(),
            channel_factory=transcription_service.open_channel,
            runner=runner,
            file_manager=file_manager,
            profile=profile,
            startup_grace=config.get('capture.startup_grace_seconds', 0.3),
            stop_timeout=config.get('capture.stop_timeout_seconds', 1.0),
            channel_close_timeout=config.get('transcription.close_timeout_seconds', 1.0),
            event_queue_size=config.get('capture.event_queue_size', 1024),
        )

    @property
    def state(self) -> CaptureState:
        return self._state

    # Public commands. Each one runs on the coordinator thread.

    def start(self) -> None:
        """Start capturing. A no-op if a capture is already starting or running.

        Raises:
            ToolMissing: the recorder executable is not installed
            SpawnError: the recorder could not be started
        """
        self._call(self._do_start)

    def stop(self) -> Optional[EncodedArtifact]:
        """Stop capturing and encode what was captured. A no-op when not capturing.

        Returns:
            The new artifact, or None if nothing was captured or the call was a no-op

        Raises:
            EncodeError: the captured audio could not be encoded
        """
        return self._call(self._do_stop)

    def play(self) -> None:
        """Play the most recent artifact. Blocks until playback finishes.

        Raises:
            NoArtifact, CaptureBusy, AlreadyPlaying, PlaybackError
        """
        self._call(self._check_playable)
        self.playback.play()

    def encode_partial(self) -> EncodedArtifact:
        """Encode audio retained after the recorder died mid-capture."""
        return self._call(self._do_encode_partial)

    def get_stats(self) -> CaptureStats:
        return self._call(self._build_stats)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop any capture or playback and stop the coordinator thread."""
        if not self._coordinator.is_alive():
            return
        if threading.current_thread() is self._coordinator:
            raise RuntimeError("shutdown() cannot be called from the coordinator thread")

        logger.info("Shutting down capture controller...")
        try:
            self.stop()
        except CaptureError as e:
            logger.warning(f"Error stopping capture during shutdown: {e}")
        self.playback.stop_playback()

        self._events.put(None)
        self._coordinator.join(timeout)
        if self._coordinator.is_alive():
            logger.warning("Capture coordinator did not stop cleanly")
        else:
            logger.info("Capture controller shutdown complete")

    # Coordinator plumbing

    def _call(self, fn: Callable[[], Any]) -> Any:
        if threading.current_thread() is self._coordinator:
            return fn()
        if not self._coordinator.is_alive():
            raise RuntimeError("Capture controller has been shut down")
        future: Future = Future()
        self._events.put(_QueueItem(_ItemKind.COMMAND, fn, future))
        return future.result()

    def _coordinate(self) -> None:
        logger.debug("Capture coordinator starting")
        while True:
            item = self._events.get()
            if item is None:
                logger.debug("Capture coordinator received sentinel, exiting")
                break
            try:
                self._dispatch(item)
            except Exception as e:
                logger.error(f"Unhandled exception in capture coordinator: {e}", exc_info=True)

    def _dispatch(self, item: _QueueItem) -> None:
        if item.kind is _ItemKind.COMMAND:
            if not item.future.set_running_or_notify_cancel():
                return
            try:
                item.future.set_result(item.payload())
            except Exception as e:
                item.future.set_exception(e)
        elif item.kind is _ItemKind.PROCESS:
            self._on_process_event(item.payload)
        elif item.kind is _ItemKind.TRANSCRIPT:
            self.publisher.publish_transcript(item.payload)
        elif item.kind is _ItemKind.CHANNEL_ERROR:
            self.publisher.publish_error(item.payload)

    def _enqueue_process_event(self, event: ProcessEvent) -> None:
        # Blocking put: a full queue pushes back on the recorder's pipe
        self._events.put(_QueueItem(_ItemKind.PROCESS, event))

    def _enqueue_transcript(self, event: TranscriptEvent) -> None:
        self._put_channel_item(_QueueItem(_ItemKind.TRANSCRIPT, event))

    def _enqueue_channel_error(self, event: ErrorEvent) -> None:
        self._put_channel_item(_QueueItem(_ItemKind.CHANNEL_ERROR, event))

    def _put_channel_item(self, item: _QueueItem) -> None:
        # Bounded so a channel close waiting on its emit lock cannot deadlock
        try:
            self._events.put(item, timeout=1.0)
        except queue.Full:
            logger.warning(f"Capture event queue full, dropping {item.kind.value} event")

    def _set_state(self, state: CaptureState) -> None:
        if state is not self._state:
            logger.info(f"Capture state: {self._state.value} -> {state.value}")
        self._state = state
        if self.session is not None:
            self.session.state = state

    # State machine, coordinator thread only

    def _do_start(self) -> None:
        if self._state is not CaptureState.IDLE:
            logger.info(f"Start ignored, capture is {self._state.value}")
            return

        self.session = CaptureSession(session_id=FileManager.new_session_id())
        self._set_state(CaptureState.STARTING)
        recorder = self.tools.recorder
        try:
            if self.runner.which(recorder.executable) is None:
                raise ToolMissing(recorder.executable)

            self.buffer.clear()
            self.playback.clear_artifact()
            self.peak_level = 0.0

            self._open_channel()
            self._recorder = self.runner.start(recorder.executable, recorder.build_args(),
                                               sink=self._enqueue_process_event)
            returncode = self._recorder.wait(timeout=self.startup_grace)
            if returncode is not None:
                self._recorder.join_readers()
                detail = self._recorder.stderr_tail()
                raise SpawnError(f"Recorder exited during startup with code {returncode}"
                                 + (f": {detail}" if detail else ""), returncode=returncode)
        except Exception as e:
            logger.error(f"Failed to start capture: {e}")
            self._close_channel()
            if self._recorder is not None:
                self.runner.stop(self._recorder, timeout=self.stop_timeout)
                self._recorder = None
            self.session = None
            self._set_state(CaptureState.IDLE)
            raise

        self.last_session_id = self.session.session_id
        self._set_state(CaptureState.CAPTURING)
        logger.info(f"Capture started (session {self.session.session_id}, "
                    f"transcription {self.capability.value})")

    def _open_channel(self) -> None:
        if self.channel_factory is None:
            self.capability = Capability.UNAVAILABLE
            return
        try:
            result = self.channel_factory(self._enqueue_transcript, self._enqueue_channel_error)
        except Exception as e:
            logger.error(f"Transcription channel factory failed: {e}", exc_info=True)
            result = ChannelOpenResult(Capability.FAILED, reason=f"Transcription failed to start: {e}")

        self.capability = result.capability
        self._channel = result.channel
        if result.capability is Capability.FAILED:
            self.publisher.publish_transcription_error(result.reason)
        elif result.capability is Capability.UNAVAILABLE:
            logger.info(f"Transcription unavailable ({result.reason}), capturing audio only")

    def _close_channel(self) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            channel.close(timeout=self.channel_close_timeout)

    def _stop_recorder(self) -> None:
        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            self.runner.stop(recorder, timeout=self.stop_timeout)

    def _do_stop(self) -> Optional[EncodedArtifact]:
        if self._state is not CaptureState.CAPTURING:
            logger.info(f"Stop ignored, capture is {self._state.value}")
            return None

        session = self.session
        self._set_state(CaptureState.STOPPING)
        try:
            self._close_channel()
            self._stop_recorder()
            session.stopped_at = datetime.now()

            chunks = self.buffer.drain()
            if not chunks:
                logger.warning("No audio was captured, nothing to encode")
                return None
            try:
                artifact = self.playback.encode(chunks, session_id=session.session_id)
            except EncodeError as e:
                logger.error(f"Encoding failed: {e}")
                self.publisher.publish_audio_error(e.message)
                raise
            self._save_session_info(session, artifact, len(chunks))
            return artifact
        finally:
            self._set_state(CaptureState.IDLE)
            self.session = None
            logger.info(f"Capture stopped (session {session.session_id}, "
                        f"{session.duration_seconds:.1f}s)")

    def _save_session_info(self, session: CaptureSession, artifact: EncodedArtifact,
                           total_chunks: int) -> None:
        if self.file_manager is None:
            return
        info = SessionInfo(
            session_id=session.session_id,
            start_time=session.started_at,
            duration_seconds=artifact.duration_seconds,
            audio_file=artifact.path.name,
            file_size_bytes=artifact.size_bytes,
            sample_rate=self.profile.sample_rate,
            total_chunks=total_chunks,
        )
        try:
            self.file_manager.save_session_info(info)
        except OSError as e:
            logger.warning(f"Could not save session info: {e}")

    def _do_encode_partial(self) -> EncodedArtifact:
        if self._state is not CaptureState.IDLE:
            raise CaptureBusy(self._state.value)
        chunks = self.buffer.drain()
        if not chunks:
            raise EncodeError("No buffered audio to encode")
        return self.playback.encode(chunks, session_id=self.last_session_id)

    def _check_playable(self) -> None:
        if not self.playback.has_artifact():
            raise NoArtifact()
        if self._state is not CaptureState.IDLE:
            raise CaptureBusy(self._state.value)

    def _build_stats(self) -> CaptureStats:
        session = self.session
        return CaptureStats(
            state=self._state.value,
            session_id=session.session_id if session else None,
            duration_seconds=session.duration_seconds if session else 0.0,
            buffered_bytes=self.buffer.total_bytes,
            total_chunks=self.buffer.chunk_count,
            peak_level=self.peak_level,
            transcription=self.capability.value,
            has_artifact=self.playback.has_artifact(),
        )

    def _on_process_event(self, event: ProcessEvent) -> None:
        if event.handle is not self._recorder:
            if event.kind is ProcessEventKind.STDOUT:
                logger.debug(f"Dropping {len(event.data)} bytes from a finished recorder")
            return

        if event.kind is ProcessEventKind.STDOUT:
            self._on_audio_chunk(event.data)
        elif event.is_terminal:
            self._on_recorder_exit(event)

    def _on_audio_chunk(self, chunk: bytes) -> None:
        if self._state is not CaptureState.CAPTURING:
            logger.debug(f"Dropping {len(chunk)} bytes received while {self._state.value}")
            return

        self.buffer.append(chunk)
        self.peak_level = peak_level(chunk)
        if self._channel is not None:
            try:
                self._channel.write(chunk)
            except Exception as e:
                logger.warning(f"Transcription write failed, chunk kept in buffer: {e}")

    def _on_recorder_exit(self, event: ProcessEvent) -> None:
        handle = event.handle
        if handle.stopping or self._state is not CaptureState.CAPTURING:
            return

        if event.kind is ProcessEventKind.FAILED:
            # Output can no longer be read; make sure the recorder is gone
            returncode = self.runner.stop(handle, timeout=self.stop_timeout)
            fault = AbnormalExit(returncode, f"recorder output unreadable ({event.error})")
        else:
            fault = AbnormalExit(event.returncode, handle.stderr_tail())
        logger.error(f"{fault.message} (keeping {self.buffer.total_bytes} buffered bytes)")
        self._recorder = None
        self._close_channel()
        if self.session is not None:
            self.session.stopped_at = datetime.now()
        self._set_state(CaptureState.IDLE)
        self.session = None
        self.publisher.publish_audio_error(fault.message)
