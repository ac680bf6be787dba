"""Encoding of captured PCM into a playable file, and playback of that file."""

import logging
import threading
import time
from typing import List, Optional

from ..audio.pcm import PcmProfile, DEFAULT_PROFILE
from ..audio.tools import ToolSet
from ..errors import AlreadyPlaying, EncodeError, NoArtifact, PlaybackError, SpawnError
from ..models.session import EncodedArtifact
from ..process.runner import ProcessHandle, ProcessRunner
from ..storage.file_manager import FileManager

logger = logging.getLogger(__name__)


class EncodeAndPlaybackService:
    """Owns the single encoded artifact and the player process.

    Only one playback runs at a time. A `play()` call made while another
    playback is in flight is rejected with `AlreadyPlaying`, never queued.
    """

    def __init__(self,
                 tools: ToolSet,
                 file_manager: FileManager,
                 runner: Optional[ProcessRunner] = None,
                 profile: PcmProfile = DEFAULT_PROFILE,
                 encode_timeout: float = 30.0,
                 stop_timeout: float = 1.0):
        self.tools = tools
        self.file_manager = file_manager
        self.runner = runner or ProcessRunner()
        self.profile = profile
        self.encode_timeout = encode_timeout
        self.stop_timeout = stop_timeout

        self.artifact: Optional[EncodedArtifact] = None
        self._play_lock = threading.Lock()
        self._playback_handle: Optional[ProcessHandle] = None

    def has_artifact(self) -> bool:
        return self.artifact is not None and self.artifact.path.exists()

    def is_playing(self) -> bool:
        return self._play_lock.locked()

    def clear_artifact(self) -> None:
        """Forget the current artifact and delete it from disk."""
        self.artifact = None
        self.file_manager.remove_artifact()

    def encode(self, chunks: List[bytes], session_id: Optional[str] = None) -> EncodedArtifact:
        """Convert raw PCM chunks into the playable artifact.

        The previous artifact is invalidated first, so a failed encode
        never leaves stale audio behind to be played.

        Raises:
            EncodeError: if the encoder cannot start, times out or exits non-zero
        """
        self.clear_artifact()
        pcm = b"".join(chunks)
        output_path = self.file_manager.partial_artifact_path
        encoder = self.tools.encoder
        args = encoder.build_args(output=str(output_path))

        logger.info(f"Encoding {len(pcm)} bytes of PCM "
                    f"({self.profile.duration_seconds(len(pcm)):.2f}s) with {encoder.executable}")
        try:
            handle = self.runner.start(encoder.executable, args, stdin=True)
        except SpawnError as e:
            raise EncodeError(f"Encoder could not start: {e}") from e

        # The encode deadline runs from spawn and includes feeding stdin
        deadline = time.monotonic() + self.encode_timeout
        writer = threading.Thread(target=self._feed_encoder, args=(handle, pcm), daemon=True)
        writer.name = f"{encoder.executable}-stdin-{handle.pid}"
        writer.start()
        writer.join(self.encode_timeout)

        returncode = None
        if not writer.is_alive():
            returncode = handle.wait(timeout=max(0.0, deadline - time.monotonic()))
        if returncode is None:
            self.runner.stop(handle, timeout=self.stop_timeout)
            writer.join(self.stop_timeout)
            raise EncodeError(f"Encoder did not finish within {self.encode_timeout}s")
        if returncode != 0:
            handle.join_readers()
            detail = handle.stderr_tail()
            raise EncodeError(f"Encoder exited with code {returncode}"
                              + (f": {detail}" if detail else ""), returncode=returncode)
        if not output_path.exists():
            raise EncodeError(f"Encoder produced no output at {output_path}")

        path = self.file_manager.promote_partial_artifact()
        self.artifact = EncodedArtifact(
            path=path,
            size_bytes=path.stat().st_size,
            pcm_bytes=len(pcm),
            duration_seconds=self.profile.duration_seconds(len(pcm)),
            session_id=session_id,
        )
        logger.info(f"✅ Encoded artifact: {path} ({self.artifact.size_bytes} bytes)")
        return self.artifact

    @staticmethod
    def _feed_encoder(handle: ProcessHandle, pcm: bytes) -> None:
        try:
            handle.write(pcm)
        except (BrokenPipeError, OSError) as e:
            # The exit code explains why the encoder stopped reading
            logger.warning(f"Encoder stopped accepting input: {e}")
        finally:
            handle.close_stdin()

    def play(self) -> None:
        """Play the current artifact and return once the player exits cleanly.

        Raises:
            NoArtifact: nothing has been encoded yet
            AlreadyPlaying: another playback is in flight
            PlaybackError: the player could not start or exited non-zero
        """
        if not self.has_artifact():
            raise NoArtifact()
        if not self._play_lock.acquire(blocking=False):
            raise AlreadyPlaying()

        try:
            player = self.tools.player
            args = player.build_args(input=str(self.artifact.path))
            try:
                handle = self.runner.start(player.executable, args)
            except SpawnError as e:
                raise PlaybackError(f"Player could not start: {e}") from e

            self._playback_handle = handle
            logger.info(f"Playing {self.artifact.path}")
            returncode = handle.wait()
            if handle.stopping:
                raise PlaybackError("Playback was stopped", returncode=returncode)
            if returncode != 0:
                handle.join_readers()
                detail = handle.stderr_tail()
                raise PlaybackError(f"Player exited with code {returncode}"
                                    + (f": {detail}" if detail else ""), returncode=returncode)
            logger.info("Playback finished")
        finally:
            self._playback_handle = None
            self._play_lock.release()

    def stop_playback(self) -> None:
        """Stop an in-flight playback, if any."""
        handle = self._playback_handle
        if handle is not None:
            self.runner.stop(handle, timeout=self.stop_timeout)
