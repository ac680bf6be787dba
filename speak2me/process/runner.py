"""Spawning and supervision of external processes.

Each spawned process gets two reader threads. The stdout reader delivers
raw byte chunks, the stderr reader delivers decoded lines, and once stdout
reaches EOF the stdout reader waits for the process and emits a single
terminal EXITED event. A stdout read error that stop() did not cause ends
the stream with FAILED instead. Events go to a sink callable, or to a per-handle
queue consumed through `ProcessHandle.events()` when no sink is given.
"""

import logging
import queue
import shutil
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence

from ..errors import SpawnError

logger = logging.getLogger(__name__)


class ProcessEventKind(Enum):
    STARTED = "started"
    STDOUT = "stdout"
    STDERR = "stderr"
    EXITED = "exited"
    FAILED = "failed"


@dataclass
class ProcessEvent:
    """Lifecycle or output event of a spawned process."""
    kind: ProcessEventKind
    handle: "ProcessHandle"
    data: bytes = b""
    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (ProcessEventKind.EXITED, ProcessEventKind.FAILED)


EventSink = Callable[[ProcessEvent], None]


class ProcessHandle:
    """A running external process and the threads reading its output."""

    def __init__(self, process: subprocess.Popen, command: str, args: Sequence[str],
                 sink: Optional[EventSink] = None, chunk_size: int = 4096,
                 stderr_tail_lines: int = 20):
        self.process = process
        self.command = command
        self.args = list(args)
        self.chunk_size = chunk_size
        self.stopping = False

        self._sink = sink
        self._events: "queue.Queue[ProcessEvent]" = queue.Queue()
        self._stderr_tail = deque(maxlen=stderr_tail_lines)
        self._stderr_lock = threading.Lock()
        self._stdin_lock = threading.Lock()
        self._terminal_sent = threading.Event()
        self._reader_threads: List[threading.Thread] = []

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the process to exit; returns None if it is still running."""
        try:
            return self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def write(self, data: bytes) -> None:
        """Write bytes to the process's stdin."""
        if self.process.stdin is None:
            raise ValueError(f"{self.command} was started without stdin")
        view = memoryview(data)
        with self._stdin_lock:
            # stdin is unbuffered, so a single write may be partial
            while view:
                written = self.process.stdin.write(view)
                view = view[written:]

    def close_stdin(self) -> None:
        """Signal end-of-input to the process."""
        if self.process.stdin is None:
            return
        with self._stdin_lock:
            try:
                self.process.stdin.close()
            except BrokenPipeError:
                logger.debug(f"{self.command} closed its stdin before we did")

    def join_readers(self, timeout: float = 0.5) -> None:
        """Wait briefly for the reader threads to reach EOF."""
        for thread in self._reader_threads:
            if thread is not threading.current_thread():
                thread.join(timeout)

    def stderr_tail(self) -> str:
        """Last lines the process wrote to stderr."""
        with self._stderr_lock:
            return "\n".join(self._stderr_tail)

    def events(self) -> Iterator[ProcessEvent]:
        """Yield this process's events until the terminal one.

        Only available when the handle was started without a sink. The
        sequence cannot be restarted: consumed events are gone.
        """
        if self._sink is not None:
            raise RuntimeError("Events are delivered to a sink for this handle")
        while True:
            event = self._events.get()
            yield event
            if event.is_terminal:
                return

    def _emit(self, event: ProcessEvent) -> None:
        if event.is_terminal:
            if self._terminal_sent.is_set():
                return
            self._terminal_sent.set()
        if self._sink is not None:
            self._sink(event)
        else:
            self._events.put(event)

    def _start_readers(self) -> None:
        stdout_thread = threading.Thread(target=self._read_stdout, daemon=True)
        stdout_thread.name = f"{self.command}-stdout-{self.pid}"
        stderr_thread = threading.Thread(target=self._read_stderr, daemon=True)
        stderr_thread.name = f"{self.command}-stderr-{self.pid}"
        self._reader_threads = [stdout_thread, stderr_thread]
        for thread in self._reader_threads:
            thread.start()

    def _read_stdout(self) -> None:
        stream = self.process.stdout
        try:
            while True:
                chunk = stream.read(self.chunk_size)
                if not chunk:
                    break
                self._emit(ProcessEvent(ProcessEventKind.STDOUT, self, data=chunk))
        except (OSError, ValueError) as e:
            if not self.stopping:
                logger.error(f"{self.command} (pid {self.pid}) stdout reader failed: {e}")
                self._emit(ProcessEvent(ProcessEventKind.FAILED, self, error=str(e)))
                return
            # The pipe was closed underneath us (process killed)
            logger.debug(f"{self.command} stdout reader stopped: {e}")
        returncode = self.process.wait()
        # Let stderr finish so the tail is complete when EXITED is handled.
        stderr_thread = self._reader_threads[1] if len(self._reader_threads) > 1 else None
        if stderr_thread is not None:
            stderr_thread.join(timeout=1.0)
        logger.debug(f"{self.command} (pid {self.pid}) exited with code {returncode}")
        self._emit(ProcessEvent(ProcessEventKind.EXITED, self, returncode=returncode))

    def _read_stderr(self) -> None:
        try:
            for raw_line in iter(self.process.stderr.readline, b""):
                line = raw_line.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                with self._stderr_lock:
                    self._stderr_tail.append(line)
                logger.debug(f"{self.command} stderr: {line}")
                self._emit(ProcessEvent(ProcessEventKind.STDERR, self, data=raw_line))
        except (OSError, ValueError) as e:
            logger.debug(f"{self.command} stderr reader stopped: {e}")


class ProcessRunner:
    """Starts external commands and stops them within a bounded time."""

    def __init__(self, chunk_size: int = 4096, stderr_tail_lines: int = 20):
        self.chunk_size = chunk_size
        self.stderr_tail_lines = stderr_tail_lines

    @staticmethod
    def which(executable: str) -> Optional[str]:
        """Locate an executable; returns None if it is not installed."""
        return shutil.which(executable)

    def start(self, command: str, args: Sequence[str],
              sink: Optional[EventSink] = None, stdin: bool = False) -> ProcessHandle:
        """Spawn `command` with `args` and start reading its output.

        Raises:
            SpawnError: if the process could not be created.
        """
        argv = [command, *args]
        logger.info(f"Spawning process: {' '.join(argv)}")
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE if stdin else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {command}: {e}")
            raise SpawnError(f"Failed to start {command}: {e}") from e

        handle = ProcessHandle(process, command, args, sink=sink,
                               chunk_size=self.chunk_size,
                               stderr_tail_lines=self.stderr_tail_lines)
        handle._emit(ProcessEvent(ProcessEventKind.STARTED, handle))
        handle._start_readers()
        return handle

    def stop(self, handle: ProcessHandle, timeout: float = 1.0) -> Optional[int]:
        """Terminate a process and wait at most `timeout` seconds for it.

        A process that ignores SIGTERM is killed once the timeout elapses.
        Safe to call more than once and on processes that already exited.
        """
        handle.stopping = True
        if not handle.is_alive():
            return handle.returncode

        logger.info(f"Stopping {handle.command} (pid {handle.pid})")
        try:
            handle.process.terminate()
        except ProcessLookupError:
            return handle.wait(timeout=timeout)

        returncode = handle.wait(timeout=timeout)
        if returncode is None:
            logger.warning(f"{handle.command} (pid {handle.pid}) did not exit within "
                           f"{timeout}s of SIGTERM, killing it")
            handle.process.kill()
            returncode = handle.wait(timeout=timeout)
            if returncode is None:
                logger.warning(f"{handle.command} (pid {handle.pid}) still running after kill")
        return returncode
