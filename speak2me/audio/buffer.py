"""Append-only audio buffer holding the raw PCM of the current capture."""

import logging
import threading
from collections import deque
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class AudioBuffer:
    """Accumulates raw PCM chunks until they are drained for encoding."""

    def __init__(self):
        self.buffer = deque()
        self.lock = threading.Lock()
        self.total_bytes = 0
        self.chunk_count = 0

    def append(self, chunk: bytes) -> None:
        """Add a chunk to the end of the buffer."""
        if not chunk:
            return
        with self.lock:
            self.buffer.append(chunk)
            self.total_bytes += len(chunk)
            self.chunk_count += 1

    def drain(self) -> List[bytes]:
        """Return all buffered chunks in order and leave the buffer empty."""
        with self.lock:
            chunks = list(self.buffer)
            self.buffer.clear()
            self.total_bytes = 0
            self.chunk_count = 0
        logger.debug(f"Drained {len(chunks)} chunks from audio buffer")
        return chunks

    def snapshot(self) -> List[bytes]:
        """Return a copy of the buffered chunks without clearing them."""
        with self.lock:
            return list(self.buffer)

    def is_empty(self) -> bool:
        with self.lock:
            return not self.buffer

    def clear(self) -> None:
        """Discard everything in the buffer."""
        with self.lock:
            self.buffer.clear()
            self.total_bytes = 0
            self.chunk_count = 0
            logger.debug("Audio buffer cleared")

    def get_buffer_stats(self) -> Dict[str, Any]:
        """Get buffer statistics."""
        with self.lock:
            return {
                "chunk_count": self.chunk_count,
                "total_bytes": self.total_bytes,
            }
