"""Fixed raw PCM profile shared by the recorder, encoder and transcription backend."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PcmProfile:
    """Raw PCM layout: signed 16-bit little-endian samples."""
    sample_rate: int = 44100
    channels: int = 1
    sample_width: int = 2

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.channels * self.sample_width

    def duration_seconds(self, num_bytes: int) -> float:
        """Playback duration of `num_bytes` of raw audio."""
        return num_bytes / self.bytes_per_second


DEFAULT_PROFILE = PcmProfile()


def peak_level(chunk: bytes) -> float:
    """Return the absolute peak of a s16le chunk, normalized to 0.0-1.0."""
    # A trailing odd byte belongs to the next read from the pipe.
    usable = len(chunk) - (len(chunk) % 2)
    if usable <= 0:
        return 0.0
    samples = np.frombuffer(chunk[:usable], dtype="<i2").astype(np.int32)
    return float(np.max(np.abs(samples))) / 32768.0
