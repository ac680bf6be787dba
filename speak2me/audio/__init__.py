"""Audio buffering, PCM profile and external tool definitions."""

from .buffer import AudioBuffer
from .pcm import PcmProfile, DEFAULT_PROFILE, peak_level
from .tools import ToolSpec, ToolSet, default_tools

__all__ = [
    'AudioBuffer',
    'PcmProfile',
    'DEFAULT_PROFILE',
    'peak_level',
    'ToolSpec',
    'ToolSet',
    'default_tools',
]
