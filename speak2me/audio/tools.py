"""Invocation contracts for the external recorder, encoder and player."""

import sys
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .pcm import PcmProfile, DEFAULT_PROFILE


@dataclass
class ToolSpec:
    """An executable plus its fixed argument profile.

    Arguments may contain `{output}` or `{input}` placeholders, which are
    replaced with a file path when the tool is spawned.
    """
    executable: str
    args: List[str] = field(default_factory=list)

    def build_args(self, **values: str) -> List[str]:
        """Return the argument list with placeholders substituted."""
        built = []
        for arg in self.args:
            for name, value in values.items():
                arg = arg.replace("{" + name + "}", value)
            built.append(arg)
        return built

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolSpec":
        if not data or not data.get("executable"):
            raise ValueError(f"Tool configuration needs an executable: {data}")
        return cls(executable=str(data["executable"]),
                   args=[str(arg) for arg in data.get("args", [])])


@dataclass
class ToolSet:
    """The three external tools the capture core depends on."""
    recorder: ToolSpec
    encoder: ToolSpec
    player: ToolSpec

    @classmethod
    def from_config(cls, tools: Dict[str, Any]) -> "ToolSet":
        return cls(
            recorder=ToolSpec.from_dict(tools.get("recorder")),
            encoder=ToolSpec.from_dict(tools.get("encoder")),
            player=ToolSpec.from_dict(tools.get("player")),
        )


def default_tools(profile: PcmProfile = DEFAULT_PROFILE,
                  platform: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Build the default ffmpeg-based tool configuration for a platform."""
    platform = platform or sys.platform
    rate = str(profile.sample_rate)
    channels = str(profile.channels)

    if platform == "darwin":
        input_args = ["-f", "avfoundation", "-i", ":0"]
        player = {"executable": "afplay", "args": ["{input}"]}
    else:
        input_args = ["-f", "pulse", "-i", "default"]
        player = {
            "executable": "ffplay",
            "args": ["-nodisp", "-autoexit", "-loglevel", "error", "{input}"],
        }

    recorder = {
        "executable": "ffmpeg",
        "args": ["-hide_banner", "-loglevel", "error", *input_args,
                 "-ac", channels, "-ar", rate, "-f", "s16le", "pipe:1"],
    }
    encoder = {
        "executable": "ffmpeg",
        "args": ["-hide_banner", "-loglevel", "error", "-y",
                 "-f", "s16le", "-ar", rate, "-ac", channels, "-i", "pipe:0",
                 "-f", "wav", "{output}"],
    }
    return {"recorder": recorder, "encoder": encoder, "player": player}
