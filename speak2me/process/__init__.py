"""External process supervision."""

from .runner import ProcessEvent, ProcessEventKind, ProcessHandle, ProcessRunner

__all__ = [
    "ProcessEvent",
    "ProcessEventKind",
    "ProcessHandle",
    "ProcessRunner",
]
