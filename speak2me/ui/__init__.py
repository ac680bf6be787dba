"""Console user interface."""

from .console import ConsoleFrontend

__all__ = ["ConsoleFrontend"]
