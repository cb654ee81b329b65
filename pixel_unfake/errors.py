"""Exception types raised by the processing engine."""

from __future__ import annotations


class UnfakeError(Exception):
    """Base class for every error the engine raises on purpose."""


class InputError(UnfakeError, ValueError):
    """The source image or the options cannot be processed."""


class DependencyUnavailable(UnfakeError, RuntimeError):
    """The computer-vision backend failed to load."""


class StageFailure(UnfakeError, RuntimeError):
    """A processing stage failed while running."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class EmptyResult(UnfakeError):
    """Processing produced an image with no pixels."""


class PipelineCancelled(UnfakeError):
    """The caller asked for the running pipeline to stop."""
