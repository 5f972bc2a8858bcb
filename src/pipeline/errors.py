"""
Exception types raised by the capture/train/predict pipeline.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for pipeline errors."""


class LoadError(PipelineError):
    """The feature extractor could not be loaded from the cache or the remote source."""


class InvalidLabelError(PipelineError, ValueError):
    """A sample label is outside [0, num_classes)."""


class CameraError(PipelineError):
    """The frame source could not be opened."""


class InsufficientDataError(PipelineError):
    """Training was requested without enough collected samples."""


class ModelNotReadyError(PipelineError):
    """Inference was requested before the classifier head was trained."""


class InvalidTransitionError(PipelineError):
    """A trigger was fired in a phase that does not accept it."""

    def __init__(self, action: str, phase):
        self.action = action
        self.phase = phase
        super().__init__(f"Cannot {action} while pipeline is {getattr(phase, 'value', phase)}")
