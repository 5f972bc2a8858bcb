"""
Pipeline module for transfer-cam.

The pipeline orchestrates the full flow:
- Sample collection from the live camera (capture loop)
- Training the classifier head on collected embeddings
- Live classification (inference loop)
- Phase transitions and status reporting (controller)
"""

from .errors import (
    PipelineError,
    LoadError,
    InvalidLabelError,
    InsufficientDataError,
    ModelNotReadyError,
    InvalidTransitionError,
)
from .samples import SampleBuffer
from .scheduler import ManualTicker, PeriodicTask, ThreadTicker
from .capture import CaptureScheduler
from .training import TrainingJob, joint_shuffle
from .predict import InferenceScheduler
from .controller import PipelineController

__all__ = [
    "PipelineError",
    "LoadError",
    "InvalidLabelError",
    "InsufficientDataError",
    "ModelNotReadyError",
    "InvalidTransitionError",
    "SampleBuffer",
    "ManualTicker",
    "PeriodicTask",
    "ThreadTicker",
    "CaptureScheduler",
    "TrainingJob",
    "joint_shuffle",
    "InferenceScheduler",
    "PipelineController",
]
