"""
Typed models for the transfer-cam application.

These models provide strong typing for frames, pipeline status and
configuration. Use the from_dict adapters to convert from raw config dicts.
"""

from .frame import FrameData
from .status import PipelinePhase, PipelineStatus, Prediction
from .config import (
    Config,
    CameraConfig,
    ExtractorConfig,
    SchedulerConfig,
    TrainingConfig,
    WebConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Status
    "PipelinePhase",
    "PipelineStatus",
    "Prediction",
    # Config
    "Config",
    "CameraConfig",
    "ExtractorConfig",
    "SchedulerConfig",
    "TrainingConfig",
    "WebConfig",
]
