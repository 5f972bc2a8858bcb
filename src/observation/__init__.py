"""
Observation layer for pluggable frame sources.

This layer abstracts where frames come from (webcam, video file, test
fixture) from the capture and inference loops. Each source implements the
ObservationSource interface and returns FrameData objects.
"""

from typing import Any, Dict

from .base import ObservationSource, ObservationConfig
from .latest import LatestFrameSource
from .opencv_source import OpenCVSource, OpenCVSourceConfig


def create_source_from_config(camera_cfg: Dict[str, Any], source_id: str = "camera") -> ObservationSource:
    """Build the shared latest-frame source for the configured camera backend."""
    backend = camera_cfg.get("backend", "opencv")
    if backend != "opencv":
        raise ValueError(f"Unsupported camera backend: {backend}")
    return LatestFrameSource(OpenCVSource(OpenCVSourceConfig.from_camera_config(camera_cfg, source_id)))


__all__ = [
    "ObservationSource",
    "ObservationConfig",
    "LatestFrameSource",
    "OpenCVSource",
    "OpenCVSourceConfig",
    "create_source_from_config",
]
