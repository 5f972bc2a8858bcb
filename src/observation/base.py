"""
Frame source contract.

The capture loop, the inference loop and the preview window all ask the same
question: "what does the camera see right now?". A source answers it with a
FrameData, or None when it has nothing to offer yet.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from models.frame import FrameData


@dataclass
class ObservationConfig:
    """
    Settings shared by all sources.

    Attributes:
        source_id: Name stamped on every FrameData (e.g. "camera").
        resolution: Requested (width, height); None keeps the device default.
        fps: Requested frame rate; None keeps the device default.
    """
    source_id: str = "default"
    resolution: Optional[Tuple[int, int]] = None
    fps: Optional[int] = None


class ObservationSource(ABC):
    """
    open() -> read()* -> close(), or use it as a context manager.

    read() must never raise for an ordinary dropped frame; it returns None and
    the periodic loops count the tick as missed.
    """

    def __init__(self, config: ObservationConfig):
        self._config = config
        self._is_open = False
        self._frame_index = 0

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def frame_index(self) -> int:
        """Frames delivered since open()."""
        return self._frame_index

    @abstractmethod
    def open(self) -> None:
        """Acquire the device. Raises RuntimeError if it cannot be opened."""

    @abstractmethod
    def read(self) -> Optional[FrameData]:
        """The current frame, or None if there is none."""

    @abstractmethod
    def close(self) -> None:
        """Release the device. Idempotent."""

    def __enter__(self) -> "ObservationSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
