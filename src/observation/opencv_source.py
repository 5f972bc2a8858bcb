"""
cv2.VideoCapture frame source for USB webcams and video files.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import cv2
import numpy as np

from models.frame import FrameData
from .base import ObservationConfig, ObservationSource

_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


@dataclass
class OpenCVSourceConfig(ObservationConfig):
    """
    Attributes:
        device_id: Camera index or path to a video file.
        buffer_size: Driver-side frame buffer; 1 keeps live frames fresh.
        max_retries: Open attempts before giving up.
        swap_rb: Swap red and blue (some drivers deliver RGB).
        rotate: Clockwise rotation in degrees, one of 0/90/180/270.
        flip_horizontal: Mirror the image (natural for front-facing webcams).
        flip_vertical: Flip upside down.
    """
    device_id: Union[int, str] = 0
    buffer_size: int = 1
    max_retries: int = 3
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_camera_config(cls, camera_cfg: Dict[str, Any], source_id: str = "camera") -> "OpenCVSourceConfig":
        """Adapter: build from the `camera` section of the app config."""
        resolution = camera_cfg.get("resolution")
        return cls(
            source_id=source_id,
            resolution=tuple(resolution) if resolution else None,
            fps=camera_cfg.get("fps"),
            device_id=camera_cfg.get("device_id", 0),
            buffer_size=camera_cfg.get("buffer_size", 1),
            max_retries=camera_cfg.get("max_retries", 3),
            swap_rb=camera_cfg.get("swap_rb", False),
            rotate=camera_cfg.get("rotate", 0) or 0,
            flip_horizontal=camera_cfg.get("flip_horizontal", False),
            flip_vertical=camera_cfg.get("flip_vertical", False),
        )


def _build_transforms(cfg: OpenCVSourceConfig) -> List[Callable[[np.ndarray], np.ndarray]]:
    steps: List[Callable[[np.ndarray], np.ndarray]] = []
    if cfg.rotate in _ROTATIONS:
        code = _ROTATIONS[cfg.rotate]
        steps.append(lambda f: cv2.rotate(f, code))
    elif cfg.rotate:
        logging.warning(f"Ignoring unsupported rotation {cfg.rotate}")

    if cfg.flip_horizontal and cfg.flip_vertical:
        steps.append(lambda f: cv2.flip(f, -1))
    elif cfg.flip_horizontal:
        steps.append(lambda f: cv2.flip(f, 1))
    elif cfg.flip_vertical:
        steps.append(lambda f: cv2.flip(f, 0))

    if cfg.swap_rb:
        steps.append(lambda f: np.ascontiguousarray(f[..., ::-1]))
    return steps


class OpenCVSource(ObservationSource):
    """
    Example:
        with OpenCVSource(OpenCVSourceConfig(device_id=0, resolution=(640, 480))) as cam:
            frame_data = cam.read()
    """

    def __init__(self, config: OpenCVSourceConfig):
        super().__init__(config)
        self._opencv_config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._transforms = _build_transforms(config)

    @property
    def device_id(self) -> Union[int, str]:
        return self._opencv_config.device_id

    @property
    def is_file(self) -> bool:
        return isinstance(self.device_id, str) and os.path.exists(self.device_id)

    def open(self) -> None:
        if self._is_open:
            return

        attempts = max(1, self._opencv_config.max_retries)
        for attempt in range(attempts):
            if attempt:
                wait_time = min(2 ** attempt, 10)
                logging.warning(
                    f"Failed to open device {self.device_id}, retrying in {wait_time}s "
                    f"(attempt {attempt + 1}/{attempts})"
                )
                time.sleep(wait_time)
            cap = cv2.VideoCapture(self.device_id)
            if cap.isOpened():
                self._cap = cap
                break
            cap.release()
        else:
            raise RuntimeError(f"Failed to open device {self.device_id} after {attempts} attempts")

        self._configure_capture()
        self._is_open = True
        self._frame_index = 0
        logging.info(f"Camera opened: source_id={self.source_id}, device={self.device_id}")

    def _configure_capture(self) -> None:
        """Apply resolution/fps/buffer requests to live cameras (files ignore them)."""
        cfg = self._opencv_config
        if not isinstance(self.device_id, int):
            return
        if cfg.resolution:
            w, h = cfg.resolution
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        if cfg.fps:
            self._cap.set(cv2.CAP_PROP_FPS, cfg.fps)
        self._cap.set(cv2.CAP_PROP_BUFFERSIZE, cfg.buffer_size)
        logging.info(
            f"Camera reports {int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x"
            f"{int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))} "
            f"@ {self._cap.get(cv2.CAP_PROP_FPS):.0f} fps"
        )

    def read(self) -> Optional[FrameData]:
        if not self._is_open or self._cap is None:
            return None

        ok, frame = self._cap.read()
        if not ok or frame is None:
            if self.is_file:
                logging.info("End of video file reached")
            else:
                logging.warning(f"Failed to read frame from {self.source_id}")
            return None

        self._frame_index += 1
        return FrameData.from_numpy(
            self._apply_transforms(frame),
            timestamp=time.time(),
            frame_index=self._frame_index,
            source=self.source_id,
        )

    def _apply_transforms(self, frame: np.ndarray) -> np.ndarray:
        for step in self._transforms:
            frame = step(frame)
        return frame

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        if self._is_open:
            logging.info(f"Camera closed: source_id={self.source_id}")
        self._is_open = False
