"""
Latest-frame wrapper shared by the capture loop, the inference loop and the
preview window.

A single reader thread owns the underlying source (cv2.VideoCapture is not
safe to read from several threads) and keeps only the newest frame.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from models.frame import FrameData
from .base import ObservationConfig, ObservationSource


class LatestFrameSource(ObservationSource):
    """
    Serve the most recent frame from a wrapped source on demand.

    read() never blocks on the camera: it returns the last frame the reader
    thread stored, or None if none has arrived yet.
    """

    def __init__(self, source: ObservationSource, idle_sleep: float = 0.005):
        super().__init__(ObservationConfig(source_id=source.source_id))
        self._source = source
        self._idle_sleep = idle_sleep
        self._frame: Optional[FrameData] = None
        self._frame_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._first_frame_callbacks: List[Callable[[FrameData], None]] = []

    def on_first_frame(self, callback: Callable[[FrameData], None]) -> None:
        """Register a callback fired once, when the first frame arrives."""
        self._first_frame_callbacks.append(callback)

    def open(self) -> None:
        if self._is_open:
            return
        self._source.open()
        self._stop_event.clear()
        self._is_open = True
        self._thread = threading.Thread(
            target=self._reader_loop, name=f"frames-{self.source_id}", daemon=True
        )
        self._thread.start()

    def _reader_loop(self) -> None:
        first = True
        while not self._stop_event.is_set():
            frame_data = self._source.read()
            if frame_data is None:
                self._stop_event.wait(self._idle_sleep)
                continue
            with self._frame_lock:
                self._frame = frame_data
                self._frame_index += 1
            if first:
                first = False
                for callback in self._first_frame_callbacks:
                    try:
                        callback(frame_data)
                    except Exception as e:
                        logging.warning(f"First-frame callback error: {e}")

    def read(self) -> Optional[FrameData]:
        with self._frame_lock:
            return self._frame

    def close(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        self._source.close()
        self._is_open = False
