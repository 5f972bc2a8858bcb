"""
Capture loop: while a capture button is held, embed the current frame on
every tick and store it under the active class.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Mapping, Optional

from inference.backend import FeatureExtractor
from observation.base import ObservationSource
from .errors import InvalidLabelError
from .samples import SampleBuffer
from .scheduler import PeriodicTask, Ticker, TickStats


class CaptureScheduler:
    """
    Periodic frame -> embed -> append loop for one class at a time.

    Starting with a different class while active switches the label used by
    subsequent ticks; it does not start a second loop.
    """

    def __init__(
        self,
        source: ObservationSource,
        extractor: FeatureExtractor,
        buffer: SampleBuffer,
        period: float = 0.02,
        ticker: Optional[Ticker] = None,
        on_sample: Optional[Callable[[Mapping[int, int]], None]] = None,
    ):
        self._source = source
        self._extractor = extractor
        self._buffer = buffer
        self._on_sample = on_sample
        self._active_class: Optional[int] = None
        self._lock = threading.Lock()
        self._task = PeriodicTask("capture", period, self._tick, ticker)

    @property
    def active_class(self) -> Optional[int]:
        return self._active_class

    @property
    def is_active(self) -> bool:
        return self._task.is_running

    @property
    def stats(self) -> TickStats:
        return self._task.stats

    def start(self, class_index: int) -> None:
        if not 0 <= class_index < self._buffer.num_classes:
            raise InvalidLabelError(
                f"Class {class_index} out of range [0, {self._buffer.num_classes})"
            )
        with self._lock:
            previous = self._active_class
            self._active_class = class_index
        if previous is not None and previous != class_index:
            logging.info(f"Capture switched from class {previous} to class {class_index}")
        else:
            logging.info(f"Capture started for class {class_index}")
        self._task.start()

    def stop(self) -> None:
        """Halt capture. Safe to call when not active."""
        self._task.stop()
        with self._lock:
            if self._active_class is not None:
                logging.info(
                    f"Capture stopped for class {self._active_class}, "
                    f"{len(self._buffer)} samples total"
                )
            self._active_class = None

    def _tick(self) -> bool:
        class_index = self._active_class
        if class_index is None:
            return False

        frame_data = self._source.read()
        if frame_data is None:
            logging.debug("Capture tick: no frame available")
            return False

        embedding = self._extractor.embed(frame_data.frame)
        self._buffer.append(embedding, class_index)

        if self._on_sample is not None:
            try:
                self._on_sample(self._buffer.counts_by_class())
            except Exception as e:
                logging.warning(f"Capture callback error: {e}")
        return True
