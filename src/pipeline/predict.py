"""
Inference loop: classify the current frame on every tick once the head is trained.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, List, Optional

import numpy as np

from inference.backend import FeatureExtractor
from inference.head import ClassifierHead
from models.status import Prediction
from observation.base import ObservationSource
from .errors import ModelNotReadyError
from .scheduler import PeriodicTask, Ticker, TickStats


def to_prediction(probabilities: np.ndarray, categories: List[str]) -> Prediction:
    """Argmax class with its probability truncated to whole percent."""
    index = int(np.argmax(probabilities))
    return Prediction(
        class_index=index,
        category=categories[index],
        confidence_pct=int(math.floor(float(probabilities[index]) * 100)),
        probabilities=[float(p) for p in probabilities],
    )


class InferenceScheduler:
    """Periodic frame -> embed -> head -> Prediction loop."""

    def __init__(
        self,
        source: ObservationSource,
        extractor: FeatureExtractor,
        categories: List[str],
        period: float = 0.02,
        ticker: Optional[Ticker] = None,
        on_prediction: Optional[Callable[[Prediction], None]] = None,
    ):
        self._source = source
        self._extractor = extractor
        self.categories = list(categories)
        self.head: Optional[ClassifierHead] = None
        self.last_prediction: Optional[Prediction] = None
        self._on_prediction = on_prediction
        self._task = PeriodicTask("inference", period, self._tick, ticker)

    @property
    def is_active(self) -> bool:
        return self._task.is_running

    @property
    def stats(self) -> TickStats:
        return self._task.stats

    def start(self) -> None:
        if self.head is None or not self.head.trained:
            raise ModelNotReadyError("Classifier head has not been trained")
        logging.info("Inference started")
        self._task.start()

    def stop(self) -> None:
        self._task.stop()

    def _tick(self) -> bool:
        frame_data = self._source.read()
        if frame_data is None:
            logging.debug("Inference tick: no frame available")
            return False

        embedding = self._extractor.embed(frame_data.frame)
        probabilities = self.head.predict_proba(embedding)
        prediction = to_prediction(probabilities, self.categories)
        self.last_prediction = prediction

        if self._on_prediction is not None:
            try:
                self._on_prediction(prediction)
            except Exception as e:
                logging.warning(f"Prediction callback error: {e}")
        return True
