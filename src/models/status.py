"""
Pipeline phase and status models reported to the UI layer.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PipelinePhase(str, Enum):
    """Top-level pipeline phases."""
    LOADING = "loading"
    AWAITING_CAMERA = "awaiting_camera"
    READY = "ready"
    COLLECTING = "collecting"
    TRAINING = "training"
    PREDICTING = "predicting"

    @property
    def group(self) -> str:
        """Phase group: collecting and training share one UI step."""
        if self in (PipelinePhase.COLLECTING, PipelinePhase.TRAINING):
            return "collecting_or_training"
        return self.value


@dataclass(frozen=True)
class Prediction:
    """
    Result of one inference tick.

    Attributes:
        class_index: Argmax label.
        category: Category name for class_index.
        confidence_pct: Argmax probability truncated to whole percent.
        probabilities: Softmax output, one entry per class.
    """
    class_index: int
    category: str
    confidence_pct: int
    probabilities: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class_index": self.class_index,
            "category": self.category,
            "confidence_pct": self.confidence_pct,
            "probabilities": list(self.probabilities),
        }


@dataclass
class PipelineStatus:
    """
    Snapshot of what the UI should render.

    Only the field matching the phase is normally set: counts while
    collecting, progress while training, prediction while predicting.
    """
    phase: PipelinePhase
    message: str
    counts: Optional[Dict[str, int]] = None
    progress: Optional[float] = None
    prediction: Optional[Prediction] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "phase": self.phase.value,
            "group": self.phase.group,
            "message": self.message,
            "counts": dict(self.counts) if self.counts is not None else None,
            "progress": self.progress,
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "error": self.error,
            "timestamp": self.timestamp,
        }
