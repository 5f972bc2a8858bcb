from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PredictionResponse(BaseModel):
    class_index: int
    category: str
    confidence_pct: int = Field(..., description="Argmax probability truncated to whole percent")
    probabilities: List[float]


class StatusResponse(BaseModel):
    """
    Pipeline status optimized for frontend polling.
    Exactly one of counts/progress/prediction is normally set, depending on phase.
    """
    phase: str = Field(..., description="loading|awaiting_camera|ready|collecting|training|predicting")
    group: str = Field(..., description="Phase group; collecting and training share one step")
    message: str
    categories: List[str]
    counts: Optional[Dict[str, int]] = None
    progress: Optional[float] = Field(None, description="Training progress in [0, 1]")
    prediction: Optional[PredictionResponse] = None
    error: Optional[str] = None
    timestamp: float
    uptime_seconds: Optional[int] = None


class TriggerResponse(BaseModel):
    accepted: bool = True
    phase: str
    message: str
