"""
Inference interfaces.

The pipeline only depends on these protocols; the torch implementations live
in extractor.py and head.py.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

import numpy as np

# Fixed-length float32 feature vector for one frame.
Embedding = np.ndarray


class FeatureExtractor(Protocol):
    @property
    def embedding_dim(self) -> int:
        ...

    def load(self) -> "FeatureExtractor":
        ...

    def embed(self, frame: np.ndarray) -> Embedding:
        ...


class ModelStore(Protocol):
    def load(self, key: str) -> Optional[Any]:
        ...

    def save(self, key: str, module: Any) -> None:
        ...


class RemoteSource(Protocol):
    def fetch(self, url: str, options: Optional[Dict[str, Any]] = None) -> Any:
        ...
