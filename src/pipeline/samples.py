"""
Labelled embedding buffer filled by the capture loop.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from inference.backend import Embedding
from .errors import InvalidLabelError


class SampleBuffer:
    """
    Two index-aligned lists (embeddings, labels) plus per-class counts.

    Invariants:
        counts[c] == number of entries labelled c
        sum(counts) == len(buffer)

    Appends come from the capture timer thread while status readers and the
    training snapshot may run elsewhere, so all access goes through one lock.
    """

    def __init__(self, num_classes: int):
        if num_classes < 2:
            raise ValueError(f"num_classes must be >= 2, got {num_classes}")
        self.num_classes = num_classes
        self._embeddings: List[Embedding] = []
        self._labels: List[int] = []
        self._counts: Dict[int, int] = {c: 0 for c in range(num_classes)}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._labels)

    @property
    def embedding_dim(self) -> Optional[int]:
        """Length of the stored embeddings, None while empty."""
        with self._lock:
            if not self._embeddings:
                return None
            return int(np.shape(self._embeddings[0])[-1])

    def append(self, embedding: Embedding, label: int) -> None:
        """Add one sample. Raises InvalidLabelError for labels outside [0, num_classes)."""
        if isinstance(label, bool) or not isinstance(label, (int, np.integer)):
            raise InvalidLabelError(f"Label must be an integer, got {label!r}")
        label = int(label)
        if not 0 <= label < self.num_classes:
            raise InvalidLabelError(f"Label {label} out of range [0, {self.num_classes})")

        with self._lock:
            if self._embeddings and np.shape(embedding) != np.shape(self._embeddings[0]):
                raise InvalidLabelError(
                    f"Embedding shape {np.shape(embedding)} does not match "
                    f"buffer shape {np.shape(self._embeddings[0])}"
                )
            self._embeddings.append(embedding)
            self._labels.append(label)
            self._counts[label] += 1

    def snapshot(self) -> Tuple[List[Embedding], List[int]]:
        """Copies of the aligned sequences; the buffer itself is untouched."""
        with self._lock:
            return list(self._embeddings), list(self._labels)

    def counts_by_class(self) -> Mapping[int, int]:
        with self._lock:
            return MappingProxyType(dict(self._counts))

    def missing_classes(self) -> List[int]:
        """Classes without a single sample."""
        with self._lock:
            return [c for c, n in self._counts.items() if n == 0]
