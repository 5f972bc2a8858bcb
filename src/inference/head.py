"""
Trainable classifier head on frozen embeddings.

Dense(hidden, relu) -> Dense(num_classes) with softmax at prediction time.
A new head is built for every training run so weights never leak between runs.
"""

from __future__ import annotations

from typing import Union

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F

_EPS = 1e-7


class ClassifierHead(nn.Module):
    """Small MLP mapping embeddings to class probabilities.

    Input: (batch, embedding_dim) float tensor.
    Output of forward(): (batch, num_classes) logits.
    """

    def __init__(self, embedding_dim: int, num_classes: int, hidden_units: int = 128):
        super().__init__()
        if num_classes < 2:
            raise ValueError(f"num_classes must be >= 2, got {num_classes}")
        self.embedding_dim = embedding_dim
        self.num_classes = num_classes
        self.net = nn.Sequential(
            nn.Linear(embedding_dim, hidden_units),
            nn.ReLU(),
            nn.Linear(hidden_units, num_classes),
        )
        self.trained = False

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.net(x)

    def loss(self, logits: torch.Tensor, one_hot: torch.Tensor) -> torch.Tensor:
        """Binary cross-entropy for two classes, categorical cross-entropy otherwise.

        Both are computed on the softmax output against one-hot targets.
        """
        if self.num_classes == 2:
            probs = torch.softmax(logits, dim=-1).clamp(_EPS, 1.0 - _EPS)
            return F.binary_cross_entropy(probs, one_hot)
        return -(one_hot * F.log_softmax(logits, dim=-1)).sum(dim=-1).mean()

    def predict_proba(self, embedding: Union[np.ndarray, torch.Tensor]) -> np.ndarray:
        """Softmax probabilities; 1-D input gives a 1-D result."""
        x = torch.as_tensor(np.asarray(embedding), dtype=torch.float32)
        single = x.dim() == 1
        if single:
            x = x.unsqueeze(0)

        self.eval()
        with torch.no_grad():
            probs = torch.softmax(self.forward(x), dim=-1)

        out = probs.cpu().numpy()
        return out[0] if single else out
