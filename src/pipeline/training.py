"""
Training job for the classifier head.

Steps for one run:
1. jointly shuffle embeddings and labels with one shared permutation
2. one-hot encode labels -> [N, num_classes]
3. stack embeddings -> [N, embedding_dim]
4. mini-batch Adam over `epochs`, reporting (epoch + 1) / epochs after each
5. drop the intermediate tensors on every exit path
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import torch
import torch.nn.functional as F
from torch.utils.data import DataLoader, TensorDataset

from inference.backend import Embedding
from inference.head import ClassifierHead
from .errors import InsufficientDataError
from .samples import SampleBuffer


def joint_shuffle(
    embeddings: Sequence[Embedding],
    labels: Sequence[int],
    rng: Optional[np.random.Generator] = None,
) -> Tuple[List[Embedding], List[int]]:
    """Apply one permutation to both sequences so pairs stay aligned."""
    if len(embeddings) != len(labels):
        raise ValueError(f"Length mismatch: {len(embeddings)} embeddings, {len(labels)} labels")
    rng = rng or np.random.default_rng()
    order = rng.permutation(len(labels))
    return [embeddings[i] for i in order], [labels[i] for i in order]


def check_trainable(buffer: SampleBuffer, require_all_classes: bool = True) -> None:
    """Raise InsufficientDataError unless the buffer can be trained on."""
    if len(buffer) < 1:
        raise InsufficientDataError("No samples collected yet")
    if require_all_classes:
        missing = buffer.missing_classes()
        if missing:
            raise InsufficientDataError(f"No samples collected for classes {missing}")


class TrainingTensors:
    """Intermediate tensors for one run."""

    def __init__(self):
        self.label_ids: Optional[torch.Tensor] = None
        self.one_hot: Optional[torch.Tensor] = None
        self.inputs: Optional[torch.Tensor] = None
        self.released = False

    def release(self) -> None:
        self.label_ids = None
        self.one_hot = None
        self.inputs = None
        self.released = True


@contextmanager
def training_tensors(
    embeddings: Sequence[Embedding],
    labels: Sequence[int],
    num_classes: int,
) -> Iterator[TrainingTensors]:
    """Encode a shuffled snapshot; the tensors are released when the block exits."""
    tensors = TrainingTensors()
    try:
        tensors.label_ids = torch.tensor(list(labels), dtype=torch.long)
        tensors.one_hot = F.one_hot(tensors.label_ids, num_classes).float()
        tensors.inputs = torch.from_numpy(np.stack(embeddings).astype(np.float32))
        yield tensors
    finally:
        tensors.release()
        logging.debug("Training tensors released")


class TrainingJob:
    """One training run of a freshly built ClassifierHead."""

    def __init__(
        self,
        learning_rate: float = 0.001,
        require_all_classes: bool = True,
        seed: Optional[int] = None,
    ):
        self.learning_rate = learning_rate
        self.require_all_classes = require_all_classes
        self.seed = seed
        self.tensors: Optional[TrainingTensors] = None
        self.history: List[dict] = []

    def run(
        self,
        buffer: SampleBuffer,
        head: ClassifierHead,
        epochs: int,
        batch_size: int,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> ClassifierHead:
        """Train `head` on the buffer contents and return it.

        Raises:
            InsufficientDataError: Empty buffer, or a class without samples.
        """
        if epochs < 1:
            raise ValueError(f"epochs must be >= 1, got {epochs}")
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        check_trainable(buffer, self.require_all_classes)

        embeddings, labels = buffer.snapshot()
        embeddings, labels = joint_shuffle(embeddings, labels, np.random.default_rng(self.seed))

        generator = torch.Generator()
        if self.seed is not None:
            generator.manual_seed(self.seed)
        else:
            generator.seed()

        optimizer = torch.optim.Adam(head.parameters(), lr=self.learning_rate)
        self.history = []

        logging.info(
            f"Training head on {len(labels)} samples: epochs={epochs}, "
            f"batch_size={batch_size}, classes={head.num_classes}"
        )

        with training_tensors(embeddings, labels, head.num_classes) as tensors:
            self.tensors = tensors
            loader = DataLoader(
                TensorDataset(tensors.inputs, tensors.one_hot, tensors.label_ids),
                batch_size=batch_size,
                shuffle=True,
                generator=generator,
            )
            try:
                self._fit(head, optimizer, loader, epochs, len(labels), on_progress)
            finally:
                # The dataset holds the tensors; drop it before they are released.
                del loader

        head.eval()
        head.trained = True
        return head

    def _fit(
        self,
        head: ClassifierHead,
        optimizer: torch.optim.Optimizer,
        loader: DataLoader,
        epochs: int,
        n: int,
        on_progress: Optional[Callable[[float], None]],
    ) -> None:
        for epoch in range(epochs):
            head.train()
            epoch_loss = 0.0
            correct = 0
            for inputs, targets, label_ids in loader:
                optimizer.zero_grad()
                logits = head(inputs)
                loss = head.loss(logits, targets)
                loss.backward()
                optimizer.step()

                epoch_loss += loss.item() * inputs.shape[0]
                correct += int((logits.argmax(dim=-1) == label_ids).sum().item())

            metrics = {
                "epoch": epoch,
                "loss": epoch_loss / n,
                "accuracy": correct / n,
            }
            self.history.append(metrics)
            logging.info(
                f"Epoch {epoch + 1}/{epochs}: loss={metrics['loss']:.4f}, "
                f"accuracy={metrics['accuracy']:.3f}"
            )

            if on_progress is not None:
                on_progress((epoch + 1) / epochs)
