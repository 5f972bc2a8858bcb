"""
Frozen feature extractor.

Loads a pretrained network once (cache first, remote fallback), warms it up,
and maps camera frames to fixed-length embeddings. The network is never
trained here.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

import cv2
import numpy as np
import torch

from models.config import ExtractorConfig
from models.frame import bgr_to_rgb
from pipeline.errors import LoadError
from .backend import Embedding, ModelStore, RemoteSource


class TorchFeatureExtractor:
    """
    Cached, frozen torch feature extractor.

    Example:
        extractor = TorchFeatureExtractor(cfg, ModelCache(cfg.cache_path), TorchvisionRemoteSource())
        extractor.load()
        embedding = extractor.embed(frame)  # shape (1024,)
    """

    def __init__(self, config: ExtractorConfig, cache: ModelStore, remote: RemoteSource):
        self.config = config
        self._cache = cache
        self._remote = remote
        self._model: Optional[torch.nn.Module] = None
        self._embedding_dim: Optional[int] = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def input_size(self) -> Tuple[int, int]:
        """Expected network input as (width, height)."""
        w, h = self.config.input_size
        return int(w), int(h)

    @property
    def embedding_dim(self) -> Optional[int]:
        """Output length; known after warm-up or the first embed() call."""
        return self._embedding_dim

    def load(self) -> "TorchFeatureExtractor":
        """
        Load the network. Safe to call repeatedly.

        Raises:
            LoadError: If neither the cache nor the remote source can supply it.
        """
        with self._load_lock:
            if self._model is not None:
                return self

            model = self._load_from_cache()
            if model is None:
                model = self._fetch_remote()
                self._store_in_cache(model)

            self._model = model
            logging.info(f"Feature extractor ready: arch={self.config.arch}, input={self.input_size}")

            if self.config.warmup:
                self._warm_up()
        return self

    def _load_from_cache(self) -> Optional[torch.nn.Module]:
        key = self.config.cache_key
        try:
            model = self._cache.load(key)
        except Exception as e:
            logging.warning(f"Model cache read failed for '{key}': {e}")
            return None
        if model is None:
            logging.info(f"No cached extractor under '{key}'")
        return model

    def _fetch_remote(self) -> torch.nn.Module:
        try:
            return self._remote.fetch(
                self.config.url,
                {"arch": self.config.arch, "input_size": self.input_size},
            )
        except Exception as e:
            raise LoadError(
                f"Feature extractor unavailable from cache and {self.config.url}: {e}"
            ) from e

    def _store_in_cache(self, model: torch.nn.Module) -> None:
        try:
            self._cache.save(self.config.cache_key, model)
        except Exception as e:
            logging.warning(f"Could not cache extractor under '{self.config.cache_key}': {e}")

    def _warm_up(self) -> None:
        """Run one zero input so later calls don't pay first-call latency."""
        w, h = self.input_size
        try:
            with torch.inference_mode():
                output = self._model(torch.zeros(1, 3, h, w))
            self._embedding_dim = int(output.shape[-1])
            logging.info(f"Extractor warm-up done, output shape {tuple(output.shape)}")
        except Exception as e:
            logging.warning(f"Extractor warm-up failed (continuing without it): {e}")

    def preprocess(self, frame: np.ndarray) -> torch.Tensor:
        """Resize, convert to RGB, scale to [0, 1] and add the batch dimension."""
        w, h = self.input_size
        rgb = bgr_to_rgb(frame)
        resized = cv2.resize(rgb, (w, h), interpolation=cv2.INTER_LINEAR)
        normalized = resized.astype(np.float32) / 255.0
        return torch.from_numpy(normalized).permute(2, 0, 1).unsqueeze(0)

    def embed(self, frame: np.ndarray) -> Embedding:
        """Return the read-only embedding for one frame."""
        if self._model is None:
            raise LoadError("Feature extractor is not loaded; call load() first")

        batch = self.preprocess(frame)
        with torch.inference_mode():
            output = self._model(batch)

        embedding = output.squeeze(0).cpu().numpy().astype(np.float32, copy=True)
        embedding.setflags(write=False)
        if self._embedding_dim is None:
            self._embedding_dim = int(embedding.shape[0])
        return embedding
