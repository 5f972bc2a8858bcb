"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
import time
from typing import Dict, Optional

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from models.config import Config
from models.frame import FrameData
from observation.base import ObservationConfig, ObservationSource
from pipeline.errors import LoadError
from pipeline.scheduler import ManualTicker

EMBEDDING_DIM = 16

# Frame fill values the fake extractor maps to well separated clusters.
WALL_VALUE = 10
FACE_VALUE = 120
HAND_VALUE = 240


class FakeCamera(ObservationSource):
    """Always serves a constant frame filled with `value`; None when value is None."""

    def __init__(self, value: Optional[int] = WALL_VALUE, source_id: str = "fake"):
        super().__init__(ObservationConfig(source_id=source_id))
        self.value = value
        self.reads = 0

    def open(self) -> None:
        self._is_open = True
        self._frame_index = 0

    def read(self) -> Optional[FrameData]:
        self.reads += 1
        if not self._is_open or self.value is None:
            return None
        self._frame_index += 1
        frame = np.full((8, 8, 3), self.value, dtype=np.uint8)
        return FrameData.from_numpy(frame, time.time(), self._frame_index, self.source_id)

    def close(self) -> None:
        self._is_open = False


class FlakyCamera(FakeCamera):
    """Fails the first `failures` opens; open() waits on `gate` when one is given."""

    def __init__(self, failures: int = 1, value: Optional[int] = WALL_VALUE,
                 gate: Optional[threading.Event] = None):
        super().__init__(value)
        self.failures = failures
        self.gate = gate
        self.opening = threading.Event()

    def open(self) -> None:
        self.opening.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError(f"Failed to open device {self.source_id} after 3 attempts")
        super().open()


class FakeExtractor:
    """
    Maps a constant frame to a noisy cluster centre.

    The centre is a scaled one-hot vector picked from the pixel value, so
    frames of different fill values land in separable clusters.
    """

    def __init__(self, dim: int = EMBEDDING_DIM, fail_load: bool = False, seed: int = 0):
        self.dim = dim
        self.fail_load = fail_load
        self.loaded = False
        self.embed_calls = 0
        self._rng = np.random.default_rng(seed)

    @property
    def embedding_dim(self) -> int:
        return self.dim

    def load(self):
        if self.fail_load:
            raise LoadError("no cache and no network")
        self.loaded = True
        return self

    def embed(self, frame: np.ndarray) -> np.ndarray:
        if not self.loaded:
            raise LoadError("not loaded")
        self.embed_calls += 1
        centre = np.zeros(self.dim, dtype=np.float32)
        centre[(int(frame[0, 0, 0]) // 16) % self.dim] = 4.0
        noise = self._rng.normal(0.0, 0.05, self.dim).astype(np.float32)
        embedding = centre + noise
        embedding.setflags(write=False)
        return embedding


@pytest.fixture
def fake_camera():
    return FakeCamera()


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def tickers() -> Dict[str, ManualTicker]:
    """ManualTickers keyed by task name ("capture", "inference")."""
    return {}


@pytest.fixture
def ticker_factory(tickers):
    def factory(name: str) -> ManualTicker:
        tickers[name] = ManualTicker()
        return tickers[name]
    return factory


@pytest.fixture
def pipeline_config(tmp_path) -> Config:
    """Three-class config with fast, deterministic training."""
    return Config.from_dict({
        "categories": ["wall", "face", "hand"],
        "training": {"epochs": 10, "batch_size": 5, "learning_rate": 0.001, "seed": 7},
        "extractor": {"cache_path": str(tmp_path / "cache.sqlite")},
        "log_path": str(tmp_path / "test.log"),
    })


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
categories: ["wall", "face", "hand"]

camera:
  backend: "opencv"
  device_id: 0
  resolution: [640, 480]
  fps: 30

extractor:
  cache_path: "data/test_cache.sqlite"
  input_size: [224, 224]

training:
  epochs: 10
  batch_size: 5

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "categories": ["wall", "face", "hand"],
        "camera": {
            "backend": "opencv",
            "device_id": 0,
            "resolution": [1280, 720],
            "fps": 30,
        },
        "extractor": {
            "url": "https://example.invalid/weights.pth",
            "cache_path": "data/test_cache.sqlite",
            "cache_key": "test-extractor",
            "input_size": [224, 224],
        },
        "capture": {"interval_ms": 20},
        "inference": {"interval_ms": 20},
        "training": {
            "epochs": 10,
            "batch_size": 5,
            "learning_rate": 0.001,
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
