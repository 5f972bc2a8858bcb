"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

DEFAULT_CATEGORIES = ["wall", "face", "hand"]
MOBILENET_V3_SMALL_URL = "https://download.pytorch.org/models/mobilenet_v3_small-047dcff4.pth"


@dataclass
class CameraConfig:
    """Camera configuration."""
    backend: str = "opencv"
    device_id: Union[int, str] = 0
    resolution: List[int] = field(default_factory=lambda: [640, 480])
    fps: int = 30
    swap_rb: bool = False
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            backend=d.get("backend", "opencv"),
            device_id=d.get("device_id", 0),
            resolution=d.get("resolution", [640, 480]),
            fps=d.get("fps", 30),
            swap_rb=d.get("swap_rb", False),
            rotate=d.get("rotate", 0),
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "swap_rb": self.swap_rb,
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
        }


@dataclass
class ExtractorConfig:
    """Frozen feature extractor configuration."""
    arch: str = "mobilenet_v3_small"
    url: str = MOBILENET_V3_SMALL_URL
    cache_path: str = "data/model_cache.sqlite"
    cache_key: str = "mobilenet-v3-small-feature-vector"
    input_size: List[int] = field(default_factory=lambda: [224, 224])
    warmup: bool = True

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ExtractorConfig":
        return cls(
            arch=d.get("arch", "mobilenet_v3_small"),
            url=d.get("url", MOBILENET_V3_SMALL_URL),
            cache_path=d.get("cache_path", "data/model_cache.sqlite"),
            cache_key=d.get("cache_key", "mobilenet-v3-small-feature-vector"),
            input_size=d.get("input_size", [224, 224]),
            warmup=d.get("warmup", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "arch": self.arch,
            "url": self.url,
            "cache_path": self.cache_path,
            "cache_key": self.cache_key,
            "input_size": self.input_size,
            "warmup": self.warmup,
        }


@dataclass
class SchedulerConfig:
    """Periodic task cadence (capture and inference)."""
    interval_ms: int = 20

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SchedulerConfig":
        return cls(interval_ms=d.get("interval_ms", 20))

    @property
    def period(self) -> float:
        """Interval in seconds."""
        return self.interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {"interval_ms": self.interval_ms}


@dataclass
class TrainingConfig:
    """Classifier head training configuration."""
    epochs: int = 10
    batch_size: int = 5
    learning_rate: float = 0.001
    hidden_units: int = 128
    require_all_classes: bool = True
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TrainingConfig":
        return cls(
            epochs=d.get("epochs", 10),
            batch_size=d.get("batch_size", 5),
            learning_rate=d.get("learning_rate", 0.001),
            hidden_units=d.get("hidden_units", 128),
            require_all_classes=d.get("require_all_classes", True),
            seed=d.get("seed"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "epochs": self.epochs,
            "batch_size": self.batch_size,
            "learning_rate": self.learning_rate,
            "hidden_units": self.hidden_units,
            "require_all_classes": self.require_all_classes,
        }
        if self.seed is not None:
            d["seed"] = self.seed
        return d


@dataclass
class WebConfig:
    """Web control surface configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "WebConfig":
        return cls(
            enabled=d.get("enabled", True),
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 5000),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "host": self.host, "port": self.port}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    categories: List[str] = field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    camera: CameraConfig = field(default_factory=CameraConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    capture: SchedulerConfig = field(default_factory=SchedulerConfig)
    inference: SchedulerConfig = field(default_factory=SchedulerConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    web: WebConfig = field(default_factory=WebConfig)
    log_path: str = "logs/transfer_cam.log"
    log_level: str = "INFO"

    @property
    def num_classes(self) -> int:
        return len(self.categories)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            categories=list(d.get("categories") or DEFAULT_CATEGORIES),
            camera=CameraConfig.from_dict(d.get("camera", {}) or {}),
            extractor=ExtractorConfig.from_dict(d.get("extractor", {}) or {}),
            capture=SchedulerConfig.from_dict(d.get("capture", {}) or {}),
            inference=SchedulerConfig.from_dict(d.get("inference", {}) or {}),
            training=TrainingConfig.from_dict(d.get("training", {}) or {}),
            web=WebConfig.from_dict(d.get("web", {}) or {}),
            log_path=d.get("log_path", "logs/transfer_cam.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "categories": list(self.categories),
            "camera": self.camera.to_dict(),
            "extractor": self.extractor.to_dict(),
            "capture": self.capture.to_dict(),
            "inference": self.inference.to_dict(),
            "training": self.training.to_dict(),
            "web": self.web.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
