from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from inference.extractor import TorchFeatureExtractor
from inference.remote import TorchvisionRemoteSource
from models.config import Config
from observation import LatestFrameSource, create_source_from_config
from observation.base import ObservationSource
from pipeline.controller import PipelineController
from storage.model_cache import ModelCache


@dataclass
class RuntimeContext:
    """Holds the wired-up services for one run; avoids global singletons."""

    config: Config
    source: ObservationSource
    extractor: Any
    controller: PipelineController
    cache: Optional[ModelCache] = None

    # Free-form runtime facts for the status endpoint (start time, etc.)
    system_stats: Dict[str, Any] = field(default_factory=dict)

    def close(self) -> None:
        self.controller.shutdown()
        if self.cache is not None:
            self.cache.close()


def build_context(config: Config) -> RuntimeContext:
    """Create camera, extractor and controller from config."""
    source = create_source_from_config(config.camera.to_dict(), source_id="camera")
    cache = ModelCache(config.extractor.cache_path)
    extractor = TorchFeatureExtractor(
        config.extractor,
        cache,
        TorchvisionRemoteSource(input_size=config.extractor.input_size),
    )
    controller = PipelineController(config, source, extractor)

    if isinstance(source, LatestFrameSource):
        source.on_first_frame(lambda _frame: controller.notify_frame_available())

    return RuntimeContext(
        config=config,
        source=source,
        extractor=extractor,
        controller=controller,
        cache=cache,
    )
