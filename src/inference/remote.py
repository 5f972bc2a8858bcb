"""
Remote source for the frozen feature extractor.

Downloads pretrained torchvision weights and turns the classification
network into a feature-vector network: the final ImageNet layer is dropped so
the output is the penultimate embedding (1024-d for MobileNetV3-small).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import torch
import torch.nn as nn
import torchvision

IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


class ImageNetNormalize(nn.Module):
    """Map [0, 1] RGB input to the statistics the pretrained weights expect."""

    def __init__(self):
        super().__init__()
        self.register_buffer("mean", torch.tensor(IMAGENET_MEAN).view(1, 3, 1, 1))
        self.register_buffer("std", torch.tensor(IMAGENET_STD).view(1, 3, 1, 1))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return (x - self.mean) / self.std


def build_feature_network(net: nn.Module) -> nn.Module:
    """
    Strip the last classifier layer from a MobileNet-style network.

    Expects the torchvision layout: `features`, `avgpool` and a `classifier`
    Sequential whose last module is the ImageNet projection.
    """
    for attr in ("features", "avgpool", "classifier"):
        if not hasattr(net, attr):
            raise ValueError(f"{type(net).__name__} has no '{attr}' block; cannot build a feature extractor")
    head = list(net.classifier.children())[:-1]
    return nn.Sequential(ImageNetNormalize(), net.features, net.avgpool, nn.Flatten(1), *head)


def freeze(module: nn.Module) -> nn.Module:
    module.eval()
    for param in module.parameters():
        param.requires_grad_(False)
    return module


class TorchvisionRemoteSource:
    """Fetch pretrained weights by URL and return a traced, frozen extractor."""

    def __init__(self, input_size: Sequence[int] = (224, 224), progress: bool = False):
        self.input_size = tuple(input_size)
        self.progress = progress

    def fetch(self, url: str, options: Optional[Dict[str, Any]] = None) -> torch.jit.ScriptModule:
        options = options or {}
        arch = options.get("arch", "mobilenet_v3_small")
        width, height = options.get("input_size", self.input_size)

        builder = torchvision.models.get_model_builder(arch)
        net = builder(weights=None)

        logging.info(f"Fetching {arch} weights from {url}")
        state_dict = torch.hub.load_state_dict_from_url(
            url,
            progress=options.get("progress", self.progress),
            map_location="cpu",
        )
        net.load_state_dict(state_dict)

        feature_net = freeze(build_feature_network(net))
        with torch.no_grad():
            traced = torch.jit.trace(feature_net, torch.zeros(1, 3, height, width))
        return traced
