"""
Two-stage model: frozen feature extractor plus trainable classifier head.
"""

from .backend import Embedding, FeatureExtractor, ModelStore, RemoteSource
from .extractor import TorchFeatureExtractor
from .head import ClassifierHead
from .remote import TorchvisionRemoteSource

__all__ = [
    "Embedding",
    "FeatureExtractor",
    "ModelStore",
    "RemoteSource",
    "TorchFeatureExtractor",
    "ClassifierHead",
    "TorchvisionRemoteSource",
]
