"""
Tests for the frozen feature extractor and its remote source.
"""

import numpy as np
import pytest
import torch
import torch.nn as nn

from inference.extractor import TorchFeatureExtractor
from inference.remote import ImageNetNormalize, TorchvisionRemoteSource, build_feature_network, freeze
from models.config import ExtractorConfig
from pipeline.errors import LoadError


class ChannelMeans(nn.Module):
    """Tiny stand-in network: (1, 3, H, W) -> (1, 3)."""

    def forward(self, x):
        return x.mean(dim=(2, 3))


class ZeroInputFails(nn.Module):
    def forward(self, x):
        if not bool(x.any()):
            raise RuntimeError("zero input not supported")
        return x.mean(dim=(2, 3))


class DictCache:
    def __init__(self, models=None, fail_read=False, fail_write=False):
        self.models = dict(models or {})
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.saved = []

    def load(self, key):
        if self.fail_read:
            raise OSError("cache corrupted")
        return self.models.get(key)

    def save(self, key, module):
        if self.fail_write:
            raise OSError("disk full")
        self.saved.append(key)
        self.models[key] = module


class StaticRemote:
    def __init__(self, model=None, error=None):
        self.model = model
        self.error = error
        self.calls = []

    def fetch(self, url, options=None):
        self.calls.append((url, options))
        if self.error is not None:
            raise self.error
        return self.model


@pytest.fixture
def config():
    return ExtractorConfig(cache_key="test-net", url="https://example.invalid/net.pth", input_size=[32, 24])


def _frame(value=128):
    return np.full((48, 64, 3), value, dtype=np.uint8)


class TestTorchFeatureExtractor:
    def test_cache_hit_skips_remote(self, config):
        cache = DictCache({"test-net": ChannelMeans()})
        remote = StaticRemote(error=AssertionError("must not be called"))

        extractor = TorchFeatureExtractor(config, cache, remote).load()

        assert extractor.is_loaded
        assert remote.calls == []
        assert extractor.embedding_dim == 3

    def test_cache_miss_fetches_and_saves(self, config):
        cache = DictCache()
        remote = StaticRemote(model=ChannelMeans())

        TorchFeatureExtractor(config, cache, remote).load()

        assert len(remote.calls) == 1
        url, options = remote.calls[0]
        assert url == config.url
        assert options["input_size"] == (32, 24)
        assert cache.saved == ["test-net"]

    def test_cache_read_error_falls_back_to_remote(self, config):
        cache = DictCache(fail_read=True)
        remote = StaticRemote(model=ChannelMeans())

        extractor = TorchFeatureExtractor(config, cache, remote).load()

        assert extractor.is_loaded
        assert len(remote.calls) == 1

    def test_cache_write_error_is_not_fatal(self, config):
        extractor = TorchFeatureExtractor(config, DictCache(fail_write=True), StaticRemote(model=ChannelMeans()))

        extractor.load()

        assert extractor.is_loaded

    def test_both_sources_fail(self, config):
        remote = StaticRemote(error=ConnectionError("offline"))
        extractor = TorchFeatureExtractor(config, DictCache(), remote)

        with pytest.raises(LoadError, match="offline"):
            extractor.load()

        assert not extractor.is_loaded

    def test_load_is_idempotent(self, config):
        remote = StaticRemote(model=ChannelMeans())
        extractor = TorchFeatureExtractor(config, DictCache(), remote)

        extractor.load()
        extractor.load()

        assert len(remote.calls) == 1

    def test_warm_up_failure_is_not_fatal(self, config):
        extractor = TorchFeatureExtractor(config, DictCache({"test-net": ZeroInputFails()}), StaticRemote())

        extractor.load()

        assert extractor.is_loaded
        assert extractor.embedding_dim is None
        embedding = extractor.embed(_frame())
        assert extractor.embedding_dim == 3
        assert embedding.shape == (3,)

    def test_embed_before_load_raises(self, config):
        extractor = TorchFeatureExtractor(config, DictCache(), StaticRemote())

        with pytest.raises(LoadError):
            extractor.embed(_frame())

    def test_embed_is_read_only_float32(self, config):
        extractor = TorchFeatureExtractor(config, DictCache({"test-net": ChannelMeans()}), StaticRemote()).load()

        embedding = extractor.embed(_frame(255))

        assert embedding.dtype == np.float32
        assert not embedding.flags.writeable
        assert np.allclose(embedding, 1.0)

    def test_preprocess_resizes_and_converts_to_rgb(self, config):
        extractor = TorchFeatureExtractor(config, DictCache(), StaticRemote())
        frame = np.zeros((48, 64, 3), dtype=np.uint8)
        frame[..., 0] = 255  # blue channel in BGR

        batch = extractor.preprocess(frame)

        assert batch.shape == (1, 3, 24, 32)
        assert float(batch[0, 2].mean()) == pytest.approx(1.0)
        assert float(batch[0, 0].mean()) == pytest.approx(0.0)

    def test_same_frame_same_embedding(self, config):
        extractor = TorchFeatureExtractor(config, DictCache({"test-net": ChannelMeans()}), StaticRemote()).load()

        a = extractor.embed(_frame(40))
        b = extractor.embed(_frame(40))

        assert np.array_equal(a, b)


class TestFeatureNetwork:
    def test_mobilenet_feature_vector(self):
        import torchvision

        net = torchvision.models.mobilenet_v3_small(weights=None)
        features = freeze(build_feature_network(net))

        with torch.no_grad():
            out = features(torch.zeros(1, 3, 224, 224))

        assert out.shape == (1, 1024)
        assert isinstance(features[0], ImageNetNormalize)
        assert all(not p.requires_grad for p in features.parameters())

    def test_rejects_unknown_layout(self):
        with pytest.raises(ValueError, match="features"):
            build_feature_network(nn.Linear(4, 2))

    def test_remote_fetch_traces_network(self, monkeypatch):
        import torchvision

        weights = torchvision.models.mobilenet_v3_small(weights=None).state_dict()
        monkeypatch.setattr(torch.hub, "load_state_dict_from_url", lambda url, **kwargs: weights)

        traced = TorchvisionRemoteSource(input_size=(64, 64)).fetch("https://example.invalid/w.pth")

        with torch.no_grad():
            out = traced(torch.rand(1, 3, 64, 64))
        assert out.shape == (1, 1024)
