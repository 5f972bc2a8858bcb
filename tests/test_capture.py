"""
Tests for the capture loop.
"""

import threading

import pytest

from conftest import FACE_VALUE, FakeCamera, FakeExtractor, WALL_VALUE
from pipeline.capture import CaptureScheduler
from pipeline.errors import InvalidLabelError
from pipeline.samples import SampleBuffer
from pipeline.scheduler import ManualTicker


@pytest.fixture
def camera():
    cam = FakeCamera(WALL_VALUE)
    cam.open()
    return cam


@pytest.fixture
def extractor():
    return FakeExtractor().load()


def _scheduler(camera, extractor, buffer, ticker, **kwargs):
    return CaptureScheduler(camera, extractor, buffer, period=0.02, ticker=ticker, **kwargs)


class TestCaptureScheduler:
    def test_each_tick_appends_one_sample(self, camera, extractor):
        buffer = SampleBuffer(3)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker)

        capture.start(1)
        ticker.tick(4)
        capture.stop()

        assert len(buffer) == 4
        assert dict(buffer.counts_by_class()) == {0: 0, 1: 4, 2: 0}

    def test_start_then_immediate_stop_adds_nothing(self, camera, extractor):
        buffer = SampleBuffer(3)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker)

        capture.start(0)
        capture.stop()
        ticker.tick()

        assert len(buffer) == 0
        assert not capture.is_active
        assert capture.active_class is None

    def test_stop_when_inactive_is_noop(self, camera, extractor):
        capture = _scheduler(camera, extractor, SampleBuffer(2), ManualTicker())

        capture.stop()

        assert not capture.is_active

    def test_switching_class_relabels_without_second_loop(self, camera, extractor):
        buffer = SampleBuffer(3)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker)

        capture.start(0)
        ticker.tick(2)
        camera.value = FACE_VALUE
        capture.start(1)
        ticker.tick(3)
        capture.stop()

        assert dict(buffer.counts_by_class()) == {0: 2, 1: 3, 2: 0}
        assert capture.stats.processed == 5

    def test_out_of_range_class_rejected(self, camera, extractor):
        capture = _scheduler(camera, extractor, SampleBuffer(3), ManualTicker())

        with pytest.raises(InvalidLabelError):
            capture.start(3)

        assert not capture.is_active

    def test_missing_frame_counts_as_missed(self, extractor):
        camera = FakeCamera(None)
        camera.open()
        buffer = SampleBuffer(2)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker)

        capture.start(0)
        ticker.tick(2)

        assert len(buffer) == 0
        assert capture.stats.missed == 2
        assert extractor.embed_calls == 0

    def test_on_sample_receives_counts(self, camera, extractor):
        seen = []
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, SampleBuffer(2), ticker, on_sample=lambda c: seen.append(dict(c)))

        capture.start(1)
        ticker.tick(2)

        assert seen == [{0: 0, 1: 1}, {0: 0, 1: 2}]

    def test_callback_error_keeps_sample(self, camera, extractor):
        def broken(_counts):
            raise RuntimeError("ui gone")

        buffer = SampleBuffer(2)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker, on_sample=broken)

        capture.start(0)
        ticker.tick()

        assert len(buffer) == 1
        assert capture.stats.processed == 1

    def test_slow_embed_never_overlaps(self, camera):
        """A tick that fires while embedding is in progress is skipped."""

        class GatedExtractor(FakeExtractor):
            def __init__(self):
                super().__init__()
                self.entered = threading.Event()
                self.release = threading.Event()

            def embed(self, frame):
                self.entered.set()
                self.release.wait(timeout=2.0)
                return super().embed(frame)

        extractor = GatedExtractor().load()
        buffer = SampleBuffer(2)
        ticker = ManualTicker()
        capture = _scheduler(camera, extractor, buffer, ticker)
        capture.start(0)

        first = threading.Thread(target=ticker.tick)
        first.start()
        assert extractor.entered.wait(timeout=2.0)
        ticker.tick()
        extractor.release.set()
        first.join(timeout=2.0)

        assert len(buffer) == 1
        assert capture.stats.skipped == 1
