"""
Tests for the labelled sample buffer.
"""

import numpy as np
import pytest

from pipeline.errors import InvalidLabelError
from pipeline.samples import SampleBuffer


def _vec(value, dim=4):
    return np.full(dim, value, dtype=np.float32)


class TestSampleBuffer:
    def test_starts_empty(self):
        buffer = SampleBuffer(3)

        assert len(buffer) == 0
        assert buffer.embedding_dim is None
        assert dict(buffer.counts_by_class()) == {0: 0, 1: 0, 2: 0}
        assert buffer.missing_classes() == [0, 1, 2]

    def test_append_keeps_counts_in_sync(self):
        buffer = SampleBuffer(3)
        for label in [0, 0, 2, 1, 0]:
            buffer.append(_vec(label), label)

        counts = buffer.counts_by_class()
        assert dict(counts) == {0: 3, 1: 1, 2: 1}
        assert sum(counts.values()) == len(buffer) == 5
        assert buffer.embedding_dim == 4
        assert buffer.missing_classes() == []

    def test_snapshot_is_aligned_copy(self):
        buffer = SampleBuffer(2)
        buffer.append(_vec(0), 0)
        buffer.append(_vec(1), 1)

        embeddings, labels = buffer.snapshot()
        labels.append(1)

        assert [int(e[0]) for e in embeddings] == [0, 1]
        assert len(buffer) == 2

    def test_counts_view_is_read_only(self):
        buffer = SampleBuffer(2)
        counts = buffer.counts_by_class()

        with pytest.raises(TypeError):
            counts[0] = 10

    @pytest.mark.parametrize("label", [-1, 3, 99])
    def test_out_of_range_label_rejected(self, label):
        buffer = SampleBuffer(3)

        with pytest.raises(InvalidLabelError):
            buffer.append(_vec(0), label)

        assert len(buffer) == 0

    @pytest.mark.parametrize("label", [1.0, "1", True, None])
    def test_non_integer_label_rejected(self, label):
        buffer = SampleBuffer(3)

        with pytest.raises(InvalidLabelError):
            buffer.append(_vec(0), label)

    def test_numpy_integer_label_accepted(self):
        buffer = SampleBuffer(3)
        buffer.append(_vec(0), np.int64(2))

        assert buffer.counts_by_class()[2] == 1

    def test_mismatched_embedding_shape_rejected(self):
        buffer = SampleBuffer(2)
        buffer.append(_vec(0, dim=4), 0)

        with pytest.raises(InvalidLabelError, match="shape"):
            buffer.append(_vec(0, dim=5), 1)

        assert len(buffer) == 1

    def test_invalid_label_is_value_error(self):
        buffer = SampleBuffer(2)

        with pytest.raises(ValueError):
            buffer.append(_vec(0), 2)

    def test_needs_two_classes(self):
        with pytest.raises(ValueError):
            SampleBuffer(1)
