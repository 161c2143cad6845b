"""
Unit tests for density.py: k-NN density, quickselect and the representative confidence.
"""

import math

import numpy as np
import pytest
from sklearn.neighbors import KDTree

from density import knn_density, neighbour_count, quickselect, representative_confidence


class TestNeighbourCount:
    @pytest.mark.parametrize("n, k", [(1, 1), (7, 1), (8, 1), (16, 2), (80, 10), (1000, 10)])
    def test_clamped(self, n, k):
        assert neighbour_count(n) == k


class TestKnnDensity:
    def test_empty_index_has_no_density(self):
        assert knn_density(None, 0, np.zeros((3, 3))) is None

    def test_single_point_ball(self):
        points = np.array([[0.0, 0.0, 0.0]])
        dens = knn_density(KDTree(points), 1, np.array([[0.5, 0.0, 0.0]]))
        expected = 1.0 / (4.0 / 3.0 * math.pi * 0.5 ** 3)
        assert dens[0] == pytest.approx(expected)

    def test_coincident_points_are_finite(self):
        points = np.ones((16, 3))
        dens = knn_density(KDTree(points), 16, np.ones((1, 3)))
        assert np.isfinite(dens).all()
        assert dens[0] > 1e12

    def test_denser_near_cluster(self, rng):
        points = rng.normal(0.5, 0.05, size=(200, 3))
        dens = knn_density(KDTree(points), 200, np.array([[0.5, 0.5, 0.5], [0.9, 0.1, 0.9]]))
        assert dens[0] > dens[1] > 0


class TestQuickselect:
    """Property: the result is the rank-th largest and the buffer is partitioned around it."""

    @pytest.mark.parametrize("size", range(1, 101))
    def test_partition_property(self, size):
        gen = np.random.default_rng(size)
        values = gen.integers(0, max(2, size // 3), size=size).tolist()
        original = sorted(values, reverse=True)
        for rank in {0, size // 2, size - 1, int(size * 0.2)}:
            buf = list(values)
            result = quickselect(buf, rank, gen)
            assert result == original[rank]
            assert sorted(buf, reverse=True) == original
            assert all(v >= result for v in buf[:rank])
            assert all(v <= result for v in buf[rank + 1:])

    def test_empty_rejected(self, rng):
        with pytest.raises(IndexError):
            quickselect([], 0, rng)

    def test_key(self, rng):
        items = [("a", 3), ("b", 9), ("c", 1), ("d", 5)]
        assert quickselect(items, 1, rng, key=lambda t: t[1]) == ("d", 5)


class TestRepresentativeConfidence:
    def test_empty_is_none(self, rng):
        assert representative_confidence([], rng) is None

    def test_descending_percentile_and_consumed(self, rng):
        samples = [float(v) for v in range(10)]
        assert representative_confidence(samples, rng) == 7.0
        assert samples == []

    def test_single_sample(self, rng):
        assert representative_confidence([0.25], rng) == 0.25
