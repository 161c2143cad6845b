"""
Unit tests for hungarian.py: maximum-weight perfect matching with forbidden edges.
"""

import itertools

import numpy as np
import pytest
from scipy.optimize import linear_sum_assignment

from hungarian import maximum_matching


def total(costs, assignment):
    return sum(costs[i][j] for i, j in enumerate(assignment))


def brute_force_best(costs):
    n = len(costs)
    best = None
    for perm in itertools.permutations(range(n)):
        if any(costs[i][j] is None for i, j in enumerate(perm)):
            continue
        value = total(costs, perm)
        if best is None or value > best:
            best = value
    return best


class TestExamples:
    """Small hand-checked matrices."""

    def test_negative_weights(self):
        costs = [[-8., -4., -7.], [-6., -2., -3.], [-9., -4., -8.]]
        assert maximum_matching(costs) == [0, 2, 1]

    def test_forbidden_corner(self):
        costs = [[None, -4., -7.], [-6., -2., -3.], [-9., -4., -8.]]
        assert maximum_matching(costs) == [1, 2, 0]

    def test_forbidden_column_is_infeasible(self):
        costs = [[None, -4., -7.], [None, -2., -3.], [None, -4., -8.]]
        assert maximum_matching(costs) is None

    def test_positive_weights(self):
        costs = [[100., 110., 90.], [95., 130., 75.], [95., 140., 65.]]
        assert maximum_matching(costs) == [2, 0, 1]

    def test_empty_matrix(self):
        assert maximum_matching([]) == []

    def test_all_forbidden(self):
        assert maximum_matching([[None, None], [None, None]]) is None

    def test_single_cell(self):
        assert maximum_matching([[3.5]]) == [0]

    def test_non_square_rejected(self):
        with pytest.raises(ValueError):
            maximum_matching([[1., 2.], [3.]])


class TestTightnessTracking:
    """Large-magnitude weights where an epsilon-based tightness test would stall."""

    MATRIX = [
        [3052265.763914855, 3051048.084988203, 45.073006316285735, 1294345.8137656434,
         5898072.435256591, 3052675.829981847, 1552774.9128819676, 1552728.4503640207],
        [1156951.093342854, 1.134599964850414, 7649154.094641632, 555734.4444284381,
         1157008.9535065796, 7649155.83921888, 7649157.015021505, 60.438339297708175],
        [5319458.202466325, 926169.1991026127, 926220.7540678747, 4295463.453554934,
         4295465.153555874, 97878.14460299305, 704.6096895474138, 4295464.157698463],
        [63461.42078957725, 36361925.9918591, 47703556.83654001, 11278226.089127451,
         52.97836939994223, 36361927.55345198, 36361925.568258174, 11278278.652790288],
        [7517468.676308601, 7517450.04143544, 18214.102036218326, 4310.718371037171,
         51338675.91309436, 58874333.48451123, 51338675.4767505, 51338699.67340185],
        [1147.390857123671, 6201064.561333844, 40616550.60643597, 40616608.0936402,
         591904.5930478168, 6201064.099499533, 47409452.10109716, 40617694.52826714],
        [2676939.97975629, 1677575.6585671527, 2651885.0775300157, 7006362.661739242,
         2676942.307682288, 461.4718209297044, 2651920.0537068467, 2676938.803695033],
        [575002.1259626774, 92.45961702099193, 439769.85429266735, 575000.5004559389,
         8948930.829434488, 8949021.402547736, 8948930.640305543, 9963609.14817566],
    ]

    def test_reaches_optimum(self):
        assignment = maximum_matching(self.MATRIX)
        assert assignment is not None
        assert sorted(assignment) == list(range(8))

        rows, cols = linear_sum_assignment(np.asarray(self.MATRIX), maximize=True)
        expected = float(np.asarray(self.MATRIX)[rows, cols].sum())
        assert total(self.MATRIX, assignment) == pytest.approx(expected, rel=1e-12)


class TestAgainstOracles:
    """Random matrices checked against scipy and brute force."""

    @pytest.mark.parametrize("n", [1, 2, 4, 7, 12, 40])
    def test_dense_matches_scipy(self, n):
        rng = np.random.default_rng(n)
        for _ in range(10):
            weights = rng.normal(size=(n, n)) * 10
            assignment = maximum_matching(weights.tolist())
            rows, cols = linear_sum_assignment(weights, maximize=True)
            assert total(weights.tolist(), assignment) == pytest.approx(weights[rows, cols].sum())

    def test_integer_ties(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            weights = rng.integers(0, 3, size=(6, 6)).astype(float)
            assignment = maximum_matching(weights.tolist())
            rows, cols = linear_sum_assignment(weights, maximize=True)
            assert total(weights.tolist(), assignment) == pytest.approx(weights[rows, cols].sum())

    def test_large_integer_ties(self):
        rng = np.random.default_rng(23)
        for _ in range(5):
            weights = rng.integers(0, 4, size=(30, 30)).astype(float)
            assignment = maximum_matching(weights.tolist())
            assert sorted(assignment) == list(range(30))
            rows, cols = linear_sum_assignment(weights, maximize=True)
            assert total(weights.tolist(), assignment) == pytest.approx(weights[rows, cols].sum())

    def test_sparse_matches_brute_force(self):
        rng = np.random.default_rng(99)
        for _ in range(40):
            n = int(rng.integers(2, 6))
            costs = [[None if rng.random() < 0.4 else float(rng.normal()) for _ in range(n)]
                     for _ in range(n)]
            best = brute_force_best(costs)
            assignment = maximum_matching(costs)
            if best is None:
                assert assignment is None
            else:
                assert assignment is not None
                assert all(costs[i][j] is not None for i, j in enumerate(assignment))
                assert total(costs, assignment) == pytest.approx(best)
