"""
density.py — k-nearest-neighbour density and robust selection
=============================================================

Two small numeric building blocks of the confidence inference:

* `knn_density(tree, n, queries)`: probability density of each query point under
  the empirical distribution of the `n` points indexed by `tree`, estimated as
  `(k / n) / volume(ball of radius r_k)` where `r_k` is the distance to the k-th
  nearest neighbour and `k = clamp(min(K_MAX, n // FRACTION), 1, n)`.
* `representative_confidence(samples, rng)`: the value at descending rank
  `floor(CONFIDENCE_PERCENTILE * len(samples))`, found with a randomized
  quickselect. A high percentile ignores the specular/shadowed pixels at the
  bottom of a sticker's distribution without letting a single hot pixel win.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import math
from typing import Any, Callable, List, Optional

import numpy as np
from sklearn.neighbors import KDTree

from config import CONFIDENCE_PERCENTILE, FRACTION, K_MAX, MIN_RADIUS

_BALL = 4.0 / 3.0 * math.pi


def neighbour_count(n: int, k_max: int = K_MAX, fraction: int = FRACTION) -> int:
    return max(1, min(k_max, n // fraction, n))


def knn_density(tree: KDTree,
                n: int,
                queries: np.ndarray,
                k_max: int = K_MAX,
                fraction: int = FRACTION,
                min_radius: float = MIN_RADIUS) -> Optional[np.ndarray]:
    """Density at each row of `queries`. None when the index is empty."""
    if n == 0 or tree is None:
        return None
    queries = np.asarray(queries, dtype=float).reshape(-1, 3)
    if queries.shape[0] == 0:
        return np.empty(0, dtype=float)
    k = neighbour_count(n, k_max, fraction)
    dist, _ = tree.query(queries, k=k)
    radius = np.maximum(dist[:, k - 1], min_radius)
    return (k / n) / (_BALL * radius ** 3)


def quickselect(values: List[Any],
                rank: int,
                rng: np.random.Generator,
                key: Optional[Callable[[Any], float]] = None) -> Any:
    """
    Element at position `rank` of `values` sorted in descending order.

    Reorders `values` in place: afterwards everything before `rank` is >= the
    result and everything after it is <=.
    """
    if not 0 <= rank < len(values):
        raise IndexError(f"rank {rank} out of range for {len(values)} values")
    if key is None:
        key = _identity

    lo, hi = 0, len(values)
    while hi - lo > 1:
        p = lo + int(rng.integers(hi - lo))
        values[p], values[hi - 1] = values[hi - 1], values[p]
        pivot = key(values[hi - 1])

        store = lo
        for i in range(lo, hi - 1):
            if key(values[i]) >= pivot:
                values[i], values[store] = values[store], values[i]
                store += 1
        values[store], values[hi - 1] = values[hi - 1], values[store]

        if rank == store:
            return values[store]
        if rank < store:
            hi = store
        else:
            lo = store + 1
    return values[lo]


def _identity(v):
    return v


def representative_confidence(samples: List[float],
                              rng: np.random.Generator,
                              percentile: float = CONFIDENCE_PERCENTILE) -> Optional[float]:
    """Descending-rank percentile of `samples`. The buffer is consumed (emptied)."""
    if not samples:
        return None
    rank = min(int(math.floor(percentile * len(samples))), len(samples) - 1)
    value = quickselect(samples, rank, rng)
    samples.clear()
    return float(value)
