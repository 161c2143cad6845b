"""
observations.py — calibration observations and white balance
=============================================================

* `ColorDensityIndex` — every white-balanced RGB observation ever recorded for
  one (sticker slot, color) pair, with a KD-tree over them. Points are append
  only; the tree is rebuilt on every append so reads never mutate anything.
* `ColorObservationStore` — one index per (slot, color); the only mutation entry
  points are `record` / `record_many`.
* `WhiteBalanceCorrector` — per-face reference pixels. The correction for a face
  is the mean color of its reference pixels in the current image (neutral
  `(1, 1, 1)` when a face has none) and is applied by component-wise division,
  identically during calibration and inference.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import KDTree

from app_types import ConfigurationError
from config import FRACTION, K_MAX, MIN_RADIUS, MIN_WHITE_LEVEL
from density import knn_density

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

NEUTRAL = np.ones(3, dtype=float)


class ColorDensityIndex:
    def __init__(self, points: Optional[np.ndarray] = None):
        self._points = np.empty((0, 3), dtype=float)
        self._tree: Optional[KDTree] = None
        if points is not None:
            self.extend(points)

    def __len__(self) -> int:
        return self._points.shape[0]

    @property
    def points(self) -> np.ndarray:
        view = self._points.view()
        view.flags.writeable = False
        return view

    def extend(self, points) -> None:
        pts = np.asarray(points, dtype=float).reshape(-1, 3)
        if pts.shape[0] == 0:
            return
        self._points = np.concatenate([self._points, pts], axis=0)
        self._tree = KDTree(self._points)

    def densities(self,
                  queries: np.ndarray,
                  k_max: int = K_MAX,
                  fraction: int = FRACTION,
                  min_radius: float = MIN_RADIUS) -> Optional[np.ndarray]:
        return knn_density(self._tree, len(self), queries, k_max, fraction, min_radius)


class ColorObservationStore:
    def __init__(self, slot_count: int, colors: Sequence[str]):
        self.slot_count = slot_count
        self.colors: Tuple[str, ...] = tuple(colors)
        self._indices: List[Dict[str, ColorDensityIndex]] = [
            {c: ColorDensityIndex() for c in self.colors} for _ in range(slot_count)
        ]

    def _check(self, slot: int, color: str) -> None:
        if not 0 <= slot < self.slot_count:
            raise ConfigurationError(f"Sticker slot {slot} out of range [0, {self.slot_count})")
        if color not in self._indices[slot]:
            raise ConfigurationError(f"Unknown color {color!r}, expected one of {self.colors}")

    def record(self, slot: int, color: str, point: Sequence[float]) -> None:
        self.record_many(slot, color, [point])

    def record_many(self, slot: int, color: str, points) -> None:
        self._check(slot, color)
        self._indices[slot][color].extend(points)

    def index(self, slot: int, color: str) -> ColorDensityIndex:
        self._check(slot, color)
        return self._indices[slot][color]

    def point_counts(self) -> Dict[str, int]:
        totals = {c: 0 for c in self.colors}
        for per_slot in self._indices:
            for c, idx in per_slot.items():
                totals[c] += len(idx)
        return totals

    def empty_count(self) -> int:
        return sum(1 for per_slot in self._indices for idx in per_slot.values() if len(idx) == 0)

    def to_dict(self) -> Dict:
        return {
            "slot_count": self.slot_count,
            "colors": list(self.colors),
            "points": [
                {c: idx.points.tolist() for c, idx in per_slot.items() if len(idx)}
                for per_slot in self._indices
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ColorObservationStore":
        store = cls(int(data["slot_count"]), data["colors"])
        points = data.get("points", [])
        if len(points) != store.slot_count:
            raise ConfigurationError("Observation table does not match the slot count")
        for slot, per_slot in enumerate(points):
            for color, pts in per_slot.items():
                store.record_many(slot, color, pts)
        return store


class WhiteBalanceCorrector:
    def __init__(self, reference_pixels: Dict[str, Iterable[int]], faces: Sequence[str]):
        self.faces: Tuple[str, ...] = tuple(faces)
        self._pixels: Dict[str, np.ndarray] = {f: np.empty(0, dtype=np.int64) for f in self.faces}
        for face, idx in reference_pixels.items():
            if face not in self._pixels:
                raise ConfigurationError(f"White balance for unknown face {face!r}")
            self._pixels[face] = np.asarray(list(idx), dtype=np.int64)

        missing = [f for f in self.faces if self._pixels[f].size == 0]
        if missing:
            logger.info("No white balance reference for faces %s; using neutral balance", missing)

    def reference_pixels(self) -> Dict[str, List[int]]:
        return {f: idx.tolist() for f, idx in self._pixels.items()}

    def white_balance(self, image: np.ndarray) -> Dict[str, np.ndarray]:
        wb = {}
        for face, idx in self._pixels.items():
            if idx.size == 0:
                wb[face] = NEUTRAL
            else:
                wb[face] = np.maximum(image[idx].mean(axis=0), MIN_WHITE_LEVEL)
        return wb

    @staticmethod
    def apply(colors: np.ndarray, wb: np.ndarray) -> np.ndarray:
        return np.asarray(colors, dtype=float) / wb
