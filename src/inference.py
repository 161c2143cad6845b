"""
inference.py — streaming per-sticker color confidence
=====================================================

`ConfidenceInferencer` turns raw images into one confidence vector per sticker
slot (`{color: value}` over every puzzle color).

Calibration (`calibrate(image, permutation)`)
  For each slot, the true color is `facelet_colors[permutation.comes_from(slot)]`.
  The slot's pixels are white-balanced with the correction of the face the slot
  belongs to (named by the slot's solved color) and appended to that slot's
  `(slot, color)` density index.

Inference (`infer(image, rng)`)
  For each slot and each color with data, the density of every pixel of the slot
  is evaluated against the `(slot, color)` index, and the value at the top
  `CONFIDENCE_PERCENTILE` rank stands for the whole sticker. Each slot is then
  normalised as

      v / (sum(v) * num_colors / num_colors_with_data * num_slots)

  and colors without data get `1 / (num_colors * num_slots)`, so every value
  lies in [0, 1].

Inference only reads the stores. Randomness comes exclusively from the
`numpy.random.Generator` passed in (a fresh `DEFAULT_SEED` generator when none
is), so repeated calls on the same image return the same vectors.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np

from app_types import ConfigurationError, PixelRole, Sticker, Unassigned, WhiteBalance
from config import CONFIDENCE_PERCENTILE, DEFAULT_SEED, FRACTION, K_MAX, MIN_RADIUS
from density import representative_confidence
from observations import ColorObservationStore, WhiteBalanceCorrector
from puzzle import Permutation, PermutationGroup

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

ConfidenceVector = Dict[str, float]


def check_image(image, pixel_count: int) -> np.ndarray:
    """Accepts anything reshapeable to (pixel_count, 3); returns float RGB rows."""
    arr = np.asarray(image, dtype=float)
    if arr.size != pixel_count * 3:
        raise ConfigurationError(f"Image has {arr.size // 3 if arr.ndim else 0} pixels, "
                                 f"expected {pixel_count}")
    return arr.reshape(pixel_count, 3)


class ConfidenceInferencer:
    def __init__(self,
                 puzzle: PermutationGroup,
                 roles: Sequence[PixelRole],
                 pixel_count: int,
                 k_max: int = K_MAX,
                 fraction: int = FRACTION,
                 percentile: float = CONFIDENCE_PERCENTILE,
                 min_radius: float = MIN_RADIUS):
        if len(roles) != pixel_count:
            raise ConfigurationError(f"{len(roles)} pixel roles for an image of {pixel_count} pixels")

        self.puzzle = puzzle
        self.pixel_count = pixel_count
        self.k_max = k_max
        self.fraction = fraction
        self.percentile = percentile
        self.min_radius = min_radius

        self.colors: List[str] = puzzle.colors()
        self._facelet_colors = puzzle.facelet_colors()
        slot_count = puzzle.facelet_count()

        by_slot: List[List[int]] = [[] for _ in range(slot_count)]
        by_face: Dict[str, List[int]] = {c: [] for c in self.colors}
        for idx, role in enumerate(roles):
            if isinstance(role, Sticker):
                if not 0 <= role.slot < slot_count:
                    raise ConfigurationError(f"Pixel {idx}: sticker slot {role.slot} out of range "
                                             f"[0, {slot_count})")
                by_slot[role.slot].append(idx)
            elif isinstance(role, WhiteBalance):
                if role.face not in by_face:
                    raise ConfigurationError(f"Pixel {idx}: unknown white balance face {role.face!r}")
                by_face[role.face].append(idx)
            elif not isinstance(role, Unassigned):
                raise ConfigurationError(f"Pixel {idx}: invalid role {role!r}")

        self._pixels_by_slot = [np.asarray(p, dtype=np.int64) for p in by_slot]
        self._wb = WhiteBalanceCorrector(by_face, self.colors)
        self._store = ColorObservationStore(slot_count, self.colors)
        self._calibrations = 0
        self._summary: Optional[Dict] = None

        empty = [s for s, p in enumerate(by_slot) if not p]
        if empty:
            logger.warning("%d sticker slots have no pixels: %s", len(empty), empty)

    @property
    def store(self) -> ColorObservationStore:
        return self._store

    @property
    def white_balance_corrector(self) -> WhiteBalanceCorrector:
        return self._wb

    @property
    def calibrations(self) -> int:
        return self._calibrations

    def slot_pixels(self, slot: int) -> np.ndarray:
        return self._pixels_by_slot[slot]

    def _corrected(self, image: np.ndarray, slot: int, wb: Dict[str, np.ndarray]) -> np.ndarray:
        face = self._facelet_colors[slot]
        return WhiteBalanceCorrector.apply(image[self._pixels_by_slot[slot]], wb[face])

    def calibrate(self, image, permutation: Permutation) -> None:
        pixels = check_image(image, self.pixel_count)
        if permutation.degree != len(self._facelet_colors):
            raise ConfigurationError(f"State has degree {permutation.degree}, "
                                     f"puzzle has {len(self._facelet_colors)} stickers")
        wb = self._wb.white_balance(pixels)

        recorded = 0
        for slot, idx in enumerate(self._pixels_by_slot):
            if idx.size == 0:
                continue
            color = self._facelet_colors[permutation.comes_from(slot)]
            self._store.record_many(slot, color, self._corrected(pixels, slot, wb))
            recorded += idx.size

        self._calibrations += 1
        self._summary = None
        logger.debug("Calibration #%d recorded %d pixels", self._calibrations, recorded)

    def infer(self, image, rng: Optional[np.random.Generator] = None) -> List[ConfidenceVector]:
        pixels = check_image(image, self.pixel_count)
        if rng is None:
            rng = np.random.default_rng(DEFAULT_SEED)
        wb = self._wb.white_balance(pixels)

        num_colors = len(self.colors)
        num_slots = len(self._pixels_by_slot)
        no_data = 1.0 / (num_colors * num_slots)

        vectors: List[ConfidenceVector] = []
        for slot in range(num_slots):
            corrected = self._corrected(pixels, slot, wb)
            raw: Dict[str, float] = {}
            for color in self.colors:
                dens = self._store.index(slot, color).densities(
                    corrected, self.k_max, self.fraction, self.min_radius)
                if dens is None:
                    continue
                value = representative_confidence(dens.tolist(), rng, self.percentile)
                if value is not None:
                    raw[color] = value

            total = sum(raw.values())
            if raw and total > 0:
                norm = total * (num_colors / len(raw)) * num_slots
                vectors.append({c: (raw[c] / norm if c in raw else no_data) for c in self.colors})
            else:
                vectors.append({c: no_data for c in self.colors})
        return vectors

    def calibration_summary(self) -> Dict:
        """Point totals per color and the number of (slot, color) indices still empty."""
        if self._summary is None:
            self._summary = {
                "calibrations": self._calibrations,
                "points_by_color": self._store.point_counts(),
                "empty_indices": self._store.empty_count(),
            }
        return self._summary

    def to_dict(self) -> Dict:
        return {
            "calibrations": self._calibrations,
            "observations": self._store.to_dict(),
        }

    def load_state(self, data: Dict) -> None:
        """Replace the recorded observations with a `to_dict()` snapshot."""
        store = ColorObservationStore.from_dict(data["observations"])
        if store.slot_count != self._store.slot_count or store.colors != self._store.colors:
            raise ConfigurationError("Saved observations were recorded for a different puzzle")
        self._store = store
        self._calibrations = int(data.get("calibrations", 0))
        self._summary = None
