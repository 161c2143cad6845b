"""
cv_processor.py — public façade of the cube-vision state inference
==================================================================

`CVProcessor` glues the pieces together for one camera setup:

* the static pixel roles (which pixels belong to which sticker slot, which are
  white-balance references for which face, which are ignored),
* a `ConfidenceInferencer` holding every calibration observation,
* a `Matcher` that resolves confidences into a legal puzzle state.

Typical use::

    proc = CVProcessor(len(roles), resolve_puzzle("3x3"), roles)
    proc.calibrate(image, known_state)       # as many times as you like
    result = proc.infer(image)               # (Permutation, confidence) or None

Persistence: `to_dict()` / `save(path)` write a JSON document holding the pixel
count, the roles, every density-index point and the puzzle *name*;
`from_dict()` / `load(path)` re-resolve the puzzle through
`puzzle.resolve_puzzle`. A reloaded processor reproduces the original's
inferences exactly for the same generator.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from app_types import (ConfigurationError, PixelRole, Sticker, WhiteBalance,
                       role_from_json, role_to_json)
from inference import ConfidenceInferencer, ConfidenceVector
from matcher import Matcher
from puzzle import Permutation, PermutationGroup, resolve_puzzle

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

FORMAT_VERSION = 1

INFERENCER_OPTIONS = ("k_max", "fraction", "percentile", "min_radius")
MATCHER_OPTIONS = ("max_orbit_candidates", "max_combinations", "max_orbit_expansions", "confidence_floor")


class CVProcessor:
    def __init__(self,
                 pixel_count: int,
                 puzzle: Union[PermutationGroup, str],
                 roles: Sequence[PixelRole],
                 **options):
        if isinstance(puzzle, str):
            puzzle = resolve_puzzle(puzzle)
        self.pixel_count = int(pixel_count)
        self.puzzle = puzzle
        self._roles: List[PixelRole] = list(roles)

        matcher_opts = {k: options.pop(k) for k in MATCHER_OPTIONS if k in options}
        self._inferencer = ConfidenceInferencer(puzzle, self._roles, self.pixel_count, **options)
        self._matcher = Matcher(puzzle, **matcher_opts)

    # ---------- Calibration / inference ----------

    def calibrate(self, image, permutation: Permutation) -> None:
        self._inferencer.calibrate(image, permutation)

    def confidences(self, image, rng: Optional[np.random.Generator] = None) -> List[ConfidenceVector]:
        return self._inferencer.infer(image, rng)

    def infer(self, image, rng: Optional[np.random.Generator] = None) -> Optional[Tuple[Permutation, float]]:
        result = self._matcher.most_likely(self.confidences(image, rng))
        if result is None:
            logger.warning("Could not resolve the image into a legal %s state", self.puzzle.name)
        else:
            logger.debug("Inferred state with confidence %.3f", result[1])
        return result

    # ---------- Introspection ----------

    def assigned_pixels(self) -> List[PixelRole]:
        return list(self._roles)

    def pixels_by_role(self) -> Dict[str, Dict]:
        """{'stickers': {slot: [pixel, ...]}, 'white_balance': {face: [...]}, 'unassigned': [...]}"""
        stickers: Dict[int, List[int]] = {}
        white: Dict[str, List[int]] = {}
        unassigned: List[int] = []
        for idx, role in enumerate(self._roles):
            if isinstance(role, Sticker):
                stickers.setdefault(role.slot, []).append(idx)
            elif isinstance(role, WhiteBalance):
                white.setdefault(role.face, []).append(idx)
            else:
                unassigned.append(idx)
        return {"stickers": stickers, "white_balance": white, "unassigned": unassigned}

    def calibration_summary(self) -> Dict:
        return self._inferencer.calibration_summary()

    def options(self) -> Dict:
        """Effective estimator and matcher settings, defaults included."""
        opts = {k: getattr(self._inferencer, k) for k in INFERENCER_OPTIONS}
        opts.update({k: getattr(self._matcher, k) for k in MATCHER_OPTIONS})
        return opts

    # ---------- Persistence ----------

    def to_dict(self) -> Dict:
        return {
            "version": FORMAT_VERSION,
            "puzzle": self.puzzle.name,
            "pixel_count": self.pixel_count,
            "roles": [role_to_json(r) for r in self._roles],
            "options": self.options(),
            "model": self._inferencer.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict, **options) -> "CVProcessor":
        """Rebuild a saved processor. Keyword `options` override the saved settings."""
        if data.get("version") != FORMAT_VERSION:
            raise ConfigurationError(f"Unsupported model version {data.get('version')!r}")
        saved = data.get("options", {})
        unknown = set(saved) - set(INFERENCER_OPTIONS) - set(MATCHER_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown saved options: {sorted(unknown)}")
        options = {**saved, **options}
        proc = cls(int(data["pixel_count"]),
                   resolve_puzzle(data["puzzle"]),
                   [role_from_json(r) for r in data["roles"]],
                   **options)
        proc._inferencer.load_state(data["model"])
        return proc

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        logger.info("Saved %s model (%d calibrations) to %s",
                    self.puzzle.name, self._inferencer.calibrations, path)
        return path

    @classmethod
    def load(cls, path: Union[str, Path], **options) -> "CVProcessor":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")), **options)
