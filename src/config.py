"""config.py — project configuration
------------------------------------

This file centralizes default runtime constants for the cube-vision state
inference. Keep in mind these are *defaults*; the classes that consume them
(`ConfidenceInferencer`, `Matcher`, `CVProcessor`) accept keyword overrides so a
deployment can tune them without editing this module.

Notes / warnings
- The density estimator constants (`K_MAX`, `FRACTION`) trade bias against
  variance: a larger neighbourhood smooths sparse calibration data but blurs
  neighbouring colours (red vs. orange is the usual victim).
- `CONFIDENCE_PERCENTILE` is measured from the *top*: 0.2 keeps the 20% most
  confident pixels of a sticker from dominating while ignoring specular outliers.
- Matcher budgets bound the fallback search that runs when the per-orbit optimum
  is not a member of the puzzle group. They never affect the common case.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from pathlib import Path
from typing import Dict, List, Tuple

# ---------------- Rubik cube configurations ----------------

# Canonical color and face orderings. Colors are identified by letter, faces by
# the kociemba face letter. A face is named after the color of its center.
COLOR_ORDER: List[str] = ['B', 'O', 'Y', 'G', 'R', 'W']
FACE_ORDER: List[str] = ['U', 'R', 'F', 'D', 'L', 'B']
FACE_TO_COLOR: Dict[str, str] = {'U': 'B', 'R': 'O', 'F': 'Y', 'D': 'G', 'L': 'R', 'B': 'W'}
COLOR_TO_FACE: Dict[str, str] = {v: k for k, v in FACE_TO_COLOR.items()}

# Map face letter -> small integer index used by the cubie move tables.
MOVE_INDEX = {'U': 0, 'R': 1, 'F': 2, 'D': 3, 'L': 4, 'B': 5}

# Nominal sticker colors as RGB floats in [0, 1]. Used by the lighting simulator
# in the tests and by the debug overlay; inference itself never looks at them.
CANONICAL_RGB: Dict[str, Tuple[float, float, float]] = {
    'R': (1.0, 0.2, 0.2),
    'O': (1.0, 0.6, 0.2),
    'W': (1.0, 1.0, 1.0),
    'Y': (0.8, 0.8, 0.2),
    'B': (0.2, 0.5, 1.0),
    'G': (0.3, 1.0, 0.5),
}

# ---------------- Density estimation ----------------

# k-nearest-neighbour density: k = clamp(min(K_MAX, n // FRACTION), 1, n)
K_MAX: int = 10
FRACTION: int = 8

# Floor for the k-th neighbour distance. Coincident points (saturated pixels
# clamp to exactly 1.0) would otherwise give an infinite density.
MIN_RADIUS: float = 1e-6

# Descending rank (as a fraction of the sample count) used as the
# representative confidence of a sticker for one color.
CONFIDENCE_PERCENTILE: float = 0.2

# Lower bound for each white balance channel. A black reference patch would
# otherwise divide by zero.
MIN_WHITE_LEVEL: float = 1e-3

# ---------------- Matching ----------------

# log() is taken of confidences; anything below this is treated as this.
CONFIDENCE_FLOOR: float = 1e-12

# Fallback search budgets (see matcher.py).
MAX_ORBIT_CANDIDATES: int = 64
MAX_COMBINATIONS: int = 256

# Upper bound on heap pops while enumerating one orbit's candidates.
MAX_ORBIT_EXPANSIONS: int = 4096

# ---------------- Randomness ----------------

# Seed used when a caller does not supply its own numpy Generator.
DEFAULT_SEED: int = 0x5EED

# ---------------- Filesystem paths ----------------
# ROOT is built from the current working directory at import time. If you run
# the program from a different working directory pass explicit paths to the CLI.
ROOT = Path.cwd()
MODEL_PATH: Path = ROOT / "positions/model.json"
ROLES_PATH: Path = ROOT / "positions/roles.json"
