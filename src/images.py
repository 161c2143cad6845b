"""
images.py — image and pixel-role file helpers
=============================================

Everything the core needs from the filesystem, kept out of the core itself:

* `read_image(path)` / `load_image(path)`: OpenCV load, BGR -> RGB, scaled to
  floats in [0, 1]; `load_image` flattens to `(pixel_count, 3)` rows, which is
  what `CVProcessor` consumes.
* `load_positions(path)`: sticker centers as saved by the position editor
  (`{"positions": {"U1": [x, y], ...}}`), and `roles_from_positions(...)` that
  turns them into pixel roles: a disc of `radius` pixels around every sticker
  center, the face centers (`U5`, `R5`, ...) becoming white-balance references.
* `load_roles(path)` / `save_roles(path, roles)`: sparse JSON role
  assignment (`{"pixel_count": N, "stickers": {...}, "white_balance": {...}}`).
* `render_overlay(image, roles, width, puzzle)`: debug image with each sticker
  pixel tinted in its slot's solved color and reference pixels in magenta.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

import cv2
import numpy as np

from app_types import UNASSIGNED, ConfigurationError, PixelRole, Sticker, WhiteBalance
from config import CANONICAL_RGB, FACE_TO_COLOR
from cube_geometry import facelet_index, facelet_to_slot
from puzzle import PermutationGroup

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PathLike = Union[str, Path]

WHITE_BALANCE_BGR = (255, 0, 255)
OVERLAY_ALPHA = 0.6


def read_image(path: PathLike) -> np.ndarray:
    img = cv2.imread(str(path))
    if img is None:
        raise FileNotFoundError(f"Cannot open image: {path}")
    rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    return rgb.astype(np.float64) / 255.0


def load_image(path: PathLike) -> np.ndarray:
    return read_image(path).reshape(-1, 3)


def write_image(path: PathLike, bgr: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), bgr, [cv2.IMWRITE_PNG_COMPRESSION, 3]):
        raise OSError(f"cv2.imwrite failed for {path}")
    return path


# ---------- Positions -> roles ----------

def load_positions(path: PathLike) -> Dict[str, Tuple[int, int]]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Positions file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    positions = data.get("positions", data)
    return {k: (int(v[0]), int(v[1])) for k, v in positions.items()}


def roles_from_positions(positions: Dict[str, Tuple[int, int]],
                         width: int,
                         height: int,
                         radius: int = 6) -> List[PixelRole]:
    """Disc roles around labelled 3x3 sticker centers. Overlapping pixels keep the first label."""
    roles: List[PixelRole] = [UNASSIGNED] * (width * height)
    yy, xx = np.ogrid[:height, :width]
    overlaps = 0
    for label, (x, y) in sorted(positions.items()):
        try:
            facelet = facelet_index(label)
        except (ValueError, IndexError) as e:
            raise ConfigurationError(f"Invalid sticker label {label!r}") from e
        slot = facelet_to_slot(facelet)
        role = WhiteBalance(FACE_TO_COLOR[label[0]]) if slot is None else Sticker(slot)

        disc = (xx - x) ** 2 + (yy - y) ** 2 <= radius * radius
        for idx in np.flatnonzero(disc):
            if roles[idx] is UNASSIGNED:
                roles[idx] = role
            else:
                overlaps += 1
    if overlaps:
        logger.warning("%d pixels claimed by more than one sticker; kept the first label", overlaps)
    return roles


# ---------- Role files ----------

def save_roles(path: PathLike, roles: Sequence[PixelRole]) -> Path:
    stickers: Dict[str, List[int]] = {}
    white: Dict[str, List[int]] = {}
    for idx, role in enumerate(roles):
        if isinstance(role, Sticker):
            stickers.setdefault(str(role.slot), []).append(idx)
        elif isinstance(role, WhiteBalance):
            white.setdefault(role.face, []).append(idx)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"pixel_count": len(roles), "stickers": stickers, "white_balance": white}
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def load_roles(path: PathLike) -> List[PixelRole]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Roles file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    pixel_count = int(data["pixel_count"])
    roles: List[PixelRole] = [UNASSIGNED] * pixel_count

    def assign(indices, role):
        for idx in indices:
            idx = int(idx)
            if not 0 <= idx < pixel_count:
                raise ConfigurationError(f"Pixel {idx} out of range [0, {pixel_count})")
            if roles[idx] is not UNASSIGNED:
                raise ConfigurationError(f"Pixel {idx} has more than one role")
            roles[idx] = role

    for slot, indices in data.get("stickers", {}).items():
        assign(indices, Sticker(int(slot)))
    for face, indices in data.get("white_balance", {}).items():
        assign(indices, WhiteBalance(face))
    return roles


# ---------- Debug overlay ----------

def render_overlay(image: np.ndarray,
                   roles: Sequence[PixelRole],
                   width: int,
                   puzzle: PermutationGroup,
                   alpha: float = OVERLAY_ALPHA) -> np.ndarray:
    """BGR uint8 image for `cv2.imwrite`."""
    pixels = np.asarray(image, dtype=float).reshape(-1, 3)
    if pixels.shape[0] != len(roles) or len(roles) % width:
        raise ConfigurationError("Image, roles and width do not describe the same picture")
    height = len(roles) // width

    base = np.clip(pixels * 255.0, 0, 255).astype(np.uint8)
    base = cv2.cvtColor(base.reshape(height, width, 3), cv2.COLOR_RGB2BGR)
    paint = base.copy().reshape(-1, 3)
    colors = puzzle.facelet_colors()
    for idx, role in enumerate(roles):
        if isinstance(role, Sticker):
            r, g, b = CANONICAL_RGB.get(colors[role.slot], (0.5, 0.5, 0.5))
            paint[idx] = (int(b * 255), int(g * 255), int(r * 255))
        elif isinstance(role, WhiteBalance):
            paint[idx] = WHITE_BALANCE_BGR
    paint = paint.reshape(height, width, 3)
    return cv2.addWeighted(base, 1.0 - alpha, paint, alpha, 0)
