"""
Shared fixtures for the cube-vision test suite.

`LightingSimulator` renders synthetic "photos" of a 3x3 cube: every sticker
slot owns a block of pixels, every face owns a block of white reference
pixels, and each image is lit with a random per-face color cast plus
per-pixel shadow and camera noise.
"""

from typing import Dict, List

import numpy as np
import pytest

from app_types import PixelRole, Sticker, WhiteBalance
from config import CANONICAL_RGB
from puzzle import Permutation, PermutationGroup, resolve_puzzle

STICKER_PIXELS = 20
WHITE_BALANCE_PIXELS = 20
SHADOW = 0.2
CAMERA_NOISE = 0.1


class LightingSimulator:
    def __init__(self,
                 puzzle: PermutationGroup,
                 sticker_pixels: int = STICKER_PIXELS,
                 white_balance_pixels: int = WHITE_BALANCE_PIXELS,
                 shadow: float = SHADOW,
                 camera_noise: float = CAMERA_NOISE):
        self.puzzle = puzzle
        self.shadow = shadow
        self.camera_noise = camera_noise

        roles: List[PixelRole] = []
        for slot in range(puzzle.facelet_count()):
            roles.extend([Sticker(slot)] * sticker_pixels)
        for face in puzzle.colors():
            roles.extend([WhiteBalance(face)] * white_balance_pixels)
        self.roles = roles
        self.pixel_count = len(roles)

    def render(self, state: Permutation, rng: np.random.Generator) -> np.ndarray:
        colors = self.puzzle.facelet_colors()
        lighting: Dict[str, np.ndarray] = {
            face: rng.uniform(0.2, 1.2, size=3) for face in self.puzzle.colors()
        }
        image = np.empty((self.pixel_count, 3), dtype=float)
        for idx, role in enumerate(self.roles):
            if isinstance(role, Sticker):
                natural = np.asarray(CANONICAL_RGB[colors[state.comes_from(role.slot)]])
                face = colors[role.slot]
            else:
                natural = np.ones(3)
                face = role.face
            shade = rng.uniform(1.0 / (1.0 + self.shadow), 1.0 + self.shadow)
            noise = rng.uniform(-self.camera_noise, self.camera_noise, size=3)
            image[idx] = natural * lighting[face] * shade + noise
        return np.clip(image, 0.0, 1.0)


@pytest.fixture(scope="session")
def cube() -> PermutationGroup:
    return resolve_puzzle("3x3")


@pytest.fixture(scope="session")
def simulator(cube) -> LightingSimulator:
    return LightingSimulator(cube)


@pytest.fixture(scope="session")
def quiet_simulator(cube) -> LightingSimulator:
    """Same pixel layout as `simulator`, with little shadow and camera noise."""
    return LightingSimulator(cube, shadow=0.05, camera_noise=0.02)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)
