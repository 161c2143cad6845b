"""
cube_geometry.py — 3x3 cube as a sticker permutation puzzle
===========================================================

Builds the `"3x3"` `PermutationGroup` consumed by the inference core from the
classic cubie-level description of the cube (corner/edge positions, their
facelets, the six quarter-turn move tables).

Facelet naming follows the usual kociemba layout::

                |*U1**U2**U3*|
                |*U4**U5**U6*|
                |*U7**U8**U9*|
   |*L1**L2**L3*|*F1**F2**F3*|*R1**R2**R3*|*B1**B2**B3*|
   |*L4**L5**L6*|*F4**F5**F6*|*R4**R5**R6*|*B4**B5**B6*|
   |*L7**L8**L9*|*F7**F8**F9*|*R7**R8**R9*|*B7**B8**B9*|
                |*D1**D2**D3*|
                |*D4**D5**D6*|
                |*D7**D8**D9*|

A 54-char facelet string lists faces in U, R, F, D, L, B order. Centers never
move, so the puzzle model only has 48 sticker slots: 8 per face in the same
order, centers skipped (`U1..U4, U6..U9, R1..`). Face colors follow
`config.FACE_TO_COLOR`.

Orbits: 8 corners (3 stickers each, U/D sticker first, then clockwise) and 12
edges (2 stickers each). Sticker order equals orientation order, so twisting a
corner once maps `stickers[n]` to `stickers[n + 1]`.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import copy
from typing import Dict, List, Optional, Sequence, Tuple

from app_types import ConfigurationError
from config import COLOR_TO_FACE, FACE_ORDER, FACE_TO_COLOR
from puzzle import Orbit, Permutation, PermutationGroup, Piece, register_puzzle

PUZZLE_NAME = "3x3"
SOLVED_FACELETS = "".join(face * 9 for face in FACE_ORDER)


def facelet_index(name: str) -> int:
    """'U1' -> 0, 'R5' -> 13, ... 'B9' -> 53."""
    if len(name) != 2 or name[1] not in "123456789":
        raise ValueError(f"Invalid facelet name {name!r}")
    return FACE_ORDER.index(name[0]) * 9 + int(name[1]) - 1


def facelet_to_slot(facelet: int) -> Optional[int]:
    """54-facelet index -> 48-slot index, None for centers."""
    face, k = divmod(facelet, 9)
    if k == 4:
        return None
    return face * 8 + (k if k < 4 else k - 1)


def slot_to_facelet(slot: int) -> int:
    face, k = divmod(slot, 8)
    return face * 9 + (k if k < 4 else k + 1)


# ---------- Cubie tables ----------

# Corner positions URF, UFL, ULB, UBR, DFR, DLF, DBL, DRB; the first facelet
# of each entry is the U/D one, which defines the orientation.
CORNER_NAMES = ("URF", "UFL", "ULB", "UBR", "DFR", "DLF", "DBL", "DRB")
CORNER_FACELETS: List[Tuple[int, ...]] = [
    tuple(facelet_index(n) for n in names) for names in (
        ("U9", "R1", "F3"), ("U7", "F1", "L3"), ("U1", "L1", "B3"), ("U3", "B1", "R3"),
        ("D3", "F9", "R7"), ("D1", "L9", "F7"), ("D7", "B9", "L7"), ("D9", "R9", "B7"),
    )
]

EDGE_NAMES = ("UR", "UF", "UL", "UB", "DR", "DF", "DL", "DB", "FR", "FL", "BL", "BR")
EDGE_FACELETS: List[Tuple[int, ...]] = [
    tuple(facelet_index(n) for n in names) for names in (
        ("U6", "R2"), ("U8", "F2"), ("U4", "L2"), ("U2", "B2"), ("D6", "R8"), ("D2", "F8"),
        ("D4", "L8"), ("D8", "B8"), ("F6", "R4"), ("F4", "L6"), ("B6", "L4"), ("B4", "R6"),
    )
]

# Face letters each cubie shows in the solved state, in facelet order.
CORNER_FACES = CORNER_NAMES
EDGE_FACES = EDGE_NAMES

# (cp, co, ep, eo) of each quarter turn, indexed like config.MOVE_INDEX.
URF, UFL, ULB, UBR, DFR, DLF, DBL, DRB = range(8)
UR, UF, UL, UB, DR, DF, DL, DB, FR, FL, BL, BR = range(12)

MOVE_TABLES: Dict[str, Tuple[List[int], List[int], List[int], List[int]]] = {
    'U': ([UBR, URF, UFL, ULB, DFR, DLF, DBL, DRB], [0, 0, 0, 0, 0, 0, 0, 0],
          [UB, UR, UF, UL, DR, DF, DL, DB, FR, FL, BL, BR], [0] * 12),
    'R': ([DFR, UFL, ULB, URF, DRB, DLF, DBL, UBR], [2, 0, 0, 1, 1, 0, 0, 2],
          [FR, UF, UL, UB, BR, DF, DL, DB, DR, FL, BL, UR], [0] * 12),
    'F': ([UFL, DLF, ULB, UBR, URF, DFR, DBL, DRB], [1, 2, 0, 0, 2, 1, 0, 0],
          [UR, FL, UL, UB, DR, FR, DL, DB, UF, DF, BL, BR], [0, 1, 0, 0, 0, 1, 0, 0, 1, 1, 0, 0]),
    'D': ([URF, UFL, ULB, UBR, DLF, DBL, DRB, DFR], [0, 0, 0, 0, 0, 0, 0, 0],
          [UR, UF, UL, UB, DF, DL, DB, DR, FR, FL, BL, BR], [0] * 12),
    'L': ([URF, ULB, DBL, UBR, DFR, UFL, DLF, DRB], [0, 1, 2, 0, 0, 2, 1, 0],
          [UR, UF, BL, UB, DR, DF, FL, DB, FR, UL, DL, BR], [0] * 12),
    'B': ([URF, UFL, UBR, DRB, DFR, DLF, ULB, DBL], [0, 0, 1, 2, 0, 0, 2, 1],
          [UR, UF, UL, BR, DR, DF, DL, BL, FR, FL, UB, DB], [0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 1, 1]),
}


class CubieCube:
    """Cube on the cubie level: corner/edge permutation and orientation."""

    def __init__(self, cp=None, co=None, ep=None, eo=None):
        self.cp = copy.copy(cp) if cp else list(range(8))
        self.co = copy.copy(co) if co else [0] * 8
        self.ep = copy.copy(ep) if ep else list(range(12))
        self.eo = copy.copy(eo) if eo else [0] * 12

    @classmethod
    def move(cls, face: str) -> "CubieCube":
        cp, co, ep, eo = MOVE_TABLES[face]
        return cls(cp, co, ep, eo)

    def multiply(self, b: "CubieCube") -> None:
        """In place: this state, then `b`."""
        cp = [self.cp[b.cp[i]] for i in range(8)]
        co = [(self.co[b.cp[i]] + b.co[i]) % 3 for i in range(8)]
        ep = [self.ep[b.ep[i]] for i in range(12)]
        eo = [(self.eo[b.ep[i]] + b.eo[i]) % 2 for i in range(12)]
        self.cp, self.co, self.ep, self.eo = cp, co, ep, eo

    def inverse(self) -> "CubieCube":
        inv = CubieCube()
        for i in range(12):
            inv.ep[self.ep[i]] = i
        for i in range(12):
            inv.eo[i] = self.eo[inv.ep[i]]
        for i in range(8):
            inv.cp[self.cp[i]] = i
        for i in range(8):
            inv.co[i] = (-self.co[inv.cp[i]]) % 3
        return inv

    def corner_parity(self) -> int:
        s = 0
        for i in range(7, 0, -1):
            for j in range(i - 1, -1, -1):
                if self.cp[j] > self.cp[i]:
                    s += 1
        return s % 2

    def edge_parity(self) -> int:
        s = 0
        for i in range(11, 0, -1):
            for j in range(i - 1, -1, -1):
                if self.ep[j] > self.ep[i]:
                    s += 1
        return s % 2

    def verify(self) -> int:
        """
        Check a cubie cube for solvability. Return the error code.
        0: Cube is solvable
        -2: Not all 12 edges exist exactly once
        -3: Flip error: One edge has to be flipped
        -4: Not all corners exist exactly once
        -5: Twist error: One corner has to be twisted
        -6: Parity error: Two corners or two edges have to be exchanged
        """
        if sorted(self.ep) != list(range(12)):
            return -2
        if sum(self.eo) % 2 != 0:
            return -3
        if sorted(self.cp) != list(range(8)):
            return -4
        if sum(self.co) % 3 != 0:
            return -5
        if self.edge_parity() != self.corner_parity():
            return -6
        return 0

    def to_face_cube(self) -> "FaceCube":
        fc = FaceCube()
        for i in range(8):
            j, ori = self.cp[i], self.co[i]
            for n in range(3):
                fc.f[CORNER_FACELETS[i][(n + ori) % 3]] = CORNER_FACES[j][n]
        for i in range(12):
            j, ori = self.ep[i], self.eo[i]
            for n in range(2):
                fc.f[EDGE_FACELETS[i][(n + ori) % 2]] = EDGE_FACES[j][n]
        return fc

    def to_permutation(self) -> Permutation:
        """Sticker permutation (comes-from form over the 48 slots)."""
        mapping = list(range(48))
        for i in range(8):
            j, ori = self.cp[i], self.co[i]
            for n in range(3):
                at = facelet_to_slot(CORNER_FACELETS[i][(n + ori) % 3])
                mapping[at] = facelet_to_slot(CORNER_FACELETS[j][n])
        for i in range(12):
            j, ori = self.ep[i], self.eo[i]
            for n in range(2):
                at = facelet_to_slot(EDGE_FACELETS[i][(n + ori) % 2])
                mapping[at] = facelet_to_slot(EDGE_FACELETS[j][n])
        return Permutation(mapping)

    @classmethod
    def from_permutation(cls, perm: Permutation) -> "CubieCube":
        if perm.degree != 48:
            raise ConfigurationError(f"Expected a 48-sticker permutation, got degree {perm.degree}")
        cc = cls()
        for i in range(8):
            source = slot_to_facelet(perm.comes_from(facelet_to_slot(CORNER_FACELETS[i][0])))
            j, n = _CORNER_LOOKUP.get(source, (None, None))
            if j is None:
                raise ConfigurationError(f"Corner position {CORNER_NAMES[i]} holds a non-corner sticker")
            cc.cp[i], cc.co[i] = j, (-n) % 3
        for i in range(12):
            source = slot_to_facelet(perm.comes_from(facelet_to_slot(EDGE_FACELETS[i][0])))
            j, n = _EDGE_LOOKUP.get(source, (None, None))
            if j is None:
                raise ConfigurationError(f"Edge position {EDGE_NAMES[i]} holds a non-edge sticker")
            cc.ep[i], cc.eo[i] = j, n
        return cc


class FaceCube:
    """Cube on the facelet level: 54 face letters."""

    def __init__(self, cube_string: str = SOLVED_FACELETS):
        if len(cube_string) != 54:
            raise ConfigurationError(f"Facelet string must have 54 characters, got {len(cube_string)}")
        for c in cube_string:
            if c not in FACE_ORDER:
                raise ConfigurationError(f"Invalid facelet letter {c!r}")
        self.f = list(cube_string)

    def to_string(self) -> str:
        return "".join(self.f)

    def to_color_string(self) -> str:
        return "".join(FACE_TO_COLOR[c] for c in self.f)

    def to_cubie_cube(self) -> CubieCube:
        cc = CubieCube(cp=[-1] * 8, co=[0] * 8, ep=[-1] * 12, eo=[0] * 12)
        for i in range(8):
            # orientation = index of the U/D facelet
            for ori in range(3):
                if self.f[CORNER_FACELETS[i][ori]] in ("U", "D"):
                    break
            col1 = self.f[CORNER_FACELETS[i][(ori + 1) % 3]]
            col2 = self.f[CORNER_FACELETS[i][(ori + 2) % 3]]
            for j in range(8):
                if col1 == CORNER_FACES[j][1] and col2 == CORNER_FACES[j][2]:
                    cc.cp[i] = j
                    cc.co[i] = ori % 3
                    break
        for i in range(12):
            a = self.f[EDGE_FACELETS[i][0]]
            b = self.f[EDGE_FACELETS[i][1]]
            for j in range(12):
                if a == EDGE_FACES[j][0] and b == EDGE_FACES[j][1]:
                    cc.ep[i], cc.eo[i] = j, 0
                    break
                if a == EDGE_FACES[j][1] and b == EDGE_FACES[j][0]:
                    cc.ep[i], cc.eo[i] = j, 1
                    break
        return cc


_CORNER_LOOKUP: Dict[int, Tuple[int, int]] = {
    f: (j, n) for j, facelets in enumerate(CORNER_FACELETS) for n, f in enumerate(facelets)
}
_EDGE_LOOKUP: Dict[int, Tuple[int, int]] = {
    f: (j, n) for j, facelets in enumerate(EDGE_FACELETS) for n, f in enumerate(facelets)
}


# ---------- Conversions ----------

def to_facelet_string(perm: Permutation) -> str:
    """54-char kociemba string (face letters) for a sticker permutation."""
    out = list(SOLVED_FACELETS)
    for slot in range(48):
        out[slot_to_facelet(slot)] = FACE_ORDER[perm.comes_from(slot) // 8]
    return "".join(out)


def to_color_string(perm: Permutation) -> str:
    """Same as `to_facelet_string`, spelled with sticker colors."""
    return "".join(FACE_TO_COLOR[c] for c in to_facelet_string(perm))


def from_facelet_string(facelets: str) -> Permutation:
    """Parse a kociemba string. Raises ConfigurationError if it is not a reachable state."""
    cc = FaceCube(facelets).to_cubie_cube()
    status = cc.verify()
    if status != 0:
        raise ConfigurationError(f"Facelet string is not a valid cube state (code {status})")
    return cc.to_permutation()


def from_color_string(colors: str) -> Permutation:
    return from_facelet_string("".join(COLOR_TO_FACE.get(c, "?") for c in colors))


# ---------- Puzzle model ----------

def build_cube() -> PermutationGroup:
    colors = [FACE_TO_COLOR[FACE_ORDER[slot // 8]] for slot in range(48)]
    generators = {face: CubieCube.move(face).to_permutation() for face in FACE_ORDER}
    corners = Orbit("corners", tuple(
        Piece(tuple(facelet_to_slot(f) for f in facelets)) for facelets in CORNER_FACELETS))
    edges = Orbit("edges", tuple(
        Piece(tuple(facelet_to_slot(f) for f in facelets)) for facelets in EDGE_FACELETS))
    return PermutationGroup(PUZZLE_NAME, colors, generators, (corners, edges))


register_puzzle(PUZZLE_NAME, build_cube)


def slot_names() -> Sequence[str]:
    """Human readable sticker names, 'U1'.. with centers skipped."""
    return [f"{FACE_ORDER[slot // 8]}{slot_to_facelet(slot) % 9 + 1}" for slot in range(48)]
