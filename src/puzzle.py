"""
puzzle.py — permutation puzzle model
====================================

The inference core never builds puzzle geometry itself: it consumes a
`PermutationGroup` that knows

* how many sticker slots (facelets) there are and which color each slot shows
  in the solved state (`facelet_colors()`),
* which generators (moves) act on the slots,
* how the slots group into *orbits* of rigid pieces, each piece listing its
  stickers in orientation order so that twisting the piece once maps
  `stickers[n]` to `stickers[n + 1]`.

Permutations are stored in *comes-from* form: `perm.comes_from(i)` is the
solved-state slot whose sticker currently sits at slot `i`, so the color
visible at slot `i` is `facelet_colors()[perm.comes_from(i)]`.

Composition follows the cubie convention of the move tables: `a.compose(b)`
is "state `a`, then apply `b`" and `result.comes_from(i) == a.comes_from(b.comes_from(i))`.

Puzzles are looked up by name through `resolve_puzzle`, so serialized models
store only the name and get the very same model object back on load.

-------------------------------------------------------------------------------

Copyright (c) 2025 Facundo Gauna & Ulises Carnevale. Licensed under MIT License.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from app_types import ConfigurationError

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class Permutation:
    __slots__ = ("_mapping",)

    def __init__(self, mapping: Iterable[int]):
        self._mapping: Tuple[int, ...] = tuple(int(v) for v in mapping)

    @classmethod
    def identity(cls, degree: int) -> "Permutation":
        return cls(range(degree))

    @property
    def mapping(self) -> Tuple[int, ...]:
        return self._mapping

    @property
    def degree(self) -> int:
        return len(self._mapping)

    def comes_from(self, slot: int) -> int:
        return self._mapping[slot]

    def compose(self, other: "Permutation") -> "Permutation":
        """`self` followed by `other`."""
        if other.degree != self.degree:
            raise ValueError("Cannot compose permutations of different degree")
        mine = self._mapping
        return Permutation(mine[i] for i in other._mapping)

    def inverse(self) -> "Permutation":
        inv = [0] * self.degree
        for i, v in enumerate(self._mapping):
            inv[v] = i
        return Permutation(inv)

    def restricted(self, keep: Iterable[int]) -> "Permutation":
        """Identity outside `keep`. Only meaningful when `keep` is closed under the permutation."""
        keep_set = set(keep)
        return Permutation(v if i in keep_set else i for i, v in enumerate(self._mapping))

    def is_identity(self) -> bool:
        return all(i == v for i, v in enumerate(self._mapping))

    def __len__(self) -> int:
        return len(self._mapping)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Permutation) and self._mapping == other._mapping

    def __hash__(self) -> int:
        return hash(self._mapping)

    def __repr__(self) -> str:
        return f"Permutation({list(self._mapping)})"


@dataclass(frozen=True)
class Piece:
    stickers: Tuple[int, ...]

    @property
    def orientation_count(self) -> int:
        return len(self.stickers)

    def orientation_of(self, sticker: int) -> int:
        return self.stickers.index(sticker)

    def twist(self, degree: int) -> Permutation:
        """Cyclic reorientation: stickers[n] -> stickers[n + 1]."""
        mapping = list(range(degree))
        r = len(self.stickers)
        for n, s in enumerate(self.stickers):
            mapping[s] = self.stickers[(n + 1) % r]
        return Permutation(mapping)


@dataclass(frozen=True)
class Orbit:
    name: str
    pieces: Tuple[Piece, ...]

    @property
    def stickers(self) -> Tuple[int, ...]:
        return tuple(s for piece in self.pieces for s in piece.stickers)

    @property
    def orientation_count(self) -> int:
        return max((p.orientation_count for p in self.pieces), default=0)


# move suffix -> quarter turns; a half turn has no direction
_TURNS = {"": 1, "'": 3, "2": 2, "2'": 2}


class PermutationGroup:
    def __init__(self,
                 name: str,
                 facelet_colors: Sequence[str],
                 generators: Dict[str, Permutation],
                 orbits: Sequence[Orbit] = ()):
        self.name = name
        self._facelet_colors: Tuple[str, ...] = tuple(facelet_colors)
        self._generators: Dict[str, Permutation] = dict(generators)
        self._orbits: Tuple[Orbit, ...] = tuple(orbits)
        self._stab_chain = None
        self._orbit_groups: Dict[str, "PermutationGroup"] = {}

        for gen_name, gen in self._generators.items():
            if gen.degree != len(self._facelet_colors):
                raise ConfigurationError(f"Generator {gen_name} has degree {gen.degree}, "
                                         f"expected {len(self._facelet_colors)}")
        seen = set()
        for orbit in self._orbits:
            for s in orbit.stickers:
                if s in seen or not 0 <= s < len(self._facelet_colors):
                    raise ConfigurationError(f"Orbit {orbit.name} has invalid or repeated sticker {s}")
                seen.add(s)

    def facelet_count(self) -> int:
        return len(self._facelet_colors)

    def facelet_colors(self) -> Tuple[str, ...]:
        return self._facelet_colors

    def colors(self) -> List[str]:
        """Distinct colors in first-appearance order."""
        return list(dict.fromkeys(self._facelet_colors))

    def generators(self) -> Dict[str, Permutation]:
        return dict(self._generators)

    def orbits(self) -> Tuple[Orbit, ...]:
        return self._orbits

    def identity(self) -> Permutation:
        return Permutation.identity(self.facelet_count())

    def restricted_to(self, stickers: Iterable[int], name: Optional[str] = None) -> "PermutationGroup":
        """Subgroup generated by the generators acting only on `stickers`, every other slot frozen."""
        keep = set(stickers)
        gens = {k: g.restricted(keep) for k, g in self._generators.items()}
        orbits = [o for o in self._orbits if set(o.stickers) <= keep]
        return PermutationGroup(name or f"{self.name}|{len(keep)}", self._facelet_colors, gens, orbits)

    def orbit_group(self, orbit: Orbit) -> "PermutationGroup":
        """`restricted_to(orbit.stickers)`, cached so its chain is only built once."""
        if orbit.name not in self._orbit_groups:
            self._orbit_groups[orbit.name] = self.restricted_to(orbit.stickers, f"{self.name}/{orbit.name}")
        return self._orbit_groups[orbit.name]

    def stabilizer_chain(self):
        """Lazily built and kept for the lifetime of the group."""
        if self._stab_chain is None:
            from stabilizer_chain import StabilizerChain
            logger.debug("Building stabilizer chain for %s", self.name)
            self._stab_chain = StabilizerChain(self.facelet_count(),
                                               [g.mapping for g in self._generators.values()])
        return self._stab_chain

    def apply_moves(self, state: Permutation, moves: str) -> Permutation:
        """Apply a move sequence like "R U R' U2" (generator names, ' for inverse, 2 for double)."""
        for token in moves.split():
            base = token.rstrip("'2")
            times = _TURNS.get(token[len(base):])
            if base not in self._generators or times is None:
                raise ConfigurationError(f"Unknown move {token!r} for puzzle {self.name}")
            for _ in range(times):
                state = state.compose(self._generators[base])
        return state

    def __repr__(self) -> str:
        return f"PermutationGroup({self.name!r}, facelets={self.facelet_count()})"


# ---------- Registry ----------

_FACTORIES: Dict[str, Callable[[], PermutationGroup]] = {}
_RESOLVED: Dict[str, PermutationGroup] = {}


def register_puzzle(name: str, factory: Callable[[], PermutationGroup]) -> None:
    _FACTORIES[name] = factory


def resolve_puzzle(name: str) -> PermutationGroup:
    """Return the shared model registered as `name`, building it on first use."""
    if name not in _RESOLVED:
        if name not in _FACTORIES:
            # the built-in cube registers itself on import
            import cube_geometry  # noqa: F401
        if name not in _FACTORIES:
            raise ConfigurationError(f"Unknown puzzle: {name!r}")
        _RESOLVED[name] = _FACTORIES[name]()
    return _RESOLVED[name]
